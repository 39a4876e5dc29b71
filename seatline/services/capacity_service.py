"""Seat capacity for classes.

Confirmed seats are bookings in APPROVED or PAID. Every path that adds seats
to that set first takes ``lock_class`` so the capacity check and the write
are atomic with respect to other writers for the same class.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from seatline.core.exceptions import NotFoundError
from seatline.domain.booking_state import CONFIRMED_STATUSES, HoldStatus
from seatline.models.booking import Booking, BookingHold
from seatline.models.listing import ClassListing
from seatline.utils.clock import utcnow


class CapacityService:
    """Answers how many seats a class has left."""

    async def get_class(self, db: AsyncSession, class_id: UUID) -> ClassListing:
        listing = await db.get(ClassListing, class_id)
        if listing is None:
            raise NotFoundError("Class", str(class_id))
        return listing

    async def lock_class(self, db: AsyncSession, class_id: UUID) -> ClassListing:
        """Load the class row with ``SELECT ... FOR UPDATE``.

        Held until the caller's transaction ends.
        """
        result = await db.execute(
            select(ClassListing)
            .where(ClassListing.id == class_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        listing = result.scalar_one_or_none()
        if listing is None:
            raise NotFoundError("Class", str(class_id))
        return listing

    async def confirmed_seats(self, db: AsyncSession, class_id: UUID) -> int:
        result = await db.execute(
            select(func.coalesce(func.sum(Booking.quantity), 0)).where(
                Booking.class_id == class_id,
                Booking.status.in_([s.value for s in CONFIRMED_STATUSES]),
            )
        )
        return int(result.scalar_one())

    async def held_seats(
        self,
        db: AsyncSession,
        class_id: UUID,
        now: datetime | None = None,
    ) -> int:
        """Seats reserved by live checkout holds."""
        now = now or utcnow()
        result = await db.execute(
            select(func.coalesce(func.sum(BookingHold.quantity), 0)).where(
                BookingHold.class_id == class_id,
                BookingHold.status == HoldStatus.HELD.value,
                BookingHold.expires_at > now,
            )
        )
        return int(result.scalar_one())

    async def available_seats(self, db: AsyncSession, class_id: UUID) -> int:
        """Seats left after confirmed bookings, never negative.

        Raises:
            NotFoundError: Unknown class
        """
        listing = await self.get_class(db, class_id)
        return self.remaining(listing, await self.confirmed_seats(db, class_id))

    async def available_seats_with_holds(
        self,
        db: AsyncSession,
        class_id: UUID,
        now: datetime | None = None,
    ) -> int:
        """Seats left after confirmed bookings and live checkout holds."""
        listing = await self.get_class(db, class_id)
        taken = await self.confirmed_seats(db, class_id) + await self.held_seats(db, class_id, now)
        return self.remaining(listing, taken)

    async def has_capacity_for(
        self,
        db: AsyncSession,
        listing: ClassListing,
        quantity: int,
    ) -> bool:
        """Whether ``quantity`` more seats fit; call with the class locked."""
        confirmed = await self.confirmed_seats(db, listing.id)
        return confirmed + quantity <= listing.max_seats

    @staticmethod
    def remaining(listing: ClassListing, taken: int) -> int:
        return max(0, listing.max_seats - taken)


capacity_service = CapacityService()
