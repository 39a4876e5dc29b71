"""Checkout initiation with provisional seat holds.

A hold reserves seats for ``hold_ttl_minutes`` while the guest is on the
processor's hosted page, which closes most of the window in which two guests
could both pay for the last seat. The completion event consumes the hold.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from seatline.config import settings
from seatline.core.exceptions import (
    CapacityExceeded,
    ExternalServiceError,
    NotFoundError,
    PersistenceUnavailable,
    ValidationError,
)
from seatline.domain.booking_state import HoldStatus
from seatline.domain.fees import guest_price_per_seat
from seatline.gateways.base import PaymentGateway
from seatline.models.booking import Booking, BookingHold
from seatline.services.capacity_service import CapacityService, capacity_service
from seatline.utils.clock import as_utc, utcnow
from seatline.utils.validators import validate_occupant_names

logger = logging.getLogger(__name__)

# Stripe refuses checkout sessions that expire sooner than this
MIN_SESSION_LIFETIME = timedelta(minutes=30)


@dataclass
class CheckoutSessionResult:
    checkout_url: str
    checkout_attempt_id: str
    hold_id: UUID
    hold_expires_at: datetime
    unit_amount: int
    total_amount: int


class CheckoutService:
    """Starts guest checkouts."""

    def __init__(
        self,
        gateway: PaymentGateway,
        fee_rate: Decimal,
        capacity: CapacityService = capacity_service,
    ) -> None:
        self.gateway = gateway
        self.fee_rate = fee_rate
        self.capacity = capacity

    async def start_checkout(
        self,
        db: AsyncSession,
        class_id: UUID,
        guest_id: UUID,
        quantity: int,
        occupant_names: list[str],
        liability_accepted: bool = False,
        now: datetime | None = None,
    ) -> CheckoutSessionResult:
        """Hold seats and open a hosted checkout session.

        Raises:
            NotFoundError: Unknown class
            ValidationError: Bad quantity or names, liability agreement not
                accepted, or class not bookable
            CapacityExceeded: Not enough unheld seats
            ExternalServiceError: Processor refused to create the session
        """
        now = now or utcnow()
        if not 1 <= quantity <= settings.max_seats_per_checkout:
            raise ValidationError(
                f"Quantity must be between 1 and {settings.max_seats_per_checkout}"
            )
        try:
            names = validate_occupant_names(occupant_names, quantity)
        except ValueError as e:
            raise ValidationError(str(e))
        if not liability_accepted:
            raise ValidationError("The liability agreement must be accepted to book this class")

        listing = await self.capacity.lock_class(db, class_id)
        if not listing.is_active:
            raise ValidationError("This class is no longer offered")
        if as_utc(listing.starts_at) <= now:
            raise ValidationError("This class has already started")

        available = await self.capacity.available_seats_with_holds(db, class_id, now=now)
        if quantity > available:
            raise CapacityExceeded(quantity, available)

        unit_amount = guest_price_per_seat(listing.price_per_seat, self.fee_rate)
        hold = BookingHold(
            class_id=listing.id,
            guest_id=guest_id,
            quantity=quantity,
            expires_at=now + timedelta(minutes=settings.hold_ttl_minutes),
        )
        db.add(hold)
        try:
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            raise PersistenceUnavailable() from e

        metadata = {
            "class_id": str(listing.id),
            "guest_id": str(guest_id),
            "quantity": str(quantity),
            "occupant_names": json.dumps(names),
            "hold_id": str(hold.id),
            "liability_accepted": "true",
            "liability_version": settings.liability_version,
        }
        result = await self.gateway.create_checkout_session(
            unit_amount=unit_amount,
            quantity=quantity,
            currency=listing.currency,
            description=f"Class: {listing.title}",
            metadata=metadata,
            expires_at=max(hold.expires_at, now + MIN_SESSION_LIFETIME),
            idempotency_key=f"checkout-{hold.id}",
        )
        if not result.success or not result.session_id or not result.url:
            await self._release_hold(db, hold.id, HoldStatus.CANCELLED)
            raise ExternalServiceError("payments", result.error_message)

        hold.checkout_attempt_id = result.session_id
        try:
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            raise PersistenceUnavailable() from e

        logger.info(
            f"Checkout {result.session_id} started for class {listing.id}: "
            f"{quantity} seat(s) held until {hold.expires_at.isoformat()}"
        )
        return CheckoutSessionResult(
            checkout_url=result.url,
            checkout_attempt_id=result.session_id,
            hold_id=hold.id,
            hold_expires_at=hold.expires_at,
            unit_amount=unit_amount,
            total_amount=unit_amount * quantity,
        )

    async def _release_hold(self, db: AsyncSession, hold_id: UUID, status: HoldStatus) -> None:
        await db.execute(
            update(BookingHold)
            .where(BookingHold.id == hold_id, BookingHold.status == HoldStatus.HELD.value)
            .values(status=status.value, released_at=utcnow())
        )
        await db.commit()

    async def get_checkout_status(
        self,
        db: AsyncSession,
        checkout_attempt_id: str,
    ) -> tuple[Booking | None, BookingHold | None]:
        """Booking and hold recorded for a checkout session.

        The booking is absent until the completion event has been processed.

        Raises:
            NotFoundError: Neither a booking nor a hold references the session
        """
        booking = await db.scalar(
            select(Booking)
            .where(Booking.checkout_attempt_id == checkout_attempt_id)
            .execution_options(populate_existing=True)
        )
        hold = await db.scalar(
            select(BookingHold)
            .where(BookingHold.checkout_attempt_id == checkout_attempt_id)
            .execution_options(populate_existing=True)
        )
        if booking is None and hold is None:
            raise NotFoundError("Checkout", checkout_attempt_id)
        return booking, hold

    async def expire_holds(self, db: AsyncSession, now: datetime | None = None) -> dict[str, int]:
        """Mark live holds past their expiry as EXPIRED; the caller commits."""
        now = now or utcnow()
        result = await db.execute(
            update(BookingHold)
            .where(
                BookingHold.status == HoldStatus.HELD.value,
                BookingHold.expires_at <= now,
            )
            .values(status=HoldStatus.EXPIRED.value, released_at=now)
            .execution_options(synchronize_session=False)
        )
        return {"expired": result.rowcount or 0}
