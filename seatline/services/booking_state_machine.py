"""Booking lifecycle transitions.

Every operation validates against ``BOOKING_TRANSITIONS`` with the booking
row locked, writes status, payment status and timestamp together, commits,
and only then talks to the outside world (refunds, notifications). Outside
failures never roll a committed transition back; refund failures are flagged
in ``payment_reconciliations`` for follow-up.

Authorization (host of the class, guest, admin) is checked by the API layer.
"""

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from seatline.core.exceptions import (
    CapacityExceeded,
    InvalidTransition,
    NotFoundError,
    PersistenceUnavailable,
)
from seatline.domain.booking_state import (
    PAYMENT_STATUS_ON_ENTRY,
    BookingStatus,
    PaymentStatus,
    assert_booking_transition,
)
from seatline.domain.fees import FeeSplit
from seatline.gateways.base import PaymentGateway
from seatline.models.booking import Booking
from seatline.models.listing import ClassListing
from seatline.models.payment import PaymentReconciliation
from seatline.services.capacity_service import CapacityService, capacity_service
from seatline.services.notification_service import NotificationService, notification_service
from seatline.utils.clock import as_utc, utcnow

logger = logging.getLogger(__name__)

AUTO_DENY_MESSAGE = "Automatically denied because the class date has passed."
CAPACITY_EXCEEDED = "capacity_exceeded"
REFUND_FAILED = "refund_failed"


class BookingStateMachine:
    """Owns every status change a booking goes through."""

    def __init__(
        self,
        gateway: PaymentGateway,
        capacity: CapacityService = capacity_service,
        notifier: NotificationService = notification_service,
    ) -> None:
        self.gateway = gateway
        self.capacity = capacity
        self.notifier = notifier

    # ==================== LOADING ====================

    async def get_booking(self, db: AsyncSession, booking_id: UUID) -> Booking:
        booking = await db.get(Booking, booking_id)
        if booking is None:
            raise NotFoundError("Booking", str(booking_id))
        return booking

    async def _lock_booking(self, db: AsyncSession, booking_id: UUID) -> Booking:
        result = await db.execute(
            select(Booking)
            .where(Booking.id == booking_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        booking = result.scalar_one_or_none()
        if booking is None:
            raise NotFoundError("Booking", str(booking_id))
        return booking

    async def _commit(self, db: AsyncSession, booking: Booking) -> None:
        try:
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"Failed to persist transition for booking {booking.id}: {e}")
            raise PersistenceUnavailable() from e

    def _enter(self, booking: Booking, target: BookingStatus) -> None:
        booking.status = target.value
        booking.payment_status = PAYMENT_STATUS_ON_ENTRY[target].value

    # ==================== CREATION ====================

    async def create_from_payment(
        self,
        db: AsyncSession,
        *,
        listing_id: UUID,
        guest_id: UUID,
        quantity: int,
        occupant_names: list[str],
        fees: FeeSplit,
        checkout_attempt_id: str,
        payment_intent_id: str | None = None,
        guest_email: str | None = None,
        currency: str | None = None,
        source_event_id: str | None = None,
        liability_version: str | None = None,
    ) -> tuple[Booking, ClassListing]:
        """Insert the booking for a completed payment.

        Auto-approve classes lock the class row and land in APPROVED/HELD when
        the seats fit, or FAILED with a reversal flag when they don't. Other
        classes land in PENDING and are capacity-checked at approval.

        Does not commit; the caller owns the transaction.
        """
        listing = await self.capacity.get_class(db, listing_id)

        booking = Booking(
            class_id=listing.id,
            guest_id=guest_id,
            guest_email=guest_email,
            quantity=quantity,
            occupant_names=occupant_names,
            total_amount=fees.total,
            platform_fee=fees.platform_fee,
            host_payout=fees.host_payout,
            fee_rate=fees.fee_rate,
            currency=currency or listing.currency,
            checkout_attempt_id=checkout_attempt_id,
            payment_intent_id=payment_intent_id,
            source_event_id=source_event_id,
        )
        if liability_version:
            booking.liability_accepted = True
            booking.liability_version = liability_version
            booking.liability_accepted_at = utcnow()

        if not listing.auto_approve:
            self._enter(booking, BookingStatus.PENDING)
        else:
            listing = await self.capacity.lock_class(db, listing.id)
            if await self.capacity.has_capacity_for(db, listing, quantity):
                self._enter(booking, BookingStatus.APPROVED)
                booking.approved_at = utcnow()
            else:
                self._enter(booking, BookingStatus.FAILED)
                booking.failure_reason = CAPACITY_EXCEEDED
                booking.reversal_required = True

        db.add(booking)
        await db.flush()

        if booking.status == BookingStatus.FAILED.value:
            logger.warning(
                f"Class {listing.id} full; booking {booking.id} for checkout "
                f"{checkout_attempt_id} marked FAILED and flagged for reversal"
            )
            db.add(
                PaymentReconciliation(
                    booking_id=booking.id,
                    payment_intent_id=payment_intent_id,
                    checkout_attempt_id=checkout_attempt_id,
                    reason=CAPACITY_EXCEEDED,
                    details={"quantity": quantity, "max_seats": listing.max_seats},
                )
            )
        else:
            logger.info(
                f"Booking {booking.id} created as {booking.status} for class {listing.id} "
                f"({quantity} seat(s), total={fees.total})"
            )
        return booking, listing

    # ==================== HOST ACTIONS ====================

    async def approve(self, db: AsyncSession, booking_id: UUID) -> Booking:
        """PENDING → APPROVED, payment held.

        Raises:
            NotFoundError: Unknown booking
            InvalidTransition: Booking is not PENDING
            CapacityExceeded: Class has no room for the booking's seats
        """
        booking = await self.get_booking(db, booking_id)
        # Class before booking, the same lock order as creation
        listing = await self.capacity.lock_class(db, booking.class_id)
        booking = await self._lock_booking(db, booking_id)
        assert_booking_transition(booking.status, BookingStatus.APPROVED)

        if not await self.capacity.has_capacity_for(db, listing, booking.quantity):
            available = self.capacity.remaining(
                listing, await self.capacity.confirmed_seats(db, listing.id)
            )
            raise CapacityExceeded(booking.quantity, available)

        self._enter(booking, BookingStatus.APPROVED)
        booking.approved_at = utcnow()
        await self._commit(db, booking)
        logger.info(f"Booking {booking.id} approved")

        await self.notifier.enqueue_for_status(db, booking, listing)
        return booking

    async def deny(
        self,
        db: AsyncSession,
        booking_id: UUID,
        message: str | None = None,
    ) -> Booking:
        """PENDING → DENIED, payment refunded.

        Raises:
            NotFoundError: Unknown booking
            InvalidTransition: Booking is not PENDING
        """
        booking = await self._lock_booking(db, booking_id)
        assert_booking_transition(booking.status, BookingStatus.DENIED)

        self._enter(booking, BookingStatus.DENIED)
        booking.denied_at = utcnow()
        booking.host_message = message
        await self._commit(db, booking)
        logger.info(f"Booking {booking.id} denied")

        await self._refund(db, booking, reason=message or "Booking denied by host")
        listing = await self.capacity.get_class(db, booking.class_id)
        await self.notifier.enqueue_for_status(db, booking, listing)
        return booking

    async def cancel(
        self,
        db: AsyncSession,
        booking_id: UUID,
        cancelled_by: str,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> Booking:
        """PENDING/APPROVED → CANCELLED before the class starts, payment refunded.

        Raises:
            NotFoundError: Unknown booking
            InvalidTransition: Booking is terminal or the class has started
        """
        now = now or utcnow()
        booking = await self._lock_booking(db, booking_id)
        assert_booking_transition(booking.status, BookingStatus.CANCELLED)

        listing = await self.capacity.get_class(db, booking.class_id)
        if as_utc(listing.starts_at) <= now:
            raise InvalidTransition(
                booking.status,
                BookingStatus.CANCELLED.value,
                detail="Bookings cannot be cancelled once the class has started",
            )

        self._enter(booking, BookingStatus.CANCELLED)
        booking.cancelled_at = now
        booking.cancelled_by = cancelled_by
        booking.cancellation_reason = reason
        await self._commit(db, booking)
        logger.info(f"Booking {booking.id} cancelled by {cancelled_by}")

        await self._refund(db, booking, reason=reason or f"Cancelled by {cancelled_by}")
        await self.notifier.enqueue_for_status(db, booking, listing)
        return booking

    # ==================== SETTLEMENT ====================

    async def settle(self, db: AsyncSession, booking_id: UUID, transfer_id: str) -> Booking:
        """APPROVED/HELD → PAID once funds were transferred to the host."""
        booking = await self._lock_booking(db, booking_id)
        assert_booking_transition(booking.status, BookingStatus.PAID)
        if booking.payment_status != PaymentStatus.HELD.value:
            raise InvalidTransition(
                f"{booking.status}/{booking.payment_status}",
                BookingStatus.PAID.value,
            )

        self._enter(booking, BookingStatus.PAID)
        booking.paid_at = utcnow()
        booking.transfer_id = transfer_id
        await self._commit(db, booking)
        logger.info(f"Booking {booking.id} settled with transfer {transfer_id}")

        listing = await self.capacity.get_class(db, booking.class_id)
        await self.notifier.enqueue_for_status(db, booking, listing)
        return booking

    async def expire_pending_bookings(
        self,
        db: AsyncSession,
        now: datetime | None = None,
    ) -> dict[str, int]:
        """Deny PENDING bookings whose class has already ended."""
        now = now or utcnow()
        result = await db.execute(
            select(Booking.id)
            .join(ClassListing, ClassListing.id == Booking.class_id)
            .where(
                Booking.status == BookingStatus.PENDING.value,
                ClassListing.ends_at < now,
            )
            .order_by(Booking.created_at)
        )
        booking_ids = list(result.scalars().all())

        summary = {"scanned": len(booking_ids), "denied": 0, "skipped": 0}
        for booking_id in booking_ids:
            try:
                await self.deny(db, booking_id, message=AUTO_DENY_MESSAGE)
                summary["denied"] += 1
            except InvalidTransition:
                # Host acted between the scan and the lock
                await db.rollback()
                summary["skipped"] += 1
        return summary

    # ==================== REFUNDS ====================

    async def _refund(self, db: AsyncSession, booking: Booking, reason: str) -> bool:
        if not booking.payment_intent_id:
            error = "No payment intent recorded for booking"
        else:
            result = await self.gateway.refund_payment(
                payment_intent_id=booking.payment_intent_id,
                amount=None,
                reason=reason,
                idempotency_key=f"refund-{booking.id}",
            )
            if result.success:
                logger.info(f"Refund {result.refund_id} issued for booking {booking.id}")
                return True
            error = result.error_message or "Refund was not accepted"

        logger.error(f"Refund for booking {booking.id} failed: {error}")
        db.add(
            PaymentReconciliation(
                booking_id=booking.id,
                payment_intent_id=booking.payment_intent_id,
                checkout_attempt_id=booking.checkout_attempt_id,
                reason=REFUND_FAILED,
                details={"error": error, "amount": booking.total_amount},
            )
        )
        try:
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"Failed to flag refund failure for booking {booking.id}: {e}")
            await db.refresh(booking)
        return False
