"""Release of held funds to hosts.

A booking is settled once its class has ended, the payout buffer has passed
and the host's payout account is eligible. The transfer is keyed by booking
id so a retried run never pays twice; a failed transfer leaves the booking
HELD and opens a reconciliation flag.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from seatline.config import settings
from seatline.core.exceptions import InvalidTransition
from seatline.domain.booking_state import BookingStatus, PaymentStatus
from seatline.models.booking import Booking
from seatline.models.listing import ClassListing
from seatline.models.payment import HostPayoutAccount, PaymentReconciliation
from seatline.services.booking_state_machine import BookingStateMachine
from seatline.utils.clock import utcnow

logger = logging.getLogger(__name__)

TRANSFER_FAILED = "transfer_failed"


@dataclass(frozen=True)
class PayoutCandidate:
    booking_id: UUID
    class_id: UUID
    host_payout: int
    currency: str
    destination: str
    payment_intent_id: str | None
    checkout_attempt_id: str


class SettlementService:
    """Moves APPROVED/HELD bookings to PAID."""

    def __init__(self, state_machine: BookingStateMachine) -> None:
        self.state_machine = state_machine

    async def due_for_release(
        self,
        db: AsyncSession,
        now: datetime | None = None,
    ) -> list[PayoutCandidate]:
        """Held bookings past the payout buffer whose host can be paid."""
        now = now or utcnow()
        cutoff = now - timedelta(hours=settings.payout_buffer_hours)
        result = await db.execute(
            select(
                Booking.id,
                Booking.class_id,
                Booking.host_payout,
                Booking.currency,
                HostPayoutAccount.external_account_id,
                Booking.payment_intent_id,
                Booking.checkout_attempt_id,
            )
            .join(ClassListing, ClassListing.id == Booking.class_id)
            .join(HostPayoutAccount, HostPayoutAccount.host_id == ClassListing.host_id)
            .where(
                Booking.status == BookingStatus.APPROVED.value,
                Booking.payment_status == PaymentStatus.HELD.value,
                ClassListing.ends_at <= cutoff,
                HostPayoutAccount.payout_eligible.is_(True),
                HostPayoutAccount.external_account_id.is_not(None),
            )
            .order_by(ClassListing.ends_at)
        )
        return [PayoutCandidate(*row) for row in result.all()]

    async def release_held_payments(
        self,
        db: AsyncSession,
        now: datetime | None = None,
    ) -> dict[str, int]:
        """Transfer host payouts for every due booking."""
        due = await self.due_for_release(db, now)
        summary = {"scanned": len(due), "released": 0, "failed": 0, "skipped": 0}

        for candidate in due:
            if candidate.host_payout <= 0:
                logger.warning(f"Booking {candidate.booking_id} has no host payout; skipping")
                summary["skipped"] += 1
                continue

            result = await self.state_machine.gateway.create_transfer(
                amount=candidate.host_payout,
                currency=candidate.currency,
                destination=candidate.destination,
                idempotency_key=f"payout-{candidate.booking_id}",
                metadata={
                    "booking_id": str(candidate.booking_id),
                    "class_id": str(candidate.class_id),
                },
            )
            if not result.success or not result.transfer_id:
                await self._flag_transfer_failure(db, candidate, result.error_message)
                summary["failed"] += 1
                continue

            try:
                await self.state_machine.settle(db, candidate.booking_id, result.transfer_id)
            except InvalidTransition as e:
                await db.rollback()
                await self._flag_transfer_failure(
                    db,
                    candidate,
                    f"transfer {result.transfer_id} sent but booking not settleable: {e.detail}",
                )
                summary["failed"] += 1
                continue
            summary["released"] += 1

        return summary

    async def _flag_transfer_failure(
        self,
        db: AsyncSession,
        candidate: PayoutCandidate,
        error: str | None,
    ) -> None:
        logger.error(f"Payout for booking {candidate.booking_id} failed: {error}")

        existing = await db.execute(
            select(PaymentReconciliation.id).where(
                PaymentReconciliation.booking_id == candidate.booking_id,
                PaymentReconciliation.reason == TRANSFER_FAILED,
                PaymentReconciliation.status == "OPEN",
            )
        )
        if existing.first() is not None:
            return

        db.add(
            PaymentReconciliation(
                booking_id=candidate.booking_id,
                payment_intent_id=candidate.payment_intent_id,
                checkout_attempt_id=candidate.checkout_attempt_id,
                reason=TRANSFER_FAILED,
                details={"error": error, "amount": candidate.host_payout},
            )
        )
        try:
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"Failed to flag payout failure for booking {candidate.booking_id}: {e}")
