"""Inbound payment event processing.

One event is handled in one transaction: the event record, the checkout
attempt claim, hold consumption and the booking insert commit together or
not at all. When the datastore fails the whole transaction rolls back and
``PersistenceUnavailable`` tells the processor to retry; the retry finds no
event record and starts over. Events that are recorded but cannot be applied
(malformed, unknown class, already claimed) are acknowledged. Payments made
without the current liability agreement are refunded instead of booked.

Notifications are enqueued after the commit and never affect the response.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from seatline.config import settings
from seatline.core.exceptions import MalformedEvent, NotFoundError, PersistenceUnavailable
from seatline.core.idempotency import claim_checkout_attempt, record_event
from seatline.domain.booking_state import BookingStatus, HoldStatus, assert_hold_transition
from seatline.domain.events import (
    SETTLED_PAYMENT_STATES,
    AccountStatusChanged,
    CheckoutSession,
    PaymentCompleted,
    decode_envelope,
    decode_event,
)
from seatline.domain.fees import split
from seatline.models.booking import Booking, BookingHold
from seatline.models.listing import ClassListing
from seatline.models.payment import PaymentReconciliation
from seatline.services.booking_state_machine import REFUND_FAILED, BookingStateMachine
from seatline.services.host_account_service import HostAccountService, host_account_service
from seatline.utils.clock import as_utc, utcnow

logger = logging.getLogger(__name__)

INVALID_LIABILITY = "invalid_liability"


@dataclass
class IngestResult:
    """What happened to one inbound event."""

    event_id: str
    event_type: str
    outcome: str
    duplicate: bool = False
    booking_id: UUID | None = None

    def as_response(self) -> dict[str, Any]:
        response: dict[str, Any] = {"received": True, "outcome": self.outcome}
        if self.duplicate:
            response["duplicate"] = True
        if self.booking_id:
            response["booking_id"] = str(self.booking_id)
        return response


class ReconciliationService:
    """Turns processor events into bookings and account updates."""

    def __init__(
        self,
        state_machine: BookingStateMachine,
        fee_rate: Decimal,
        accounts: HostAccountService = host_account_service,
        liability_version: str | None = None,
    ) -> None:
        self.state_machine = state_machine
        self.fee_rate = fee_rate
        self.accounts = accounts
        self.liability_version = liability_version or settings.liability_version

    async def ingest(self, db: AsyncSession, payload: Any) -> IngestResult:
        """Process one authenticated event payload.

        Raises:
            MalformedEvent: Envelope could not be decoded (nothing recorded)
            PersistenceUnavailable: Storage failed; nothing was committed
        """
        envelope = decode_envelope(payload)

        booking: Booking | None = None
        listing: ClassListing | None = None
        try:
            recorded = await record_event(db, envelope.id, envelope.type, payload)
            if not recorded.is_new:
                await db.rollback()
                return IngestResult(
                    event_id=envelope.id,
                    event_type=envelope.type,
                    outcome="already_processed",
                    duplicate=True,
                )

            try:
                event = decode_event(payload)
            except MalformedEvent as e:
                logger.warning(
                    f"Malformed {envelope.type} event {envelope.id} acknowledged "
                    f"without effect: {e.errors}"
                )
                outcome = "malformed"
            else:
                if isinstance(event, PaymentCompleted):
                    outcome, booking, listing = await self._payment_completed(db, event)
                elif isinstance(event, AccountStatusChanged):
                    outcome = await self._account_status_changed(db, event)
                else:
                    logger.info(f"Ignoring unhandled event type {envelope.type} ({envelope.id})")
                    outcome = "ignored"

            await db.commit()
        except (SQLAlchemyError, PersistenceUnavailable) as e:
            await db.rollback()
            logger.error(f"Event {envelope.id} not recorded, processor will retry: {e}")
            if isinstance(e, PersistenceUnavailable):
                raise
            raise PersistenceUnavailable() from e
        except Exception:
            await db.rollback()
            raise

        # The event is durable from here on; nothing below may fail the request
        booking_id = booking.id if booking is not None else None
        if booking is not None and listing is not None:
            try:
                await self.state_machine.notifier.enqueue_for_status(db, booking, listing)
            except Exception as e:
                logger.error(
                    f"Event {envelope.id}: notifications for booking {booking_id} "
                    f"not enqueued: {e}"
                )

        return IngestResult(
            event_id=envelope.id,
            event_type=envelope.type,
            outcome=outcome,
            booking_id=booking_id,
        )

    # ==================== PAYMENT COMPLETED ====================

    async def _payment_completed(
        self,
        db: AsyncSession,
        event: PaymentCompleted,
    ) -> tuple[str, Booking | None, ClassListing | None]:
        session = event.session
        meta = session.metadata

        if session.payment_status and session.payment_status not in SETTLED_PAYMENT_STATES:
            logger.info(
                f"Checkout {session.id} completed with payment_status="
                f"{session.payment_status}; no booking created"
            )
            return "payment_not_settled", None, None

        claim = await claim_checkout_attempt(db, session.id, event_id=event.id)
        if not claim.is_new:
            return "already_processed", None, None

        if not meta.accepted_liability(self.liability_version):
            await self._refund_without_liability(db, session)
            return INVALID_LIABILITY, None, None

        await self._release_hold(db, session.id, meta.hold_id)

        fees = split(session.amount_total, self.fee_rate)
        try:
            booking, listing = await self.state_machine.create_from_payment(
                db,
                listing_id=meta.class_id,
                guest_id=meta.guest_id,
                quantity=meta.quantity,
                occupant_names=meta.occupant_names,
                fees=fees,
                checkout_attempt_id=session.id,
                payment_intent_id=session.payment_intent_id,
                guest_email=session.email,
                currency=session.currency,
                source_event_id=event.id,
                liability_version=meta.liability_version,
            )
        except NotFoundError:
            logger.warning(
                f"Event {event.id}: class {meta.class_id} not found; "
                f"checkout {session.id} acknowledged without a booking"
            )
            return "class_not_found", None, None

        if booking.status == BookingStatus.FAILED.value:
            return "capacity_exceeded", booking, listing
        return "booking_created", booking, listing

    async def _release_hold(
        self,
        db: AsyncSession,
        checkout_attempt_id: str,
        hold_id: UUID | None,
        target: HoldStatus = HoldStatus.CONSUMED,
    ) -> None:
        conditions = [BookingHold.checkout_attempt_id == checkout_attempt_id]
        if hold_id is not None:
            conditions.append(BookingHold.id == hold_id)

        result = await db.execute(
            select(BookingHold)
            .where(or_(*conditions))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        hold = result.scalars().first()
        if hold is None:
            return

        if hold.status != HoldStatus.HELD.value:
            logger.info(
                f"Hold {hold.id} was {hold.status} when checkout {checkout_attempt_id} completed"
            )
            return

        assert_hold_transition(hold.status, target)
        hold.status = target.value
        hold.released_at = utcnow()
        if as_utc(hold.expires_at) <= hold.released_at:
            logger.info(f"Hold {hold.id} released as {target.value} after its expiry")

    async def _refund_without_liability(self, db: AsyncSession, session: CheckoutSession) -> None:
        """Refund a checkout paid without the current liability agreement.

        The hold is cancelled and no booking is created. A refund the
        processor refuses is flagged for manual follow-up.
        """
        logger.warning(
            f"Checkout {session.id} paid without accepting liability agreement "
            f"{self.liability_version}; refunding"
        )
        await self._release_hold(db, session.id, session.metadata.hold_id, HoldStatus.CANCELLED)

        if not session.payment_intent_id:
            error = "No payment intent recorded for checkout"
        else:
            result = await self.state_machine.gateway.refund_payment(
                payment_intent_id=session.payment_intent_id,
                amount=None,
                reason="Liability agreement not accepted",
                idempotency_key=f"liability-refund-{session.id}",
            )
            if result.success:
                logger.info(f"Refund {result.refund_id} issued for checkout {session.id}")
                return
            error = result.error_message or "Refund was not accepted"

        logger.error(f"Refund for checkout {session.id} failed: {error}")
        db.add(
            PaymentReconciliation(
                payment_intent_id=session.payment_intent_id,
                checkout_attempt_id=session.id,
                reason=REFUND_FAILED,
                details={
                    "error": error,
                    "amount": session.amount_total,
                    "cause": INVALID_LIABILITY,
                },
            )
        )

    # ==================== ACCOUNT STATUS ====================

    async def _account_status_changed(self, db: AsyncSession, event: AccountStatusChanged) -> str:
        account = event.account
        updated = await self.accounts.sync_account_status(
            db,
            external_account_id=account.id,
            details_submitted=account.details_submitted,
            host_id=account.metadata.host_id,
        )
        return "account_updated" if updated is not None else "account_unmatched"
