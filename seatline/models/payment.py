"""Payment-related database models."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from seatline.database import Base, JSONVariant
from seatline.utils.clock import utcnow


class InboundPaymentEvent(Base):
    """Processor event, recorded once per event id. Append-only."""

    __tablename__ = "inbound_payment_events"

    event_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    payload: Mapped[dict] = mapped_column(JSONVariant, nullable=False)
    received_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )


class CheckoutAttemptClaim(Base):
    """First event to claim a checkout attempt wins. Append-only."""

    __tablename__ = "checkout_attempt_claims"

    checkout_attempt_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    event_id: Mapped[str | None] = mapped_column(String(255))
    claimed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )


class HostPayoutAccount(Base):
    """Host's connected payout account and eligibility flag."""

    __tablename__ = "host_payout_accounts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    host_id: Mapped[uuid.UUID] = mapped_column(Uuid, unique=True, nullable=False)
    external_account_id: Mapped[str | None] = mapped_column(String(255), unique=True)
    payout_eligible: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )


class PaymentReconciliation(Base):
    """Payment needing out-of-band follow-up (reversal, failed refund or transfer)."""

    __tablename__ = "payment_reconciliations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("bookings.id"), index=True
    )
    payment_intent_id: Mapped[str | None] = mapped_column(String(255))
    checkout_attempt_id: Mapped[str | None] = mapped_column(String(255))
    reason: Mapped[str] = mapped_column(
        String(50), nullable=False
    )  # capacity_exceeded, refund_failed, transfer_failed
    status: Mapped[str] = mapped_column(String(20), default="OPEN", nullable=False, index=True)
    details: Mapped[dict | None] = mapped_column(JSONVariant)
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
