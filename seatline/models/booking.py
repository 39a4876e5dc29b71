"""Booking-related database models."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from seatline.database import Base, JSONVariant
from seatline.domain.booking_state import BookingStatus, HoldStatus, PaymentStatus
from seatline.utils.clock import utcnow


class Booking(Base):
    """A paid reservation for one or more seats in a class.

    Rows are never deleted; status transitions keep the history.
    """

    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_bookings_quantity_positive"),
        Index("ix_bookings_class_status", "class_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    class_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("classes.id"), nullable=False, index=True
    )
    guest_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    guest_email: Mapped[str | None] = mapped_column(String(255))

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    occupant_names: Mapped[list[str]] = mapped_column(JSONVariant, nullable=False, default=list)

    # Money (minor units)
    total_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    platform_fee: Mapped[int] = mapped_column(Integer, nullable=False)
    host_payout: Mapped[int] = mapped_column(Integer, nullable=False)
    fee_rate: Mapped[Decimal] = mapped_column(Numeric(6, 4), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="usd")

    status: Mapped[str] = mapped_column(
        String(20), default=BookingStatus.PENDING.value, nullable=False, index=True
    )
    payment_status: Mapped[str] = mapped_column(
        String(20), default=PaymentStatus.PENDING.value, nullable=False
    )

    # Processor references
    checkout_attempt_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    payment_intent_id: Mapped[str | None] = mapped_column(String(255), index=True)
    source_event_id: Mapped[str | None] = mapped_column(String(255))
    transfer_id: Mapped[str | None] = mapped_column(String(255))

    host_message: Mapped[str | None] = mapped_column(Text)
    failure_reason: Mapped[str | None] = mapped_column(String(50))
    reversal_required: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    cancelled_by: Mapped[str | None] = mapped_column(String(10))  # guest, admin
    cancellation_reason: Mapped[str | None] = mapped_column(Text)

    # Liability agreement the guest accepted at checkout
    liability_accepted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    liability_version: Mapped[str | None] = mapped_column(String(20))
    liability_accepted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    denied_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )


class BookingHold(Base):
    """Provisional seat hold taken when a guest starts checkout."""

    __tablename__ = "booking_holds"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_booking_holds_quantity_positive"),
        Index("ix_booking_holds_class_status", "class_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    class_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("classes.id"), nullable=False, index=True
    )
    guest_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=HoldStatus.HELD.value, nullable=False
    )
    checkout_attempt_id: Mapped[str | None] = mapped_column(String(255), unique=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    released_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
