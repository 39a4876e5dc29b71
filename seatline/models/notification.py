"""Outbound notification queue."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from seatline.database import Base, JSONVariant
from seatline.utils.clock import utcnow


class NotificationJob(Base):
    """Email queued by a booking transition, delivered by a worker."""

    __tablename__ = "notification_jobs"
    __table_args__ = (
        UniqueConstraint("booking_id", "job_type", name="uq_notification_jobs_booking_type"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("bookings.id"), nullable=False, index=True
    )
    job_type: Mapped[str] = mapped_column(String(50), nullable=False)
    recipient_role: Mapped[str] = mapped_column(String(10), nullable=False)  # host, guest
    recipient_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    recipient_email: Mapped[str | None] = mapped_column(String(255))
    context: Mapped[dict] = mapped_column(JSONVariant, nullable=False, default=dict)

    status: Mapped[str] = mapped_column(
        String(20), default="queued", nullable=False, index=True
    )  # queued, sent, failed
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_error: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
