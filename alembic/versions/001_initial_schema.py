"""Initial database schema.

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-18

Creates all initial tables for Seatline:
- Classes
- Bookings and seat holds
- Payment events, checkout claims and reconciliations
- Host payout accounts
- Notification jobs
"""

from typing import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers
revision: str = "001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create all database tables."""

    # ==================== CLASSES ====================
    op.create_table(
        "classes",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("host_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("host_email", sa.String(255)),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column("max_seats", sa.Integer, nullable=False),
        sa.Column("price_per_seat", sa.Integer, nullable=False),
        sa.Column("currency", sa.String(3), server_default="usd"),
        sa.Column("auto_approve", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("max_seats > 0", name="ck_classes_max_seats_positive"),
        sa.CheckConstraint("price_per_seat >= 0", name="ck_classes_price_non_negative"),
        sa.CheckConstraint("ends_at > starts_at", name="ck_classes_ends_after_start"),
    )

    # ==================== BOOKINGS ====================
    op.create_table(
        "bookings",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("class_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("classes.id"), nullable=False, index=True),
        sa.Column("guest_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("guest_email", sa.String(255)),
        sa.Column("quantity", sa.Integer, nullable=False),
        sa.Column("occupant_names", postgresql.JSONB, nullable=False),
        sa.Column("total_amount", sa.Integer, nullable=False),
        sa.Column("platform_fee", sa.Integer, nullable=False),
        sa.Column("host_payout", sa.Integer, nullable=False),
        sa.Column("fee_rate", sa.Numeric(6, 4), nullable=False),
        sa.Column("currency", sa.String(3), server_default="usd"),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING", index=True),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("checkout_attempt_id", sa.String(255), nullable=False, unique=True),
        sa.Column("payment_intent_id", sa.String(255), index=True),
        sa.Column("source_event_id", sa.String(255)),
        sa.Column("transfer_id", sa.String(255)),
        sa.Column("host_message", sa.Text),
        sa.Column("failure_reason", sa.String(50)),
        sa.Column("reversal_required", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("cancelled_by", sa.String(10)),
        sa.Column("cancellation_reason", sa.Text),
        sa.Column("liability_accepted", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("liability_version", sa.String(20)),
        sa.Column("liability_accepted_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("approved_at", sa.DateTime(timezone=True)),
        sa.Column("denied_at", sa.DateTime(timezone=True)),
        sa.Column("cancelled_at", sa.DateTime(timezone=True)),
        sa.Column("paid_at", sa.DateTime(timezone=True)),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("quantity > 0", name="ck_bookings_quantity_positive"),
    )
    op.create_index("ix_bookings_class_status", "bookings", ["class_id", "status"])

    op.create_table(
        "booking_holds",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("class_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("classes.id"), nullable=False, index=True),
        sa.Column("guest_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("quantity", sa.Integer, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="HELD"),
        sa.Column("checkout_attempt_id", sa.String(255), unique=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("released_at", sa.DateTime(timezone=True)),
        sa.CheckConstraint("quantity > 0", name="ck_booking_holds_quantity_positive"),
    )
    op.create_index("ix_booking_holds_class_status", "booking_holds", ["class_id", "status"])

    # ==================== PAYMENTS ====================
    op.create_table(
        "inbound_payment_events",
        sa.Column("event_id", sa.String(255), primary_key=True),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("payload", postgresql.JSONB, nullable=False),
        sa.Column("received_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "checkout_attempt_claims",
        sa.Column("checkout_attempt_id", sa.String(255), primary_key=True),
        sa.Column("event_id", sa.String(255)),
        sa.Column("claimed_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "host_payout_accounts",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("host_id", postgresql.UUID(as_uuid=True), nullable=False, unique=True),
        sa.Column("external_account_id", sa.String(255), unique=True),
        sa.Column("payout_eligible", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "payment_reconciliations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("booking_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("bookings.id"), index=True),
        sa.Column("payment_intent_id", sa.String(255)),
        sa.Column("checkout_attempt_id", sa.String(255)),
        sa.Column("reason", sa.String(50), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="OPEN", index=True),
        sa.Column("details", postgresql.JSONB),
        sa.Column("notes", sa.Text),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("resolved_at", sa.DateTime(timezone=True)),
    )

    # ==================== NOTIFICATIONS ====================
    op.create_table(
        "notification_jobs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("booking_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("bookings.id"), nullable=False, index=True),
        sa.Column("job_type", sa.String(50), nullable=False),
        sa.Column("recipient_role", sa.String(10), nullable=False),
        sa.Column("recipient_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("recipient_email", sa.String(255)),
        sa.Column("context", postgresql.JSONB, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="queued", index=True),
        sa.Column("attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("sent_at", sa.DateTime(timezone=True)),
        sa.UniqueConstraint("booking_id", "job_type", name="uq_notification_jobs_booking_type"),
    )


def downgrade() -> None:
    """Drop all database tables in reverse order."""
    op.drop_table("notification_jobs")
    op.drop_table("payment_reconciliations")
    op.drop_table("host_payout_accounts")
    op.drop_table("checkout_attempt_claims")
    op.drop_table("inbound_payment_events")
    op.drop_index("ix_booking_holds_class_status", table_name="booking_holds")
    op.drop_table("booking_holds")
    op.drop_index("ix_bookings_class_status", table_name="bookings")
    op.drop_table("bookings")
    op.drop_table("classes")
