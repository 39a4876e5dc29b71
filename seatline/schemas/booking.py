"""Booking-related Pydantic schemas."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class BookingResponse(BaseModel):
    """Schema for booking response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    class_id: UUID
    guest_id: UUID
    quantity: int
    occupant_names: list[str]

    # Money (minor units)
    total_amount: int
    platform_fee: int
    host_payout: int
    fee_rate: Decimal
    currency: str

    status: str
    payment_status: str
    checkout_attempt_id: str
    host_message: str | None = None
    failure_reason: str | None = None
    reversal_required: bool
    cancelled_by: str | None = None
    liability_accepted: bool
    liability_version: str | None = None

    created_at: datetime
    approved_at: datetime | None = None
    denied_at: datetime | None = None
    cancelled_at: datetime | None = None
    paid_at: datetime | None = None
    liability_accepted_at: datetime | None = None


class BookingDenyRequest(BaseModel):
    """Host denial, with an optional message for the guest."""

    message: str | None = Field(None, max_length=1000)

    @field_validator("message")
    @classmethod
    def blank_to_none(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            return None
        return v.strip() if v else v


class BookingCancelRequest(BaseModel):
    reason: str | None = Field(None, max_length=1000)


class CheckoutRequest(BaseModel):
    """Guest checkout for one class."""

    quantity: int = Field(ge=1)
    occupant_names: list[str] = Field(min_length=1)
    liability_accepted: bool = False


class CheckoutResponse(BaseModel):
    checkout_url: str
    checkout_attempt_id: str
    hold_id: UUID
    hold_expires_at: datetime
    unit_amount: int
    total_amount: int


class CheckoutStatusResponse(BaseModel):
    """Where a checkout stands, for the guest returning from the hosted page."""

    checkout_attempt_id: str
    state: str  # booked, processing, released
    booking: BookingResponse | None = None


class AvailabilityResponse(BaseModel):
    class_id: UUID
    max_seats: int
    available_seats: int
    held_seats: int


class ReconciliationResponse(BaseModel):
    """Payment flagged for out-of-band follow-up."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    booking_id: UUID | None
    payment_intent_id: str | None
    checkout_attempt_id: str | None
    reason: str
    status: str
    details: dict | None
    created_at: datetime
