"""Pydantic schemas for API validation."""

from seatline.schemas.booking import (
    AvailabilityResponse,
    BookingCancelRequest,
    BookingDenyRequest,
    BookingResponse,
    CheckoutRequest,
    CheckoutResponse,
    ReconciliationResponse,
)

__all__ = [
    "AvailabilityResponse",
    "BookingCancelRequest",
    "BookingDenyRequest",
    "BookingResponse",
    "CheckoutRequest",
    "CheckoutResponse",
    "ReconciliationResponse",
]
