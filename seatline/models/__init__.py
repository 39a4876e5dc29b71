"""Database models."""

from seatline.models.booking import Booking, BookingHold
from seatline.models.listing import ClassListing
from seatline.models.notification import NotificationJob
from seatline.models.payment import (
    CheckoutAttemptClaim,
    HostPayoutAccount,
    InboundPaymentEvent,
    PaymentReconciliation,
)

__all__ = [
    # Listing
    "ClassListing",
    # Booking
    "Booking",
    "BookingHold",
    # Payment
    "InboundPaymentEvent",
    "CheckoutAttemptClaim",
    "HostPayoutAccount",
    "PaymentReconciliation",
    # Notification
    "NotificationJob",
]
