"""Booking state machine tables."""

from enum import Enum

from seatline.core.exceptions import InvalidTransition


class BookingStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    DENIED = "DENIED"
    FAILED = "FAILED"
    PAID = "PAID"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    HELD = "HELD"
    PAID = "PAID"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class HoldStatus(str, Enum):
    HELD = "HELD"
    CONSUMED = "CONSUMED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


# Statuses whose seats count against class capacity
CONFIRMED_STATUSES = frozenset({BookingStatus.APPROVED, BookingStatus.PAID})

BOOKING_TRANSITIONS: dict[BookingStatus, set[BookingStatus]] = {
    BookingStatus.PENDING: {BookingStatus.APPROVED, BookingStatus.DENIED, BookingStatus.CANCELLED},
    BookingStatus.APPROVED: {BookingStatus.PAID, BookingStatus.CANCELLED},
    BookingStatus.DENIED: set(),
    BookingStatus.FAILED: set(),
    BookingStatus.PAID: set(),
    BookingStatus.CANCELLED: set(),
    BookingStatus.REFUNDED: set(),
}

TERMINAL_STATUSES = frozenset(s for s, targets in BOOKING_TRANSITIONS.items() if not targets)

# Payment status each booking status lands on when entered through a transition
PAYMENT_STATUS_ON_ENTRY: dict[BookingStatus, PaymentStatus] = {
    BookingStatus.PENDING: PaymentStatus.PENDING,
    BookingStatus.APPROVED: PaymentStatus.HELD,
    BookingStatus.DENIED: PaymentStatus.REFUNDED,
    BookingStatus.FAILED: PaymentStatus.FAILED,
    BookingStatus.PAID: PaymentStatus.PAID,
    BookingStatus.CANCELLED: PaymentStatus.REFUNDED,
}


def is_terminal(status: str) -> bool:
    return BookingStatus(status) in TERMINAL_STATUSES


def assert_booking_transition(current: str, target: str) -> None:
    allowed = BOOKING_TRANSITIONS.get(BookingStatus(current), set())
    if BookingStatus(target) not in allowed:
        raise InvalidTransition(BookingStatus(current).value, BookingStatus(target).value)


def assert_hold_transition(current: str, target: str) -> None:
    # Only a live hold can move; every other hold status is final
    if HoldStatus(current) != HoldStatus.HELD or HoldStatus(target) == HoldStatus.HELD:
        raise InvalidTransition(current, target, detail=f"Invalid hold transition: {current} → {target}")
