"""
Tests for the booking transition table.
"""

import pytest

from seatline.core.exceptions import InvalidTransition
from seatline.domain.booking_state import (
    BOOKING_TRANSITIONS,
    PAYMENT_STATUS_ON_ENTRY,
    BookingStatus,
    HoldStatus,
    PaymentStatus,
    assert_booking_transition,
    assert_hold_transition,
    is_terminal,
)


@pytest.mark.parametrize(
    "current,target",
    [
        ("PENDING", "APPROVED"),
        ("PENDING", "DENIED"),
        ("PENDING", "CANCELLED"),
        ("APPROVED", "PAID"),
        ("APPROVED", "CANCELLED"),
    ],
)
def test_allowed_transitions(current, target):
    assert_booking_transition(current, target)


@pytest.mark.parametrize(
    "current,target",
    [
        ("APPROVED", "APPROVED"),
        ("APPROVED", "DENIED"),
        ("DENIED", "APPROVED"),
        ("PAID", "CANCELLED"),
        ("FAILED", "APPROVED"),
        ("CANCELLED", "PENDING"),
        ("PENDING", "PAID"),
    ],
)
def test_rejected_transitions(current, target):
    with pytest.raises(InvalidTransition) as exc_info:
        assert_booking_transition(current, target)
    assert exc_info.value.status_code == 409
    assert exc_info.value.current == current


def test_terminal_statuses_have_no_exits():
    for status in ("DENIED", "FAILED", "PAID", "CANCELLED", "REFUNDED"):
        assert is_terminal(status)
        assert BOOKING_TRANSITIONS[BookingStatus(status)] == set()
    assert not is_terminal("PENDING")
    assert not is_terminal("APPROVED")


def test_payment_status_follows_booking_status():
    assert PAYMENT_STATUS_ON_ENTRY[BookingStatus.APPROVED] == PaymentStatus.HELD
    assert PAYMENT_STATUS_ON_ENTRY[BookingStatus.DENIED] == PaymentStatus.REFUNDED
    assert PAYMENT_STATUS_ON_ENTRY[BookingStatus.FAILED] == PaymentStatus.FAILED
    assert PAYMENT_STATUS_ON_ENTRY[BookingStatus.PAID] == PaymentStatus.PAID


def test_only_live_holds_move():
    assert_hold_transition(HoldStatus.HELD.value, HoldStatus.CONSUMED.value)
    assert_hold_transition(HoldStatus.HELD.value, HoldStatus.EXPIRED.value)
    with pytest.raises(InvalidTransition):
        assert_hold_transition(HoldStatus.EXPIRED.value, HoldStatus.CONSUMED.value)
    with pytest.raises(InvalidTransition):
        assert_hold_transition(HoldStatus.HELD.value, HoldStatus.HELD.value)
