"""
Tests for platform fee arithmetic.
"""

from decimal import Decimal

import pytest

from seatline.domain.fees import guest_price_per_seat, guest_total_for, split


def test_split_exact_total():
    """Guest total built from a whole host price splits back exactly."""
    fees = split(4600, Decimal("0.15"))
    assert fees.host_payout == 4000
    assert fees.platform_fee == 600
    assert fees.total == 4600


@pytest.mark.parametrize("total", [0, 1, 99, 101, 1150, 2301, 9999, 123457])
def test_split_parts_always_sum_to_total(total):
    """Rounding residue never creates or loses a minor unit."""
    fees = split(total, Decimal("0.15"))
    assert fees.platform_fee + fees.host_payout == total
    assert fees.platform_fee >= 0
    assert fees.host_payout >= 0


def test_split_zero_rate_pays_host_everything():
    fees = split(5000, Decimal("0"))
    assert fees.platform_fee == 0
    assert fees.host_payout == 5000


def test_split_accepts_float_rate():
    fees = split(1150, 0.15)
    assert fees.fee_rate == Decimal("0.15")
    assert fees.host_payout == 1000
    assert fees.platform_fee == 150


def test_split_rejects_negative_values():
    with pytest.raises(ValueError):
        split(-1, Decimal("0.15"))
    with pytest.raises(ValueError):
        split(100, Decimal("-0.1"))


def test_guest_price_rounds_half_up():
    # 1 * 1.15 = 1.15 -> 1, 10 * 1.15 = 11.5 -> 12
    assert guest_price_per_seat(1, Decimal("0.15")) == 1
    assert guest_price_per_seat(10, Decimal("0.15")) == 12
    assert guest_price_per_seat(2000, Decimal("0.15")) == 2300


def test_guest_total_matches_split():
    """The checkout price and the payout split agree on the host's share."""
    total = guest_total_for(2000, 3, Decimal("0.15"))
    assert total == 6900
    assert split(total, Decimal("0.15")).host_payout == 6000


def test_guest_total_requires_positive_quantity():
    with pytest.raises(ValueError):
        guest_total_for(2000, 0, Decimal("0.15"))


def test_split_backs_fee_out_of_total():
    fees = split(11500, Decimal("0.15"))
    assert fees.platform_fee == 1500
    assert fees.host_payout == 10000
