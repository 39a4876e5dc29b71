"""Platform fee arithmetic.

The guest pays the host's asking price with the platform fee layered on top,
so the authoritative split backs the fee out of the total:

- host_portion = total / (1 + rate)
- platform_fee = round_half_up(host_portion * rate)
- host_payout  = round_half_up(host_portion)

Rounding residue (at most one minor unit either way) goes to the platform, so
``platform_fee + host_payout == total`` always holds.

The guest-facing estimate uses the same rate and the inverse formula, keeping
the price shown at checkout consistent with the payout breakdown.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal


@dataclass(frozen=True)
class FeeSplit:
    """Platform fee and host payout for one guest-paid total."""

    total: int
    platform_fee: int
    host_payout: int
    fee_rate: Decimal


def _as_rate(fee_rate: Decimal | float | str) -> Decimal:
    rate = fee_rate if isinstance(fee_rate, Decimal) else Decimal(str(fee_rate))
    if rate < 0:
        raise ValueError(f"fee rate must be non-negative, got {rate}")
    return rate


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def split(total_paid: int, fee_rate: Decimal | float | str) -> FeeSplit:
    """Split a guest-paid total into platform fee and host payout.

    Args:
        total_paid: Amount charged to the guest, in minor units
        fee_rate: Platform fee rate, e.g. 0.15 for 15%

    Returns:
        FeeSplit whose parts sum to ``total_paid``
    """
    if total_paid < 0:
        raise ValueError(f"total must be non-negative, got {total_paid}")
    rate = _as_rate(fee_rate)

    host_portion = Decimal(total_paid) / (Decimal("1") + rate)
    host_payout = round_half_up(host_portion)
    platform_fee = round_half_up(host_portion * rate)

    # Absorb the rounding residue on the platform side
    platform_fee += total_paid - (platform_fee + host_payout)
    if platform_fee < 0:
        host_payout += platform_fee
        platform_fee = 0

    return FeeSplit(
        total=total_paid,
        platform_fee=platform_fee,
        host_payout=host_payout,
        fee_rate=rate,
    )


def guest_price_per_seat(price_per_seat: int, fee_rate: Decimal | float | str) -> int:
    """Per-seat price the guest is charged, fee included."""
    if price_per_seat < 0:
        raise ValueError(f"price must be non-negative, got {price_per_seat}")
    return round_half_up(Decimal(price_per_seat) * (Decimal("1") + _as_rate(fee_rate)))


def guest_total_for(price_per_seat: int, quantity: int, fee_rate: Decimal | float | str) -> int:
    """Total the guest is charged for ``quantity`` seats."""
    if quantity <= 0:
        raise ValueError(f"quantity must be positive, got {quantity}")
    return guest_price_per_seat(price_per_seat, fee_rate) * quantity
