"""Builders for test rows, processor events and auth headers."""

import hashlib
import hmac
import json
import time
from datetime import timedelta
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from seatline.config import settings
from seatline.core.security import create_access_token
from seatline.domain.booking_state import PAYMENT_STATUS_ON_ENTRY, BookingStatus
from seatline.domain.fees import split
from seatline.models.booking import Booking
from seatline.models.listing import ClassListing
from seatline.models.payment import HostPayoutAccount
from seatline.utils.clock import utcnow

PAYMENTS_SECRET = "whsec_test_payments"
ACCOUNTS_SECRET = "whsec_test_accounts"
FEE_RATE = Decimal("0.15")
LIABILITY_VERSION = settings.liability_version


async def make_class(
    db: AsyncSession,
    host_id: UUID,
    *,
    max_seats: int = 10,
    auto_approve: bool = False,
    price_per_seat: int = 2000,
    starts_in: timedelta = timedelta(days=7),
    duration: timedelta = timedelta(hours=2),
    title: str = "Sourdough Basics",
) -> ClassListing:
    starts_at = utcnow() + starts_in
    listing = ClassListing(
        host_id=host_id,
        host_email="host@example.com",
        title=title,
        starts_at=starts_at,
        ends_at=starts_at + duration,
        max_seats=max_seats,
        price_per_seat=price_per_seat,
        currency="usd",
        auto_approve=auto_approve,
    )
    db.add(listing)
    await db.commit()
    return listing


async def make_booking(
    db: AsyncSession,
    listing: ClassListing,
    *,
    guest_id: UUID | None = None,
    status: BookingStatus = BookingStatus.PENDING,
    quantity: int = 1,
    total_amount: int = 2300,
    payment_intent_id: str | None = "pi_test_existing",
) -> Booking:
    fees = split(total_amount, FEE_RATE)
    booking = Booking(
        class_id=listing.id,
        guest_id=guest_id or uuid4(),
        guest_email="guest@example.com",
        quantity=quantity,
        occupant_names=[f"Attendee {i + 1}" for i in range(quantity)],
        total_amount=fees.total,
        platform_fee=fees.platform_fee,
        host_payout=fees.host_payout,
        fee_rate=fees.fee_rate,
        currency="usd",
        status=status.value,
        payment_status=PAYMENT_STATUS_ON_ENTRY[status].value,
        checkout_attempt_id=f"cs_seed_{uuid4().hex}",
        payment_intent_id=payment_intent_id,
    )
    if status == BookingStatus.APPROVED:
        booking.approved_at = utcnow()
    db.add(booking)
    await db.commit()
    return booking


async def make_payout_account(
    db: AsyncSession,
    host_id: UUID,
    *,
    external_account_id: str = "acct_test_host",
    payout_eligible: bool = True,
) -> HostPayoutAccount:
    account = HostPayoutAccount(
        host_id=host_id,
        external_account_id=external_account_id,
        payout_eligible=payout_eligible,
    )
    db.add(account)
    await db.commit()
    return account


async def reload(db: AsyncSession, model, pk):
    """Fetch a row from the database, replacing any stale identity-map copy."""
    result = await db.execute(
        select(model)
        .where(model.__mapper__.primary_key[0] == pk)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


def checkout_completed_event(
    listing: ClassListing,
    guest_id: UUID,
    *,
    quantity: int = 1,
    event_id: str | None = None,
    session_id: str | None = None,
    names: list[str] | None = None,
    amount_total: int | None = None,
    payment_intent: str = "pi_test_123",
    payment_status: str = "paid",
    hold_id: UUID | None = None,
    liability_accepted: bool = True,
    liability_version: str = LIABILITY_VERSION,
    event_type: str = "checkout.session.completed",
) -> dict:
    names = names if names is not None else [f"Attendee {i + 1}" for i in range(quantity)]
    metadata = {
        "class_id": str(listing.id),
        "guest_id": str(guest_id),
        "quantity": str(quantity),
        "occupant_names": json.dumps(names),
        "liability_accepted": "true" if liability_accepted else "false",
        "liability_version": liability_version,
    }
    if hold_id is not None:
        metadata["hold_id"] = str(hold_id)
    return {
        "id": event_id or f"evt_{uuid4().hex}",
        "type": event_type,
        "data": {
            "object": {
                "id": session_id or f"cs_{uuid4().hex}",
                "object": "checkout.session",
                "amount_total": amount_total if amount_total is not None else 2300 * quantity,
                "currency": "usd",
                "payment_intent": payment_intent,
                "payment_status": payment_status,
                "customer_details": {"email": "guest@example.com"},
                "metadata": metadata,
            }
        },
    }


def account_updated_event(
    account_id: str,
    *,
    details_submitted: bool = True,
    host_id: UUID | None = None,
    event_id: str | None = None,
) -> dict:
    metadata = {"host_id": str(host_id)} if host_id else {}
    return {
        "id": event_id or f"evt_{uuid4().hex}",
        "type": "account.updated",
        "data": {
            "object": {
                "id": account_id,
                "object": "account",
                "details_submitted": details_submitted,
                "metadata": metadata,
            }
        },
    }


def signed(event: dict, secret: str = PAYMENTS_SECRET) -> tuple[bytes, dict[str, str]]:
    """Serialize an event and build a valid Stripe-Signature header for it."""
    body = json.dumps(event).encode("utf-8")
    timestamp = int(time.time())
    signature = hmac.new(
        secret.encode("utf-8"),
        f"{timestamp}.".encode("utf-8") + body,
        hashlib.sha256,
    ).hexdigest()
    return body, {
        "Stripe-Signature": f"t={timestamp},v1={signature}",
        "Content-Type": "application/json",
    }


def auth_headers(user_id: UUID, role: str = "guest") -> dict[str, str]:
    token = create_access_token({"sub": str(user_id), "role": role})
    return {"Authorization": f"Bearer {token}"}
