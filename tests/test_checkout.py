"""
Tests for checkout initiation, seat holds and availability.
"""

from datetime import timedelta
from decimal import Decimal
from uuid import UUID, uuid4

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from seatline.domain.booking_state import BookingStatus
from seatline.models.booking import Booking, BookingHold
from seatline.services.checkout_service import CheckoutService
from seatline.utils.clock import as_utc, utcnow
from tests.factories import (
    LIABILITY_VERSION,
    auth_headers,
    checkout_completed_event,
    make_booking,
    make_class,
    reload,
    signed,
)


async def start_checkout(client: AsyncClient, listing, guest_id, names, liability_accepted: bool = True):
    return await client.post(
        f"/api/v1/classes/{listing.id}/checkout",
        json={
            "quantity": len(names),
            "occupant_names": names,
            "liability_accepted": liability_accepted,
        },
        headers=auth_headers(guest_id),
    )


@pytest.mark.asyncio
async def test_checkout_holds_seats_and_prices_with_fee(client: AsyncClient, db_session, host_id, guest_id, gateway):
    listing = await make_class(db_session, host_id, max_seats=10)

    response = await start_checkout(client, listing, guest_id, ["Ada", "Grace"])

    assert response.status_code == 201
    data = response.json()
    assert data["unit_amount"] == 2300
    assert data["total_amount"] == 4600
    assert data["checkout_attempt_id"] == "cs_test_1"
    assert data["checkout_url"].endswith("cs_test_1")

    sent = gateway.checkouts[0]
    assert sent["quantity"] == 2
    assert sent["metadata"]["class_id"] == str(listing.id)
    assert sent["metadata"]["guest_id"] == str(guest_id)
    assert sent["metadata"]["hold_id"] == data["hold_id"]
    assert sent["metadata"]["liability_accepted"] == "true"
    assert sent["metadata"]["liability_version"] == LIABILITY_VERSION
    # Processor sessions live at least 30 minutes
    assert sent["expires_at"] >= utcnow() + timedelta(minutes=29)

    hold = await reload(db_session, BookingHold, UUID(data["hold_id"]))
    assert hold.status == "HELD"
    assert hold.quantity == 2
    assert hold.checkout_attempt_id == "cs_test_1"


@pytest.mark.asyncio
async def test_held_seats_block_other_checkouts(client: AsyncClient, db_session, manual_class):
    first = await start_checkout(client, manual_class, uuid4(), ["Ada", "Grace"])
    second = await start_checkout(client, manual_class, uuid4(), ["Linus"])

    assert first.status_code == 201
    assert second.status_code == 409


@pytest.mark.asyncio
async def test_availability_reports_confirmed_and_held_seats(client: AsyncClient, db_session, host_id):
    listing = await make_class(db_session, host_id, max_seats=5)
    await make_booking(db_session, listing, status=BookingStatus.APPROVED, quantity=2, total_amount=4600)
    await make_booking(db_session, listing, status=BookingStatus.PENDING)
    await start_checkout(client, listing, uuid4(), ["Ada"])

    response = await client.get(f"/api/v1/classes/{listing.id}/availability")

    assert response.status_code == 200
    assert response.json() == {
        "class_id": str(listing.id),
        "max_seats": 5,
        "available_seats": 3,
        "held_seats": 1,
    }


@pytest.mark.asyncio
async def test_availability_for_unknown_class(client: AsyncClient):
    response = await client.get(f"/api/v1/classes/{uuid4()}/availability")

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_checkout_validates_names_and_quantity(client: AsyncClient, db_session, host_id, guest_id):
    listing = await make_class(db_session, host_id, max_seats=20)

    mismatch = await client.post(
        f"/api/v1/classes/{listing.id}/checkout",
        json={"quantity": 2, "occupant_names": ["Only One"]},
        headers=auth_headers(guest_id),
    )
    too_many = await start_checkout(client, listing, guest_id, [f"Guest {i}" for i in range(11)])

    assert mismatch.status_code == 422
    assert too_many.status_code == 422
    assert (await db_session.scalars(select(BookingHold))).all() == []


@pytest.mark.asyncio
async def test_checkout_rejected_once_class_started(client: AsyncClient, db_session, host_id, guest_id):
    listing = await make_class(db_session, host_id, starts_in=-timedelta(minutes=5))

    response = await start_checkout(client, listing, guest_id, ["Ada"])

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_checkout_requires_authentication(client: AsyncClient, manual_class):
    response = await client.post(
        f"/api/v1/classes/{manual_class.id}/checkout",
        json={"quantity": 1, "occupant_names": ["Ada"]},
    )

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_processor_failure_releases_hold(client: AsyncClient, db_session, manual_class, guest_id, gateway):
    gateway.fail_checkout = True

    response = await start_checkout(client, manual_class, guest_id, ["Ada"])

    assert response.status_code == 503
    hold = (await db_session.scalars(select(BookingHold))).one()
    await db_session.refresh(hold)
    assert hold.status == "CANCELLED"
    assert hold.released_at is not None


@pytest.mark.asyncio
async def test_completed_checkout_consumes_hold(client: AsyncClient, db_session, manual_class, guest_id):
    started = (await start_checkout(client, manual_class, guest_id, ["Ada", "Grace"])).json()

    event = checkout_completed_event(
        manual_class,
        guest_id,
        quantity=2,
        session_id=started["checkout_attempt_id"],
        hold_id=UUID(started["hold_id"]),
    )
    body, headers = signed(event)
    response = await client.post("/api/v1/webhooks/payments", content=body, headers=headers)

    assert response.json()["outcome"] == "booking_created"
    hold = await reload(db_session, BookingHold, UUID(started["hold_id"]))
    assert hold.status == "CONSUMED"
    booking = (await db_session.scalars(select(Booking))).one()
    assert booking.checkout_attempt_id == started["checkout_attempt_id"]


@pytest.mark.asyncio
async def test_expire_holds_frees_seats(db_session, manual_class, guest_id, gateway):
    service = CheckoutService(gateway=gateway, fee_rate=Decimal("0.15"))
    result = await service.start_checkout(
        db_session,
        class_id=manual_class.id,
        guest_id=guest_id,
        quantity=2,
        occupant_names=["Ada", "Grace"],
        liability_accepted=True,
    )

    summary = await service.expire_holds(db_session, now=as_utc(result.hold_expires_at) + timedelta(seconds=1))
    await db_session.commit()

    assert summary == {"expired": 1}
    hold = await reload(db_session, BookingHold, result.hold_id)
    assert hold.status == "EXPIRED"
    # Seats can be held again
    again = await service.start_checkout(
        db_session,
        class_id=manual_class.id,
        guest_id=uuid4(),
        quantity=2,
        occupant_names=["Linus", "Ken"],
        liability_accepted=True,
    )
    assert again.hold_id != result.hold_id


@pytest.mark.asyncio
async def test_checkout_requires_liability_acceptance(client: AsyncClient, db_session, manual_class, guest_id, gateway):
    response = await start_checkout(client, manual_class, guest_id, ["Ada"], liability_accepted=False)

    assert response.status_code == 422
    assert gateway.checkouts == []
    assert (await db_session.scalars(select(BookingHold))).all() == []


@pytest.mark.asyncio
async def test_checkout_lookup_follows_the_booking(client: AsyncClient, db_session, manual_class, guest_id):
    started = (await start_checkout(client, manual_class, guest_id, ["Ada"])).json()
    url = f"/api/v1/bookings/by-checkout/{started['checkout_attempt_id']}"

    before = await client.get(url, headers=auth_headers(guest_id))

    assert before.status_code == 200
    assert before.json()["state"] == "processing"
    assert before.json()["booking"] is None

    event = checkout_completed_event(
        manual_class,
        guest_id,
        session_id=started["checkout_attempt_id"],
        hold_id=UUID(started["hold_id"]),
    )
    body, headers = signed(event)
    await client.post("/api/v1/webhooks/payments", content=body, headers=headers)

    after = await client.get(url, headers=auth_headers(guest_id))

    assert after.status_code == 200
    data = after.json()
    assert data["state"] == "booked"
    assert data["booking"]["status"] == "PENDING"
    assert data["booking"]["liability_accepted"] is True
    assert data["booking"]["liability_version"] == LIABILITY_VERSION


@pytest.mark.asyncio
async def test_checkout_lookup_reports_released_hold(client: AsyncClient, db_session, manual_class, guest_id, gateway):
    started = (await start_checkout(client, manual_class, guest_id, ["Ada"])).json()
    service = CheckoutService(gateway=gateway, fee_rate=Decimal("0.15"))
    await service.expire_holds(db_session, now=utcnow() + timedelta(days=1))
    await db_session.commit()

    response = await client.get(
        f"/api/v1/bookings/by-checkout/{started['checkout_attempt_id']}",
        headers=auth_headers(guest_id),
    )

    assert response.json()["state"] == "released"


@pytest.mark.asyncio
async def test_checkout_lookup_is_private_to_the_guest(client: AsyncClient, db_session, manual_class, guest_id):
    started = (await start_checkout(client, manual_class, guest_id, ["Ada"])).json()
    url = f"/api/v1/bookings/by-checkout/{started['checkout_attempt_id']}"

    stranger = await client.get(url, headers=auth_headers(uuid4()))
    admin = await client.get(url, headers=auth_headers(uuid4(), role="admin"))

    assert stranger.status_code == 403
    assert admin.status_code == 200


@pytest.mark.asyncio
async def test_checkout_lookup_for_unknown_session(client: AsyncClient, guest_id):
    response = await client.get("/api/v1/bookings/by-checkout/cs_unknown", headers=auth_headers(guest_id))

    assert response.status_code == 404
