"""
Tests for the periodic jobs: payout release, auto-denial and notification delivery.
"""

from datetime import timedelta
from unittest.mock import AsyncMock

import httpx
import pytest
from sqlalchemy import select

from seatline.config import settings
from seatline.domain.booking_state import BookingStatus
from seatline.models.booking import Booking
from seatline.models.notification import NotificationJob
from seatline.models.payment import PaymentReconciliation
from seatline.services.booking_state_machine import AUTO_DENY_MESSAGE, BookingStateMachine
from seatline.services.notification_service import NotificationService, notification_service
from seatline.services.settlement_service import SettlementService
from tests.factories import make_booking, make_class, make_payout_account, reload


@pytest.fixture
def settlement(gateway) -> SettlementService:
    return SettlementService(BookingStateMachine(gateway=gateway))


# ==================== PAYOUT RELEASE ====================


@pytest.mark.asyncio
async def test_release_pays_host_after_buffer(db_session, settlement, gateway, host_id):
    listing = await make_class(db_session, host_id, starts_in=-timedelta(days=3))
    booking = await make_booking(db_session, listing, status=BookingStatus.APPROVED)
    await make_payout_account(db_session, host_id)

    summary = await settlement.release_held_payments(db_session)

    assert summary == {"scanned": 1, "released": 1, "failed": 0, "skipped": 0}
    assert gateway.transfers == [
        {
            "amount": 2000,
            "currency": "usd",
            "destination": "acct_test_host",
            "idempotency_key": f"payout-{booking.id}",
        }
    ]
    booking = await reload(db_session, Booking, booking.id)
    assert booking.status == "PAID"
    assert booking.payment_status == "PAID"
    assert booking.transfer_id == "tr_test_1"
    assert booking.paid_at is not None

    jobs = await db_session.scalars(
        select(NotificationJob.job_type).where(NotificationJob.booking_id == booking.id)
    )
    assert jobs.all() == ["payout_released_host"]


@pytest.mark.asyncio
async def test_release_waits_for_buffer(db_session, settlement, gateway, host_id):
    listing = await make_class(db_session, host_id, starts_in=-timedelta(hours=3))
    await make_booking(db_session, listing, status=BookingStatus.APPROVED)
    await make_payout_account(db_session, host_id)

    summary = await settlement.release_held_payments(db_session)

    assert summary["scanned"] == 0
    assert gateway.transfers == []


@pytest.mark.asyncio
async def test_release_skips_ineligible_host(db_session, settlement, gateway, host_id):
    listing = await make_class(db_session, host_id, starts_in=-timedelta(days=3))
    await make_booking(db_session, listing, status=BookingStatus.APPROVED)
    await make_payout_account(db_session, host_id, payout_eligible=False)

    summary = await settlement.release_held_payments(db_session)

    assert summary["scanned"] == 0
    assert gateway.transfers == []


@pytest.mark.asyncio
async def test_pending_bookings_are_not_released(db_session, settlement, gateway, host_id):
    listing = await make_class(db_session, host_id, starts_in=-timedelta(days=3))
    await make_booking(db_session, listing, status=BookingStatus.PENDING)
    await make_payout_account(db_session, host_id)

    summary = await settlement.release_held_payments(db_session)

    assert summary["scanned"] == 0


@pytest.mark.asyncio
async def test_failed_transfer_keeps_funds_held_and_flags_once(db_session, settlement, gateway, host_id):
    gateway.fail_transfers = True
    listing = await make_class(db_session, host_id, starts_in=-timedelta(days=3))
    booking = await make_booking(db_session, listing, status=BookingStatus.APPROVED)
    await make_payout_account(db_session, host_id)

    first = await settlement.release_held_payments(db_session)
    second = await settlement.release_held_payments(db_session)

    assert first["failed"] == 1
    assert second["failed"] == 1
    booking = await reload(db_session, Booking, booking.id)
    assert booking.status == "APPROVED"
    assert booking.payment_status == "HELD"
    flags = (await db_session.scalars(select(PaymentReconciliation))).all()
    assert len(flags) == 1
    assert flags[0].reason == "transfer_failed"


# ==================== AUTO-DENY ====================


@pytest.mark.asyncio
async def test_pending_bookings_for_past_classes_are_denied(db_session, gateway, host_id):
    past = await make_class(db_session, host_id, starts_in=-timedelta(days=1))
    upcoming = await make_class(db_session, host_id)
    stale = await make_booking(db_session, past)
    fresh = await make_booking(db_session, upcoming)

    summary = await BookingStateMachine(gateway=gateway).expire_pending_bookings(db_session)

    assert summary == {"scanned": 1, "denied": 1, "skipped": 0}
    stale = await reload(db_session, Booking, stale.id)
    assert stale.status == "DENIED"
    assert stale.payment_status == "REFUNDED"
    assert stale.host_message == AUTO_DENY_MESSAGE
    assert [r["idempotency_key"] for r in gateway.refunds] == [f"refund-{stale.id}"]
    fresh = await reload(db_session, Booking, fresh.id)
    assert fresh.status == "PENDING"


# ==================== NOTIFICATIONS ====================


@pytest.mark.asyncio
async def test_enqueue_is_once_per_booking_and_type(db_session, manual_class):
    booking = await make_booking(db_session, manual_class)

    first = await notification_service.enqueue_for_status(db_session, booking, manual_class)
    second = await notification_service.enqueue_for_status(db_session, booking, manual_class)

    assert first == 2
    assert second == 0


@pytest.mark.asyncio
async def test_deliver_queued_sends_and_marks_jobs(db_session, manual_class, monkeypatch):
    booking = await make_booking(db_session, manual_class)
    await notification_service.enqueue_for_status(db_session, booking, manual_class)
    send = AsyncMock(return_value=True)
    monkeypatch.setattr(notification_service, "send_email", send)

    summary = await notification_service.deliver_queued(db_session)
    await db_session.commit()

    assert summary == {"scanned": 2, "sent": 2, "failed": 0}
    recipients = sorted(call.args[0] for call in send.await_args_list)
    assert recipients == ["guest@example.com", "host@example.com"]
    jobs = await notification_service.get_jobs(db_session, booking.id)
    assert {job.status for job in jobs} == {"sent"}
    assert all(job.attempts == 1 for job in jobs)


@pytest.mark.asyncio
async def test_delivery_gives_up_after_max_attempts(db_session, manual_class, monkeypatch):
    booking = await make_booking(db_session, manual_class)
    await notification_service.enqueue_for_status(db_session, booking, manual_class)
    monkeypatch.setattr(notification_service, "send_email", AsyncMock(return_value=False))
    monkeypatch.setattr(settings, "notification_max_attempts", 2)

    first = await notification_service.deliver_queued(db_session)
    await db_session.commit()
    second = await notification_service.deliver_queued(db_session)
    await db_session.commit()
    third = await notification_service.deliver_queued(db_session)

    assert first["scanned"] == 2
    assert second["failed"] == 2
    assert third["scanned"] == 0
    jobs = await notification_service.get_jobs(db_session, booking.id)
    assert {job.status for job in jobs} == {"failed"}


@pytest.mark.asyncio
async def test_job_without_email_fails_without_sending(db_session, manual_class, monkeypatch):
    booking = await make_booking(db_session, manual_class)
    booking.guest_email = None
    await db_session.commit()
    await notification_service.enqueue_for_status(db_session, booking, manual_class)
    send = AsyncMock(return_value=True)
    monkeypatch.setattr(notification_service, "send_email", send)

    summary = await notification_service.deliver_queued(db_session)

    assert summary == {"scanned": 2, "sent": 1, "failed": 1}
    assert send.await_count == 1


@pytest.mark.asyncio
async def test_send_email_posts_to_sendgrid(monkeypatch):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        return httpx.Response(202)

    monkeypatch.setattr(settings, "sendgrid_api_key", "SG.test")
    service = NotificationService()
    service._http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))

    sent = await service.send_email("guest@example.com", "Subject", "<p>Hi</p>")
    await service.close()

    assert sent is True
    assert seen == {
        "url": "https://api.sendgrid.com/v3/mail/send",
        "auth": "Bearer SG.test",
    }


@pytest.mark.asyncio
async def test_send_email_without_api_key_is_skipped(monkeypatch):
    monkeypatch.setattr(settings, "sendgrid_api_key", None)

    assert await NotificationService().send_email("guest@example.com", "Subject", "<p>Hi</p>") is False


def test_denied_email_includes_host_message():
    job = NotificationJob(
        job_type=NotificationService.BOOKING_DENIED_GUEST,
        context={"class_title": "Sourdough Basics", "host_message": "Rescheduled"},
    )

    subject, body = NotificationService.render(job)

    assert subject == "Booking not approved: Sourdough Basics"
    assert "Rescheduled" in body
