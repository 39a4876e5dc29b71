"""Celery background tasks.

Thin wrappers around the periodic jobs in ``seatline.core.background_tasks``:
- Hold expiry
- Auto-denial of pending bookings whose class has ended
- Payout release
- Notification delivery
"""

import asyncio
import logging

from celery import shared_task

from seatline.core.background_tasks import (
    deliver_notifications_job,
    expire_booking_holds_job,
    expire_pending_bookings_job,
    release_held_payments_job,
    run_job,
)

logger = logging.getLogger(__name__)

# One loop per worker process; the async engine's pool is bound to it
_loop = asyncio.new_event_loop()


def run_async(coro):
    """Run async function in sync context."""
    return _loop.run_until_complete(coro)


@shared_task(bind=True, max_retries=3)
def expire_booking_holds(self):
    """Expire unpaid seat holds so their seats can be sold again."""
    try:
        return run_async(run_job("expire_booking_holds", expire_booking_holds_job))
    except Exception as exc:
        logger.error(f"expire_booking_holds failed: {exc}")
        raise self.retry(exc=exc, countdown=60)


@shared_task(bind=True, max_retries=3)
def deny_expired_pending_bookings(self):
    """Deny and refund pending bookings whose class has already started."""
    try:
        return run_async(run_job("deny_expired_pending_bookings", expire_pending_bookings_job))
    except Exception as exc:
        logger.error(f"deny_expired_pending_bookings failed: {exc}")
        raise self.retry(exc=exc, countdown=300)


@shared_task(bind=True, max_retries=3)
def release_held_payments(self):
    """Transfer host payouts for approved bookings past the payout buffer."""
    try:
        return run_async(run_job("release_held_payments", release_held_payments_job))
    except Exception as exc:
        logger.error(f"release_held_payments failed: {exc}")
        raise self.retry(exc=exc, countdown=300)


@shared_task(bind=True, max_retries=3)
def deliver_notification_jobs(self):
    """Send a batch of queued notification emails."""
    try:
        return run_async(run_job("deliver_notification_jobs", deliver_notifications_job))
    except Exception as exc:
        logger.error(f"deliver_notification_jobs failed: {exc}")
        raise self.retry(exc=exc, countdown=60)
