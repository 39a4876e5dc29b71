"""Periodic booking jobs.

Each job takes a session and returns a summary dict. Celery beat runs them
in production (``seatline.tasks``); when ``run_scheduler_in_app`` is set the
API process runs the same jobs on a simple interval loop instead.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from seatline.config import get_fee_rate, settings
from seatline.database import get_db_context
from seatline.gateways.stripe_gateway import get_payment_gateway
from seatline.services.booking_state_machine import BookingStateMachine
from seatline.services.checkout_service import CheckoutService
from seatline.services.notification_service import notification_service
from seatline.services.settlement_service import SettlementService

logger = logging.getLogger(__name__)

Job = Callable[[AsyncSession], Awaitable[dict]]

# Flag to stop the background loop
_stop_scheduler = False


def _state_machine() -> BookingStateMachine:
    return BookingStateMachine(gateway=get_payment_gateway())


async def release_held_payments_job(db: AsyncSession, now: datetime | None = None) -> dict:
    return await SettlementService(_state_machine()).release_held_payments(db, now)


async def expire_pending_bookings_job(db: AsyncSession, now: datetime | None = None) -> dict:
    return await _state_machine().expire_pending_bookings(db, now)


async def expire_booking_holds_job(db: AsyncSession, now: datetime | None = None) -> dict:
    service = CheckoutService(gateway=get_payment_gateway(), fee_rate=get_fee_rate())
    return await service.expire_holds(db, now)


async def deliver_notifications_job(db: AsyncSession) -> dict:
    return await notification_service.deliver_queued(db)


SCHEDULED_JOBS: dict[str, Job] = {
    "expire_booking_holds": expire_booking_holds_job,
    "deny_expired_pending_bookings": expire_pending_bookings_job,
    "release_held_payments": release_held_payments_job,
    "deliver_notification_jobs": deliver_notifications_job,
}


async def run_job(name: str, job: Job) -> dict:
    """Run one job in its own session and log the summary."""
    async with get_db_context() as db:
        summary = await job(db)
    logger.info(f"Job {name} finished: {summary}")
    return summary


async def run_scheduled_jobs() -> dict[str, dict | None]:
    """Run every periodic job once; one failing job does not stop the rest."""
    results: dict[str, dict | None] = {}
    for name, job in SCHEDULED_JOBS.items():
        try:
            results[name] = await run_job(name, job)
        except Exception as e:
            logger.exception(f"Job {name} failed: {e}")
            results[name] = None
    return results


async def start_scheduler() -> None:
    """Background loop running the periodic jobs every interval."""
    global _stop_scheduler
    _stop_scheduler = False

    logger.info(f"In-process scheduler started (every {settings.scheduler_interval_seconds}s)")

    while not _stop_scheduler:
        await run_scheduled_jobs()

        # Check the stop flag every second
        for _ in range(settings.scheduler_interval_seconds):
            if _stop_scheduler:
                break
            await asyncio.sleep(1)

    logger.info("In-process scheduler stopped")


def stop_scheduler() -> None:
    """Signal the scheduler loop to stop."""
    global _stop_scheduler
    _stop_scheduler = True
