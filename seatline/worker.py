"""Celery worker configuration and beat schedule.

Periodic booking jobs:
- Expiring unpaid seat holds
- Denying pending bookings whose class has ended
- Releasing held payments to hosts
- Delivering queued notification emails
"""

from celery import Celery
from celery.schedules import crontab

from seatline.config import settings
from seatline.core.logging import setup_logging

setup_logging()

# Create Celery app
celery_app = Celery(
    "seatline_tasks",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["seatline.tasks"],
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=300,  # 5 minutes max
    task_soft_time_limit=240,

    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=4,
    worker_hijack_root_logger=False,

    # Result backend settings
    result_expires=3600,

    # Retry settings
    task_default_retry_delay=60,
    task_max_retries=3,

    # Beat schedule for periodic tasks
    beat_schedule={
        # Free seats held by abandoned checkouts
        "expire-booking-holds": {
            "task": "seatline.tasks.expire_booking_holds",
            "schedule": crontab(minute="*/5"),
        },
        # Deny pending bookings once the class has ended
        "deny-expired-pending-bookings": {
            "task": "seatline.tasks.deny_expired_pending_bookings",
            "schedule": crontab(minute=0),
        },
        # Transfer host payouts after the post-class buffer
        "release-held-payments": {
            "task": "seatline.tasks.release_held_payments",
            "schedule": crontab(minute=30),
        },
        # Send queued booking emails
        "deliver-notification-jobs": {
            "task": "seatline.tasks.deliver_notification_jobs",
            "schedule": crontab(minute="*"),
        },
    },
)


if __name__ == "__main__":
    celery_app.start()
