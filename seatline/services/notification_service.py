"""Booking notification queue and email delivery.

Transitions enqueue ``NotificationJob`` rows; a Celery task delivers them via
SendGrid. Each (booking, job type) pair is enqueued at most once, so replays
and retries never produce duplicate emails.
"""

import logging
from collections.abc import Iterable
from typing import Any
from uuid import UUID

import httpx
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from seatline.config import settings
from seatline.core.idempotency import dialect_insert
from seatline.domain.booking_state import BookingStatus
from seatline.models.booking import Booking
from seatline.models.listing import ClassListing
from seatline.models.notification import NotificationJob
from seatline.utils.clock import utcnow

logger = logging.getLogger(__name__)


class NotificationService:
    """Service for queueing and sending booking emails."""

    # Job types
    BOOKING_REQUESTED_HOST = "booking_requested_host"
    BOOKING_REQUESTED_GUEST = "booking_requested_guest"
    BOOKING_CONFIRMED_HOST = "booking_confirmed_host"
    BOOKING_CONFIRMED_GUEST = "booking_confirmed_guest"
    BOOKING_DENIED_GUEST = "booking_denied_guest"
    BOOKING_CANCELLED_GUEST = "booking_cancelled_guest"
    BOOKING_FAILED_GUEST = "booking_failed_guest"
    PAYOUT_RELEASED_HOST = "payout_released_host"

    ON_ENTRY: dict[BookingStatus, tuple[str, ...]] = {
        BookingStatus.PENDING: (BOOKING_REQUESTED_HOST, BOOKING_REQUESTED_GUEST),
        BookingStatus.APPROVED: (BOOKING_CONFIRMED_HOST, BOOKING_CONFIRMED_GUEST),
        BookingStatus.DENIED: (BOOKING_DENIED_GUEST,),
        BookingStatus.CANCELLED: (BOOKING_CANCELLED_GUEST,),
        BookingStatus.FAILED: (BOOKING_FAILED_GUEST,),
        BookingStatus.PAID: (PAYOUT_RELEASED_HOST,),
    }

    def __init__(self) -> None:
        """Initialize notification service."""
        self._http_client: httpx.AsyncClient | None = None

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Lazy-load HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=30.0)
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    # ==================== QUEUE ====================

    @staticmethod
    def recipient_role(job_type: str) -> str:
        return "host" if job_type.endswith("_host") else "guest"

    @staticmethod
    def build_context(booking: Booking, listing: ClassListing) -> dict[str, Any]:
        return {
            "booking_id": str(booking.id),
            "class_title": listing.title,
            "class_starts_at": listing.starts_at.isoformat(),
            "quantity": booking.quantity,
            "occupant_names": list(booking.occupant_names or []),
            "total_amount": booking.total_amount,
            "host_payout": booking.host_payout,
            "currency": booking.currency,
            "host_message": booking.host_message,
            "status": booking.status,
        }

    async def enqueue(
        self,
        db: AsyncSession,
        booking: Booking,
        listing: ClassListing,
        job_types: Iterable[str],
    ) -> int:
        """Insert jobs, skipping any (booking, type) pair already queued.

        Returns:
            int: Number of jobs newly enqueued
        """
        context = self.build_context(booking, listing)
        created = 0
        for job_type in job_types:
            role = self.recipient_role(job_type)
            stmt = (
                dialect_insert(db, NotificationJob)
                .values(
                    booking_id=booking.id,
                    job_type=job_type,
                    recipient_role=role,
                    recipient_id=listing.host_id if role == "host" else booking.guest_id,
                    recipient_email=listing.host_email if role == "host" else booking.guest_email,
                    context=context,
                )
                .on_conflict_do_nothing(index_elements=["booking_id", "job_type"])
                .returning(NotificationJob.id)
            )
            result = await db.execute(stmt)
            if result.scalar_one_or_none() is not None:
                created += 1
        return created

    async def enqueue_for_status(
        self,
        db: AsyncSession,
        booking: Booking,
        listing: ClassListing,
    ) -> int:
        """Best-effort enqueue for the status a booking just entered.

        Runs after the transition is committed, in its own transaction on the
        same session. Failures are logged and never undo the transition.
        """
        job_types = self.ON_ENTRY.get(BookingStatus(booking.status), ())
        if not job_types:
            return 0
        try:
            created = await self.enqueue(db, booking, listing, job_types)
            await db.commit()
        except SQLAlchemyError as e:
            booking_id, status = booking.id, booking.status
            await db.rollback()
            logger.error(
                f"Failed to enqueue notifications for booking {booking_id} ({status}): {e}"
            )
            # Rollback expires loaded state; callers still serialize the booking
            try:
                await db.refresh(booking)
            except SQLAlchemyError as refresh_error:
                logger.error(f"Could not reload booking {booking_id}: {refresh_error}")
            return 0
        return created

    # ==================== DELIVERY ====================

    @staticmethod
    def render(job: NotificationJob) -> tuple[str, str]:
        """Subject and HTML body for a job."""
        ctx = job.context or {}
        title = ctx.get("class_title") or "your class"
        names = ", ".join(ctx.get("occupant_names") or [])
        seats = ctx.get("quantity", 1)
        link = f"{settings.site_url}/bookings/{ctx.get('booking_id', '')}"

        subjects = {
            NotificationService.BOOKING_REQUESTED_HOST: f"New booking request: {title}",
            NotificationService.BOOKING_REQUESTED_GUEST: f"Booking request sent: {title}",
            NotificationService.BOOKING_CONFIRMED_HOST: f"Booking confirmed: {title}",
            NotificationService.BOOKING_CONFIRMED_GUEST: f"Your booking is confirmed: {title}",
            NotificationService.BOOKING_DENIED_GUEST: f"Booking not approved: {title}",
            NotificationService.BOOKING_CANCELLED_GUEST: f"Booking cancelled: {title}",
            NotificationService.BOOKING_FAILED_GUEST: f"We couldn't confirm your booking: {title}",
            NotificationService.PAYOUT_RELEASED_HOST: f"Payout released for {title}",
        }
        bodies = {
            NotificationService.BOOKING_REQUESTED_HOST: (
                f"<p>A guest requested {seats} seat(s) in <strong>{title}</strong>.</p>"
                f"<p>Attendees: {names}</p><p><a href=\"{link}\">Review the request</a></p>"
            ),
            NotificationService.BOOKING_REQUESTED_GUEST: (
                f"<p>Your request for {seats} seat(s) in <strong>{title}</strong> was sent "
                f"to the host. Your payment is held until they respond.</p>"
            ),
            NotificationService.BOOKING_CONFIRMED_HOST: (
                f"<p>{seats} seat(s) in <strong>{title}</strong> are confirmed.</p>"
                f"<p>Attendees: {names}</p>"
            ),
            NotificationService.BOOKING_CONFIRMED_GUEST: (
                f"<p>You're in! {seats} seat(s) in <strong>{title}</strong> are confirmed.</p>"
                f"<p><a href=\"{link}\">View your booking</a></p>"
            ),
            NotificationService.BOOKING_DENIED_GUEST: (
                f"<p>Your booking for <strong>{title}</strong> was not approved and "
                f"your payment is being refunded.</p>"
                + (f"<p>{ctx['host_message']}</p>" if ctx.get("host_message") else "")
            ),
            NotificationService.BOOKING_CANCELLED_GUEST: (
                f"<p>Your booking for <strong>{title}</strong> was cancelled and "
                f"your payment is being refunded.</p>"
            ),
            NotificationService.BOOKING_FAILED_GUEST: (
                f"<p><strong>{title}</strong> filled up before your payment was confirmed. "
                f"Your payment will be returned.</p>"
            ),
            NotificationService.PAYOUT_RELEASED_HOST: (
                f"<p>Your payout of {ctx.get('host_payout', 0) / 100:,.2f} "
                f"{str(ctx.get('currency', '')).upper()} for <strong>{title}</strong> "
                f"has been released.</p>"
            ),
        }
        return (
            subjects.get(job.job_type, "Booking update"),
            bodies.get(job.job_type, f"<p>Your booking for {title} was updated.</p>"),
        )

    async def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: str | None = None,
    ) -> bool:
        """Send an email via SendGrid.

        Args:
            to_email: Recipient email
            subject: Email subject
            html_content: HTML body
            text_content: Plain text body

        Returns:
            bool: True if sent successfully
        """
        if not settings.sendgrid_api_key:
            logger.warning(f"SendGrid not configured; email '{subject}' to {to_email} not sent")
            return False

        headers = {
            "Authorization": f"Bearer {settings.sendgrid_api_key}",
            "Content-Type": "application/json",
        }
        payload: dict[str, Any] = {
            "personalizations": [{"to": [{"email": to_email}]}],
            "from": {
                "email": settings.email_from_address,
                "name": settings.email_from_name,
            },
            "subject": subject,
            "content": [{"type": "text/html", "value": html_content}],
        }
        if text_content:
            payload["content"].insert(0, {"type": "text/plain", "value": text_content})

        try:
            response = await self.http_client.post(
                "https://api.sendgrid.com/v3/mail/send",
                headers=headers,
                json=payload,
            )
        except httpx.HTTPError as e:
            logger.error(f"SendGrid request failed: {e}")
            return False
        if response.status_code not in (200, 202):
            logger.error(f"SendGrid rejected email to {to_email}: {response.status_code}")
            return False
        return True

    async def deliver_job(self, job: NotificationJob) -> bool:
        """Attempt one delivery and update the job's status fields."""
        job.attempts += 1
        if not job.recipient_email:
            job.status = "failed"
            job.last_error = "No recipient email on file"
            return False

        subject, html = self.render(job)
        if await self.send_email(job.recipient_email, subject, html):
            job.status = "sent"
            job.sent_at = utcnow()
            job.last_error = None
            return True

        job.last_error = "Email provider did not accept the message"
        if job.attempts >= settings.notification_max_attempts:
            job.status = "failed"
        return False

    async def deliver_queued(self, db: AsyncSession, limit: int | None = None) -> dict[str, int]:
        """Deliver a batch of queued jobs; the caller commits."""
        result = await db.execute(
            select(NotificationJob)
            .where(NotificationJob.status == "queued")
            .order_by(NotificationJob.created_at)
            .limit(limit or settings.notification_batch_size)
            .with_for_update(skip_locked=True)
        )
        jobs = result.scalars().all()

        summary = {"scanned": len(jobs), "sent": 0, "failed": 0}
        for job in jobs:
            if await self.deliver_job(job):
                summary["sent"] += 1
            else:
                summary["failed"] += 1
        return summary

    async def get_jobs(self, db: AsyncSession, booking_id: UUID) -> list[NotificationJob]:
        result = await db.execute(
            select(NotificationJob)
            .where(NotificationJob.booking_id == booking_id)
            .order_by(NotificationJob.created_at)
        )
        return list(result.scalars().all())


notification_service = NotificationService()
