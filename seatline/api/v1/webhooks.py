"""Webhook endpoints for the payment processor."""

import json
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Header, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from seatline.api.deps import get_db, get_reconciliation_service
from seatline.config import settings
from seatline.core.exceptions import ExternalServiceError, MalformedEvent
from seatline.gateways.base import PaymentGateway
from seatline.gateways.stripe_gateway import get_payment_gateway
from seatline.services.reconciliation_service import ReconciliationService

logger = logging.getLogger(__name__)

router = APIRouter()


async def _receive(
    request: Request,
    signature: str | None,
    secret: str | None,
    gateway: PaymentGateway,
    service: ReconciliationService,
    db: AsyncSession,
) -> dict:
    if not secret:
        raise ExternalServiceError("payments", "webhook secret is not configured")

    # Signature covers the raw bytes, so verify before parsing anything
    payload = await request.body()
    gateway.verify_webhook(payload, signature, secret)

    try:
        data = json.loads(payload)
    except ValueError:
        raise MalformedEvent("Invalid payload")

    result = await service.ingest(db, data)
    logger.info(f"Event {result.event_id} ({result.event_type}): {result.outcome}")
    return result.as_response()


@router.post("/payments", status_code=status.HTTP_200_OK)
async def payment_webhook(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    gateway: Annotated[PaymentGateway, Depends(get_payment_gateway)],
    service: Annotated[ReconciliationService, Depends(get_reconciliation_service)],
    stripe_signature: str | None = Header(None, alias="Stripe-Signature"),
) -> dict:
    """Handle payment events (checkout completion)."""
    return await _receive(
        request, stripe_signature, settings.stripe_webhook_secret, gateway, service, db
    )


@router.post("/accounts", status_code=status.HTTP_200_OK)
async def account_webhook(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    gateway: Annotated[PaymentGateway, Depends(get_payment_gateway)],
    service: Annotated[ReconciliationService, Depends(get_reconciliation_service)],
    stripe_signature: str | None = Header(None, alias="Stripe-Signature"),
) -> dict:
    """Handle connected-account events, signed with their own secret."""
    return await _receive(
        request,
        stripe_signature,
        settings.stripe_connect_webhook_secret,
        gateway,
        service,
        db,
    )
