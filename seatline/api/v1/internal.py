"""Internal admin endpoints for payment follow-up."""

from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from seatline.api.deps import get_current_admin, get_db
from seatline.core.security import Principal
from seatline.models.payment import PaymentReconciliation
from seatline.schemas.booking import ReconciliationResponse

router = APIRouter()


@router.get("/reconciliations", response_model=list[ReconciliationResponse])
async def list_reconciliations(
    admin: Annotated[Principal, Depends(get_current_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
    status: Literal["OPEN", "RESOLVED"] = "OPEN",
    reason: str | None = None,
    limit: int = Query(50, ge=1, le=500),
) -> list[ReconciliationResponse]:
    """Payments needing reversal, refund or payout follow-up (admin only)."""
    query = select(PaymentReconciliation).where(PaymentReconciliation.status == status)
    if reason:
        query = query.where(PaymentReconciliation.reason == reason)
    result = await db.execute(query.order_by(PaymentReconciliation.created_at.desc()).limit(limit))
    return [ReconciliationResponse.model_validate(r) for r in result.scalars().all()]
