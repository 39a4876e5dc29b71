"""Class endpoints: seat availability and checkout."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from seatline.api.deps import get_checkout_service, get_current_principal, get_db
from seatline.core.security import Principal
from seatline.schemas.booking import AvailabilityResponse, CheckoutRequest, CheckoutResponse
from seatline.services.capacity_service import capacity_service
from seatline.services.checkout_service import CheckoutService

router = APIRouter()


@router.get("/{class_id}/availability", response_model=AvailabilityResponse)
async def get_availability(
    class_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> AvailabilityResponse:
    """Seats left in a class (public)."""
    listing = await capacity_service.get_class(db, class_id)
    return AvailabilityResponse(
        class_id=listing.id,
        max_seats=listing.max_seats,
        available_seats=await capacity_service.available_seats(db, class_id),
        held_seats=await capacity_service.held_seats(db, class_id),
    )


@router.post(
    "/{class_id}/checkout",
    response_model=CheckoutResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_checkout(
    class_id: UUID,
    request: CheckoutRequest,
    principal: Annotated[Principal, Depends(get_current_principal)],
    db: Annotated[AsyncSession, Depends(get_db)],
    checkout_service: Annotated[CheckoutService, Depends(get_checkout_service)],
) -> CheckoutResponse:
    """Hold seats and start a hosted checkout for the caller."""
    result = await checkout_service.start_checkout(
        db,
        class_id=class_id,
        guest_id=principal.user_id,
        quantity=request.quantity,
        occupant_names=request.occupant_names,
        liability_accepted=request.liability_accepted,
    )
    return CheckoutResponse(
        checkout_url=result.checkout_url,
        checkout_attempt_id=result.checkout_attempt_id,
        hold_id=result.hold_id,
        hold_expires_at=result.hold_expires_at,
        unit_amount=result.unit_amount,
        total_amount=result.total_amount,
    )
