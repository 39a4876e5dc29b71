"""Booking endpoints: lookup and host/guest actions."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Body, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from seatline.api.deps import (
    get_checkout_service,
    get_current_principal,
    get_db,
    get_state_machine,
    require_booking_guest,
    require_class_host,
)
from seatline.core.exceptions import AuthorizationError
from seatline.core.security import Principal
from seatline.domain.booking_state import HoldStatus
from seatline.schemas.booking import (
    BookingCancelRequest,
    BookingDenyRequest,
    BookingResponse,
    CheckoutStatusResponse,
)
from seatline.services.booking_state_machine import BookingStateMachine
from seatline.services.capacity_service import capacity_service
from seatline.services.checkout_service import CheckoutService

router = APIRouter()


@router.get("/by-checkout/{checkout_attempt_id}", response_model=CheckoutStatusResponse)
async def get_booking_by_checkout(
    checkout_attempt_id: str,
    principal: Annotated[Principal, Depends(get_current_principal)],
    db: Annotated[AsyncSession, Depends(get_db)],
    checkout_service: Annotated[CheckoutService, Depends(get_checkout_service)],
) -> CheckoutStatusResponse:
    """Look up the booking for a checkout session (guest or admin).

    The guest lands here after the hosted payment page; until the processor's
    completion event arrives the booking is absent and the state is
    ``processing``.
    """
    booking, hold = await checkout_service.get_checkout_status(db, checkout_attempt_id)
    owner_id = booking.guest_id if booking is not None else hold.guest_id
    if not principal.is_admin and owner_id != principal.user_id:
        raise AuthorizationError("You can only view your own checkouts")

    if booking is not None:
        state = "booked"
    elif hold.status in (HoldStatus.HELD.value, HoldStatus.CONSUMED.value):
        state = "processing"
    else:
        state = "released"

    return CheckoutStatusResponse(
        checkout_attempt_id=checkout_attempt_id,
        state=state,
        booking=BookingResponse.model_validate(booking) if booking is not None else None,
    )


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: UUID,
    principal: Annotated[Principal, Depends(get_current_principal)],
    db: Annotated[AsyncSession, Depends(get_db)],
    state_machine: Annotated[BookingStateMachine, Depends(get_state_machine)],
) -> BookingResponse:
    """Get a booking (guest, host of the class, or admin)."""
    booking = await state_machine.get_booking(db, booking_id)
    listing = await capacity_service.get_class(db, booking.class_id)
    if not (
        principal.is_admin
        or booking.guest_id == principal.user_id
        or listing.host_id == principal.user_id
    ):
        raise AuthorizationError("You don't have access to this booking")
    return BookingResponse.model_validate(booking)


@router.post("/{booking_id}/approve", response_model=BookingResponse)
async def approve_booking(
    booking_id: UUID,
    principal: Annotated[Principal, Depends(get_current_principal)],
    db: Annotated[AsyncSession, Depends(get_db)],
    state_machine: Annotated[BookingStateMachine, Depends(get_state_machine)],
) -> BookingResponse:
    """Approve a pending booking (host only)."""
    booking = await state_machine.get_booking(db, booking_id)
    listing = await capacity_service.get_class(db, booking.class_id)
    require_class_host(principal, listing)

    booking = await state_machine.approve(db, booking_id)
    return BookingResponse.model_validate(booking)


@router.post("/{booking_id}/deny", response_model=BookingResponse)
async def deny_booking(
    booking_id: UUID,
    principal: Annotated[Principal, Depends(get_current_principal)],
    db: Annotated[AsyncSession, Depends(get_db)],
    state_machine: Annotated[BookingStateMachine, Depends(get_state_machine)],
    payload: Annotated[BookingDenyRequest | None, Body()] = None,
) -> BookingResponse:
    """Deny a pending booking and refund the guest (host only)."""
    booking = await state_machine.get_booking(db, booking_id)
    listing = await capacity_service.get_class(db, booking.class_id)
    require_class_host(principal, listing)

    message = payload.message if payload else None
    booking = await state_machine.deny(db, booking_id, message=message)
    return BookingResponse.model_validate(booking)


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: UUID,
    principal: Annotated[Principal, Depends(get_current_principal)],
    db: Annotated[AsyncSession, Depends(get_db)],
    state_machine: Annotated[BookingStateMachine, Depends(get_state_machine)],
    payload: Annotated[BookingCancelRequest | None, Body()] = None,
) -> BookingResponse:
    """Cancel a booking before the class starts (guest or admin)."""
    booking = await state_machine.get_booking(db, booking_id)
    require_booking_guest(principal, booking)

    booking = await state_machine.cancel(
        db,
        booking_id,
        cancelled_by="admin" if principal.is_admin else "guest",
        reason=payload.reason if payload else None,
    )
    return BookingResponse.model_validate(booking)
