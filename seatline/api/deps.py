"""API dependencies for authentication and service wiring."""

from decimal import Decimal
from typing import Annotated

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from seatline.config import get_fee_rate
from seatline.core.exceptions import AuthenticationError, AuthorizationError
from seatline.core.security import Principal, principal_from_token
from seatline.database import get_db
from seatline.gateways.base import PaymentGateway
from seatline.gateways.stripe_gateway import get_payment_gateway
from seatline.models.booking import Booking
from seatline.models.listing import ClassListing
from seatline.services.booking_state_machine import BookingStateMachine
from seatline.services.checkout_service import CheckoutService
from seatline.services.reconciliation_service import ReconciliationService

__all__ = [
    "get_db",
    "get_current_principal",
    "get_current_admin",
    "get_fee_rate",
    "get_state_machine",
    "get_reconciliation_service",
    "get_checkout_service",
    "require_class_host",
    "require_booking_guest",
]

# Security scheme
security = HTTPBearer(auto_error=False)


async def get_current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> Principal:
    """Get the authenticated caller from the bearer token."""
    if credentials is None:
        raise AuthenticationError("Not authenticated")
    return principal_from_token(credentials.credentials)


async def get_current_admin(
    principal: Annotated[Principal, Depends(get_current_principal)],
) -> Principal:
    """Get current caller and verify they are an admin."""
    if not principal.is_admin:
        raise AuthorizationError("Admin access required")
    return principal


def get_state_machine(
    gateway: Annotated[PaymentGateway, Depends(get_payment_gateway)],
) -> BookingStateMachine:
    return BookingStateMachine(gateway=gateway)


def get_reconciliation_service(
    state_machine: Annotated[BookingStateMachine, Depends(get_state_machine)],
    fee_rate: Annotated[Decimal, Depends(get_fee_rate)],
) -> ReconciliationService:
    return ReconciliationService(state_machine=state_machine, fee_rate=fee_rate)


def get_checkout_service(
    gateway: Annotated[PaymentGateway, Depends(get_payment_gateway)],
    fee_rate: Annotated[Decimal, Depends(get_fee_rate)],
) -> CheckoutService:
    return CheckoutService(gateway=gateway, fee_rate=fee_rate)


def require_class_host(principal: Principal, listing: ClassListing) -> None:
    """Only the class's host (or an admin) may act on its bookings."""
    if principal.is_admin:
        return
    if principal.role != "host" or listing.host_id != principal.user_id:
        raise AuthorizationError("Only the host of this class can manage its bookings")


def require_booking_guest(principal: Principal, booking: Booking) -> None:
    if principal.is_admin:
        return
    if booking.guest_id != principal.user_id:
        raise AuthorizationError("You can only manage your own bookings")
