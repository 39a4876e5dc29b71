"""Base payment gateway interface.

All gateway adapters must implement this interface.
Business logic should NOT live in adapters - only gateway communication.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime


@dataclass
class CheckoutResult:
    """Result of creating a hosted checkout session."""

    success: bool
    session_id: str | None = None
    url: str | None = None
    error_message: str | None = None


@dataclass
class RefundResult:
    """Result of a refund operation."""

    success: bool
    refund_id: str | None = None
    error_message: str | None = None
    raw_response: dict | None = None


@dataclass
class TransferResult:
    """Result of releasing funds to a host's connected account."""

    success: bool
    transfer_id: str | None = None
    error_message: str | None = None


class PaymentGateway(ABC):
    """Abstract base class for payment gateways."""

    @abstractmethod
    async def create_checkout_session(
        self,
        unit_amount: int,
        quantity: int,
        currency: str,
        description: str,
        metadata: dict[str, str],
        expires_at: datetime,
        idempotency_key: str,
    ) -> CheckoutResult:
        """Create a hosted checkout session for ``quantity`` seats.

        Args:
            unit_amount: Per-seat amount charged, fee included, in minor units
            quantity: Number of seats
            currency: ISO currency code
            description: Line item name shown to the guest
            metadata: String metadata echoed back on the completion event
            expires_at: When the session should stop accepting payment
            idempotency_key: Key collapsing retried creation calls

        Returns:
            CheckoutResult with the session id and redirect URL
        """

    @abstractmethod
    async def refund_payment(
        self,
        payment_intent_id: str,
        amount: int | None,
        reason: str,
        idempotency_key: str,
    ) -> RefundResult:
        """Refund a captured payment (``amount=None`` refunds in full)."""

    @abstractmethod
    async def create_transfer(
        self,
        amount: int,
        currency: str,
        destination: str,
        idempotency_key: str,
        metadata: dict[str, str] | None = None,
    ) -> TransferResult:
        """Transfer held funds to a connected account."""

    @abstractmethod
    def verify_webhook(
        self,
        payload: bytes,
        signature: str | None,
        secret: str,
    ) -> None:
        """Verify a webhook signature.

        Raises:
            AuthenticationError: Signature missing, invalid or too old
        """
