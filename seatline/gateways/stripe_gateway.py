"""Stripe payment gateway adapter."""

import logging
from datetime import datetime

import stripe

from seatline.config import settings
from seatline.core.exceptions import AuthenticationError
from seatline.gateways.base import (
    CheckoutResult,
    PaymentGateway,
    RefundResult,
    TransferResult,
)

logger = logging.getLogger(__name__)


class StripeGateway(PaymentGateway):
    """Stripe payment gateway implementation."""

    def __init__(self, secret_key: str | None = None):
        self.secret_key = secret_key or settings.stripe_secret_key
        self.tolerance = settings.stripe_webhook_tolerance_seconds

    def _configure(self) -> bool:
        if not self.secret_key:
            return False
        stripe.api_key = self.secret_key
        return True

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
        """Create a Stripe Checkout Session."""
        if not self._configure():
            return CheckoutResult(success=False, error_message="Stripe not configured")

        transfer_group = f"class_{metadata.get('class_id', '')}"
        try:
            session = stripe.checkout.Session.create(
                mode="payment",
                line_items=[
                    {
                        "price_data": {
                            "currency": currency.lower(),
                            "product_data": {"name": description},
                            "unit_amount": unit_amount,
                        },
                        "quantity": quantity,
                    }
                ],
                metadata=metadata,
                payment_intent_data={
                    "metadata": metadata,
                    "transfer_group": transfer_group,
                },
                expires_at=int(expires_at.timestamp()),
                success_url=settings.checkout_success_url,
                cancel_url=settings.checkout_cancel_url,
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe checkout session creation failed: {e}")
            return CheckoutResult(success=False, error_message=str(e))

        return CheckoutResult(success=True, session_id=session.id, url=session.url)

    async def refund_payment(
        self,
        payment_intent_id: str,
        amount: int | None,
        reason: str,
        idempotency_key: str,
    ) -> RefundResult:
        """Process Stripe refund."""
        if not self._configure():
            return RefundResult(success=False, error_message="Stripe not configured")

        params: dict = {
            "payment_intent": payment_intent_id,
            "reason": "requested_by_customer",
            "metadata": {"reason": reason[:500]},
            "idempotency_key": idempotency_key,
        }
        if amount is not None:
            params["amount"] = amount

        try:
            refund = stripe.Refund.create(**params)
        except stripe.StripeError as e:
            logger.error(f"Stripe refund for {payment_intent_id} failed: {e}")
            return RefundResult(success=False, error_message=str(e))

        return RefundResult(
            success=refund.status in ("succeeded", "pending"),
            refund_id=refund.id,
            raw_response={"status": refund.status, "id": refund.id},
        )

    async def create_transfer(
        self,
        amount: int,
        currency: str,
        destination: str,
        idempotency_key: str,
        metadata: dict[str, str] | None = None,
    ) -> TransferResult:
        """Transfer funds to a connected Stripe account."""
        if not self._configure():
            return TransferResult(success=False, error_message="Stripe not configured")

        try:
            transfer = stripe.Transfer.create(
                amount=amount,
                currency=currency.lower(),
                destination=destination,
                metadata=metadata or {},
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe transfer to {destination} failed: {e}")
            return TransferResult(success=False, error_message=str(e))

        return TransferResult(success=True, transfer_id=transfer.id)

    def verify_webhook(
        self,
        payload: bytes,
        signature: str | None,
        secret: str,
    ) -> None:
        """Verify Stripe webhook signature."""
        if not signature:
            raise AuthenticationError("Missing Stripe-Signature header", bearer=False)

        try:
            stripe.WebhookSignature.verify_header(
                payload.decode("utf-8"),
                signature,
                secret,
                self.tolerance,
            )
        except (stripe.SignatureVerificationError, UnicodeDecodeError) as e:
            logger.warning(f"Rejected webhook with invalid signature: {e}")
            raise AuthenticationError("Invalid signature", bearer=False)


stripe_gateway = StripeGateway()


def get_payment_gateway() -> PaymentGateway:
    """FastAPI dependency returning the configured gateway."""
    return stripe_gateway
