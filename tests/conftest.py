"""
Pytest fixtures for test database, client, payment gateway and authentication.

Each test gets a fresh in-memory SQLite database (aiosqlite) and a recording
gateway in place of Stripe. Webhook signatures are still verified for real.
"""

import os

# Settings are read at import time, so configure them before importing seatline
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL_OVERRIDE"] = "sqlite+aiosqlite://"
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_payments"
os.environ["STRIPE_CONNECT_WEBHOOK_SECRET"] = "whsec_test_accounts"
os.environ.pop("SENDGRID_API_KEY", None)

from collections.abc import AsyncGenerator
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import seatline.models  # noqa: F401 - register tables on Base.metadata
from seatline.database import Base, get_db
from seatline.gateways.base import CheckoutResult, RefundResult, TransferResult
from seatline.gateways.stripe_gateway import StripeGateway, get_payment_gateway
from seatline.main import app

from tests.factories import make_class


class RecordingGateway(StripeGateway):
    """Stripe gateway that records calls instead of reaching the network.

    Signature verification is inherited unchanged.
    """

    def __init__(self) -> None:
        super().__init__(secret_key="sk_test_recording")
        self.checkouts: list[dict] = []
        self.refunds: list[dict] = []
        self.transfers: list[dict] = []
        self.fail_checkout = False
        self.fail_refunds = False
        self.fail_transfers = False

    async def create_checkout_session(
        self,
        unit_amount,
        quantity,
        currency,
        description,
        metadata,
        expires_at,
        idempotency_key,
    ) -> CheckoutResult:
        if self.fail_checkout:
            return CheckoutResult(success=False, error_message="card processor down")
        session_id = f"cs_test_{len(self.checkouts) + 1}"
        self.checkouts.append(
            {
                "unit_amount": unit_amount,
                "quantity": quantity,
                "currency": currency,
                "metadata": metadata,
                "expires_at": expires_at,
                "idempotency_key": idempotency_key,
                "session_id": session_id,
            }
        )
        return CheckoutResult(
            success=True,
            session_id=session_id,
            url=f"https://checkout.stripe.test/{session_id}",
        )

    async def refund_payment(self, payment_intent_id, amount, reason, idempotency_key) -> RefundResult:
        self.refunds.append(
            {
                "payment_intent_id": payment_intent_id,
                "amount": amount,
                "reason": reason,
                "idempotency_key": idempotency_key,
            }
        )
        if self.fail_refunds:
            return RefundResult(success=False, error_message="refund declined")
        return RefundResult(success=True, refund_id=f"re_test_{len(self.refunds)}")

    async def create_transfer(
        self,
        amount,
        currency,
        destination,
        idempotency_key,
        metadata=None,
    ) -> TransferResult:
        self.transfers.append(
            {
                "amount": amount,
                "currency": currency,
                "destination": destination,
                "idempotency_key": idempotency_key,
            }
        )
        if self.fail_transfers:
            return TransferResult(success=False, error_message="account restricted")
        return TransferResult(success=True, transfer_id=f"tr_test_{len(self.transfers)}")


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_maker = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )
    async with session_maker() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def gateway() -> RecordingGateway:
    return RecordingGateway()


@pytest_asyncio.fixture(scope="function")
async def client(
    db_session: AsyncSession,
    gateway: RecordingGateway,
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client that overrides the DB and gateway dependencies."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def host_id():
    return uuid4()


@pytest.fixture
def guest_id():
    return uuid4()


@pytest_asyncio.fixture
async def manual_class(db_session: AsyncSession, host_id):
    """Class whose bookings need host approval, 2 seats."""
    return await make_class(db_session, host_id, max_seats=2, auto_approve=False)


@pytest_asyncio.fixture
async def auto_class(db_session: AsyncSession, host_id):
    """Auto-approve class with 2 seats."""
    return await make_class(db_session, host_id, max_seats=2, auto_approve=True)
