"""Idempotency protection for inbound payment events.

Two keys collapse duplicate deliveries: the processor's event id and the
checkout attempt id. Both are primary keys, and both inserts use
``ON CONFLICT DO NOTHING ... RETURNING`` so a duplicate is detected by an
empty result rather than an error. The inserts join the caller's
transaction; if that transaction rolls back, the key is released and the
sender's retry is processed from scratch.
"""

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from seatline.core.exceptions import PersistenceUnavailable
from seatline.models.payment import CheckoutAttemptClaim, InboundPaymentEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IdempotencyResult:
    key: str
    is_new: bool


def dialect_insert(db: AsyncSession, model):
    """Dialect-specific INSERT supporting ON CONFLICT clauses."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    raise PersistenceUnavailable(f"Unsupported database dialect '{dialect}'")


async def _insert_once(db: AsyncSession, model, key_column, values: dict[str, Any]) -> bool:
    stmt = (
        dialect_insert(db, model)
        .values(**values)
        .on_conflict_do_nothing(index_elements=[key_column.key])
        .returning(key_column)
    )
    try:
        result = await db.execute(stmt)
    except SQLAlchemyError as e:
        logger.error(f"Idempotency insert into {model.__tablename__} failed: {e}")
        raise PersistenceUnavailable() from e
    return result.scalar_one_or_none() is not None


async def record_event(
    db: AsyncSession,
    event_id: str,
    event_type: str,
    payload: dict[str, Any],
) -> IdempotencyResult:
    """Record an inbound event; ``is_new`` is False if it was seen before.

    Callers must treat ``is_new=False`` as already handled and acknowledge
    without doing any work.
    """
    is_new = await _insert_once(
        db,
        InboundPaymentEvent,
        InboundPaymentEvent.event_id,
        {"event_id": event_id, "event_type": event_type, "payload": payload},
    )
    if not is_new:
        logger.info(f"Duplicate event {event_id} ({event_type}) ignored")
    return IdempotencyResult(key=event_id, is_new=is_new)


async def claim_checkout_attempt(
    db: AsyncSession,
    checkout_attempt_id: str,
    event_id: str | None = None,
) -> IdempotencyResult:
    """Claim a checkout attempt for booking creation; first claim wins."""
    is_new = await _insert_once(
        db,
        CheckoutAttemptClaim,
        CheckoutAttemptClaim.checkout_attempt_id,
        {"checkout_attempt_id": checkout_attempt_id, "event_id": event_id},
    )
    if not is_new:
        logger.info(
            f"Checkout attempt {checkout_attempt_id} already claimed; "
            f"event {event_id} creates no booking"
        )
    return IdempotencyResult(key=checkout_attempt_id, is_new=is_new)
