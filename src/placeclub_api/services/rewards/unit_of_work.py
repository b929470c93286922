"""Shared transaction plumbing for reward operations."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from placeclub_api.observability.rewards import get_reward_store
from placeclub_api.observability.tracing import annotate_reward_outcome, annotate_store_failure, reward_span
from .results import Accepted, Outcome, Rejected, RewardStoreError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def resolve_now(now: datetime | None) -> datetime:
    if now is None:
        return utcnow()
    if now.tzinfo is None:
        raise ValueError("Reward operations require timezone-aware instants")
    return now.astimezone(timezone.utc)


@asynccontextmanager
async def store_guard(session: AsyncSession, operation: str) -> AsyncIterator[None]:
    """Trace the operation, and roll back and surface a typed fault when the store fails."""

    with reward_span(operation), logger.contextualize(operation=operation):
        try:
            yield
        except SQLAlchemyError as error:
            await session.rollback()
            annotate_store_failure(error)
            logger.error("Reward store failure", error_type=type(error).__name__)
            raise RewardStoreError(operation) from error


async def reject(
    session: AsyncSession,
    operation: str,
    outcome: Rejected,
    *,
    discard: bool = False,
    **context: object,
) -> Rejected:
    """End the unit of work and record the rejection.

    Rejections decided before any write simply release the transaction (and any
    row locks) so loaded instances stay usable; ``discard`` rolls back writes
    that were already flushed, including a failed insert.
    """

    if discard:
        await session.rollback()
    elif session.in_transaction():
        await session.commit()
    get_reward_store().record_outcome(operation, outcome.reason.value)
    annotate_reward_outcome(outcome.reason.value, category=outcome.reason.category.value)
    logger.info(
        "Reward operation rejected",
        operation=operation,
        reason=outcome.reason.value,
        **{key: str(value) for key, value in context.items()},
    )
    return outcome


async def accept(session: AsyncSession, operation: str, outcome: Accepted) -> Accepted:
    await session.commit()
    get_reward_store().record_outcome(operation, "accepted")
    annotate_reward_outcome("accepted")
    return outcome


__all__ = ["Outcome", "accept", "reject", "resolve_now", "store_guard", "utcnow"]
