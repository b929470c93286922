"""Partner code redemptions: merchant debit, member credit, and audit entry in one unit."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from uuid import UUID

from loguru import logger
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from placeclub_api.core.settings import settings
from placeclub_api.domain.catalog import as_utc
from placeclub_api.models.merchant import Merchant
from placeclub_api.models.transaction_log import TransactionEntryKind, TransactionLog
from placeclub_api.models.user import User
from .results import Accepted, Outcome, Rejected, RejectionReason
from .unit_of_work import accept, reject, resolve_now, store_guard


NEUTRAL_MULTIPLIER = Decimal("1")


@dataclass(frozen=True, slots=True)
class RedemptionReceipt:
    transaction_id: UUID
    merchant_id: UUID
    base_points: int
    multiplier: Decimal
    effective_points: int
    merchant_balance: int
    user_balance: int


@dataclass(frozen=True, slots=True)
class BoostGrant:
    user_id: UUID
    multiplier: Decimal
    expires_at: datetime


def effective_multiplier(user: User, now: datetime) -> Decimal:
    """The user's multiplier while it is unexpired, otherwise 1."""

    expires_at = as_utc(user.multiplier_expires_at)
    if user.multiplier is None or expires_at is None or expires_at <= now:
        return NEUTRAL_MULTIPLIER
    return Decimal(str(user.multiplier))


def effective_points(base_points: int, multiplier: Decimal) -> int:
    """Floor of the boosted amount; fractional points are never granted."""

    return int(math.floor(Decimal(base_points) * multiplier))


class RedemptionService:
    """Validates redemption codes and moves points from merchants to members."""

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        base_points: int | None = None,
        cooldown: timedelta | None = None,
    ) -> None:
        self._db = db_session
        self._base_points = base_points or settings.redemption_base_points
        self._cooldown = cooldown if cooldown is not None else timedelta(seconds=settings.redemption_cooldown_seconds)

    async def redeem(
        self,
        user_id: UUID,
        code: str,
        *,
        now: datetime | None = None,
    ) -> Outcome[RedemptionReceipt]:
        """Redeem a merchant code for ``user_id``.

        The merchant row is locked for the duration of the transaction so
        concurrent redemptions against one merchant serialise. On stores without
        row locks the debit itself re-checks the balance and the cooldown window,
        so a redemption that lost a race debits nothing.
        """

        operation = "redeem"
        current_time = resolve_now(now)
        normalized = (code or "").strip()
        base = self._base_points

        async with store_guard(self._db, operation):
            if not normalized:
                return await reject(self._db, operation, Rejected(RejectionReason.CODE_NOT_FOUND))

            stmt = (
                select(Merchant)
                .where(Merchant.redemption_code == normalized)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            merchant = (await self._db.execute(stmt)).scalar_one_or_none()
            if merchant is None:
                return await reject(self._db, operation, Rejected(RejectionReason.CODE_NOT_FOUND))
            merchant_id = merchant.id
            if not merchant.is_active:
                return await reject(
                    self._db, operation, Rejected(RejectionReason.MERCHANT_INACTIVE), merchant_id=merchant_id
                )

            if int(merchant.balance or 0) < base:
                return await reject(
                    self._db, operation, Rejected(RejectionReason.INSUFFICIENT_BALANCE), merchant_id=merchant_id
                )

            last_visit = as_utc(await self._last_redemption_at(user_id, merchant_id))
            if last_visit is not None and last_visit > current_time - self._cooldown:
                return await reject(
                    self._db,
                    operation,
                    Rejected(RejectionReason.COOLDOWN_ACTIVE),
                    user_id=user_id,
                    merchant_id=merchant_id,
                )

            user = await self._db.get(User, user_id, with_for_update=True, populate_existing=True)
            if user is None:
                return await reject(self._db, operation, Rejected(RejectionReason.USER_NOT_FOUND), user_id=user_id)

            multiplier = effective_multiplier(user, current_time)
            points = effective_points(base, multiplier)

            recent_visit = self._recent_redemption(user_id, merchant_id, current_time).exists()
            debit = (
                update(Merchant)
                .where(Merchant.id == merchant_id, Merchant.balance >= base, ~recent_visit)
                .values(balance=Merchant.balance - base)
                .returning(Merchant.balance)
                .execution_options(synchronize_session=False)
            )
            merchant_balance = (await self._db.execute(debit)).scalar_one_or_none()
            if merchant_balance is None:
                # Another redemption committed between the checks above and the debit.
                reason = RejectionReason.INSUFFICIENT_BALANCE
                last_visit = as_utc(await self._last_redemption_at(user_id, merchant_id))
                if last_visit is not None and last_visit > current_time - self._cooldown:
                    reason = RejectionReason.COOLDOWN_ACTIVE
                return await reject(
                    self._db,
                    operation,
                    Rejected(reason),
                    discard=True,
                    user_id=user_id,
                    merchant_id=merchant_id,
                )

            credit = (
                update(User)
                .where(User.id == user_id)
                .values(points_balance=User.points_balance + points)
                .returning(User.points_balance)
                .execution_options(synchronize_session=False)
            )
            user_balance = (await self._db.execute(credit)).scalar_one()

            entry = TransactionLog(
                user_id=user_id,
                merchant_id=merchant_id,
                entry_kind=TransactionEntryKind.REDEMPTION,
                base_points=base,
                multiplier=multiplier,
                effective_points=points,
                occurred_at=current_time,
            )
            self._db.add(entry)
            await self._db.flush()

            receipt = RedemptionReceipt(
                transaction_id=entry.id,
                merchant_id=merchant_id,
                base_points=base,
                multiplier=multiplier,
                effective_points=points,
                merchant_balance=int(merchant_balance),
                user_balance=int(user_balance),
            )
            logger.info(
                "Redeemed merchant code",
                user_id=str(user_id),
                merchant_id=str(merchant_id),
                base_points=base,
                multiplier=str(multiplier),
                effective_points=points,
                merchant_balance=int(merchant_balance),
            )
            return await accept(self._db, operation, Accepted(receipt))

    async def activate_boost(
        self,
        user_id: UUID,
        multiplier: Decimal | float | str,
        duration_hours: int,
        *,
        now: datetime | None = None,
    ) -> Outcome[BoostGrant]:
        """Apply a paid, time-bounded multiplier to a member and log the activation."""

        operation = "activate_boost"
        current_time = resolve_now(now)
        value = Decimal(str(multiplier))
        if value < NEUTRAL_MULTIPLIER or value > Decimal(str(settings.boost_max_multiplier)):
            raise ValueError(f"Multiplier must be between 1 and {settings.boost_max_multiplier}")
        if duration_hours <= 0 or duration_hours > settings.boost_max_duration_hours:
            raise ValueError(f"Boost duration must be between 1 and {settings.boost_max_duration_hours} hours")

        expires_at = current_time + timedelta(hours=duration_hours)
        async with store_guard(self._db, operation):
            user = await self._db.get(User, user_id, with_for_update=True, populate_existing=True)
            if user is None:
                return await reject(self._db, operation, Rejected(RejectionReason.USER_NOT_FOUND), user_id=user_id)

            user.multiplier = value
            user.multiplier_expires_at = expires_at
            self._db.add(
                TransactionLog(
                    user_id=user_id,
                    merchant_id=None,
                    entry_kind=TransactionEntryKind.BOOST_ACTIVATION,
                    base_points=0,
                    multiplier=value,
                    effective_points=0,
                    note=f"Boost x{value} for {duration_hours}h",
                    occurred_at=current_time,
                )
            )
            await self._db.flush()
            logger.info(
                "Activated reward boost",
                user_id=str(user_id),
                multiplier=str(value),
                expires_at=expires_at.isoformat(),
            )
            return await accept(
                self._db,
                operation,
                Accepted(BoostGrant(user_id=user_id, multiplier=value, expires_at=expires_at)),
            )

    def _recent_redemption(self, user_id: UUID, merchant_id: UUID, now: datetime):
        return select(TransactionLog.id).where(
            TransactionLog.user_id == user_id,
            TransactionLog.merchant_id == merchant_id,
            TransactionLog.entry_kind == TransactionEntryKind.REDEMPTION,
            TransactionLog.occurred_at > now - self._cooldown,
        )

    async def _last_redemption_at(self, user_id: UUID, merchant_id: UUID) -> datetime | None:
        stmt = select(func.max(TransactionLog.occurred_at)).where(
            TransactionLog.user_id == user_id,
            TransactionLog.merchant_id == merchant_id,
            TransactionLog.entry_kind == TransactionEntryKind.REDEMPTION,
        )
        return (await self._db.execute(stmt)).scalar_one_or_none()


__all__ = [
    "BoostGrant",
    "RedemptionReceipt",
    "RedemptionService",
    "effective_multiplier",
    "effective_points",
]
