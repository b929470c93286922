"""Insert-once ledger of collectibles owned by users."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from placeclub_api.core.settings import settings
from placeclub_api.domain.catalog import (
    CatalogIntegrityError,
    CodeTarget,
    CollectibleTarget,
    EventTarget,
    LocationTarget,
    load_collectible,
)
from placeclub_api.domain.proximity import Coordinate, distance_between, is_within
from placeclub_api.models.collectible import Collectible, CollectibleKind, UnlockRecord, UnlockSource
from .results import Accepted, Outcome, Rejected, RejectionReason
from .unit_of_work import accept, reject, resolve_now, store_guard


@dataclass(frozen=True, slots=True)
class NearbyUnlock:
    """Collectible unlocked during a proximity scan."""

    collectible_id: UUID
    slug: str
    distance_m: float
    unlocked_at: datetime


class UnlockLedger:
    """Records collectible unlocks. Never credits points."""

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        location_radius_m: float | None = None,
        event_radius_m: float | None = None,
    ) -> None:
        self._db = db_session
        self._location_radius_m = location_radius_m or settings.location_unlock_radius_meters
        self._event_radius_m = event_radius_m or settings.event_checkin_radius_meters

    async def is_unlocked(self, user_id: UUID, collectible_id: UUID) -> bool:
        stmt = select(UnlockRecord.id).where(
            UnlockRecord.user_id == user_id,
            UnlockRecord.collectible_id == collectible_id,
        )
        async with store_guard(self._db, "is_unlocked"):
            result = await self._db.execute(stmt)
            return result.scalar_one_or_none() is not None

    async def unlock(
        self,
        user_id: UUID,
        collectible_id: UUID,
        *,
        source: UnlockSource = UnlockSource.MANUAL,
        now: datetime | None = None,
    ) -> Outcome[UnlockRecord]:
        """Insert the unlock record; a duplicate resolves to ``already_unlocked``."""

        current_time = resolve_now(now)
        async with store_guard(self._db, "unlock"):
            collectible = await self._db.get(Collectible, collectible_id)
            if collectible is None or not collectible.is_active:
                return await reject(
                    self._db,
                    "unlock",
                    Rejected(RejectionReason.COLLECTIBLE_NOT_FOUND),
                    collectible_id=collectible_id,
                )
            return await self._insert(user_id, collectible_id, source=source, now=current_time)

    async def unlock_at_location(
        self,
        user_id: UUID,
        collectible_id: UUID,
        origin: Coordinate | None,
        *,
        now: datetime | None = None,
    ) -> Outcome[UnlockRecord]:
        """Explicit check-in on one location or event collectible."""

        current_time = resolve_now(now)
        async with store_guard(self._db, "unlock_at_location"):
            row = await self._db.get(Collectible, collectible_id)
            target = self._load_target(row) if row is not None and row.is_active else None
            if target is None or isinstance(target, CodeTarget):
                return await reject(
                    self._db,
                    "unlock_at_location",
                    Rejected(RejectionReason.COLLECTIBLE_NOT_FOUND),
                    collectible_id=collectible_id,
                )

            if isinstance(target, EventTarget) and not target.is_live(current_time):
                return await reject(
                    self._db,
                    "unlock_at_location",
                    Rejected(RejectionReason.EVENT_NOT_LIVE),
                    collectible_id=collectible_id,
                )

            distance = distance_between(origin, target.position)
            if not is_within(distance, target.radius_m):
                return await reject(
                    self._db,
                    "unlock_at_location",
                    Rejected(RejectionReason.OUT_OF_RANGE),
                    collectible_id=collectible_id,
                    distance_m=distance,
                )

            return await self._insert(user_id, target.id, source=UnlockSource.PROXIMITY, now=current_time)

    async def unlock_nearby(
        self,
        user_id: UUID,
        origin: Coordinate | None,
        *,
        now: datetime | None = None,
    ) -> list[NearbyUnlock]:
        """Unlock every still-locked location or live event collectible within its radius."""

        current_time = resolve_now(now)
        if origin is None:
            return []

        async with store_guard(self._db, "unlock_nearby"):
            owned = select(UnlockRecord.collectible_id).where(UnlockRecord.user_id == user_id)
            stmt = select(Collectible).where(
                Collectible.is_active.is_(True),
                Collectible.kind.in_([CollectibleKind.LOCATION, CollectibleKind.EVENT]),
                Collectible.id.not_in(owned),
            )
            rows = (await self._db.execute(stmt)).scalars().all()

            candidates: list[tuple[LocationTarget | EventTarget, float]] = []
            for row in rows:
                target = self._load_target(row)
                if target is None or isinstance(target, CodeTarget):
                    continue
                if isinstance(target, EventTarget) and not target.is_live(current_time):
                    continue
                distance = distance_between(origin, target.position)
                if is_within(distance, target.radius_m):
                    candidates.append((target, distance))

        unlocked: list[NearbyUnlock] = []
        for target, distance in candidates:
            outcome = await self.unlock(user_id, target.id, source=UnlockSource.PROXIMITY, now=current_time)
            if isinstance(outcome, Accepted):
                unlocked.append(
                    NearbyUnlock(
                        collectible_id=target.id,
                        slug=target.slug,
                        distance_m=distance,
                        unlocked_at=outcome.value.unlocked_at,
                    )
                )

        logger.debug(
            "Proximity scan finished",
            user_id=str(user_id),
            candidates=len(candidates),
            unlocked=len(unlocked),
        )
        return unlocked

    async def unlock_for_merchant(
        self,
        user_id: UUID,
        merchant_id: UUID,
        *,
        now: datetime | None = None,
    ) -> Outcome[UnlockRecord]:
        """Unlock the code-bound collectible a merchant shares its identity with."""

        current_time = resolve_now(now)
        async with store_guard(self._db, "unlock_for_merchant"):
            stmt = select(Collectible).where(
                Collectible.merchant_id == merchant_id,
                Collectible.kind == CollectibleKind.CODE,
                Collectible.is_active.is_(True),
            )
            row = (await self._db.execute(stmt)).scalars().first()
            if row is None:
                return await reject(
                    self._db,
                    "unlock_for_merchant",
                    Rejected(RejectionReason.COLLECTIBLE_NOT_FOUND),
                    merchant_id=merchant_id,
                )
            return await self._insert(user_id, row.id, source=UnlockSource.CODE, now=current_time)

    def _load_target(self, row: Collectible) -> CollectibleTarget | None:
        try:
            return load_collectible(
                row,
                location_radius_m=self._location_radius_m,
                event_radius_m=self._event_radius_m,
            )
        except CatalogIntegrityError as error:
            logger.warning("Skipping malformed collectible", slug=row.slug, error=str(error))
            return None

    async def _insert(
        self,
        user_id: UUID,
        collectible_id: UUID,
        *,
        source: UnlockSource,
        now: datetime,
    ) -> Outcome[UnlockRecord]:
        record = UnlockRecord(
            user_id=user_id,
            collectible_id=collectible_id,
            source=source,
            unlocked_at=now,
        )
        self._db.add(record)
        try:
            await self._db.flush()
        except IntegrityError:
            return await reject(
                self._db,
                "unlock",
                Rejected(RejectionReason.ALREADY_UNLOCKED),
                discard=True,
                user_id=user_id,
                collectible_id=collectible_id,
            )

        logger.info(
            "Unlocked collectible",
            user_id=str(user_id),
            collectible_id=str(collectible_id),
            source=source.value,
        )
        return await accept(self._db, "unlock", Accepted(record))


__all__ = ["NearbyUnlock", "UnlockLedger"]
