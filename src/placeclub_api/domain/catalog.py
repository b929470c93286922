"""Validated, immutable views of reference rows.

Catalog rows are loosely shaped in storage (a collectible row carries columns
for every kind). The engine never probes optional columns ad hoc: rows are
converted here, once, into closed records whose required fields are present,
and a row that does not fit its declared kind raises ``CatalogIntegrityError``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Union
from uuid import UUID

from placeclub_api.domain.periods import Cadence, parse_cadence
from placeclub_api.domain.proximity import Coordinate
from placeclub_api.models.collectible import Collectible, CollectibleKind
from placeclub_api.models.mission import MissionDefinition, MissionVerificationType


class CatalogIntegrityError(ValueError):
    """Raised when a reference row is missing fields its kind requires."""


def as_utc(value: datetime | None) -> datetime | None:
    """Interpret naive datetimes read back from the store as UTC."""

    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True, slots=True)
class LocationTarget:
    """Collectible unlocked by being near a fixed place."""

    id: UUID
    slug: str
    position: Coordinate
    radius_m: float


@dataclass(frozen=True, slots=True)
class EventTarget:
    """Collectible unlocked by checking in near an event while it is live."""

    id: UUID
    slug: str
    position: Coordinate
    radius_m: float
    starts_at: datetime
    ends_at: datetime

    def is_live(self, now: datetime) -> bool:
        return self.starts_at <= now <= self.ends_at


@dataclass(frozen=True, slots=True)
class CodeTarget:
    """Collectible unlocked through a partner merchant's code."""

    id: UUID
    slug: str
    merchant_id: UUID


CollectibleTarget = Union[LocationTarget, EventTarget, CodeTarget]


def load_collectible(
    row: Collectible,
    *,
    location_radius_m: float,
    event_radius_m: float,
) -> CollectibleTarget:
    kind = CollectibleKind(row.kind)

    if kind is CollectibleKind.CODE:
        if row.merchant_id is None:
            raise CatalogIntegrityError(f"Code collectible {row.slug} has no merchant")
        return CodeTarget(id=row.id, slug=row.slug, merchant_id=row.merchant_id)

    if row.latitude is None or row.longitude is None:
        raise CatalogIntegrityError(f"Collectible {row.slug} is missing coordinates")
    position = Coordinate(latitude=float(row.latitude), longitude=float(row.longitude))

    if kind is CollectibleKind.EVENT:
        starts_at = as_utc(row.starts_at)
        ends_at = as_utc(row.ends_at)
        if starts_at is None or ends_at is None or ends_at < starts_at:
            raise CatalogIntegrityError(f"Event collectible {row.slug} has no valid time window")
        return EventTarget(
            id=row.id,
            slug=row.slug,
            position=position,
            radius_m=float(row.unlock_radius_m or event_radius_m),
            starts_at=starts_at,
            ends_at=ends_at,
        )

    return LocationTarget(
        id=row.id,
        slug=row.slug,
        position=position,
        radius_m=float(row.unlock_radius_m or location_radius_m),
    )


@dataclass(frozen=True, slots=True)
class MissionSpec:
    """Validated mission definition."""

    id: UUID
    code: str
    cadence: Cadence
    verification_type: MissionVerificationType
    reward_points: int
    streak_source_code: str | None = None
    streak_threshold: int | None = None

    @property
    def is_one_off(self) -> bool:
        return self.cadence is Cadence.ONE_OFF


def load_mission(row: MissionDefinition) -> MissionSpec:
    try:
        cadence = parse_cadence(row.cadence)
    except ValueError as error:
        raise CatalogIntegrityError(str(error)) from error

    verification_type = MissionVerificationType(row.verification_type)
    reward_points = int(row.reward_points or 0)
    if reward_points < 0:
        raise CatalogIntegrityError(f"Mission {row.code} has a negative reward")

    if verification_type is MissionVerificationType.STREAK:
        if not row.streak_source_code or not row.streak_threshold or row.streak_threshold <= 0:
            raise CatalogIntegrityError(f"Streak mission {row.code} needs a source code and threshold")
        if cadence is Cadence.ONE_OFF or cadence is Cadence.DAILY:
            raise CatalogIntegrityError(f"Streak mission {row.code} must span several days")

    return MissionSpec(
        id=row.id,
        code=row.code,
        cadence=cadence,
        verification_type=verification_type,
        reward_points=reward_points,
        streak_source_code=row.streak_source_code,
        streak_threshold=row.streak_threshold,
    )


__all__ = [
    "CatalogIntegrityError",
    "CodeTarget",
    "CollectibleTarget",
    "EventTarget",
    "LocationTarget",
    "MissionSpec",
    "as_utc",
    "load_collectible",
    "load_mission",
]
