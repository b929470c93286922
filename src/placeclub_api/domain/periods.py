"""Calendar periods for recurring missions.

Every calculation happens on civil calendar fields in one configured zone, so a
claim at 23:50 and one at 00:10 local time land in different daily periods
even when both fall on the same UTC date. Reset instants are built as local
midnight of a civil date rather than by adding elapsed seconds, which keeps the
boundaries stable across DST transitions.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, tzinfo
from enum import Enum
from zoneinfo import ZoneInfo


ONE_OFF_PERIOD_KEY = "permanent"


class Cadence(str, Enum):
    """How often a mission can be claimed."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    ONE_OFF = "one_off"


_CADENCE_ALIASES: dict[str, Cadence] = {
    "daily": Cadence.DAILY,
    "weekly": Cadence.WEEKLY,
    "monthly": Cadence.MONTHLY,
    "one_off": Cadence.ONE_OFF,
    "one-off": Cadence.ONE_OFF,
    "oneoff": Cadence.ONE_OFF,
    "special": Cadence.ONE_OFF,
    "permanent": Cadence.ONE_OFF,
    # Labels stored by the legacy Italian catalog
    "giornaliera": Cadence.DAILY,
    "giornaliero": Cadence.DAILY,
    "settimanale": Cadence.WEEKLY,
    "mensile": Cadence.MONTHLY,
    "una_tantum": Cadence.ONE_OFF,
    "speciale": Cadence.ONE_OFF,
}


def parse_cadence(value: Cadence | str) -> Cadence:
    """Normalise a stored cadence label, raising ``ValueError`` for unknown ones."""

    if isinstance(value, Cadence):
        return value
    normalized = str(value or "").strip().lower().replace(" ", "_")
    try:
        return _CADENCE_ALIASES[normalized]
    except KeyError as error:
        raise ValueError(f"Unsupported mission cadence: {value!r}") from error


@dataclass(frozen=True, slots=True)
class PeriodKey:
    """Canonical identifier of the period containing an instant.

    ``starts_on``/``ends_on`` delimit the period's civil dates (end exclusive)
    and are ``None`` for one-off cadences, like ``reset_at``.
    """

    cadence: Cadence
    key: str
    reset_at: datetime | None
    starts_on: date | None
    ends_on: date | None

    def contains(self, day: date) -> bool:
        if self.starts_on is None or self.ends_on is None:
            return True
        return self.starts_on <= day < self.ends_on


def resolve_zone(tz: tzinfo | str) -> tzinfo:
    return ZoneInfo(tz) if isinstance(tz, str) else tz


def _local_midnight(day: date, zone: tzinfo) -> datetime:
    return datetime.combine(day, time.min, tzinfo=zone)


def _first_of_next_month(day: date) -> date:
    if day.month == 12:
        return date(day.year + 1, 1, 1)
    return date(day.year, day.month + 1, 1)


def compute_period(cadence: Cadence | str, now: datetime, tz: tzinfo | str) -> PeriodKey:
    """Return the period key and next reset for ``cadence`` at instant ``now``."""

    if now.tzinfo is None or now.utcoffset() is None:
        raise ValueError("compute_period requires a timezone-aware instant")

    resolved = parse_cadence(cadence)
    zone = resolve_zone(tz)
    today = now.astimezone(zone).date()

    if resolved is Cadence.DAILY:
        tomorrow = today + timedelta(days=1)
        return PeriodKey(
            cadence=resolved,
            key=today.isoformat(),
            reset_at=_local_midnight(tomorrow, zone),
            starts_on=today,
            ends_on=tomorrow,
        )

    if resolved is Cadence.WEEKLY:
        iso_year, iso_week, _ = today.isocalendar()
        monday = today - timedelta(days=today.weekday())
        next_monday = monday + timedelta(days=7)
        return PeriodKey(
            cadence=resolved,
            key=f"{iso_year}-W{iso_week:02d}",
            reset_at=_local_midnight(next_monday, zone),
            starts_on=monday,
            ends_on=next_monday,
        )

    if resolved is Cadence.MONTHLY:
        first = today.replace(day=1)
        next_first = _first_of_next_month(today)
        return PeriodKey(
            cadence=resolved,
            key=f"{today.year:04d}-{today.month:02d}",
            reset_at=_local_midnight(next_first, zone),
            starts_on=first,
            ends_on=next_first,
        )

    return PeriodKey(
        cadence=resolved,
        key=ONE_OFF_PERIOD_KEY,
        reset_at=None,
        starts_on=None,
        ends_on=None,
    )


def daily_keys_within(period: PeriodKey) -> list[str]:
    """Daily period keys covered by ``period``, oldest first."""

    if period.starts_on is None or period.ends_on is None:
        raise ValueError("One-off periods do not span a bounded set of days")
    span = (period.ends_on - period.starts_on).days
    return [(period.starts_on + timedelta(days=offset)).isoformat() for offset in range(span)]


__all__ = [
    "Cadence",
    "ONE_OFF_PERIOD_KEY",
    "PeriodKey",
    "compute_period",
    "daily_keys_within",
    "parse_cadence",
    "resolve_zone",
]
