"""Great-circle distance checks for proximity unlocks."""

from __future__ import annotations

import math
from dataclasses import dataclass


EARTH_RADIUS_METERS = 6_371_000.0


@dataclass(frozen=True, slots=True)
class Coordinate:
    """Signed decimal degrees."""

    latitude: float
    longitude: float


def _usable(*values: float | None) -> bool:
    for value in values:
        if value is None:
            return False
        try:
            if not math.isfinite(float(value)):
                return False
        except (TypeError, ValueError):
            return False
    return True


def haversine_distance(
    lat1: float | None,
    lon1: float | None,
    lat2: float | None,
    lon2: float | None,
) -> float | None:
    """Distance in meters between two points, or ``None`` when any coordinate is missing."""

    if not _usable(lat1, lon1, lat2, lon2):
        return None

    phi1 = math.radians(float(lat1))
    phi2 = math.radians(float(lat2))
    delta_phi = math.radians(float(lat2) - float(lat1))
    delta_lambda = math.radians(float(lon2) - float(lon1))

    a = (
        math.sin(delta_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_METERS * c


def is_within(distance: float | None, radius: float | None) -> bool:
    if distance is None or not _usable(radius):
        return False
    return distance <= float(radius)


def distance_between(origin: Coordinate | None, target: Coordinate | None) -> float | None:
    if origin is None or target is None:
        return None
    return haversine_distance(origin.latitude, origin.longitude, target.latitude, target.longitude)


def is_within_radius(origin: Coordinate | None, target: Coordinate | None, radius: float | None) -> bool:
    """Fail-closed proximity check: anything missing means "not within"."""

    return is_within(distance_between(origin, target), radius)


__all__ = [
    "Coordinate",
    "EARTH_RADIUS_METERS",
    "distance_between",
    "haversine_distance",
    "is_within",
    "is_within_radius",
]
