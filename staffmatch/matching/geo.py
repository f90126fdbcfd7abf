"""Great-circle distance helpers."""

from __future__ import annotations

import math

from staffmatch.matching.models import GeoPoint

EARTH_RADIUS_KM = 6371.0088


def haversine_km(a: GeoPoint, b: GeoPoint) -> float:
    """Return the haversine great-circle distance between two points in km."""
    lat1, lon1 = math.radians(a.latitude), math.radians(a.longitude)
    lat2, lon2 = math.radians(b.latitude), math.radians(b.longitude)

    dlat = lat2 - lat1
    dlon = lon2 - lon1
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    # Rounding can push h a hair past 1.0 for antipodal points.
    h = min(1.0, max(0.0, h))
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(h))


def distance_between(a: GeoPoint | None, b: GeoPoint | None) -> float | None:
    """Distance in km, or None when either side has no coordinates."""
    if a is None or b is None:
        return None
    return haversine_km(a, b)


def effective_max_distance(
    subject_location: GeoPoint | None,
    criteria_max_km: float | None,
    default_km: float | None = None,
) -> float | None:
    """Pick the distance limit for a subject.

    A radius declared on the subject's own location wins over the criteria
    limit, which wins over ``default_km``.
    """
    if subject_location is not None and subject_location.radius_km is not None:
        return subject_location.radius_km
    if criteria_max_km is not None:
        return criteria_max_km
    return default_km
