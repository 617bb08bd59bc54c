# Overview: Great-circle distance and radius filtering for store/coupon discovery.

"""
Geo helpers shared by the discovery endpoints.

Distances use the haversine formula on a spherical earth. Candidates whose
coordinates are unknown (or a query without an origin) are kept with a
distance of None and sorted after every measured candidate.

SCALING: filtering is a linear scan over rows already fetched from the
database; no spatial index is involved.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional, Union

EARTH_RADIUS_M = 6_371_000.0
EARTH_RADIUS_KM = 6_371.0

Coords = tuple[Optional[float], Optional[float]]


def haversine(lat1: float, lng1: float, lat2: float, lng2: float, radius: float) -> float:
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    # Float noise can push a past 1 for near-antipodal points
    a = min(1.0, max(0.0, a))
    return 2 * radius * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Distance in meters."""
    return haversine(lat1, lng1, lat2, lng2, EARTH_RADIUS_M)


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Distance in kilometers."""
    return haversine(lat1, lng1, lat2, lng2, EARTH_RADIUS_KM)


def has_coords(lat: Optional[float], lng: Optional[float]) -> bool:
    return lat is not None and lng is not None


def format_distance(distance_m: Optional[float]) -> Optional[str]:
    """850 -> '850m', 1234 -> '1.2km'."""
    if distance_m is None:
        return None
    if distance_m < 1000:
        return f"{int(round(distance_m))}m"
    return f"{distance_m / 1000:.1f}km"


@dataclass(frozen=True)
class GeoMatch:
    item: Any
    distance_m: Optional[float]


def filter_within_radius(
    origin: Optional[Coords],
    candidates: Iterable[Any],
    *,
    coords: Callable[[Any], Coords],
    radius_m: Union[float, Callable[[Any], float]],
    limit: Optional[int] = None,
) -> list[GeoMatch]:
    """
    Annotate candidates with their distance from origin and keep the ones
    inside the radius, nearest first.

    - origin None (or a None component): every candidate is kept, distance None
    - candidate without coordinates: kept, distance None
    - radius_m may be a constant or a per-candidate callable (store radius)
    - ordering is stable, None distances last, then truncated to limit
    """
    origin_known = origin is not None and has_coords(*origin)
    matches: list[GeoMatch] = []

    for item in candidates:
        lat, lng = coords(item)
        if not origin_known or not has_coords(lat, lng):
            matches.append(GeoMatch(item=item, distance_m=None))
            continue

        distance = haversine_m(origin[0], origin[1], float(lat), float(lng))
        limit_m = radius_m(item) if callable(radius_m) else radius_m
        if distance <= limit_m:
            matches.append(GeoMatch(item=item, distance_m=distance))

    matches.sort(key=lambda m: (m.distance_m is None, m.distance_m or 0.0))
    if limit is not None:
        matches = matches[:limit]
    return matches
