from __future__ import annotations
from dataclasses import dataclass
from math import atan2, cos, isfinite, radians, sin, sqrt
from numbers import Real

from barmap.core.numbers import round_half_away

"""
Geospatial helpers.

A tiny geometry layer for the proximity guard and radius search. There is no
spatial index: callers pre-filter with `bounding_box` in a store query and then
refine with `distance_km`.
"""

EARTH_RADIUS_KM = 6371.0
KM_PER_DEGREE = 111.0


@dataclass(frozen=True)
class BoundingBox:
    north: float
    south: float
    east: float
    west: float


def distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle (haversine) distance in kilometers, rounded to 2 decimals."""
    phi1 = radians(lat1)
    phi2 = radians(lat2)
    dlat = radians(lat2 - lat1)
    dlon = radians(lon2 - lon1)

    h = sin(dlat / 2) ** 2 + cos(phi1) * cos(phi2) * sin(dlon / 2) ** 2
    h = min(1.0, h)
    c = 2 * atan2(sqrt(h), sqrt(1 - h))
    return round_half_away(EARTH_RADIUS_KM * c, 2)


def is_valid_coordinate(lat: object, lon: object) -> bool:
    """True iff both values are finite numbers within latitude/longitude range."""
    for v in (lat, lon):
        if isinstance(v, bool) or not isinstance(v, Real) or not isfinite(v):
            return False
    return -90 <= lat <= 90 and -180 <= lon <= 180  # type: ignore[operator]


def bounding_box(lat: float, lon: float, radius_km: float, km_per_degree: float = KM_PER_DEGREE) -> BoundingBox:
    """Rectangle around a point using a flat 1 degree ~= `km_per_degree` km approximation.

    The longitude span is not widened with latitude, so the box under-covers
    east/west near the poles. Good enough for the small radii used here.
    """
    deg = radius_km / km_per_degree
    return BoundingBox(north=lat + deg, south=lat - deg, east=lon + deg, west=lon - deg)


def format_distance(km: float) -> str:
    """Human-friendly distance: meters below 1 km, otherwise one-decimal km."""
    if km < 1:
        return f"{int(round_half_away(km * 1000))} m"
    return f"{km:.1f} km"
