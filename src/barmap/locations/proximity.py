"""
Proximity search and duplicate-location guard.

Two-phase search without a spatial index:
1) the store returns active locations inside a bounding box (cheap rectangular filter)
2) exact haversine distances refine that small candidate set

The minimum-separation boundary is closed: a location exactly `min_separation_km`
away is a conflict.
"""

from __future__ import annotations

import logging

from barmap.core.errors import ValidationError
from barmap.core.geo import KM_PER_DEGREE, bounding_box, distance_km, is_valid_coordinate
from barmap.domain.models import NearbyLocation, ProximityResult
from barmap.store.locations import LocationStore

logger = logging.getLogger(__name__)


def require_valid_coordinate(lat: float, lon: float) -> None:
    if not is_valid_coordinate(lat, lon):
        raise ValidationError("Invalid GPS coordinates", field="coordinates", lat=lat, lon=lon)


async def find_within_radius(
    locations: LocationStore,
    lat: float,
    lon: float,
    radius_km: float,
    *,
    km_per_degree: float = KM_PER_DEGREE,
    exclude_id: str | None = None,
) -> list[NearbyLocation]:
    """Active locations within `radius_km` (inclusive), nearest first."""
    require_valid_coordinate(lat, lon)
    candidates = await locations.find_active_in_box(bounding_box(lat, lon, radius_km, km_per_degree))

    nearby: list[NearbyLocation] = []
    for loc in candidates:
        if loc.id == exclude_id:
            continue
        d = distance_km(lat, lon, loc.coordinates.lat, loc.coordinates.lon)
        if d <= radius_km:
            nearby.append(NearbyLocation(id=loc.id, name=loc.name, distance_km=d))
    nearby.sort(key=lambda n: (n.distance_km, n.id))
    return nearby


class ProximityGuard:
    def __init__(
        self,
        locations: LocationStore,
        *,
        min_separation_km: float = 0.05,
        km_per_degree: float = KM_PER_DEGREE,
    ):
        self._locations = locations
        self.min_separation_km = float(min_separation_km)
        self.km_per_degree = float(km_per_degree)

    async def check_conflict(self, lat: float, lon: float, *, exclude_id: str | None = None) -> ProximityResult:
        """Active locations within the minimum separation of a point.

        `exclude_id` skips one location, so a location being moved never conflicts
        with its own current position.
        """
        nearby = await find_within_radius(
            self._locations,
            lat,
            lon,
            self.min_separation_km,
            km_per_degree=self.km_per_degree,
            exclude_id=exclude_id,
        )
        if nearby:
            logger.info(
                "Proximity conflict at lat=%.6f lon=%.6f: %d location(s) within %.3f km",
                lat,
                lon,
                len(nearby),
                self.min_separation_km,
            )
        return ProximityResult(conflict=bool(nearby), nearby=nearby)
