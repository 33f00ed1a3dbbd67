"""
Location use cases: guarded creation and edits, deactivation, lookup, listings and
radius search.

Only the creator or an admin may edit or deactivate a location. Deactivation is a
soft switch: the location stops appearing in lookups and listings, stops blocking
new nearby registrations, and its ratings stay deletable.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable

from barmap.core.errors import (
    AlreadyInactiveError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from barmap.core.paging import validate_page
from barmap.core.time import utc_now
from barmap.domain.models import (
    Identity,
    Location,
    LocationDraft,
    LocationPage,
    LocationUpdate,
    NearbyLocation,
)
from barmap.locations.proximity import ProximityGuard, find_within_radius, require_valid_coordinate
from barmap.store.locations import LocationStore

logger = logging.getLogger(__name__)


class LocationService:
    def __init__(
        self,
        locations: LocationStore,
        guard: ProximityGuard,
        *,
        default_search_radius_km: float = 5.0,
        max_search_radius_km: float = 50.0,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._locations = locations
        self._guard = guard
        self._default_radius_km = default_search_radius_km
        self._max_radius_km = max_search_radius_km
        self._clock = clock

    async def create_location(self, creator_id: str, draft: LocationDraft) -> Location:
        """Register a location unless an active one already sits within the minimum separation."""
        lat, lon = draft.coordinates.lat, draft.coordinates.lon
        require_valid_coordinate(lat, lon)
        await self._reject_if_crowded(lat, lon, name=draft.name)

        location = await self._locations.create(creator_id=creator_id, draft=draft, now=self._clock())
        logger.info("Location created id=%s name=%r by=%s", location.id, location.name, creator_id)
        return location

    async def update_location(self, location_id: str, identity: Identity, update: LocationUpdate) -> Location:
        """Apply a partial edit (creator or admin only).

        New coordinates go back through the proximity guard, ignoring the location
        itself.
        """
        location = await self._require_editable(location_id, identity, action="update")

        fields: dict[str, Any] = {}
        for name in ("name", "description", "address", "images"):
            value = getattr(update, name)
            if value is not None:
                fields[name] = value
        if update.equipment is not None:
            fields["equipment"] = location.equipment.model_copy(
                update=update.equipment.model_dump(exclude_unset=True)
            ).model_dump()
        if update.features is not None:
            fields["features"] = location.features.model_copy(
                update=update.features.model_dump(exclude_unset=True)
            ).model_dump()
        if update.coordinates is not None:
            lat, lon = update.coordinates.lat, update.coordinates.lon
            require_valid_coordinate(lat, lon)
            await self._reject_if_crowded(lat, lon, name=fields.get("name", location.name), exclude_id=location_id)
            fields["coordinates"] = update.coordinates.model_dump()

        await self._locations.update_fields(location_id, fields, now=self._clock())
        logger.info("Location updated id=%s fields=%s by=%s", location_id, sorted(fields), identity.user_id)
        updated = await self._locations.get(location_id)
        if updated is None:
            raise NotFoundError(f"Location '{location_id}' not found", location_id=location_id)
        return updated

    async def deactivate_location(self, location_id: str, identity: Identity) -> Location:
        """Soft-deactivate a location (creator or admin only)."""
        location = await self._require_editable(location_id, identity, action="deactivate")
        if not location.active:
            raise AlreadyInactiveError("Location is already inactive", location_id=location_id)

        now = self._clock()
        await self._locations.set_active(location_id, False, now=now)
        logger.info("Location deactivated id=%s by=%s", location_id, identity.user_id)
        return location.model_copy(update={"active": False, "updated_at": now})

    async def get_location(self, location_id: str) -> Location:
        location = await self._locations.get_active(location_id)
        if location is None:
            raise NotFoundError(f"Location '{location_id}' not found", location_id=location_id)
        return location

    async def list_locations(self, *, skip: int = 0, limit: int = 10) -> LocationPage:
        """Active locations, newest first."""
        validate_page(skip, limit)
        items = await self._locations.list_active(skip=skip, limit=limit)
        total = await self._locations.count_active()
        return LocationPage(locations=items, total=total, skip=skip, limit=limit)

    async def list_user_locations(self, user_id: str, *, skip: int = 0, limit: int = 10) -> LocationPage:
        """Active locations created by one user, newest first."""
        validate_page(skip, limit)
        items = await self._locations.list_active(creator_id=user_id, skip=skip, limit=limit)
        total = await self._locations.count_active(creator_id=user_id)
        return LocationPage(locations=items, total=total, skip=skip, limit=limit)

    async def search_nearby(self, lat: float, lon: float, radius_km: float | None = None) -> list[NearbyLocation]:
        radius = self._default_radius_km if radius_km is None else float(radius_km)
        if not 0 < radius <= self._max_radius_km:
            raise ValidationError(
                f"radius_km must be in (0, {self._max_radius_km}]", field="radius_km", radius_km=radius
            )
        return await find_within_radius(
            self._locations, lat, lon, radius, km_per_degree=self._guard.km_per_degree
        )

    async def _require_editable(self, location_id: str, identity: Identity, *, action: str) -> Location:
        location = await self._locations.get(location_id)
        if location is None:
            raise NotFoundError(f"Location '{location_id}' not found", location_id=location_id)
        if location.creator_id != identity.user_id and not identity.is_admin:
            raise PermissionDeniedError(
                f"You can only {action} locations you created", location_id=location_id
            )
        return location

    async def _reject_if_crowded(
        self, lat: float, lon: float, *, name: str, exclude_id: str | None = None
    ) -> None:
        result = await self._guard.check_conflict(lat, lon, exclude_id=exclude_id)
        if result.conflict:
            logger.warning("Rejected location %r at lat=%.6f lon=%.6f: too close to existing", name, lat, lon)
            raise ConflictError(
                "There's already a location registered very close to this point",
                nearby=[n.model_dump() for n in result.nearby],
            )

