"""
Location repository.

Besides plain CRUD it exposes the two operations the rating engine depends on:
- `set_aggregate`: one atomic field-set write of `average_rating` + `total_ratings`
- `find_active_in_box`: the rectangular pre-filter used by proximity checks
"""

from __future__ import annotations

from datetime import datetime

from barmap.core.geo import BoundingBox
from barmap.domain.models import Location, LocationDraft
from barmap.store.base import ASCENDING, DESCENDING, Document, DocumentCollection, Filter


def _to_location(doc: Document) -> Location:
    return Location.model_validate({**doc, "id": doc["_id"]})


class LocationStore:
    def __init__(self, collection: DocumentCollection):
        self._coll = collection

    async def create(self, *, creator_id: str, draft: LocationDraft, now: datetime) -> Location:
        doc: Document = {
            **draft.model_dump(mode="python"),
            "creator_id": creator_id,
            "average_rating": 0.0,
            "total_ratings": 0,
            "active": True,
            "created_at": now,
            "updated_at": now,
        }
        doc_id = await self._coll.insert_one(doc)
        return _to_location({**doc, "_id": doc_id})

    async def get(self, location_id: str) -> Location | None:
        doc = await self._coll.find_one({"_id": location_id})
        return _to_location(doc) if doc else None

    async def get_active(self, location_id: str) -> Location | None:
        doc = await self._coll.find_one({"_id": location_id, "active": True})
        return _to_location(doc) if doc else None

    async def find_active_in_box(self, box: BoundingBox) -> list[Location]:
        docs = await self._coll.find(
            {
                "coordinates.lat": {"$gte": box.south, "$lte": box.north},
                "coordinates.lon": {"$gte": box.west, "$lte": box.east},
                "active": True,
            },
            sort=[("_id", ASCENDING)],
        )
        return [_to_location(d) for d in docs]

    async def set_aggregate(
        self, location_id: str, *, average_rating: float, total_ratings: int, now: datetime
    ) -> bool:
        return await self._coll.update_by_id(
            location_id,
            {"average_rating": average_rating, "total_ratings": total_ratings, "updated_at": now},
        )

    async def set_active(self, location_id: str, active: bool, *, now: datetime) -> bool:
        return await self._coll.update_by_id(location_id, {"active": active, "updated_at": now})

    async def list_active(
        self, *, creator_id: str | None = None, skip: int = 0, limit: int | None = None
    ) -> list[Location]:
        """Active locations, newest first, optionally only those one user created."""
        docs = await self._coll.find(
            self._active_filter(creator_id),
            sort=[("created_at", DESCENDING), ("_id", DESCENDING)],
            skip=skip,
            limit=limit,
        )
        return [_to_location(d) for d in docs]

    async def count_active(self, *, creator_id: str | None = None) -> int:
        return await self._coll.count(self._active_filter(creator_id))

    async def update_fields(self, location_id: str, fields: Document, *, now: datetime) -> bool:
        """Set user-editable fields; aggregates and `active` are not touched here."""
        return await self._coll.update_by_id(location_id, {**fields, "updated_at": now})

    @staticmethod
    def _active_filter(creator_id: str | None) -> Filter:
        if creator_id is None:
            return {"active": True}
        return {"active": True, "creator_id": creator_id}
