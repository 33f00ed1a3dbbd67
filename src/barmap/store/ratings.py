"""
Rating repository.

Wraps the ratings collection and owns the store-level "one active rating per
(user, location)" guarantee: a unique index on `(user_id, location_id)` partial over
`active: true`. The index is created lazily before the first insert so both backends
enforce it without a separate migration step.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from barmap.domain.models import Criteria, Rating
from barmap.store.base import DESCENDING, Document, DocumentCollection

ACTIVE_RATING_INDEX = "uniq_active_user_location"


def _to_rating(doc: Document) -> Rating:
    return Rating.model_validate({**doc, "id": doc["_id"]})


class RatingStore:
    def __init__(self, collection: DocumentCollection):
        self._coll = collection
        self._indexes_ready = False

    async def ensure_indexes(self) -> None:
        if self._indexes_ready:
            return
        await self._coll.create_unique_index(
            ["user_id", "location_id"],
            name=ACTIVE_RATING_INDEX,
            partial_filter={"active": True},
        )
        self._indexes_ready = True

    async def create(
        self,
        *,
        user_id: str,
        location_id: str,
        value: int,
        review: str | None,
        criteria: Criteria,
        now: datetime,
    ) -> Rating:
        """Insert an active rating. Raises `DuplicateKeyError` if one already exists."""
        await self.ensure_indexes()
        doc: Document = {
            "user_id": user_id,
            "location_id": location_id,
            "value": value,
            "review": review,
            "criteria": criteria.model_dump(),
            "active": True,
            "date": now,
            "created_at": now,
        }
        doc_id = await self._coll.insert_one(doc)
        return _to_rating({**doc, "_id": doc_id})

    async def get(self, rating_id: str) -> Rating | None:
        doc = await self._coll.find_one({"_id": rating_id})
        return _to_rating(doc) if doc else None

    async def find_active(self, *, user_id: str, location_id: str) -> Rating | None:
        doc = await self._coll.find_one({"user_id": user_id, "location_id": location_id, "active": True})
        return _to_rating(doc) if doc else None

    async def list_active_for_location(
        self, location_id: str, *, skip: int = 0, limit: int | None = None
    ) -> list[Rating]:
        docs = await self._coll.find(
            {"location_id": location_id, "active": True},
            sort=[("date", DESCENDING), ("_id", DESCENDING)],
            skip=skip,
            limit=limit,
        )
        return [_to_rating(d) for d in docs]

    async def list_active_for_user(self, user_id: str, *, skip: int = 0, limit: int | None = None) -> list[Rating]:
        docs = await self._coll.find(
            {"user_id": user_id, "active": True},
            sort=[("date", DESCENDING), ("_id", DESCENDING)],
            skip=skip,
            limit=limit,
        )
        return [_to_rating(d) for d in docs]

    async def update_active(
        self,
        rating_id: str,
        *,
        value: int,
        review: str | None,
        criteria: Criteria | None,
        now: datetime,
    ) -> bool:
        """Mutate an active rating in place; False if it is gone or no longer active.

        `criteria=None` leaves the stored criteria untouched.
        """
        fields: dict[str, Any] = {"value": value, "review": review, "date": now}
        if criteria is not None:
            fields["criteria"] = criteria.model_dump()
        return await self._coll.update_by_id(rating_id, fields, where={"active": True})

    async def soft_delete(self, rating_id: str, *, now: datetime) -> bool:
        return await self._coll.update_by_id(rating_id, {"active": False, "date": now}, where={"active": True})
