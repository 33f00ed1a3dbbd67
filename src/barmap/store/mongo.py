"""
MongoDB document store (pymongo async API).

Filters and `$set` payloads are already MongoDB-shaped, so this backend mostly
forwards calls and translates driver exceptions into the core error taxonomy:
- `pymongo.errors.DuplicateKeyError` -> `DuplicateKeyError`
- connection/selection failures and other driver errors -> `StoreUnavailableError`

The client is created with `tz_aware=True` so stored timestamps round-trip as aware UTC.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Mapping, Sequence

from pymongo import AsyncMongoClient
from pymongo.errors import ConnectionFailure, PyMongoError
from pymongo.errors import DuplicateKeyError as MongoDuplicateKeyError

from barmap.config.settings import StoreSettings
from barmap.core.errors import DuplicateKeyError, StoreUnavailableError
from barmap.store.base import Document, Filter, SortSpec, new_id

logger = logging.getLogger(__name__)


@contextmanager
def translate_errors(collection: str) -> Iterator[None]:
    """Map pymongo exceptions onto `barmap.core.errors` types."""
    try:
        yield
    except MongoDuplicateKeyError as e:
        details = e.details or {}
        raise DuplicateKeyError(
            "duplicate key",
            collection=collection,
            index=str(details.get("keyPattern") or details.get("index") or "unknown"),
        ) from e
    except ConnectionFailure as e:
        logger.warning("MongoDB unreachable (%s): %s", collection, str(e))
        raise StoreUnavailableError(f"MongoDB unreachable: {e}", collection=collection) from e
    except PyMongoError as e:
        logger.warning("MongoDB operation failed (%s): %s", collection, str(e))
        raise StoreUnavailableError(f"MongoDB operation failed: {e}", collection=collection) from e


class MongoCollection:
    def __init__(self, collection: Any):
        self._coll = collection
        self.name = str(collection.name)

    async def insert_one(self, doc: Document) -> str:
        payload = dict(doc)
        payload.setdefault("_id", new_id())
        with translate_errors(self.name):
            await self._coll.insert_one(payload)
        return payload["_id"]

    async def find_one(self, filter: Filter) -> Document | None:
        with translate_errors(self.name):
            return await self._coll.find_one(dict(filter))

    async def find(
        self,
        filter: Filter,
        *,
        sort: SortSpec | None = None,
        skip: int = 0,
        limit: int | None = None,
    ) -> list[Document]:
        with translate_errors(self.name):
            cursor = self._coll.find(dict(filter), skip=int(skip), limit=int(limit or 0))
            if sort:
                cursor = cursor.sort(list(sort))
            return await cursor.to_list()

    async def update_by_id(self, doc_id: str, fields: Mapping[str, Any], *, where: Filter | None = None) -> bool:
        query = {**dict(where or {}), "_id": doc_id}
        with translate_errors(self.name):
            result = await self._coll.update_one(query, {"$set": dict(fields)})
        return result.matched_count > 0

    async def count(self, filter: Filter) -> int:
        with translate_errors(self.name):
            return int(await self._coll.count_documents(dict(filter)))

    async def create_unique_index(
        self, keys: Sequence[str], *, name: str, partial_filter: Filter | None = None
    ) -> None:
        options: dict[str, Any] = {"unique": True, "name": name}
        if partial_filter:
            options["partialFilterExpression"] = dict(partial_filter)
        with translate_errors(self.name):
            await self._coll.create_index([(k, 1) for k in keys], **options)


class MongoDocumentStore:
    def __init__(self, settings: StoreSettings, *, client: Any | None = None):
        if client is None:
            client = AsyncMongoClient(
                settings.mongo_uri,
                tz_aware=True,
                serverSelectionTimeoutMS=settings.mongo_timeout_ms,
            )
        self._client = client
        self._db = self._client[settings.mongo_database]

    def collection(self, name: str) -> MongoCollection:
        return MongoCollection(self._db[name])

    async def ping(self) -> None:
        with translate_errors("admin"):
            await self._client.admin.command("ping")

    async def close(self) -> None:
        await self._client.close()
