"""
Document store contract.

The repositories (`barmap.store.ratings`, `barmap.store.locations`) only talk to this
small interface, so the storage engine is swappable:
- `barmap.store.memory`: in-process backend (tests, demos)
- `barmap.store.mongo`: MongoDB via pymongo's async client

Filters use the MongoDB query subset both backends understand: field equality on
dotted paths plus `$gte`, `$lte`, `$gt`, `$lt`, `$in`, `$ne`.
Documents are plain dicts keyed by `_id` (an opaque string).

Backends raise `DuplicateKeyError` when a unique index rejects a write and
`StoreUnavailableError` when the engine cannot be reached.
"""

from __future__ import annotations

import uuid
from typing import Any, Mapping, Protocol, Sequence

Document = dict[str, Any]
Filter = Mapping[str, Any]
SortSpec = Sequence[tuple[str, int]]

ASCENDING = 1
DESCENDING = -1


def new_id() -> str:
    """Generate an opaque document ID."""
    return uuid.uuid4().hex


class DocumentCollection(Protocol):
    async def insert_one(self, doc: Document) -> str:
        """Insert a document (assigning `_id` when missing) and return its ID."""
        ...

    async def find_one(self, filter: Filter) -> Document | None: ...

    async def find(
        self,
        filter: Filter,
        *,
        sort: SortSpec | None = None,
        skip: int = 0,
        limit: int | None = None,
    ) -> list[Document]: ...

    async def update_by_id(self, doc_id: str, fields: Mapping[str, Any], *, where: Filter | None = None) -> bool:
        """Atomically `$set` fields on one document; False when nothing matched.

        `where` adds extra match conditions (e.g. `{"active": True}`) evaluated in the
        same atomic step as the write.
        """
        ...

    async def count(self, filter: Filter) -> int: ...

    async def create_unique_index(
        self, keys: Sequence[str], *, name: str, partial_filter: Filter | None = None
    ) -> None: ...


class DocumentStore(Protocol):
    def collection(self, name: str) -> DocumentCollection: ...

    async def ping(self) -> None:
        """Raise `StoreUnavailableError` if the engine is unreachable."""
        ...

    async def close(self) -> None: ...
