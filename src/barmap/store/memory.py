"""
In-process document store.

Implements the `barmap.store.base` contract with plain dicts. Each collection
serialises its operations behind an `asyncio.Lock`, which makes a single operation
atomic (including the unique-index check on insert/update), and yields to the event
loop before taking the lock, so concurrent check-then-act sequences interleave the
same way they would against a real server.

Documents are deep-copied in and out; callers can never mutate stored state.
"""

from __future__ import annotations

import asyncio
import copy
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from barmap.core.errors import DuplicateKeyError, StoreUnavailableError
from barmap.store.base import Document, Filter, SortSpec, new_id

_MISSING = object()


def get_path(doc: Mapping[str, Any], path: str) -> Any:
    """Resolve a dotted path (`coordinates.lat`) inside a nested document."""
    cur: Any = doc
    for part in path.split("."):
        if not isinstance(cur, Mapping) or part not in cur:
            return _MISSING
        cur = cur[part]
    return cur


def _set_path(doc: dict[str, Any], path: str, value: Any) -> None:
    parts = path.split(".")
    cur = doc
    for part in parts[:-1]:
        nxt = cur.get(part)
        if not isinstance(nxt, dict):
            nxt = {}
            cur[part] = nxt
        cur = nxt
    cur[parts[-1]] = value


def _match_condition(value: Any, cond: Any) -> bool:
    if isinstance(cond, Mapping) and any(str(k).startswith("$") for k in cond):
        for op, arg in cond.items():
            if op == "$ne":
                if value is not _MISSING and value == arg:
                    return False
                continue
            if op == "$in":
                if value is _MISSING or value not in arg:
                    return False
                continue
            if value is _MISSING or value is None:
                return False
            if op == "$gte" and not value >= arg:
                return False
            if op == "$lte" and not value <= arg:
                return False
            if op == "$gt" and not value > arg:
                return False
            if op == "$lt" and not value < arg:
                return False
            if op not in {"$gte", "$lte", "$gt", "$lt"}:
                raise ValueError(f"Unsupported filter operator: {op}")
        return True
    return value is not _MISSING and value == cond


def matches(doc: Mapping[str, Any], filter: Filter) -> bool:
    """Evaluate the supported MongoDB filter subset against a document."""
    return all(_match_condition(get_path(doc, path), cond) for path, cond in filter.items())


@dataclass(frozen=True)
class _UniqueIndex:
    name: str
    keys: tuple[str, ...]
    partial_filter: Mapping[str, Any] | None

    def applies_to(self, doc: Mapping[str, Any]) -> bool:
        return self.partial_filter is None or matches(doc, self.partial_filter)

    def key_of(self, doc: Mapping[str, Any]) -> tuple[Any, ...]:
        return tuple(get_path(doc, k) for k in self.keys)


class MemoryCollection:
    def __init__(self, name: str):
        self.name = name
        self._docs: dict[str, Document] = {}
        self._indexes: dict[str, _UniqueIndex] = {}
        self._lock = asyncio.Lock()
        self.available = True

    def _check_available(self) -> None:
        if not self.available:
            raise StoreUnavailableError(f"collection '{self.name}' is unavailable")

    def _check_unique(self, candidate: Document) -> None:
        for index in self._indexes.values():
            if not index.applies_to(candidate):
                continue
            key = index.key_of(candidate)
            for other_id, other in self._docs.items():
                if other_id == candidate["_id"] or not index.applies_to(other):
                    continue
                if index.key_of(other) == key:
                    raise DuplicateKeyError(
                        f"duplicate key for index '{index.name}'",
                        collection=self.name,
                        index=index.name,
                    )

    async def _enter(self) -> None:
        # Let other tasks run between operations, as a network round-trip would.
        await asyncio.sleep(0)
        self._check_available()

    async def insert_one(self, doc: Document) -> str:
        await self._enter()
        async with self._lock:
            stored = copy.deepcopy(doc)
            stored.setdefault("_id", new_id())
            if stored["_id"] in self._docs:
                raise DuplicateKeyError("duplicate _id", collection=self.name, index="_id_")
            self._check_unique(stored)
            self._docs[stored["_id"]] = stored
            return stored["_id"]

    async def find_one(self, filter: Filter) -> Document | None:
        found = await self.find(filter, limit=1)
        return found[0] if found else None

    async def find(
        self,
        filter: Filter,
        *,
        sort: SortSpec | None = None,
        skip: int = 0,
        limit: int | None = None,
    ) -> list[Document]:
        await self._enter()
        async with self._lock:
            out = [copy.deepcopy(d) for d in self._docs.values() if matches(d, filter)]
        # Stable multi-key sort: apply keys from last to first.
        for path, direction in reversed(list(sort or [])):
            out.sort(key=lambda d: _sort_key(get_path(d, path)), reverse=direction < 0)
        out = out[skip:]
        return out if limit is None else out[:limit]

    async def update_by_id(self, doc_id: str, fields: Mapping[str, Any], *, where: Filter | None = None) -> bool:
        await self._enter()
        async with self._lock:
            current = self._docs.get(doc_id)
            if current is None or (where and not matches(current, where)):
                return False
            updated = copy.deepcopy(current)
            for path, value in fields.items():
                _set_path(updated, path, copy.deepcopy(value))
            self._check_unique(updated)
            self._docs[doc_id] = updated
            return True

    async def count(self, filter: Filter) -> int:
        await self._enter()
        async with self._lock:
            return sum(1 for d in self._docs.values() if matches(d, filter))

    async def create_unique_index(
        self, keys: Sequence[str], *, name: str, partial_filter: Filter | None = None
    ) -> None:
        await self._enter()
        async with self._lock:
            index = _UniqueIndex(name=name, keys=tuple(keys), partial_filter=partial_filter)
            existing = self._indexes.get(name)
            if existing is not None and existing != index:
                raise ValueError(f"index '{name}' already exists with different options")
            seen: set[tuple[Any, ...]] = set()
            for doc in self._docs.values():
                if not index.applies_to(doc):
                    continue
                key = index.key_of(doc)
                if key in seen:
                    raise DuplicateKeyError(
                        f"cannot build index '{name}': duplicate key", collection=self.name, index=name
                    )
                seen.add(key)
            self._indexes[name] = index


def _sort_key(value: Any) -> tuple[int, Any]:
    # Missing/None sort first, as in MongoDB.
    if value is _MISSING or value is None:
        return (0, 0)
    return (1, value)


class MemoryDocumentStore:
    def __init__(self) -> None:
        self._collections: dict[str, MemoryCollection] = {}

    def collection(self, name: str) -> MemoryCollection:
        if name not in self._collections:
            self._collections[name] = MemoryCollection(name)
        return self._collections[name]

    def set_available(self, available: bool) -> None:
        """Simulate an outage (or recovery) across every collection."""
        for coll in self._collections.values():
            coll.available = available

    async def ping(self) -> None:
        for coll in self._collections.values():
            coll._check_available()

    async def close(self) -> None:
        self._collections.clear()
