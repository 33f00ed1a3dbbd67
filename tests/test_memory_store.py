import asyncio

import pytest

from barmap.core.errors import DuplicateKeyError, StoreUnavailableError
from barmap.store.base import ASCENDING, DESCENDING
from barmap.store.memory import MemoryDocumentStore, matches


def test_matches_supports_dotted_paths_and_range_operators():
    doc = {"coordinates": {"lat": 1.5, "lon": -2.0}, "active": True, "tag": "a"}
    assert matches(doc, {"coordinates.lat": {"$gte": 1, "$lte": 2}, "active": True})
    assert not matches(doc, {"coordinates.lon": {"$gt": -2.0}})
    assert matches(doc, {"tag": {"$in": ["a", "b"]}})
    assert matches(doc, {"tag": {"$ne": "b"}})
    assert not matches(doc, {"missing": 1})
    assert not matches(doc, {"missing": {"$gte": 0}})


def test_find_sort_skip_limit():
    async def scenario():
        coll = MemoryDocumentStore().collection("things")
        for i, group in [(3, "x"), (1, "y"), (2, "x"), (4, "x")]:
            await coll.insert_one({"_id": f"id{i}", "n": i, "group": group})
        desc = await coll.find({"group": "x"}, sort=[("n", DESCENDING)])
        page = await coll.find({}, sort=[("n", ASCENDING)], skip=1, limit=2)
        count = await coll.count({"group": "x"})
        return [d["n"] for d in desc], [d["n"] for d in page], count

    desc, page, count = asyncio.run(scenario())
    assert desc == [4, 3, 2]
    assert page == [2, 3]
    assert count == 3


def test_partial_unique_index_only_constrains_active_documents():
    async def scenario():
        coll = MemoryDocumentStore().collection("ratings")
        await coll.create_unique_index(["user_id", "location_id"], name="uniq", partial_filter={"active": True})
        first = await coll.insert_one({"user_id": "u", "location_id": "L", "active": True})
        with pytest.raises(DuplicateKeyError):
            await coll.insert_one({"user_id": "u", "location_id": "L", "active": True})

        # Inactive duplicates are allowed (soft-deleted history).
        await coll.update_by_id(first, {"active": False})
        await coll.insert_one({"user_id": "u", "location_id": "L", "active": True})
        await coll.insert_one({"user_id": "u", "location_id": "L", "active": False})

        # Re-activating the old record would now violate the index.
        with pytest.raises(DuplicateKeyError):
            await coll.update_by_id(first, {"active": True})
        return await coll.count({"user_id": "u", "location_id": "L", "active": True})

    assert asyncio.run(scenario()) == 1


def test_creating_unique_index_over_existing_duplicates_fails():
    async def scenario():
        coll = MemoryDocumentStore().collection("ratings")
        await coll.insert_one({"k": 1, "active": True})
        await coll.insert_one({"k": 1, "active": True})
        await coll.create_unique_index(["k"], name="uniq_k", partial_filter={"active": True})

    with pytest.raises(DuplicateKeyError):
        asyncio.run(scenario())


def test_update_by_id_respects_where_clause():
    async def scenario():
        coll = MemoryDocumentStore().collection("ratings")
        doc_id = await coll.insert_one({"value": 1, "active": False})
        missed = await coll.update_by_id(doc_id, {"value": 5}, where={"active": True})
        unknown = await coll.update_by_id("nope", {"value": 5})
        hit = await coll.update_by_id(doc_id, {"value": 3, "nested.field": "x"})
        return missed, unknown, hit, await coll.find_one({"_id": doc_id})

    missed, unknown, hit, doc = asyncio.run(scenario())
    assert (missed, unknown, hit) == (False, False, True)
    assert doc["value"] == 3
    assert doc["nested"] == {"field": "x"}


def test_documents_are_copied_in_and_out():
    async def scenario():
        coll = MemoryDocumentStore().collection("c")
        original = {"criteria": {"safety": 1}}
        doc_id = await coll.insert_one(original)
        original["criteria"]["safety"] = 5
        fetched = await coll.find_one({"_id": doc_id})
        fetched["criteria"]["safety"] = 4
        return await coll.find_one({"_id": doc_id})

    assert asyncio.run(scenario())["criteria"] == {"safety": 1}


def test_outage_raises_store_unavailable():
    store = MemoryDocumentStore()
    coll = store.collection("c")
    store.set_available(False)
    with pytest.raises(StoreUnavailableError):
        asyncio.run(coll.find({}))
    with pytest.raises(StoreUnavailableError):
        asyncio.run(store.ping())
    store.set_available(True)
    assert asyncio.run(coll.find({})) == []
