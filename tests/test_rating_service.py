import asyncio

import pytest

from barmap.core.errors import (
    AlreadyDeletedError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from barmap.domain.models import Criteria, Identity


def _location_state(services, location_id):
    loc = asyncio.run(services.locations_store.get(location_id))
    return loc.average_rating, loc.total_ratings


def test_rating_lifecycle_scenarios(services, add_location):
    loc = add_location()
    ratings = services.ratings

    # A: first rating creates.
    a = asyncio.run(ratings.submit("alice", loc.id, 5))
    assert a.created is True
    assert _location_state(services, loc.id) == (5, 1)

    # B: same user again updates in place.
    b = asyncio.run(ratings.submit("alice", loc.id, 3))
    assert b.created is False
    assert b.rating.id == a.rating.id
    assert _location_state(services, loc.id) == (3, 1)

    # C: second user.
    asyncio.run(ratings.submit("bob", loc.id, 4))
    assert _location_state(services, loc.id) == (3.5, 2)

    # D: delete the first user's rating.
    asyncio.run(ratings.delete(a.rating.id, "alice", False))
    assert _location_state(services, loc.id) == (4, 1)


def test_second_submission_never_creates_second_active_rating(services, add_location):
    loc = add_location()
    for value in (1, 2, 5):
        asyncio.run(services.ratings.submit("alice", loc.id, value))
    active = asyncio.run(services.ratings_store.list_active_for_location(loc.id))
    assert len(active) == 1
    assert active[0].value == 5


def test_create_defaults_criteria_to_value(services, add_location):
    loc = add_location()
    result = asyncio.run(services.ratings.submit("alice", loc.id, 4))
    assert result.rating.criteria == Criteria.uniform(4)


def test_update_without_criteria_retains_previous_criteria(services, add_location):
    loc = add_location()
    supplied = Criteria(equipment=2, location=3, maintenance=4, safety=5)
    asyncio.run(services.ratings.submit("alice", loc.id, 3, criteria=supplied))

    result = asyncio.run(services.ratings.submit("alice", loc.id, 1))
    stored = asyncio.run(services.ratings_store.get(result.rating.id))

    assert result.rating.criteria == supplied
    assert stored.criteria == supplied
    assert stored.value == 1


def test_update_with_criteria_overwrites(services, add_location):
    loc = add_location()
    asyncio.run(services.ratings.submit("alice", loc.id, 3))
    result = asyncio.run(
        services.ratings.submit(
            "alice", loc.id, 3, criteria={"equipment": 1, "location": 1, "maintenance": 1, "safety": 2}
        )
    )
    stored = asyncio.run(services.ratings_store.get(result.rating.id))
    assert stored.criteria == Criteria(equipment=1, location=1, maintenance=1, safety=2)


def test_update_touches_timestamp(services, clock, add_location):
    loc = add_location()
    first = asyncio.run(services.ratings.submit("alice", loc.id, 3))
    clock.advance(hours=1)
    second = asyncio.run(services.ratings.submit("alice", loc.id, 4))
    assert second.rating.date > first.rating.date
    assert second.rating.created_at == first.rating.created_at


@pytest.mark.parametrize("value", [0, 6, 3.5, True, "4", None])
def test_submit_rejects_invalid_values(services, add_location, value):
    loc = add_location()
    with pytest.raises(ValidationError):
        asyncio.run(services.ratings.submit("alice", loc.id, value))


def test_submit_rejects_incomplete_criteria(services, add_location):
    loc = add_location()
    with pytest.raises(ValidationError):
        asyncio.run(services.ratings.submit("alice", loc.id, 4, criteria={"equipment": 4}))


def test_submit_requires_active_location(services, clock, add_location):
    with pytest.raises(NotFoundError):
        asyncio.run(services.ratings.submit("alice", "missing", 4))

    loc = add_location()
    asyncio.run(services.locations_store.set_active(loc.id, False, now=clock()))
    with pytest.raises(NotFoundError):
        asyncio.run(services.ratings.submit("alice", loc.id, 4))


def test_review_is_trimmed_and_bounded(services, add_location):
    loc = add_location()
    result = asyncio.run(services.ratings.submit("alice", loc.id, 4, review="  solid bars  "))
    assert result.rating.review == "solid bars"
    assert result.rating.has_review

    result = asyncio.run(services.ratings.submit("alice", loc.id, 4, review="   "))
    assert result.rating.review is None

    with pytest.raises(ValidationError):
        asyncio.run(services.ratings.submit("alice", loc.id, 4, review="x" * 501))


def test_concurrent_first_submissions_leave_one_active_rating(services, add_location):
    loc = add_location()

    async def race():
        return await asyncio.gather(
            services.ratings.submit("alice", loc.id, 2),
            services.ratings.submit("alice", loc.id, 4),
        )

    results = asyncio.run(race())
    assert sorted(r.created for r in results) == [False, True]

    active = asyncio.run(services.ratings_store.list_active_for_location(loc.id))
    assert len(active) == 1
    assert _location_state(services, loc.id)[1] == 1


def test_duplicate_insert_is_converted_to_update(services, add_location, monkeypatch):
    loc = add_location()
    first = asyncio.run(services.ratings.submit("alice", loc.id, 2))

    # Simulate losing the check-then-insert race once: the pre-check misses the existing rating.
    real_find_active = services.ratings_store.find_active
    calls = {"n": 0}

    async def stale_find_active(**kwargs):
        calls["n"] += 1
        if calls["n"] == 1:
            return None
        return await real_find_active(**kwargs)

    monkeypatch.setattr(services.ratings_store, "find_active", stale_find_active)
    result = asyncio.run(services.ratings.submit("alice", loc.id, 5))

    assert result.created is False
    assert result.rating.id == first.rating.id
    assert _location_state(services, loc.id) == (5, 1)


def test_write_gives_up_after_bounded_attempts(services, add_location, monkeypatch):
    loc = add_location()
    asyncio.run(services.ratings.submit("alice", loc.id, 2))

    async def always_missing(**kwargs):
        return None

    monkeypatch.setattr(services.ratings_store, "find_active", always_missing)
    with pytest.raises(ConflictError):
        asyncio.run(services.ratings.submit("alice", loc.id, 5))


def test_concurrent_ratings_from_different_users_converge(services, add_location):
    loc = add_location()

    async def race():
        await asyncio.gather(*(services.ratings.submit(f"user{v}", loc.id, v) for v in (1, 2, 4, 5)))
        return await services.aggregator.recompute(loc.id)

    agg = asyncio.run(race())
    assert (agg.average_rating, agg.total_ratings) == (3, 4)


def test_delete_permissions(services, add_location):
    loc = add_location()
    rating = asyncio.run(services.ratings.submit("alice", loc.id, 5)).rating

    with pytest.raises(PermissionDeniedError):
        asyncio.run(services.ratings.delete(rating.id, "mallory", False))
    assert _location_state(services, loc.id) == (5, 1)

    asyncio.run(services.ratings.delete(rating.id, "moderator", True))
    assert _location_state(services, loc.id) == (0, 0)

    with pytest.raises(AlreadyDeletedError):
        asyncio.run(services.ratings.delete(rating.id, "alice", False))
    with pytest.raises(NotFoundError):
        asyncio.run(services.ratings.delete("missing", "alice", False))


def test_deleting_an_already_deleted_rating_reports_that_before_ownership(services, add_location):
    loc = add_location()
    rating = asyncio.run(services.ratings.submit("alice", loc.id, 4)).rating
    asyncio.run(services.ratings.delete(rating.id, "alice", False))

    with pytest.raises(AlreadyDeletedError):
        asyncio.run(services.ratings.delete(rating.id, "mallory", False))


def test_soft_deleted_rating_is_kept_and_user_can_rate_again(services, add_location):
    loc = add_location()
    old = asyncio.run(services.ratings.submit("alice", loc.id, 1)).rating
    asyncio.run(services.ratings.delete(old.id, "alice", False))

    again = asyncio.run(services.ratings.submit("alice", loc.id, 4))
    assert again.created is True
    assert again.rating.id != old.id
    assert asyncio.run(services.ratings_store.get(old.id)).active is False
    assert _location_state(services, loc.id) == (4, 1)


def test_location_rating_stats_and_listing(services, add_location):
    loc = add_location()
    for user, value in [("a", 5), ("b", 4), ("c", 4)]:
        asyncio.run(services.ratings.submit(user, loc.id, value))

    stats = asyncio.run(services.ratings.get_location_rating_stats(loc.id))
    assert stats.total == 3
    assert stats.average == 4.3
    assert stats.recent == 3

    page = asyncio.run(services.ratings.list_location_ratings(loc.id, skip=1, limit=1))
    assert len(page) == 1
    with pytest.raises(ValidationError):
        asyncio.run(services.ratings.list_location_ratings(loc.id, limit=0))
    with pytest.raises(NotFoundError):
        asyncio.run(services.ratings.get_location_rating_stats("missing"))


def test_get_user_rating_visibility(services, add_location):
    loc = add_location()
    asyncio.run(services.ratings.submit("alice", loc.id, 5))

    own = asyncio.run(services.ratings.get_user_rating(loc.id, "alice", Identity(user_id="alice")))
    assert own is not None and own.value == 5

    admin = Identity(user_id="root", role="admin")
    assert asyncio.run(services.ratings.get_user_rating(loc.id, "alice", admin)) is not None
    assert asyncio.run(services.ratings.get_user_rating(loc.id, "bob", admin)) is None

    with pytest.raises(PermissionDeniedError):
        asyncio.run(services.ratings.get_user_rating(loc.id, "alice", Identity(user_id="bob")))


def test_user_rating_stats(services, add_location):
    a = add_location(name="North bars", lat=10.0, lon=10.0)
    b = add_location(name="South bars", lat=-10.0, lon=-10.0)
    asyncio.run(services.ratings.submit("alice", a.id, 5))
    asyncio.run(services.ratings.submit("alice", b.id, 2))

    stats = asyncio.run(services.ratings.user_rating_stats("alice"))
    assert stats.total_ratings == 2
    assert stats.average_rating == 3.5
    assert stats.distribution[5] == 1 and stats.distribution[2] == 1

    listed = asyncio.run(services.ratings.list_user_ratings("alice"))
    assert {r.location_id for r in listed} == {a.id, b.id}
