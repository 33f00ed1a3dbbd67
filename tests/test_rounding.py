import asyncio
from datetime import timedelta

import pytest

from barmap.core.numbers import round1, round_half_away
from barmap.domain.models import Criteria
from barmap.scoring.aggregate import average_value, count_recent, criteria_means, distribution


def test_round1_rounds_ties_away_from_zero():
    # Built-in round() would give 3.2 (banker's rounding).
    assert round1(3.25) == 3.3
    assert round1(3.5) == 3.5
    assert round1(10 / 3) == 3.3
    assert round1(11 / 3) == 3.7
    assert round1(0) == 0


def test_round_half_away_is_symmetric_for_negatives():
    assert round_half_away(-2.5) == -3
    assert round_half_away(2.5) == 3
    assert round_half_away(0.125, 2) == 0.13
    assert round_half_away(-0.0001, 2) == 0.0


def test_average_value():
    assert average_value([]) == 0
    assert average_value([5]) == 5
    assert average_value([3, 4]) == 3.5
    assert average_value([1, 2, 2]) == 1.7


def test_distribution_always_has_five_buckets():
    assert distribution([]) == {5: 0, 4: 0, 3: 0, 2: 0, 1: 0}
    assert distribution([5, 5, 1]) == {5: 2, 4: 0, 3: 0, 2: 0, 1: 1}


def test_criteria_means_empty_is_zero():
    means = criteria_means([])
    assert means.model_dump() == {"equipment": 0, "location": 0, "maintenance": 0, "safety": 0}


def test_count_recent_uses_strict_window(services, clock):
    async def scenario():
        old = await services.ratings_store.create(
            user_id="u1", location_id="L", value=4, review=None, criteria=Criteria.uniform(4), now=clock()
        )
        new = await services.ratings_store.create(
            user_id="u2",
            location_id="L",
            value=2,
            review=None,
            criteria=Criteria.uniform(2),
            now=clock() + timedelta(days=20),
        )
        return [old, new]

    ratings = asyncio.run(scenario())
    assert count_recent(ratings, now=clock() + timedelta(days=30), window_days=30) == 1
    assert count_recent(ratings, now=clock() + timedelta(days=29), window_days=30) == 2


@pytest.mark.parametrize("values,expected", [([1, 1, 2], 1.3), ([4, 5, 5], 4.7), ([2, 3, 3, 3], 2.8)])
def test_average_value_matches_round1_of_mean(values, expected):
    assert average_value(values) == expected
