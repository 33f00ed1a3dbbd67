"""
Rating aggregation.

`RatingAggregator.recompute` is the only writer of a location's `average_rating` and
`total_ratings`. It always re-reads the full active rating set instead of nudging a
running average, so concurrent recomputes converge on a state consistent with some
serialization of the writes (last recompute wins) and no drift can accumulate.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from barmap.core.errors import NotFoundError
from barmap.core.time import utc_now
from barmap.domain.models import LocationAggregate, RatingStats
from barmap.scoring.aggregate import average_value, count_recent, criteria_means, distribution
from barmap.store.locations import LocationStore
from barmap.store.ratings import RatingStore

logger = logging.getLogger(__name__)


class RatingAggregator:
    def __init__(
        self,
        ratings: RatingStore,
        locations: LocationStore,
        *,
        recent_window_days: int = 30,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._ratings = ratings
        self._locations = locations
        self._recent_window_days = recent_window_days
        self._clock = clock

    async def recompute(self, location_id: str) -> LocationAggregate:
        """Recompute and persist the aggregate fields for one location.

        Store failures propagate unchanged; a missing location raises `NotFoundError`.
        """
        active = await self._ratings.list_active_for_location(location_id)
        values = [r.value for r in active]
        aggregate = LocationAggregate(
            location_id=location_id,
            average_rating=average_value(values),
            total_ratings=len(values),
        )

        # Single write so readers never observe a new average with an old total.
        updated = await self._locations.set_aggregate(
            location_id,
            average_rating=aggregate.average_rating,
            total_ratings=aggregate.total_ratings,
            now=self._clock(),
        )
        if not updated:
            raise NotFoundError(f"Location '{location_id}' not found", location_id=location_id)

        logger.debug(
            "Recomputed location=%s average=%.1f total=%d",
            location_id,
            aggregate.average_rating,
            aggregate.total_ratings,
        )
        return aggregate

    async def statistics(self, location_id: str) -> RatingStats:
        """On-demand statistics over the active ratings (nothing is stored)."""
        active = await self._ratings.list_active_for_location(location_id)
        values = [r.value for r in active]
        return RatingStats(
            total=len(values),
            average=average_value(values),
            distribution=distribution(values),
            criteria=criteria_means(active),
            recent=count_recent(active, now=self._clock(), window_days=self._recent_window_days),
        )
