"""
Rating use cases.

Per (user, location) pair a rating is either absent or present-and-active:
- first submission inserts (criteria default to the overall value when omitted)
- later submissions update in place (criteria only change when supplied)
- deletion soft-deletes (`active=False`) and keeps history

The check "does this user already have an active rating here" is only used to pick
the insert or update branch. The authority is the store's partial unique index: an
insert that loses a race raises `DuplicateKeyError`, which is converted into the
update path here rather than surfaced to the caller.

Every mutation is followed by a synchronous `RatingAggregator.recompute`.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Mapping

import pydantic

from barmap.core.errors import (
    AlreadyDeletedError,
    ConflictError,
    DuplicateKeyError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from barmap.core.paging import validate_page
from barmap.core.time import utc_now
from barmap.domain.models import Criteria, Identity, Rating, RatingStats, SubmitResult, UserRatingStats
from barmap.ratings.aggregator import RatingAggregator
from barmap.scoring.aggregate import average_value, distribution
from barmap.store.locations import LocationStore
from barmap.store.ratings import RatingStore

logger = logging.getLogger(__name__)


def _validate_value(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= 5:
        raise ValidationError("Rating value must be an integer between 1 and 5", field="value")
    return value


def _coerce_criteria(criteria: Criteria | Mapping[str, Any] | None) -> Criteria | None:
    # None means "omitted"; anything else is "supplied" and must be complete and valid.
    if criteria is None or isinstance(criteria, Criteria):
        return criteria
    try:
        return Criteria.model_validate(criteria)
    except pydantic.ValidationError as e:
        raise ValidationError(f"Invalid criteria: {e.errors()[0]['msg']}", field="criteria") from e


class RatingService:
    def __init__(
        self,
        ratings: RatingStore,
        locations: LocationStore,
        aggregator: RatingAggregator,
        *,
        review_max_length: int = 500,
        max_write_attempts: int = 3,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._ratings = ratings
        self._locations = locations
        self._aggregator = aggregator
        self._review_max_length = review_max_length
        self._max_write_attempts = max_write_attempts
        self._clock = clock

    def _normalize_review(self, review: str | None) -> str | None:
        if review is None:
            return None
        review = review.strip()
        if not review:
            return None
        if len(review) > self._review_max_length:
            raise ValidationError(
                f"Review must be at most {self._review_max_length} characters", field="review"
            )
        return review

    async def _require_active_location(self, location_id: str) -> None:
        if await self._locations.get_active(location_id) is None:
            raise NotFoundError(f"Location '{location_id}' not found or inactive", location_id=location_id)

    async def submit(
        self,
        user_id: str,
        location_id: str,
        value: int,
        review: str | None = None,
        criteria: Criteria | Mapping[str, Any] | None = None,
    ) -> SubmitResult:
        """Create or update the caller's rating for a location, then recompute its aggregate."""
        value = _validate_value(value)
        supplied = _coerce_criteria(criteria)
        review = self._normalize_review(review)
        await self._require_active_location(location_id)

        rating, created = await self._write(user_id, location_id, value, review, supplied)
        await self._aggregator.recompute(location_id)

        logger.info(
            "Rating %s user=%s location=%s value=%d",
            "created" if created else "updated",
            user_id,
            location_id,
            value,
        )
        return SubmitResult(created=created, rating=rating)

    async def _write(
        self,
        user_id: str,
        location_id: str,
        value: int,
        review: str | None,
        criteria: Criteria | None,
    ) -> tuple[Rating, bool]:
        for attempt in range(1, self._max_write_attempts + 1):
            existing = await self._ratings.find_active(user_id=user_id, location_id=location_id)
            now = self._clock()

            if existing is None:
                try:
                    rating = await self._ratings.create(
                        user_id=user_id,
                        location_id=location_id,
                        value=value,
                        review=review,
                        criteria=criteria if criteria is not None else Criteria.uniform(value),
                        now=now,
                    )
                    return rating, True
                except DuplicateKeyError:
                    logger.warning(
                        "Concurrent first rating for user=%s location=%s (attempt %d); switching to update",
                        user_id,
                        location_id,
                        attempt,
                    )
                    continue

            updated = await self._ratings.update_active(
                existing.id, value=value, review=review, criteria=criteria, now=now
            )
            if updated:
                changes: dict[str, Any] = {"value": value, "review": review, "date": now}
                if criteria is not None:
                    changes["criteria"] = criteria
                return existing.model_copy(update=changes), False

            logger.warning(
                "Rating %s was deleted during update (attempt %d); retrying", existing.id, attempt
            )

        raise ConflictError(
            "Rating changed concurrently too many times; try again",
            user_id=user_id,
            location_id=location_id,
        )

    async def delete(self, rating_id: str, requesting_user_id: str, requesting_is_admin: bool) -> None:
        """Soft-delete a rating (owner or admin only) and recompute its location."""
        rating = await self._ratings.get(rating_id)
        if rating is None:
            raise NotFoundError(f"Rating '{rating_id}' not found", rating_id=rating_id)
        if not rating.active:
            raise AlreadyDeletedError("Rating is already deleted", rating_id=rating_id)
        if rating.user_id != requesting_user_id and not requesting_is_admin:
            raise PermissionDeniedError("You can only delete your own ratings", rating_id=rating_id)

        if not await self._ratings.soft_delete(rating_id, now=self._clock()):
            # Lost a race with another delete of the same rating.
            raise AlreadyDeletedError("Rating is already deleted", rating_id=rating_id)

        await self._aggregator.recompute(rating.location_id)
        logger.info("Rating deleted id=%s location=%s by=%s", rating_id, rating.location_id, requesting_user_id)

    async def get_location_rating_stats(self, location_id: str) -> RatingStats:
        await self._require_active_location(location_id)
        return await self._aggregator.statistics(location_id)

    async def list_location_ratings(self, location_id: str, *, skip: int = 0, limit: int = 10) -> list[Rating]:
        validate_page(skip, limit)
        await self._require_active_location(location_id)
        return await self._ratings.list_active_for_location(location_id, skip=skip, limit=limit)

    async def get_user_rating(self, location_id: str, user_id: str, requester: Identity) -> Rating | None:
        """A user's active rating for a location; visible to that user and admins."""
        if requester.user_id != user_id and not requester.is_admin:
            raise PermissionDeniedError("You can only view your own ratings", user_id=user_id)
        return await self._ratings.find_active(user_id=user_id, location_id=location_id)

    async def list_user_ratings(self, user_id: str, *, skip: int = 0, limit: int = 10) -> list[Rating]:
        validate_page(skip, limit)
        return await self._ratings.list_active_for_user(user_id, skip=skip, limit=limit)

    async def user_rating_stats(self, user_id: str) -> UserRatingStats:
        values = [r.value for r in await self._ratings.list_active_for_user(user_id)]
        return UserRatingStats(
            user_id=user_id,
            total_ratings=len(values),
            average_rating=average_value(values),
            distribution=distribution(values),
        )
