"""
Service wiring.

Builds the document store selected by `store.backend` and the repositories/services
on top of it. The API and CLI both go through `build_services`; tests pass an
explicit `MemoryDocumentStore` (and clock) instead.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from barmap.config.settings import Settings
from barmap.core.time import utc_now
from barmap.locations.proximity import ProximityGuard
from barmap.locations.service import LocationService
from barmap.ratings.aggregator import RatingAggregator
from barmap.ratings.service import RatingService
from barmap.store.base import DocumentStore
from barmap.store.locations import LocationStore
from barmap.store.memory import MemoryDocumentStore
from barmap.store.mongo import MongoDocumentStore
from barmap.store.ratings import RatingStore


@dataclass
class Services:
    store: DocumentStore
    ratings_store: RatingStore
    locations_store: LocationStore
    aggregator: RatingAggregator
    proximity: ProximityGuard
    ratings: RatingService
    locations: LocationService


def build_store(settings: Settings) -> DocumentStore:
    if settings.store.backend == "mongo":
        return MongoDocumentStore(settings.store)
    return MemoryDocumentStore()


def build_services(
    settings: Settings,
    *,
    store: DocumentStore | None = None,
    clock: Callable[[], datetime] = utc_now,
) -> Services:
    store = store or build_store(settings)
    names = settings.store.collections
    ratings_store = RatingStore(store.collection(names.ratings))
    locations_store = LocationStore(store.collection(names.locations))

    aggregator = RatingAggregator(
        ratings_store,
        locations_store,
        recent_window_days=settings.ratings.recent_window_days,
        clock=clock,
    )
    guard = ProximityGuard(
        locations_store,
        min_separation_km=settings.proximity.min_separation_km,
        km_per_degree=settings.proximity.km_per_degree,
    )
    return Services(
        store=store,
        ratings_store=ratings_store,
        locations_store=locations_store,
        aggregator=aggregator,
        proximity=guard,
        ratings=RatingService(
            ratings_store,
            locations_store,
            aggregator,
            review_max_length=settings.ratings.review_max_length,
            max_write_attempts=settings.ratings.max_write_attempts,
            clock=clock,
        ),
        locations=LocationService(
            locations_store,
            guard,
            default_search_radius_km=settings.proximity.default_search_radius_km,
            max_search_radius_km=settings.proximity.max_search_radius_km,
            clock=clock,
        ),
    )
