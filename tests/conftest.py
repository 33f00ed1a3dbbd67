import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from barmap.config.settings import Settings
from barmap.container import build_services
from barmap.domain.models import GeoPoint, LocationDraft
from barmap.store.memory import MemoryDocumentStore

SANTIAGO = (-33.4489, -70.6693)


class FakeClock:
    """Deterministic, manually advanced clock for services."""

    def __init__(self, start: datetime = datetime(2026, 1, 5, 10, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return MemoryDocumentStore()


@pytest.fixture
def services(store, clock):
    return build_services(Settings(), store=store, clock=clock)


def _draft(name: str = "Parque Forestal bars", lat: float = SANTIAGO[0], lon: float = SANTIAGO[1]) -> LocationDraft:
    return LocationDraft(name=name, coordinates=GeoPoint(lat=lat, lon=lon))


@pytest.fixture
def santiago():
    return SANTIAGO


@pytest.fixture
def make_draft():
    return _draft


@pytest.fixture
def add_location(services, clock):
    """Insert a location directly through the store (bypassing the proximity guard)."""

    def _add(
        name: str = "Parque Forestal bars",
        lat: float = SANTIAGO[0],
        lon: float = SANTIAGO[1],
        creator_id: str = "creator",
    ):
        draft = _draft(name=name, lat=lat, lon=lon)
        return asyncio.run(services.locations_store.create(creator_id=creator_id, draft=draft, now=clock()))

    return _add
