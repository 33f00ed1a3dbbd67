"""
Domain models (Pydantic).

These types are the stable "contract" between layers:
- stored records (`Location`, `Rating`)
- service inputs (`LocationDraft`, `Criteria`)
- service outputs (`SubmitResult`, `RatingStats`, `ProximityResult`, ...)

Stores convert raw documents into these models at the repository boundary so the
services never see driver-specific shapes.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from barmap.core.numbers import round1

CRITERIA_NAMES = ("equipment", "location", "maintenance", "safety")


class GeoPoint(BaseModel):
    """A geographic point in decimal degrees."""

    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)


class Equipment(BaseModel):
    pull_up_bar: bool = False
    parallel_bars: bool = False
    wall_bars: bool = False
    rings: bool = False
    other: str | None = Field(default=None, max_length=200)


class Features(BaseModel):
    parking: bool = False
    lighting: bool = False
    accessibility: bool = False
    covered: bool = False


def _require_http_urls(images: list[str]) -> list[str]:
    for url in images:
        if not url.startswith(("http://", "https://")):
            raise ValueError("images must be http(s) URLs")
    return images


class LocationDraft(BaseModel):
    """Fields a user supplies when registering a new location."""

    name: str = Field(..., min_length=3, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    coordinates: GeoPoint
    address: str | None = Field(default=None, max_length=200)
    equipment: Equipment = Field(default_factory=Equipment)
    features: Features = Field(default_factory=Features)
    images: list[str] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, name: str) -> str:
        return name.strip()

    @field_validator("images")
    @classmethod
    def _http_urls_only(cls, images: list[str]) -> list[str]:
        return _require_http_urls(images)


class Location(LocationDraft):
    """A registered site. Aggregate fields are written only by the rating aggregator."""

    id: str
    creator_id: str
    average_rating: float = Field(0.0, ge=0, le=5)
    total_ratings: int = Field(0, ge=0)
    active: bool = True
    created_at: datetime
    updated_at: datetime


class LocationUpdate(BaseModel):
    """Partial edit of a location. Unset fields keep their current value.

    `equipment` and `features` merge into the stored flags: only the keys the
    caller actually sent are changed.
    """

    name: str | None = Field(default=None, min_length=3, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    coordinates: GeoPoint | None = None
    address: str | None = Field(default=None, max_length=200)
    equipment: Equipment | None = None
    features: Features | None = None
    images: list[str] | None = None

    @field_validator("name")
    @classmethod
    def _strip_name(cls, name: str | None) -> str | None:
        return name.strip() if name is not None else None

    @field_validator("images")
    @classmethod
    def _http_urls_only(cls, images: list[str] | None) -> list[str] | None:
        return _require_http_urls(images) if images is not None else None


class LocationPage(BaseModel):
    locations: list[Location]
    total: int
    skip: int
    limit: int


class Criteria(BaseModel):
    """Per-criterion sub-scores, independent of the overall rating value."""

    equipment: int = Field(..., ge=1, le=5)
    location: int = Field(..., ge=1, le=5)
    maintenance: int = Field(..., ge=1, le=5)
    safety: int = Field(..., ge=1, le=5)

    @classmethod
    def uniform(cls, value: int) -> "Criteria":
        return cls(equipment=value, location=value, maintenance=value, safety=value)


class Rating(BaseModel):
    id: str
    user_id: str
    location_id: str
    value: int = Field(..., ge=1, le=5)
    review: str | None = None
    criteria: Criteria
    active: bool = True
    date: datetime
    created_at: datetime

    @property
    def criteria_average(self) -> float:
        c = self.criteria
        return round1((c.equipment + c.location + c.maintenance + c.safety) / 4)

    @property
    def has_review(self) -> bool:
        return bool(self.review and self.review.strip())


class SubmitResult(BaseModel):
    """Outcome of a rating submission; `created` distinguishes insert from update."""

    created: bool
    rating: Rating


class LocationAggregate(BaseModel):
    location_id: str
    average_rating: float
    total_ratings: int


class CriteriaMeans(BaseModel):
    equipment: float = 0.0
    location: float = 0.0
    maintenance: float = 0.0
    safety: float = 0.0


class RatingStats(BaseModel):
    total: int
    average: float
    distribution: dict[int, int]
    criteria: CriteriaMeans
    recent: int = 0


class UserRatingStats(BaseModel):
    user_id: str
    total_ratings: int
    average_rating: float
    distribution: dict[int, int]


class NearbyLocation(BaseModel):
    id: str
    name: str
    distance_km: float


class ProximityResult(BaseModel):
    conflict: bool
    nearby: list[NearbyLocation] = Field(default_factory=list)


class Identity(BaseModel):
    """Authenticated caller, supplied by the authentication collaborator."""

    user_id: str
    role: Literal["user", "admin"] = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"
