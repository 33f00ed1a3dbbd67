"""
API routes.

Thin HTTP handlers over the services; all rules live in `barmap.ratings` and
`barmap.locations`. Identity comes from the authentication gateway in front of this
service via `X-User-Id` / `X-User-Role` headers.

Endpoints:
- POST   `/api/locations`: register a location (409 + nearby list on proximity conflict)
- GET    `/api/locations`: active locations, newest first
- GET    `/api/locations/search`, `/api/locations/proximity`, `/api/locations/{id}`
- PATCH  `/api/locations/{id}`, DELETE `/api/locations/{id}`: edit / deactivate (creator or admin)
- POST   `/api/ratings`: create (201) or update (200) the caller's rating
- DELETE `/api/ratings/{id}`
- GET    `/api/locations/{id}/ratings`, `.../ratings/stats`, `.../ratings/users/{user_id}`
- GET    `/api/users/{user_id}/ratings`
- GET    `/api/users/{user_id}/locations`
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Response
from pydantic import BaseModel, Field

from barmap.config.settings import get_settings
from barmap.container import Services, build_services
from barmap.domain.models import (
    Criteria,
    Identity,
    Location,
    LocationDraft,
    LocationPage,
    LocationUpdate,
    ProximityResult,
    Rating,
    RatingStats,
    SubmitResult,
)

router = APIRouter()


@lru_cache
def _services() -> Services:
    return build_services(get_settings())


def get_services() -> Services:
    return _services()


def get_identity(
    x_user_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
) -> Identity:
    if not x_user_id:
        raise HTTPException(
            status_code=401,
            detail={"code": "AUTHENTICATION_REQUIRED", "message": "Authentication required"},
        )
    role = "admin" if (x_user_role or "").strip().lower() == "admin" else "user"
    return Identity(user_id=x_user_id, role=role)


class RatingIn(BaseModel):
    location_id: str
    value: int = Field(..., ge=1, le=5)
    review: str | None = Field(default=None, max_length=500)
    criteria: Criteria | None = None


@router.get("/api/health")
async def get_health(services: Services = Depends(get_services)) -> dict:
    """Liveness plus a store ping."""
    await services.store.ping()
    return {"status": "ok"}


@router.post("/api/locations", response_model=Location, status_code=201)
async def post_location(
    draft: LocationDraft,
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
) -> Location:
    return await services.locations.create_location(identity.user_id, draft)


@router.get("/api/locations", response_model=LocationPage)
async def list_locations(
    skip: int = Query(0, ge=0),
    limit: int = Query(10, ge=1, le=100),
    services: Services = Depends(get_services),
) -> LocationPage:
    return await services.locations.list_locations(skip=skip, limit=limit)


@router.get("/api/locations/search")
async def search_locations(
    lat: float,
    lon: float,
    radius_km: float | None = None,
    services: Services = Depends(get_services),
) -> dict:
    """Active locations within `radius_km` of a point, nearest first."""
    found = await services.locations.search_nearby(lat, lon, radius_km)
    return {
        "search_center": {"lat": lat, "lon": lon},
        "radius_km": radius_km if radius_km is not None else get_settings().proximity.default_search_radius_km,
        "found": len(found),
        "locations": [n.model_dump() for n in found],
    }


@router.get("/api/locations/proximity", response_model=ProximityResult)
async def check_proximity(lat: float, lon: float, services: Services = Depends(get_services)) -> ProximityResult:
    return await services.proximity.check_conflict(lat, lon)


@router.get("/api/locations/{location_id}", response_model=Location)
async def get_location(location_id: str, services: Services = Depends(get_services)) -> Location:
    return await services.locations.get_location(location_id)


@router.patch("/api/locations/{location_id}", response_model=Location)
async def patch_location(
    location_id: str,
    update: LocationUpdate,
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
) -> Location:
    return await services.locations.update_location(location_id, identity, update)


@router.delete("/api/locations/{location_id}")
async def deactivate_location(
    location_id: str,
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
) -> dict:
    location = await services.locations.deactivate_location(location_id, identity)
    return {"message": "Location deactivated successfully", "location": location.model_dump(mode="json")}


@router.post("/api/ratings", response_model=SubmitResult)
async def post_rating(
    payload: RatingIn,
    response: Response,
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
) -> SubmitResult:
    result = await services.ratings.submit(
        identity.user_id, payload.location_id, payload.value, payload.review, payload.criteria
    )
    response.status_code = 201 if result.created else 200
    return result


@router.delete("/api/ratings/{rating_id}")
async def delete_rating(
    rating_id: str,
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
) -> dict:
    await services.ratings.delete(rating_id, identity.user_id, identity.is_admin)
    return {"message": "Rating deleted successfully"}


@router.get("/api/locations/{location_id}/ratings")
async def list_location_ratings(
    location_id: str,
    skip: int = Query(0, ge=0),
    limit: int = Query(10, ge=1, le=100),
    services: Services = Depends(get_services),
) -> dict:
    ratings = await services.ratings.list_location_ratings(location_id, skip=skip, limit=limit)
    return {"ratings": [r.model_dump(mode="json") for r in ratings], "skip": skip, "limit": limit}


@router.get("/api/locations/{location_id}/ratings/stats", response_model=RatingStats)
async def get_location_rating_stats(location_id: str, services: Services = Depends(get_services)) -> RatingStats:
    return await services.ratings.get_location_rating_stats(location_id)


@router.get("/api/locations/{location_id}/ratings/users/{user_id}")
async def get_user_location_rating(
    location_id: str,
    user_id: str,
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    rating: Rating | None = await services.ratings.get_user_rating(location_id, user_id, identity)
    if rating is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "NOT_FOUND", "message": "No rating found for this user and location", "has_rated": False},
        )
    return {"rating": rating.model_dump(mode="json"), "has_rated": True}


@router.get("/api/users/{user_id}/ratings")
async def list_user_ratings(
    user_id: str,
    skip: int = Query(0, ge=0),
    limit: int = Query(10, ge=1, le=100),
    services: Services = Depends(get_services),
) -> dict:
    ratings = await services.ratings.list_user_ratings(user_id, skip=skip, limit=limit)
    stats = await services.ratings.user_rating_stats(user_id)
    return {
        "ratings": [r.model_dump(mode="json") for r in ratings],
        "stats": stats.model_dump(mode="json"),
        "skip": skip,
        "limit": limit,
    }


@router.get("/api/users/{user_id}/locations", response_model=LocationPage)
async def list_user_locations(
    user_id: str,
    skip: int = Query(0, ge=0),
    limit: int = Query(10, ge=1, le=100),
    services: Services = Depends(get_services),
) -> LocationPage:
    return await services.locations.list_user_locations(user_id, skip=skip, limit=limit)
