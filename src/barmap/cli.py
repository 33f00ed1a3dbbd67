"""
Barmap CLI entrypoint.

Operational helpers for the rating engine without going through the HTTP API:
geo sanity checks, proximity checks, aggregate repair (recompute) and statistics.
It uses the same settings and store backend as the API (`BARMAP_CONFIG_PATH`,
`BARMAP_STORE_BACKEND`, ...), or an explicit `--config` file.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any

from barmap.config.settings import Settings, get_settings, load_settings
from barmap.container import Services, build_services
from barmap.core.errors import BarmapError, ValidationError
from barmap.core.geo import bounding_box, distance_km, format_distance, is_valid_coordinate
from barmap.core.logging import configure_logging


def _settings(args: argparse.Namespace) -> Settings:
    return load_settings(args.config) if args.config else get_settings()


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _cmd_distance(args: argparse.Namespace) -> int:
    for lat, lon in [(args.lat1, args.lon1), (args.lat2, args.lon2)]:
        if not is_valid_coordinate(lat, lon):
            raise ValidationError(f"Invalid GPS coordinates: {lat}, {lon}")
    d = distance_km(args.lat1, args.lon1, args.lat2, args.lon2)
    if args.json:
        _print_json({"distance_km": d, "display": format_distance(d)})
    else:
        print(f"{d} km ({format_distance(d)})")
    return 0


def _cmd_bbox(args: argparse.Namespace) -> int:
    box = bounding_box(args.lat, args.lon, args.radius_km, _settings(args).proximity.km_per_degree)
    _print_json({"north": box.north, "south": box.south, "east": box.east, "west": box.west})
    return 0


async def _check_proximity(services: Services, lat: float, lon: float) -> dict:
    try:
        result = await services.proximity.check_conflict(lat, lon)
        return result.model_dump(mode="json")
    finally:
        await services.store.close()


def _cmd_check_proximity(args: argparse.Namespace) -> int:
    services = build_services(_settings(args))
    payload = asyncio.run(_check_proximity(services, args.lat, args.lon))
    _print_json(payload)
    return 1 if payload["conflict"] else 0


async def _recompute(services: Services, location_ids: list[str]) -> list[dict]:
    try:
        out = []
        for location_id in location_ids:
            aggregate = await services.aggregator.recompute(location_id)
            out.append(aggregate.model_dump(mode="json"))
        return out
    finally:
        await services.store.close()


def _cmd_recompute(args: argparse.Namespace) -> int:
    services = build_services(_settings(args))
    for agg in asyncio.run(_recompute(services, list(args.location_id))):
        print(f"{agg['location_id']}: average={agg['average_rating']:.1f} total={agg['total_ratings']}")
    return 0


async def _stats(services: Services, location_id: str) -> dict:
    try:
        stats = await services.ratings.get_location_rating_stats(location_id)
        return stats.model_dump(mode="json")
    finally:
        await services.store.close()


def _cmd_stats(args: argparse.Namespace) -> int:
    services = build_services(_settings(args))
    _print_json(asyncio.run(_stats(services, args.location_id)))
    return 0


async def _ensure_indexes(services: Services) -> None:
    try:
        await services.store.ping()
        await services.ratings_store.ensure_indexes()
    finally:
        await services.store.close()


def _cmd_ensure_indexes(args: argparse.Namespace) -> int:
    asyncio.run(_ensure_indexes(build_services(_settings(args))))
    print("indexes ok")
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the Barmap CLI."""
    parser = argparse.ArgumentParser(prog="barmap")
    parser.add_argument("--config", type=str, default=None, help="YAML settings file (overrides defaults)")
    sub = parser.add_subparsers(dest="command", required=True)

    dist = sub.add_parser("distance", help="Great-circle distance between two points (km, 2 decimals).")
    dist.add_argument("lat1", type=float)
    dist.add_argument("lon1", type=float)
    dist.add_argument("lat2", type=float)
    dist.add_argument("lon2", type=float)
    dist.add_argument("--json", action="store_true", help="Output machine-readable JSON")
    dist.set_defaults(func=_cmd_distance)

    box = sub.add_parser("bbox", help="Bounding box used by the proximity pre-filter.")
    box.add_argument("lat", type=float)
    box.add_argument("lon", type=float)
    box.add_argument("radius_km", type=float)
    box.set_defaults(func=_cmd_bbox)

    prox = sub.add_parser(
        "check-proximity",
        help="Check a point against registered locations (exit code 1 on conflict).",
    )
    prox.add_argument("--lat", required=True, type=float)
    prox.add_argument("--lon", required=True, type=float)
    prox.set_defaults(func=_cmd_check_proximity)

    rec = sub.add_parser("recompute", help="Recompute and persist aggregate ratings for locations.")
    rec.add_argument("location_id", nargs="+")
    rec.set_defaults(func=_cmd_recompute)

    st = sub.add_parser("stats", help="Rating statistics for one location.")
    st.add_argument("location_id")
    st.set_defaults(func=_cmd_stats)

    idx = sub.add_parser("ensure-indexes", help="Create the store-level unique rating index.")
    idx.set_defaults(func=_cmd_ensure_indexes)
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint callable used by `python -m barmap.cli`."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(_settings(args))
    func: Any = getattr(args, "func")
    try:
        return int(func(args))
    except BarmapError as e:
        print(f"error: {e.code}: {e.message}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
