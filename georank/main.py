"""Command-line entrypoints for property proximity ranking."""
from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
from pathlib import Path
from typing import AsyncIterator, List, Optional

from dotenv import load_dotenv

from georank.entities import load_entities
from georank.errors import ConfigError, InvalidCoordinateError
from georank.geo.coordinates import Coordinate, CoordinateSource, parse_coordinate
from georank.geo.distance import distance_km
from georank.geo.named_locations import NamedLocationTable, default_table, load_table
from georank.geo.resolver import CoordinateResolver
from georank.geocode.cache import GeocodeCache
from georank.geocode.lookup import GeocodeLookup
from georank.geocode.nominatim import open_geocoder
from georank.geocode.store import FileKeyValueStore
from georank.location.device import FixedLocationProvider, LocationService
from georank.observability.log import configure_logging
from georank.observability.metrics import MetricsRegistry
from georank.ranking.ranker import ProximityRanker
from georank.settings import Settings, load_settings

DEFAULT_SETTINGS_PATH = Path("config/settings.toml")
DEFAULT_LOGGING_PATH = Path("config/logging.yaml")
DEFAULT_ENTITIES_PATH = Path("data/properties.json")


def build_table(settings: Settings) -> NamedLocationTable:
    if settings.ranking.named_locations_path is not None:
        return load_table(settings.ranking.named_locations_path)
    return default_table()


def build_cache(settings: Settings, metrics: Optional[MetricsRegistry] = None) -> GeocodeCache:
    return GeocodeCache(FileKeyValueStore(settings.cache.dir), ttl=settings.cache.ttl, metrics=metrics)


@contextlib.asynccontextmanager
async def build_ranker(settings: Settings, *, use_geocoder: bool) -> AsyncIterator[ProximityRanker]:
    """Wire resolver, optional cached geocoder and ranker for one run."""
    metrics = MetricsRegistry()
    table = build_table(settings)
    bounds = settings.region.bounds()
    async with contextlib.AsyncExitStack() as stack:
        lookup = None
        if use_geocoder:
            geocoder = await stack.enter_async_context(
                open_geocoder(
                    user_agent=settings.geocoder.user_agent,
                    base_url=settings.geocoder.base_url,
                    country_codes=settings.geocoder.country_codes,
                    timeout=settings.geocoder.timeout_seconds,
                )
            )
            lookup = GeocodeLookup(
                geocoder,
                cache=build_cache(settings, metrics),
                bounds=bounds,
                timeout=settings.geocoder.timeout_seconds,
                min_interval=settings.geocoder.min_interval_seconds,
                metrics=metrics,
            )
        resolver = CoordinateResolver(table=table, bounds=bounds, anchor=settings.region.anchor(), geocoder=lookup)
        yield ProximityRanker(resolver, concurrency=settings.ranking.concurrency, metrics=metrics)


def _user_coordinate(args: argparse.Namespace) -> Optional[Coordinate]:
    if args.lat is None and args.lon is None:
        return None
    try:
        return parse_coordinate(args.lat, args.lon, source=CoordinateSource.EXPLICIT)
    except InvalidCoordinateError as exc:
        raise SystemExit(f"Invalid user position: {exc}")


def build_arg_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""
    parser = argparse.ArgumentParser(prog="georank", description="Rank properties by distance from the user")
    parser.add_argument("--config", default=str(DEFAULT_SETTINGS_PATH), help="Path to settings.toml")
    sub = parser.add_subparsers(dest="command", required=True)

    rank = sub.add_parser("rank", help="Rank entities by distance from a position")
    rank.add_argument("--entities", default=str(DEFAULT_ENTITIES_PATH), help="JSON or CSV export of properties")
    rank.add_argument("--lat", type=float, help="User latitude")
    rank.add_argument("--lon", type=float, help="User longitude")
    rank.add_argument("--limit", type=int, help="Only print the nearest N results")
    rank.add_argument("--geocode", action="store_true", help="Consult the external geocoder")
    rank.add_argument("--metrics-out", help="Write run counters to this JSON file")

    resolve = sub.add_parser("resolve", help="Show the resolved coordinate for each entity")
    resolve.add_argument("--entities", default=str(DEFAULT_ENTITIES_PATH))
    resolve.add_argument("--geocode", action="store_true", help="Consult the external geocoder")

    distance = sub.add_parser("distance", help="Haversine distance between two points")
    distance.add_argument("lat1", type=float)
    distance.add_argument("lon1", type=float)
    distance.add_argument("lat2", type=float)
    distance.add_argument("lon2", type=float)

    seed = sub.add_parser("seed-entities", help="Write demo properties for local runs")
    seed.add_argument("--path", default=str(DEFAULT_ENTITIES_PATH))

    return parser


async def run_rank(args: argparse.Namespace, settings: Settings) -> int:
    """Execute the rank command, returning the process exit code."""
    try:
        entities = load_entities(Path(args.entities))
    except (OSError, ValueError) as exc:
        raise SystemExit(f"Failed to load entities: {exc}")
    use_geocoder = bool(args.geocode or settings.geocoder.enabled)
    provider = FixedLocationProvider(_user_coordinate(args))
    location = LocationService(provider, timeout=settings.location.timeout_seconds)
    async with build_ranker(settings, use_geocoder=use_geocoder) as ranker:
        outcome = await ranker.rank_nearby(location, entities)
        if args.metrics_out:
            ranker.metrics.export(path=Path(args.metrics_out), run_id="rank")
    if not outcome.available:
        print(json.dumps({"available": False, "reason": outcome.reason, "detail": outcome.detail}, indent=2))
        return 1
    results = outcome.results[: args.limit] if args.limit else outcome.results
    print(
        json.dumps(
            {
                "available": True,
                "user": outcome.user.to_dict() if outcome.user else None,
                "results": [result.to_dict() for result in results],
            },
            indent=2,
            ensure_ascii=False,
        )
    )
    return 0


async def run_resolve(args: argparse.Namespace, settings: Settings) -> int:
    try:
        entities = load_entities(Path(args.entities))
    except (OSError, ValueError) as exc:
        raise SystemExit(f"Failed to load entities: {exc}")
    use_geocoder = bool(args.geocode or settings.geocoder.enabled)
    report: List[dict] = []
    async with build_ranker(settings, use_geocoder=use_geocoder) as ranker:
        for entity in entities:
            coordinate = await ranker.resolver.resolve_async(entity)
            report.append({
                "id": entity.id,
                "area": entity.area_label() or None,
                "coordinate": coordinate.to_dict() if coordinate else None,
            })
    print(json.dumps(report, indent=2, ensure_ascii=False))
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the CLI."""
    load_dotenv()
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    try:
        settings = load_settings(Path(args.config))
    except ConfigError as exc:
        raise SystemExit(str(exc))
    configure_logging(DEFAULT_LOGGING_PATH)

    if args.command == "seed-entities":
        from georank.seed import seed_entities

        seed_entities(Path(args.path))
        return

    if args.command == "distance":
        try:
            a = parse_coordinate(args.lat1, args.lon1, source=CoordinateSource.EXPLICIT)
            b = parse_coordinate(args.lat2, args.lon2, source=CoordinateSource.EXPLICIT)
        except InvalidCoordinateError as exc:
            raise SystemExit(str(exc))
        print(json.dumps({"distance_km": distance_km(a, b)}))
        return

    if args.command == "resolve":
        asyncio.run(run_resolve(args, settings))
        return

    if args.command == "rank":
        exit_code = asyncio.run(run_rank(args, settings))
        if exit_code:
            raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
