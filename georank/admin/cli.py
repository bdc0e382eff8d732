"""Administrative CLI utilities."""
from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path
from typing import List, Optional

from georank.admin.status import summarise_exports
from georank.geocode.cache import GeocodeCache
from georank.geocode.store import FileKeyValueStore
from georank.main import DEFAULT_LOGGING_PATH, DEFAULT_SETTINGS_PATH, build_table
from georank.observability.log import configure_logging
from georank.settings import Settings, load_settings


def _open_cache(settings: Settings) -> GeocodeCache:
    return GeocodeCache(FileKeyValueStore(settings.cache.dir), ttl=settings.cache.ttl)


def cmd_cache_stats(args: argparse.Namespace, settings: Settings) -> None:
    cache = _open_cache(settings)
    print(json.dumps({"cache_dir": str(settings.cache.dir), **cache.stats()}, indent=2))


def cmd_cache_clear(args: argparse.Namespace, settings: Settings) -> None:
    cache = _open_cache(settings)
    before = cache.stats()["total_cached"]
    asyncio.run(cache.clear())
    print(json.dumps({"cleared": before}, indent=2))


def cmd_cache_purge(args: argparse.Namespace, settings: Settings) -> None:
    cache = _open_cache(settings)
    removed = asyncio.run(cache.purge_expired())
    print(json.dumps({"purged": removed, **cache.stats()}, indent=2))


def cmd_explain(args: argparse.Namespace, settings: Settings) -> None:
    table = build_table(settings)
    match = table.explain(args.name)
    if match is None:
        print(json.dumps({"name": args.name, "matched": False}, ensure_ascii=False))
        return
    explanation = {
        "name": args.name,
        "matched": True,
        "query": match.query,
        "key": match.key,
        "kind": match.kind,
        "latitude": match.coordinate.latitude,
        "longitude": match.coordinate.longitude,
    }
    print(json.dumps(explanation, indent=2, ensure_ascii=False))


def cmd_runs(args: argparse.Namespace, settings: Settings) -> None:
    metrics_dir = Path(args.metrics_dir) if args.metrics_dir else settings.app.metrics_dir
    print(json.dumps(summarise_exports(metrics_dir), indent=2))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="georank.admin.cli", description="Administration commands")
    parser.add_argument("--config", default=str(DEFAULT_SETTINGS_PATH))
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("cache-stats", help="Count cached geocodes by source")
    sub.add_parser("cache-clear", help="Drop every cached geocode")
    sub.add_parser("cache-purge", help="Drop cached geocodes older than the TTL")

    explain = sub.add_parser("explain", help="Show which named location a place name matches")
    explain.add_argument("--name", required=True)

    runs = sub.add_parser("runs", help="Summarise exported ranking metrics")
    runs.add_argument("--metrics-dir")

    return parser


COMMANDS = {
    "cache-stats": cmd_cache_stats,
    "cache-clear": cmd_cache_clear,
    "cache-purge": cmd_cache_purge,
    "explain": cmd_explain,
    "runs": cmd_runs,
}


def main(argv: Optional[List[str]] = None) -> None:
    configure_logging(DEFAULT_LOGGING_PATH)
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = load_settings(Path(args.config))
    COMMANDS[args.command](args, settings)


if __name__ == "__main__":
    main()
