"""TTL cache of geocoded coordinates persisted to a key-value store."""
from __future__ import annotations

import asyncio
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

import orjson
import structlog
from dateutil import parser as dateparser

from georank.errors import CacheCorruptionError, InvalidCoordinateError
from georank.geo.coordinates import Coordinate, CoordinateSource
from georank.geo.named_locations import normalize_key
from georank.geocode.store import KeyValueStore
from georank.observability.metrics import MetricsRegistry

LOGGER = structlog.get_logger(__name__)

_CACHE_SCHEMA_VERSION = 1
CACHE_STORE_KEY = "georank.geocode_cache"
DEFAULT_TTL = timedelta(days=30)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class CachedCoordinate:
    key: str
    coordinate: Coordinate
    cached_at: datetime


def _decode_entries(raw: str) -> Dict[str, CachedCoordinate]:
    try:
        payload = orjson.loads(raw)
    except orjson.JSONDecodeError as exc:
        raise CacheCorruptionError(f"unparsable geocode cache: {exc}") from exc
    if not isinstance(payload, dict) or payload.get("version") != _CACHE_SCHEMA_VERSION:
        raise CacheCorruptionError("unsupported geocode cache payload")
    items = payload.get("entries", {})
    if not isinstance(items, dict):
        raise CacheCorruptionError("geocode cache entries must be a mapping")
    entries: Dict[str, CachedCoordinate] = {}
    for key, item in items.items():
        try:
            coordinate = Coordinate.from_dict(item["coordinate"])
            cached_at = dateparser.isoparse(item["cached_at"])
        except (KeyError, TypeError, ValueError, InvalidCoordinateError):
            LOGGER.debug("geocode_cache_entry_skipped", key=key)
            continue
        if cached_at.tzinfo is None:
            cached_at = cached_at.replace(tzinfo=timezone.utc)
        entries[key] = CachedCoordinate(key=key, coordinate=coordinate, cached_at=cached_at)
    return entries


class GeocodeCache:
    """Name → coordinate cache with expiry.

    Loaded from the store once on construction; every write is persisted.
    Writes are serialized by an asyncio lock.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        ttl: timedelta = DEFAULT_TTL,
        clock: Callable[[], datetime] = _utcnow,
        metrics: Optional[MetricsRegistry] = None,
    ) -> None:
        self._store = store
        self._ttl = ttl
        self._clock = clock
        self._metrics = metrics
        self._entries: Dict[str, CachedCoordinate] = {}
        self._lock = asyncio.Lock()
        try:
            self._entries = self._load()
        except CacheCorruptionError as exc:
            LOGGER.warning("geocode_cache_corrupt", error=str(exc))
            self._entries = {}

    def _load(self) -> Dict[str, CachedCoordinate]:
        try:
            raw = self._store.get_item(CACHE_STORE_KEY)
        except (OSError, UnicodeDecodeError) as exc:
            raise CacheCorruptionError(f"unreadable geocode cache: {exc}") from exc
        if raw is None:
            return {}
        return _decode_entries(raw)

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def _incr(self, name: str) -> None:
        if self._metrics is not None:
            self._metrics.incr(name)

    def _is_stale(self, entry: CachedCoordinate) -> bool:
        return self._clock() - entry.cached_at >= self._ttl

    async def get(self, key: str) -> Optional[Coordinate]:
        """Return a fresh cached coordinate (tagged `cached`), evicting stale ones."""
        key = normalize_key(key)
        entry = self._entries.get(key)
        if entry is None:
            self._incr("cache_misses")
            return None
        if self._is_stale(entry):
            async with self._lock:
                if self._entries.get(key) is entry:
                    del self._entries[key]
                    await self._persist()
            self._incr("cache_evictions")
            self._incr("cache_misses")
            return None
        self._incr("cache_hits")
        return entry.coordinate.with_source(CoordinateSource.CACHED)

    async def put(self, key: str, coordinate: Coordinate) -> None:
        key = normalize_key(key)
        if not key:
            raise ValueError("cache keys must be non-empty")
        async with self._lock:
            self._entries[key] = CachedCoordinate(key=key, coordinate=coordinate, cached_at=self._clock())
            await self._persist()

    async def purge_expired(self) -> int:
        """Drop every stale entry, returning how many were removed."""
        async with self._lock:
            stale = [key for key, entry in self._entries.items() if self._is_stale(entry)]
            for key in stale:
                del self._entries[key]
            if stale:
                await self._persist()
        for _ in stale:
            self._incr("cache_evictions")
        return len(stale)

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()
            await asyncio.to_thread(self._store.remove_item, CACHE_STORE_KEY)

    def stats(self) -> Dict[str, object]:
        by_source = Counter(entry.coordinate.source.value for entry in self._entries.values())
        return {"total_cached": len(self._entries), "by_source": dict(by_source)}

    async def _persist(self) -> None:
        await asyncio.to_thread(self._write_payload)

    def _write_payload(self) -> None:
        payload = {
            "version": _CACHE_SCHEMA_VERSION,
            "entries": {
                key: {"coordinate": entry.coordinate.to_dict(), "cached_at": entry.cached_at.isoformat()}
                for key, entry in self._entries.items()
            },
        }
        self._store.set_item(CACHE_STORE_KEY, orjson.dumps(payload).decode())
