"""Cached, rate-limited and region-checked access to an external geocoder."""
from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, Optional, Protocol

import structlog

from georank.errors import GeocodeUnavailableError
from georank.geo.bounds import DEFAULT_REGION, RegionBounds, is_within_region
from georank.geo.coordinates import Coordinate, CoordinateSource
from georank.geo.named_locations import normalize_key
from georank.geocode.cache import GeocodeCache
from georank.observability.metrics import MetricsRegistry

LOGGER = structlog.get_logger(__name__)


class Geocoder(Protocol):
    async def geocode(self, query: str) -> Optional[Coordinate]:
        ...


class GeocodeLookup:
    """Front a geocoder with the cache, a call timeout and the region check.

    Never raises for geocoder problems: timeouts, transport errors and
    out-of-region answers all come back as None so resolution falls through.
    """

    def __init__(
        self,
        geocoder: Geocoder,
        *,
        cache: Optional[GeocodeCache] = None,
        bounds: RegionBounds = DEFAULT_REGION,
        timeout: float = 5.0,
        min_interval: float = 1.0,
        metrics: Optional[MetricsRegistry] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._geocoder = geocoder
        self._cache = cache
        self._bounds = bounds
        self._timeout = timeout
        self._min_interval = min_interval
        self._metrics = metrics
        self._clock = clock
        self._sleep = sleep
        self._rate_lock = asyncio.Lock()
        self._last_call: Optional[float] = None

    def _incr(self, name: str) -> None:
        if self._metrics is not None:
            self._metrics.incr(name)

    async def lookup(self, query: str) -> Optional[Coordinate]:
        key = normalize_key(query)
        if not key:
            return None
        if self._cache is not None:
            cached = await self._cache.get(key)
            if cached is not None:
                return cached
        coordinate = await self._call_geocoder(query)
        if coordinate is None:
            return None
        if not is_within_region(coordinate.latitude, coordinate.longitude, self._bounds):
            self._incr("geocode_out_of_region")
            LOGGER.info(
                "geocode_out_of_region",
                query=query,
                latitude=coordinate.latitude,
                longitude=coordinate.longitude,
            )
            return None
        coordinate = coordinate.with_source(CoordinateSource.GEOCODED)
        if self._cache is not None:
            try:
                await self._cache.put(key, coordinate)
            except OSError as exc:
                LOGGER.warning("geocode_cache_write_failed", query=query, error=str(exc))
        return coordinate

    async def _call_geocoder(self, query: str) -> Optional[Coordinate]:
        # one request in flight, spaced by min_interval
        async with self._rate_lock:
            if self._last_call is not None:
                wait = self._min_interval - (self._clock() - self._last_call)
                if wait > 0:
                    await self._sleep(wait)
            self._last_call = self._clock()
            self._incr("geocode_requests")
            try:
                return await asyncio.wait_for(self._geocoder.geocode(query), timeout=self._timeout)
            except asyncio.TimeoutError:
                self._incr("geocode_failures")
                LOGGER.warning("geocode_failed", query=query, reason="timeout", timeout=self._timeout)
            except GeocodeUnavailableError as exc:
                self._incr("geocode_failures")
                LOGGER.warning("geocode_failed", query=query, reason=str(exc))
            except Exception:
                self._incr("geocode_failures")
                LOGGER.exception("geocode_failed", query=query, reason="unexpected_error")
        return None
