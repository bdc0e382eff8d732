"""Nominatim (OpenStreetMap) geocoding client built on httpx."""
from __future__ import annotations

import asyncio
import contextlib
import time
from typing import AsyncIterator, Dict, Optional, Sequence

import httpx

from georank.errors import GeocodeUnavailableError, InvalidCoordinateError
from georank.geo.coordinates import Coordinate, CoordinateSource, parse_coordinate
from georank.observability.tracing import log_geocode_result, log_retry, span

DEFAULT_BASE_URL = "https://nominatim.openstreetmap.org"


def _is_retryable(exc: httpx.HTTPError) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status >= 500 or status == httpx.codes.TOO_MANY_REQUESTS
    return True


class NominatimGeocoder:
    """Resolve free-text queries through the Nominatim `/search` endpoint."""

    def __init__(
        self,
        *,
        user_agent: str,
        base_url: str = DEFAULT_BASE_URL,
        country_codes: Sequence[str] = ("eg",),
        timeout: float = 5.0,
        max_attempts: int = 2,
        backoff: float = 0.5,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._country_codes = ",".join(code.lower() for code in country_codes)
        self._timeout = timeout
        self._max_attempts = max(1, max_attempts)
        self._backoff = backoff
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(headers={"User-Agent": user_agent}, timeout=timeout)
        self._headers = {"User-Agent": user_agent, "Accept": "application/json"}

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _params(self, query: str) -> Dict[str, str]:
        params = {"q": query, "format": "jsonv2", "limit": "1"}
        if self._country_codes:
            params["countrycodes"] = self._country_codes
        return params

    async def _request(self, query: str) -> httpx.Response:
        delay = self._backoff
        for attempt in range(1, self._max_attempts + 1):
            try:
                with span(name="geocode", query=query):
                    response = await self._client.get(
                        f"{self._base_url}/search",
                        params=self._params(query),
                        headers=self._headers,
                        timeout=self._timeout,
                    )
                    response.raise_for_status()
                return response
            except httpx.HTTPError as exc:
                log_retry(attempt=attempt, query=query, reason=str(exc) or type(exc).__name__)
                if attempt == self._max_attempts or not _is_retryable(exc):
                    raise GeocodeUnavailableError(f"geocoder request failed for {query!r}: {exc}") from exc
                await asyncio.sleep(delay)
                delay *= 2
        raise GeocodeUnavailableError(f"geocoder request failed for {query!r}")

    async def geocode(self, query: str) -> Optional[Coordinate]:
        """Return the best match for the query, or None when nothing matched."""
        start = time.perf_counter()
        response = await self._request(query)
        try:
            results = response.json()
        except ValueError as exc:
            raise GeocodeUnavailableError(f"geocoder returned non-JSON payload for {query!r}") from exc
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        if not isinstance(results, list):
            raise GeocodeUnavailableError(f"unexpected geocoder payload for {query!r}")
        log_geocode_result(query=query, status=response.status_code, matched=bool(results), elapsed_ms=elapsed_ms)
        if not results:
            return None
        best = results[0]
        if not isinstance(best, dict):
            raise GeocodeUnavailableError(f"unexpected geocoder payload for {query!r}")
        try:
            return parse_coordinate(best.get("lat"), best.get("lon"), source=CoordinateSource.GEOCODED)
        except InvalidCoordinateError as exc:
            raise GeocodeUnavailableError(f"geocoder returned invalid coordinates for {query!r}") from exc


@contextlib.asynccontextmanager
async def open_geocoder(
    *,
    user_agent: str,
    base_url: str = DEFAULT_BASE_URL,
    country_codes: Sequence[str] = ("eg",),
    timeout: float = 5.0,
) -> AsyncIterator[NominatimGeocoder]:
    """Yield a configured geocoder for the duration of the context."""
    headers = {"User-Agent": user_agent}
    async with httpx.AsyncClient(headers=headers, timeout=timeout) as client:
        yield NominatimGeocoder(
            user_agent=user_agent,
            base_url=base_url,
            country_codes=country_codes,
            timeout=timeout,
            client=client,
        )
