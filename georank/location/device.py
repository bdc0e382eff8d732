"""Acquire the user's current position from a device location service."""
from __future__ import annotations

import asyncio
from typing import Optional, Protocol

import structlog

from georank.errors import LocationUnavailableError, PermissionDeniedError
from georank.geo.coordinates import Coordinate

LOGGER = structlog.get_logger(__name__)

DEFAULT_POSITION_TIMEOUT = 5.0


class DeviceLocationProvider(Protocol):
    async def request_permission(self) -> bool:
        ...

    async def get_current_position(self, timeout: float) -> Coordinate:
        ...


class FixedLocationProvider:
    """Provider returning a known position, e.g. one passed on the command line."""

    def __init__(self, coordinate: Optional[Coordinate], *, granted: bool = True) -> None:
        self._coordinate = coordinate
        self._granted = granted

    async def request_permission(self) -> bool:
        return self._granted

    async def get_current_position(self, timeout: float) -> Coordinate:
        if self._coordinate is None:
            raise LocationUnavailableError("no position configured")
        return self._coordinate


async def _read_position(provider: DeviceLocationProvider, timeout: float) -> Coordinate:
    try:
        return await asyncio.wait_for(provider.get_current_position(timeout), timeout=timeout)
    except asyncio.TimeoutError as exc:
        LOGGER.warning("location_timeout", timeout=timeout)
        raise LocationUnavailableError(f"no position within {timeout}s") from exc
    except LocationUnavailableError:
        raise
    except Exception as exc:
        LOGGER.warning("location_failed", error=str(exc))
        raise LocationUnavailableError(f"location provider failed: {exc}") from exc


class LocationService:
    """Owns one provider, remembering a granted permission and the last good position.

    A granted permission is never requested again; a refusal is asked again on
    the next call. Failed reads leave the remembered position untouched.
    """

    def __init__(self, provider: DeviceLocationProvider, *, timeout: float = DEFAULT_POSITION_TIMEOUT) -> None:
        self._provider = provider
        self._timeout = timeout
        self._permission_granted = False
        self._last_position: Optional[Coordinate] = None

    @property
    def permission_granted(self) -> bool:
        return self._permission_granted

    async def request_permission(self) -> bool:
        if not self._permission_granted:
            self._permission_granted = bool(await self._provider.request_permission())
        return self._permission_granted

    async def current_position(self, *, timeout: Optional[float] = None) -> Coordinate:
        """Return a fresh position or raise; the position is never guessed.

        Raises `PermissionDeniedError` when the device refuses and
        `LocationUnavailableError` on timeout or provider failure.
        """
        if not await self.request_permission():
            LOGGER.info("location_permission_denied")
            raise PermissionDeniedError("location permission was not granted")
        position = await _read_position(self._provider, self._timeout if timeout is None else timeout)
        self._last_position = position
        return position

    def last_known(self) -> Optional[Coordinate]:
        return self._last_position

    def clear(self) -> None:
        self._last_position = None


async def locate_user(
    provider: DeviceLocationProvider,
    *,
    timeout: float = DEFAULT_POSITION_TIMEOUT,
) -> Coordinate:
    """One-shot position lookup through a throwaway `LocationService`."""
    return await LocationService(provider, timeout=timeout).current_position()
