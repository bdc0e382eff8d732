import asyncio

import pytest

from georank.errors import LocationUnavailableError, PermissionDeniedError
from georank.geo.coordinates import Coordinate
from georank.location.device import FixedLocationProvider, LocationService, locate_user

CAIRO = Coordinate(latitude=30.0444, longitude=31.2357)


class SlowProvider:
    async def request_permission(self):
        return True

    async def get_current_position(self, timeout):
        await asyncio.sleep(1.0)
        return CAIRO


class BrokenProvider:
    async def request_permission(self):
        return True

    async def get_current_position(self, timeout):
        raise RuntimeError("gps chip offline")


def test_locate_user_returns_position():
    assert asyncio.run(locate_user(FixedLocationProvider(CAIRO))) == CAIRO


def test_denied_permission_raises():
    with pytest.raises(PermissionDeniedError):
        asyncio.run(locate_user(FixedLocationProvider(CAIRO, granted=False)))


def test_timeout_raises_unavailable():
    with pytest.raises(LocationUnavailableError) as excinfo:
        asyncio.run(locate_user(SlowProvider(), timeout=0.01))
    assert not isinstance(excinfo.value, PermissionDeniedError)


def test_provider_failure_raises_unavailable():
    with pytest.raises(LocationUnavailableError, match="gps chip offline"):
        asyncio.run(locate_user(BrokenProvider()))


def test_missing_position_raises_unavailable():
    with pytest.raises(LocationUnavailableError):
        asyncio.run(locate_user(FixedLocationProvider(None)))


class CountingProvider:
    def __init__(self, positions, *, granted=True):
        self.positions = list(positions)
        self.granted = granted
        self.permission_requests = 0

    async def request_permission(self):
        self.permission_requests += 1
        return self.granted

    async def get_current_position(self, timeout):
        position = self.positions.pop(0)
        if position is None:
            raise LocationUnavailableError("no fix")
        return position


def test_service_asks_for_permission_once():
    zamalek = Coordinate(latitude=30.0618, longitude=31.2194)
    provider = CountingProvider([CAIRO, zamalek])
    service = LocationService(provider)

    async def _run():
        return await service.current_position(), await service.current_position()

    first, second = asyncio.run(_run())
    assert (first, second) == (CAIRO, zamalek)
    assert provider.permission_requests == 1
    assert service.permission_granted is True
    assert service.last_known() == zamalek


def test_service_asks_again_after_refusal():
    provider = CountingProvider([CAIRO], granted=False)
    service = LocationService(provider)
    for _ in range(2):
        with pytest.raises(PermissionDeniedError):
            asyncio.run(service.current_position())
    assert provider.permission_requests == 2
    assert service.last_known() is None


def test_failed_read_keeps_last_position():
    service = LocationService(CountingProvider([CAIRO, None]))
    asyncio.run(service.current_position())
    with pytest.raises(LocationUnavailableError):
        asyncio.run(service.current_position())
    assert service.last_known() == CAIRO


def test_clear_forgets_position_but_not_permission():
    provider = CountingProvider([CAIRO, CAIRO])
    service = LocationService(provider)
    asyncio.run(service.current_position())
    service.clear()
    assert service.last_known() is None
    assert service.permission_granted is True
    asyncio.run(service.current_position())
    assert provider.permission_requests == 1
