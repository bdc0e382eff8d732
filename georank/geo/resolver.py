"""Best-effort coordinate resolution for locatable entities.

Location signals are tried as an ordered list of strategies; the first one
that produces a coordinate wins and weaker signals are never consulted.
"""
from __future__ import annotations

from typing import Optional, Protocol, Sequence

import structlog

from georank.entities import LocatableEntity
from georank.errors import InvalidCoordinateError
from georank.geo.bounds import DEFAULT_ANCHOR, DEFAULT_REGION, RegionBounds
from georank.geo.coordinates import Coordinate, CoordinateSource, clamp_to_valid, parse_coordinate
from georank.geo.hashing import string_hash, unit_offset
from georank.geo.named_locations import NamedLocationTable, default_table, normalize_key

LOGGER = structlog.get_logger(__name__)

ADDRESS_ESTIMATE_ACCURACY_M = 15_000.0
PROCEDURAL_ACCURACY_M = 250_000.0


class CoordinateLookup(Protocol):
    """Anything that can turn a free-text query into a coordinate (e.g. a cached geocoder)."""

    async def lookup(self, query: str) -> Optional[Coordinate]:
        ...


class ResolutionStrategy:
    """One location signal. `attempt` returns a coordinate or None to fall through."""

    name = "strategy"

    def attempt(self, entity: LocatableEntity) -> Optional[Coordinate]:
        raise NotImplementedError

    async def attempt_async(self, entity: LocatableEntity) -> Optional[Coordinate]:
        return self.attempt(entity)


class ExplicitStrategy(ResolutionStrategy):
    name = "explicit"

    def attempt(self, entity: LocatableEntity) -> Optional[Coordinate]:
        try:
            return parse_coordinate(entity.latitude, entity.longitude, source=CoordinateSource.EXPLICIT)
        except InvalidCoordinateError:
            if entity.latitude is not None or entity.longitude is not None:
                LOGGER.debug("explicit_coordinates_rejected", entity_id=entity.id)
            return None


class AreaLevelStrategy(ResolutionStrategy):
    name = "area"

    def attempt(self, entity: LocatableEntity) -> Optional[Coordinate]:
        area = entity.area
        if area is None:
            return None
        try:
            return parse_coordinate(area.latitude, area.longitude, source=CoordinateSource.AREA)
        except InvalidCoordinateError:
            return None


class AddressEstimateStrategy(ResolutionStrategy):
    """Jitter the area's base coordinate by a hash of the address.

    Properties sharing one area spread out by up to ±0.1 degree, and the same
    address always lands on the same point.
    """

    name = "address_estimated"

    def __init__(self, table: NamedLocationTable, bounds: RegionBounds) -> None:
        self._table = table
        self._bounds = bounds

    def attempt(self, entity: LocatableEntity) -> Optional[Coordinate]:
        address = (entity.address or "").strip()
        if not address:
            return None
        base = self._table.lookup(entity.area_label())
        if base is None:
            return None
        seed = string_hash(address)
        latitude = base.latitude + unit_offset(seed, buckets=200, step=0.001)
        longitude = base.longitude + unit_offset(seed * 7, buckets=200, step=0.001)
        if self._bounds.contains(base.latitude, base.longitude):
            latitude, longitude = self._bounds.clamp(latitude, longitude)
        else:
            latitude, longitude = clamp_to_valid(latitude, longitude)
        return Coordinate(
            latitude=latitude,
            longitude=longitude,
            source=CoordinateSource.ADDRESS_ESTIMATED,
            accuracy=ADDRESS_ESTIMATE_ACCURACY_M,
        )


class NamedFallbackStrategy(ResolutionStrategy):
    name = "city_default"

    def __init__(self, table: NamedLocationTable) -> None:
        self._table = table

    def attempt(self, entity: LocatableEntity) -> Optional[Coordinate]:
        return self._table.lookup(entity.area_label())


class GeocodedStrategy(ResolutionStrategy):
    """Ask an external geocoder; only available on the async path."""

    name = "geocoded"

    def __init__(self, lookup: CoordinateLookup) -> None:
        self._lookup = lookup

    def attempt(self, entity: LocatableEntity) -> Optional[Coordinate]:
        return None

    async def attempt_async(self, entity: LocatableEntity) -> Optional[Coordinate]:
        query = geocode_query(entity)
        if not query:
            return None
        return await self._lookup.lookup(query)


class ProceduralDefaultStrategy(ResolutionStrategy):
    """Spread unknown names deterministically around the region anchor. Never fails."""

    name = "procedural_default"

    def __init__(self, bounds: RegionBounds, anchor: Coordinate) -> None:
        self._bounds = bounds
        self._anchor = anchor

    def attempt(self, entity: LocatableEntity) -> Optional[Coordinate]:
        seed = string_hash(normalize_key(entity.area_label()))
        latitude = self._anchor.latitude + unit_offset(seed, buckets=400, step=0.01)
        longitude = self._anchor.longitude + unit_offset(seed * 13, buckets=400, step=0.01)
        latitude, longitude = self._bounds.clamp(latitude, longitude)
        return Coordinate(
            latitude=latitude,
            longitude=longitude,
            source=CoordinateSource.CITY_DEFAULT,
            accuracy=PROCEDURAL_ACCURACY_M,
        )


def geocode_query(entity: LocatableEntity) -> str:
    parts = [part.strip() for part in (entity.address or "", entity.area_label()) if part and part.strip()]
    return ", ".join(parts)


def default_strategies(
    *,
    table: NamedLocationTable,
    bounds: RegionBounds,
    anchor: Coordinate,
    geocoder: Optional[CoordinateLookup] = None,
) -> list[ResolutionStrategy]:
    strategies: list[ResolutionStrategy] = [
        ExplicitStrategy(),
        AreaLevelStrategy(),
        AddressEstimateStrategy(table, bounds),
        NamedFallbackStrategy(table),
    ]
    if geocoder is not None:
        strategies.append(GeocodedStrategy(geocoder))
    strategies.append(ProceduralDefaultStrategy(bounds, anchor))
    return strategies


class CoordinateResolver:
    """Resolve a coordinate for an entity by trying strategies in order."""

    def __init__(
        self,
        *,
        table: Optional[NamedLocationTable] = None,
        bounds: RegionBounds = DEFAULT_REGION,
        anchor: Coordinate = DEFAULT_ANCHOR,
        geocoder: Optional[CoordinateLookup] = None,
        strategies: Optional[Sequence[ResolutionStrategy]] = None,
    ) -> None:
        if strategies is None:
            strategies = default_strategies(
                table=table if table is not None else default_table(),
                bounds=bounds,
                anchor=anchor,
                geocoder=geocoder,
            )
        self._strategies = tuple(strategies)

    @property
    def strategies(self) -> tuple[ResolutionStrategy, ...]:
        return self._strategies

    def resolve(self, entity: Optional[LocatableEntity]) -> Optional[Coordinate]:
        """Synchronous resolution; strategies that need I/O are skipped."""
        if entity is None:
            return None
        for strategy in self._strategies:
            coordinate = strategy.attempt(entity)
            if coordinate is not None:
                LOGGER.debug("coordinate_resolved", entity_id=entity.id, strategy=strategy.name)
                return coordinate
        return None

    async def resolve_async(self, entity: Optional[LocatableEntity]) -> Optional[Coordinate]:
        """Resolution including strategies that await external collaborators."""
        if entity is None:
            return None
        for strategy in self._strategies:
            coordinate = await strategy.attempt_async(entity)
            if coordinate is not None:
                LOGGER.debug("coordinate_resolved", entity_id=entity.id, strategy=strategy.name)
                return coordinate
        return None
