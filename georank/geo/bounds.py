"""Rectangular region bounds used for validation and clamping."""
from __future__ import annotations

from dataclasses import dataclass

from georank.geo.coordinates import Coordinate, CoordinateSource, clamp_to_valid


@dataclass(frozen=True, slots=True)
class RegionBounds:
    """Approximate bounding box of the operating region."""

    min_lat: float = 22.0
    max_lat: float = 32.0
    min_lon: float = 25.0
    max_lon: float = 37.0

    def __post_init__(self) -> None:
        if self.min_lat > self.max_lat or self.min_lon > self.max_lon:
            raise ValueError(f"empty region bounds: {self}")

    def contains(self, latitude: float, longitude: float) -> bool:
        return self.min_lat <= latitude <= self.max_lat and self.min_lon <= longitude <= self.max_lon

    def clamp(self, latitude: float, longitude: float) -> tuple[float, float]:
        latitude, longitude = clamp_to_valid(latitude, longitude)
        return (
            max(self.min_lat, min(self.max_lat, latitude)),
            max(self.min_lon, min(self.max_lon, longitude)),
        )


DEFAULT_REGION = RegionBounds()
DEFAULT_ANCHOR = Coordinate(latitude=30.0444, longitude=31.2357, source=CoordinateSource.CITY_DEFAULT)


def is_within_region(latitude: float, longitude: float, bounds: RegionBounds = DEFAULT_REGION) -> bool:
    """Return True when the point lies inside the region box (edges included)."""
    return bounds.contains(latitude, longitude)
