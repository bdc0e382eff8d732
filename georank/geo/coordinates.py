"""Coordinate value object and parsing helpers."""
from __future__ import annotations

import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from georank.errors import InvalidCoordinateError

MIN_LATITUDE = -90.0
MAX_LATITUDE = 90.0
MIN_LONGITUDE = -180.0
MAX_LONGITUDE = 180.0


class CoordinateSource(str, Enum):
    """Provenance tag attached to every resolved coordinate."""

    EXPLICIT = "explicit"
    AREA = "area"
    ADDRESS_ESTIMATED = "address_estimated"
    CITY_DEFAULT = "city_default"
    GEOCODED = "geocoded"
    CACHED = "cached"


@dataclass(frozen=True, slots=True)
class Coordinate:
    """A validated latitude/longitude pair with its provenance."""

    latitude: float
    longitude: float
    source: CoordinateSource = CoordinateSource.EXPLICIT
    accuracy: Optional[float] = None

    def __post_init__(self) -> None:
        if not is_valid_pair(self.latitude, self.longitude):
            raise InvalidCoordinateError(
                f"coordinate out of range: ({self.latitude}, {self.longitude})"
            )

    def with_source(self, source: CoordinateSource) -> "Coordinate":
        """Return a copy re-tagged with another provenance."""
        return replace(self, source=source)

    def to_dict(self) -> dict:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "accuracy": self.accuracy,
            "source": self.source.value,
        }

    @classmethod
    def from_dict(cls, payload: dict) -> "Coordinate":
        try:
            return cls(
                latitude=float(payload["latitude"]),
                longitude=float(payload["longitude"]),
                source=CoordinateSource(payload.get("source", CoordinateSource.GEOCODED.value)),
                accuracy=float(payload["accuracy"]) if payload.get("accuracy") is not None else None,
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidCoordinateError(f"malformed coordinate payload: {payload!r}") from exc


def is_valid_pair(latitude: float, longitude: float) -> bool:
    if not (math.isfinite(latitude) and math.isfinite(longitude)):
        return False
    return MIN_LATITUDE <= latitude <= MAX_LATITUDE and MIN_LONGITUDE <= longitude <= MAX_LONGITUDE


def _to_float(value: object) -> float:
    if isinstance(value, bool):
        raise InvalidCoordinateError(f"not a coordinate component: {value!r}")
    if isinstance(value, str):
        value = value.strip()
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise InvalidCoordinateError(f"not a number: {value!r}") from exc


def parse_coordinate(
    latitude: object,
    longitude: object,
    *,
    source: CoordinateSource,
    accuracy: Optional[float] = None,
) -> Coordinate:
    """Parse raw latitude/longitude values (numbers or numeric strings).

    Raises `InvalidCoordinateError` when either side is missing, not numeric or
    outside the valid range.
    """
    if latitude is None or longitude is None or latitude == "" or longitude == "":
        raise InvalidCoordinateError("latitude and longitude are both required")
    return Coordinate(
        latitude=_to_float(latitude),
        longitude=_to_float(longitude),
        source=source,
        accuracy=accuracy,
    )


def clamp_to_valid(latitude: float, longitude: float) -> tuple[float, float]:
    return (
        max(MIN_LATITUDE, min(MAX_LATITUDE, latitude)),
        max(MIN_LONGITUDE, min(MAX_LONGITUDE, longitude)),
    )
