"""Exception taxonomy for location resolution and ranking."""
from __future__ import annotations


class GeoError(Exception):
    """Base class for all georank errors."""


class ConfigError(GeoError):
    """Raised when the settings file cannot be parsed or validated."""


class InvalidCoordinateError(GeoError, ValueError):
    """Latitude/longitude missing, non-numeric or outside the valid range."""


class GeocodeUnavailableError(GeoError):
    """The external geocoder timed out, errored or returned garbage."""


class LocationUnavailableError(GeoError):
    """The user's current position could not be obtained."""


class PermissionDeniedError(LocationUnavailableError):
    """The device declined to share its location."""


class CacheCorruptionError(GeoError):
    """Persisted geocode cache data could not be decoded."""


class RankingCancelled(GeoError):
    """A ranking run was cancelled before every entity was resolved."""
