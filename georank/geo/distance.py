"""
Distance calculations between coordinates.

Haversine formula for great-circle distance on a sphere with the mean Earth
radius. Used to rank properties by distance from the user.
"""
from __future__ import annotations

import math

from georank.geo.coordinates import Coordinate

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """
    Calculate great-circle distance between two points in kilometers.
    Unrounded; see `distance_km` for the presentation value.
    """
    lat1_r = math.radians(lat1)
    lat2_r = math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)

    a = (math.sin(dlat / 2) ** 2 +
         math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlng / 2) ** 2)
    # float error can push antipodal points fractionally past 1
    a = min(1.0, max(0.0, a))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def distance_km(a: Coordinate, b: Coordinate) -> float:
    """Distance between two coordinates in km, rounded to 2 decimal places."""
    return round(haversine_km(a.latitude, a.longitude, b.latitude, b.longitude), 2)


def format_distance(distance: float | None) -> str:
    if distance is None:
        return "Distance unknown"
    return f"{distance} km away"
