"""Great-circle distance and bearing helpers."""

import math

from .config import EARTH_RADIUS_M


def distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Haversine distance between two points, in meters."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (math.sin(d_lat / 2) ** 2 +
         math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) *
         math.sin(d_lng / 2) ** 2)
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def initial_bearing(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Initial great-circle bearing from point 1 toward point 2, in [0, 360)."""
    d_lng = math.radians(lng2 - lng1)
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)

    y = math.sin(d_lng) * math.cos(lat2_rad)
    x = (math.cos(lat1_rad) * math.sin(lat2_rad) -
         math.sin(lat1_rad) * math.cos(lat2_rad) * math.cos(d_lng))
    bearing = (math.degrees(math.atan2(y, x)) + 360) % 360
    # -0.0 % 360 and tiny negatives can round to 360.0
    return 0.0 if bearing >= 360 else bearing


def bearing_difference(bearing1: float, bearing2: float) -> float:
    """Smallest angle between two bearings, in [0, 180]."""
    diff = abs(bearing1 - bearing2) % 360
    if diff > 180:
        diff = 360 - diff
    return diff
