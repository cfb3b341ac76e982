"""Geospatial helper functions."""

from __future__ import annotations

import math

from ..config import settings
from ..errors import InvalidCoordinate
from ..models.domain import Coordinate

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute distance between two coordinates using the Haversine formula."""

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def validate_coordinate(coordinate: Coordinate | None) -> bool:
    """Return True if the coordinate is finite and inside lat/lng bounds."""

    if coordinate is None:
        return False
    lat, lng = coordinate.lat, coordinate.lng
    if isinstance(lat, bool) or isinstance(lng, bool):
        return False
    if not isinstance(lat, (int, float)) or not isinstance(lng, (int, float)):
        return False
    if not (math.isfinite(lat) and math.isfinite(lng)):
        return False
    return -90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0


def ensure_valid(coordinate: Coordinate) -> Coordinate:
    """Return the coordinate unchanged, or raise InvalidCoordinate. Never clamps."""

    if not validate_coordinate(coordinate):
        lat = getattr(coordinate, "lat", None)
        lng = getattr(coordinate, "lng", None)
        raise InvalidCoordinate(lat, lng)
    return coordinate


def distance_meters(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance in meters between two valid coordinates."""

    ensure_valid(a)
    ensure_valid(b)
    return haversine_km(a.lat, a.lng, b.lat, b.lng) * 1000.0


def is_nearby(a: Coordinate, b: Coordinate, threshold_meters: float | None = None) -> bool:
    threshold = settings.nearby_threshold_meters if threshold_meters is None else threshold_meters
    return distance_meters(a, b) <= threshold


def format_distance(meters: float) -> str:
    if meters < 1000:
        return f"{round(meters)}m"
    return f"{meters / 1000:.1f}km"


def format_duration(seconds: float) -> str:
    total = int(seconds)
    hours = total // 3600
    minutes = (total % 3600) // 60
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"
