"""
Geographic helpers for delivery checks.

Distances use the haversine formula on a spherical Earth, which is well
within tolerance for city-scale delivery radii.
"""

import math
from dataclasses import dataclass
from typing import Any

from .config import DEFAULT_DELIVERY_RADIUS_KM

EARTH_RADIUS_KM = 6371.0


@dataclass
class RadiusCheck:
    """Result of a delivery radius check."""
    within_radius: bool
    distance_km: float  # rounded to one decimal
    max_km: float


def validate_coordinates(latitude: Any, longitude: Any) -> bool:
    """True for finite numbers with latitude in [-90, 90] and longitude in [-180, 180]."""
    if isinstance(latitude, bool) or isinstance(longitude, bool):
        return False
    if not isinstance(latitude, (int, float)) or not isinstance(longitude, (int, float)):
        return False
    if math.isnan(latitude) or math.isnan(longitude):
        return False
    return -90 <= latitude <= 90 and -180 <= longitude <= 180


def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometers."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def is_within_delivery_radius(
    customer_lat: float,
    customer_lon: float,
    origin_lat: float,
    origin_lon: float,
    max_km: float = None,
) -> RadiusCheck:
    if max_km is None:
        max_km = DEFAULT_DELIVERY_RADIUS_KM
    distance = calculate_distance(customer_lat, customer_lon, origin_lat, origin_lon)
    return RadiusCheck(
        within_radius=distance <= max_km,
        distance_km=round(distance, 1),
        max_km=max_km,
    )
