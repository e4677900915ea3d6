"""
Geographic Utility Functions

Helper functions for geographic calculations including distance measurements.
"""
from math import radians, cos, sin, asin, sqrt
from typing import NamedTuple

EARTH_RADIUS_KM = 6371.0
KM_PER_DEGREE_LAT = 111.0


class BoundingBox(NamedTuple):
    """Rectangular lat/lon window around a center point."""
    min_lat: float
    max_lat: float
    min_lon: float
    max_lon: float


def haversine_distance(
    lat1: float,
    lon1: float,
    lat2: float,
    lon2: float
) -> float:
    """
    Calculate great-circle distance between two points using Haversine formula.

    Args:
        lat1: Latitude of first point (decimal degrees)
        lon1: Longitude of first point (decimal degrees)
        lat2: Latitude of second point (decimal degrees)
        lon2: Longitude of second point (decimal degrees)

    Returns:
        Distance in kilometers

    Formula:
        a = sin²(Δlat/2) + cos(lat1) × cos(lat2) × sin²(Δlon/2)
        c = 2 × asin(√a)
        distance = R × c  (R = Earth radius = 6,371 km)
    """
    lon1, lat1, lon2, lat2 = map(radians, [lon1, lat1, lon2, lat2])

    dlon = lon2 - lon1
    dlat = lat2 - lat1
    a = sin(dlat/2)**2 + cos(lat1) * cos(lat2) * sin(dlon/2)**2
    # Rounding can push a a hair above 1 for antipodal points
    c = 2 * asin(sqrt(min(1.0, a)))

    return c * EARTH_RADIUS_KM


def bounding_box(latitude: float, longitude: float, radius_km: float) -> BoundingBox:
    """
    Equirectangular approximation of the square enclosing a search circle.

    Args:
        latitude: Center latitude (decimal degrees)
        longitude: Center longitude (decimal degrees)
        radius_km: Search radius in kilometers

    Returns:
        BoundingBox that contains every point within radius_km of the center
    """
    lat_delta = radius_km / KM_PER_DEGREE_LAT
    cos_lat = cos(radians(latitude))
    if abs(cos_lat) < 1e-9:
        # At the poles every longitude is within reach
        lon_delta = 180.0
    else:
        lon_delta = radius_km / (KM_PER_DEGREE_LAT * abs(cos_lat))

    return BoundingBox(
        min_lat=latitude - lat_delta,
        max_lat=latitude + lat_delta,
        min_lon=longitude - lon_delta,
        max_lon=longitude + lon_delta,
    )
