"""
Great-circle distance helpers.
"""

import math

EARTH_RADIUS_METERS = 6371000.0


def calculate_distance_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Distance between two WGS84 points in meters using the haversine formula.

    Args:
        lat1: Latitude of the first point
        lon1: Longitude of the first point
        lat2: Latitude of the second point
        lon2: Longitude of the second point

    Returns:
        Distance in meters
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    # Clamp against floating point drift just above 1.0
    c = 2 * math.atan2(math.sqrt(min(a, 1.0)), math.sqrt(max(1.0 - a, 0.0)))
    return EARTH_RADIUS_METERS * c
