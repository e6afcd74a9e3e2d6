"""
Distance calculation using the Haversine formula.

Drivers and pickups are matched on great-circle distance; road distance
for pricing is supplied by the caller (routing happens client-side).

Complexity: O(1) per call.
"""

import math

EARTH_RADIUS_KM = 6_371.0


def haversine_km(
    lat1: float, lng1: float, lat2: float, lng2: float
) -> float:
    """Return the great-circle distance in **km** between two points."""
    lat1_r, lat2_r = math.radians(lat1), math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)

    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlng / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(a)))


def distance_km(a, b) -> float:
    """Haversine distance between two objects exposing ``lat`` / ``lng``."""
    return haversine_km(a.lat, a.lng, b.lat, b.lng)
