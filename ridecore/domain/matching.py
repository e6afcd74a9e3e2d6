"""
Radius-based dispatch filter
============================

Surfaces pending ride requests to a driver:

1. **Radius filter** -- keep rides whose origin is within ``radius_km``
   (great-circle distance).  Rides without origin coordinates are kept:
   an unlocatable ride is shown rather than hidden.
2. **Recency order** -- most recently created first.
3. **Cap** -- at most ``limit`` rides, applied after filtering and sorting.

Complexity
----------
Let N = pending rides.  Filtering is O(N), sorting O(N log N).
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Iterable

from .distance import distance_km
from .entities import Coords, RideRequest
from .enums import RideStatus
from .errors import ValidationError

DEFAULT_MAX_RESULTS = 20

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def within_radius(ride: RideRequest, location: Coords, radius_km: float) -> bool:
    if ride.origin_coords is None:
        return True
    return distance_km(location, ride.origin_coords) <= radius_km


def nearby_pending(
    rides: Iterable[RideRequest],
    location: Coords,
    radius_km: float,
    limit: int = DEFAULT_MAX_RESULTS,
) -> list[RideRequest]:
    """Filter, order and cap *rides* for a driver at *location*."""
    if not math.isfinite(radius_km) or radius_km < 0:
        raise ValidationError("Radius must be a non-negative finite number")
    if limit < 0:
        raise ValidationError("Limit must not be negative")

    candidates = [
        r
        for r in rides
        if r.status == RideStatus.PENDING and within_radius(r, location, radius_km)
    ]
    candidates.sort(key=lambda r: r.created_at or _EPOCH, reverse=True)
    return candidates[:limit]
