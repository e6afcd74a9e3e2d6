"""Dispatch queries for drivers: nearby pending rides, polled repeatedly."""

from __future__ import annotations

from typing import Optional

from ridecore.domain.entities import Coords, RideRequest
from ridecore.domain.enums import RideStatus
from ridecore.domain.matching import DEFAULT_MAX_RESULTS, nearby_pending
from ridecore.infrastructure.store import RideStore


class DispatchService:
    def __init__(self, store: RideStore, max_results: int = DEFAULT_MAX_RESULTS):
        self.store = store
        self.max_results = max_results

    async def find_nearby_pending(
        self,
        driver_location: Coords,
        radius_km: float,
        limit: Optional[int] = None,
    ) -> list[RideRequest]:
        pending = await self.store.query_by_status(RideStatus.PENDING)
        cap = self.max_results if limit is None else min(limit, self.max_results)
        return nearby_pending(pending, driver_location, radius_km, cap)
