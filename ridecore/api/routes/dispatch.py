"""
Dispatch endpoints
==================

GET /api/v1/dispatch/nearby -- pending rides near a driver, newest first
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from ridecore.api.dependencies import get_dispatch
from ridecore.api.middleware import RATE_LIMIT, limiter
from ridecore.api.schemas import RideResponse
from ridecore.domain.entities import Coords
from ridecore.services.dispatch import DispatchService

router = APIRouter(prefix="/dispatch", tags=["dispatch"])


@router.get(
    "/nearby",
    response_model=list[RideResponse],
    summary="Pending rides within a radius of the driver",
    description=(
        "Rides without origin coordinates are always included.  Designed to "
        "be polled; the result is capped to bound the payload."
    ),
)
@limiter.limit(RATE_LIMIT)
async def nearby_rides(
    request: Request,
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    radius_km: float = Query(5.0, ge=0, le=500),
    limit: Optional[int] = Query(None, ge=1),
    dispatch: DispatchService = Depends(get_dispatch),
):
    rides = await dispatch.find_nearby_pending(
        Coords(lat=lat, lng=lng), radius_km, limit
    )
    return [RideResponse.from_domain(r) for r in rides]
