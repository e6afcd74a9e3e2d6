"""
Ride endpoints
==============

POST  /api/v1/rides                       -- request a ride (201)
GET   /api/v1/rides?role=&participant_id= -- finished rides of a participant
GET   /api/v1/rides/{ride_id}             -- current state of a ride
PATCH /api/v1/rides/{ride_id}/accept      -- driver accepts (409 if taken)
PATCH /api/v1/rides/{ride_id}/start       -- passenger picked up
PATCH /api/v1/rides/{ride_id}/complete    -- ride finished
PATCH /api/v1/rides/{ride_id}/cancel      -- cancel a non-terminal ride
PATCH /api/v1/rides/{ride_id}/paid        -- payment confirmed (idempotent)
PUT   /api/v1/rides/{ride_id}/location    -- driver position tick (204)
WS    /api/v1/rides/{ride_id}/ws          -- ride state changes as they happen
WS    /api/v1/rides/{ride_id}/location/ws -- live driver position stream
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

from fastapi import APIRouter, Depends, Query, Request, WebSocket
from starlette.websockets import WebSocketDisconnect

from ridecore.api.dependencies import get_companies, get_engine
from ridecore.api.middleware import RATE_LIMIT, limiter
from ridecore.api.schemas import (
    CoordsSchema,
    DriverSchema,
    ErrorResponse,
    RideCreateRequest,
    RideResponse,
)
from ridecore.domain.entities import Coords, RideRequest
from ridecore.domain.enums import ParticipantRole, PaymentMethod
from ridecore.domain.errors import (
    InvalidTransitionError,
    NotFoundError,
    TransientIOError,
    ValidationError,
)
from ridecore.infrastructure.companies import CompanyDirectory
from ridecore.services.lifecycle import RideLifecycleEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rides", tags=["rides"])

_CONFLICT = {409: {"model": ErrorResponse, "description": "Invalid transition"}}
_NOT_FOUND = {404: {"model": ErrorResponse, "description": "Ride not found"}}


@router.post(
    "",
    status_code=201,
    response_model=RideResponse,
    summary="Request a ride",
    responses={
        402: {"model": ErrorResponse, "description": "Corporate credit refused"},
        422: {"model": ErrorResponse, "description": "Invalid request"},
    },
)
@limiter.limit(RATE_LIMIT)
async def create_ride(
    request: Request,
    body: RideCreateRequest,
    engine: RideLifecycleEngine = Depends(get_engine),
    companies: CompanyDirectory = Depends(get_companies),
):
    company = None
    if body.payment_method == PaymentMethod.CORPORATE:
        if not body.company_id:
            raise ValidationError("Corporate rides require a company_id")
        company = await companies.get(body.company_id)
        if company is None:
            raise ValidationError(f"Unknown company {body.company_id}")

    ride = await engine.create_ride(
        passenger=body.passenger.to_domain(),
        origin=body.origin,
        destination=body.destination,
        origin_coords=body.origin_coords.to_domain() if body.origin_coords else None,
        destination_coords=(
            body.destination_coords.to_domain() if body.destination_coords else None
        ),
        waypoints=[w.to_domain() for w in body.waypoints],
        route_polyline=body.route_polyline,
        service_type=body.service_type,
        distance_km=body.distance_km,
        distance=body.distance,
        duration=body.duration,
        payment_method=body.payment_method,
        delivery_details=(
            body.delivery_details.to_domain() if body.delivery_details else None
        ),
        security_mode=body.security_mode,
        company=company,
    )
    return RideResponse.from_domain(ride)


@router.get(
    "",
    response_model=list[RideResponse],
    summary="Ride history of a passenger or driver",
)
@limiter.limit(RATE_LIMIT)
async def ride_history(
    request: Request,
    role: ParticipantRole,
    participant_id: str = Query(..., min_length=1),
    engine: RideLifecycleEngine = Depends(get_engine),
):
    rides = await engine.history(role, participant_id)
    return [RideResponse.from_domain(r) for r in rides]


@router.get(
    "/{ride_id}",
    response_model=RideResponse,
    summary="Get ride status",
    responses=_NOT_FOUND,
)
@limiter.limit(RATE_LIMIT)
async def get_ride(
    request: Request,
    ride_id: str,
    engine: RideLifecycleEngine = Depends(get_engine),
):
    return RideResponse.from_domain(await engine.get_ride(ride_id))


@router.patch(
    "/{ride_id}/accept",
    response_model=RideResponse,
    summary="Accept a pending ride",
    description=(
        "Attaches the driver snapshot.  Exactly one of several concurrent "
        "accepts succeeds; the others receive 409."
    ),
    responses={**_NOT_FOUND, **_CONFLICT},
)
@limiter.limit(RATE_LIMIT)
async def accept_ride(
    request: Request,
    ride_id: str,
    driver: DriverSchema,
    engine: RideLifecycleEngine = Depends(get_engine),
):
    return RideResponse.from_domain(
        await engine.accept(ride_id, driver.to_domain())
    )


@router.patch(
    "/{ride_id}/start",
    response_model=RideResponse,
    summary="Start an accepted ride",
    responses={**_NOT_FOUND, **_CONFLICT},
)
@limiter.limit(RATE_LIMIT)
async def start_ride(
    request: Request,
    ride_id: str,
    engine: RideLifecycleEngine = Depends(get_engine),
):
    return RideResponse.from_domain(await engine.start(ride_id))


@router.patch(
    "/{ride_id}/complete",
    response_model=RideResponse,
    summary="Complete a ride in progress",
    responses={**_NOT_FOUND, **_CONFLICT},
)
@limiter.limit(RATE_LIMIT)
async def complete_ride(
    request: Request,
    ride_id: str,
    engine: RideLifecycleEngine = Depends(get_engine),
):
    return RideResponse.from_domain(await engine.complete(ride_id))


@router.patch(
    "/{ride_id}/cancel",
    response_model=RideResponse,
    summary="Cancel a ride",
    description="Allowed while pending, accepted or in progress.",
    responses={**_NOT_FOUND, **_CONFLICT},
)
@limiter.limit(RATE_LIMIT)
async def cancel_ride(
    request: Request,
    ride_id: str,
    engine: RideLifecycleEngine = Depends(get_engine),
):
    return RideResponse.from_domain(await engine.cancel(ride_id))


@router.patch(
    "/{ride_id}/paid",
    response_model=RideResponse,
    summary="Confirm payment of a ride",
    responses={**_NOT_FOUND, **_CONFLICT},
)
@limiter.limit(RATE_LIMIT)
async def mark_ride_paid(
    request: Request,
    ride_id: str,
    engine: RideLifecycleEngine = Depends(get_engine),
):
    return RideResponse.from_domain(await engine.mark_paid(ride_id))


@router.put(
    "/{ride_id}/location",
    status_code=204,
    summary="Publish the driver's current position",
    description="Fire-and-forget; ticks for rides not being tracked are dropped.",
)
@limiter.limit("600/minute")
async def publish_location(
    request: Request,
    ride_id: str,
    coords: CoordsSchema,
    engine: RideLifecycleEngine = Depends(get_engine),
):
    await engine.publish_location(ride_id, coords.to_domain())


async def _pump(
    websocket: WebSocket,
    queue: asyncio.Queue,
    encode: Callable[[Any], dict],
    is_last: Callable[[Any], bool] = lambda item: False,
) -> None:
    """Forward queued items until the client leaves or *is_last* holds."""
    receiver = asyncio.create_task(websocket.receive_text())
    getter: Optional[asyncio.Task] = None
    try:
        while True:
            getter = asyncio.create_task(queue.get())
            done, _ = await asyncio.wait(
                {getter, receiver}, return_when=asyncio.FIRST_COMPLETED
            )
            if getter in done:
                item = getter.result()
                await websocket.send_json(encode(item))
                if is_last(item):
                    await websocket.close()
                    return
            else:
                getter.cancel()
            if receiver in done:
                if receiver.exception() is not None:
                    return
                # Client messages are ignored; keep listening for disconnect
                receiver = asyncio.create_task(websocket.receive_text())
    except WebSocketDisconnect:
        return
    finally:
        receiver.cancel()
        if getter is not None:
            getter.cancel()


async def _open_stream(websocket: WebSocket, ride_id: str, subscribe):
    """Accept, then subscribe; close with a 44xx code on domain errors."""
    await websocket.accept()
    try:
        return await subscribe()
    except NotFoundError as exc:
        await websocket.close(code=4404, reason=str(exc))
    except InvalidTransitionError as exc:
        await websocket.close(code=4409, reason=str(exc))
    except TransientIOError:
        logger.warning("Stream for ride %s unavailable", ride_id)
        await websocket.close(code=1011)
    return None


@router.websocket("/{ride_id}/ws")
async def stream_ride(
    websocket: WebSocket,
    ride_id: str,
    engine: RideLifecycleEngine = Depends(get_engine),
):
    """Current ride state, then every change until it ends."""
    changes: asyncio.Queue[RideRequest] = asyncio.Queue()
    unsubscribe = await _open_stream(
        websocket,
        ride_id,
        lambda: engine.subscribe_ride(ride_id, changes.put_nowait),
    )
    if unsubscribe is None:
        return
    try:
        await _pump(
            websocket,
            changes,
            lambda ride: RideResponse.from_domain(ride).model_dump(mode="json"),
            is_last=lambda ride: ride.is_terminal,
        )
    finally:
        await unsubscribe()
        logger.debug("Ride stream for %s closed", ride_id)


@router.websocket("/{ride_id}/location/ws")
async def stream_location(
    websocket: WebSocket,
    ride_id: str,
    engine: RideLifecycleEngine = Depends(get_engine),
):
    latest: asyncio.Queue[Coords] = asyncio.Queue(maxsize=1)

    def on_change(coords: Coords) -> None:
        # Only the most recent position matters
        if latest.full():
            latest.get_nowait()
        latest.put_nowait(coords)

    unsubscribe = await _open_stream(
        websocket,
        ride_id,
        lambda: engine.subscribe_location(ride_id, on_change),
    )
    if unsubscribe is None:
        return
    try:
        await _pump(
            websocket,
            latest,
            lambda coords: {"ride_id": ride_id, **coords.to_dict()},
        )
    finally:
        await unsubscribe()
        logger.debug("Location stream for %s closed", ride_id)
