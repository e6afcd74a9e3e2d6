"""
Durable Ride Store on SQLAlchemy (async).

Each operation runs in its own short transaction.  Status changes are
issued as ``UPDATE ... WHERE id = :id AND status = :expected`` so the
database itself arbitrates concurrent transitions; a zero row count
means the race was lost (or the ride vanished).

Driver errors are wrapped into ``TransientIOError``: the write did not
happen and the caller must know.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import RideModel
from .store import RideStore, describe_update
from ridecore.domain.entities import (
    TIMESTAMP_FIELDS,
    Coords,
    DeliveryDetails,
    DriverSnapshot,
    PassengerSnapshot,
    RideRequest,
)
from ridecore.domain.enums import ParticipantRole, RideStatus
from ridecore.domain.errors import (
    InvalidTransitionError,
    NotFoundError,
    TransientIOError,
)
from ridecore.domain.pricing import CENTS

logger = logging.getLogger(__name__)


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        # SQLite drops the offset; everything is written as UTC
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _coords(lat: Optional[float], lng: Optional[float]) -> Optional[Coords]:
    if lat is None or lng is None:
        return None
    return Coords(lat=lat, lng=lng)


def _to_model(ride: RideRequest) -> RideModel:
    return RideModel(
        id=ride.id,
        passenger=ride.passenger.to_dict(),
        passenger_id=ride.passenger.id,
        driver=ride.driver.to_dict() if ride.driver else None,
        driver_id=ride.driver.id if ride.driver else None,
        origin=ride.origin,
        origin_lat=ride.origin_coords.lat if ride.origin_coords else None,
        origin_lng=ride.origin_coords.lng if ride.origin_coords else None,
        destination=ride.destination,
        destination_lat=(
            ride.destination_coords.lat if ride.destination_coords else None
        ),
        destination_lng=(
            ride.destination_coords.lng if ride.destination_coords else None
        ),
        waypoints=[w.to_dict() for w in ride.waypoints],
        route_polyline=ride.route_polyline,
        service_type=ride.service_type,
        price=ride.price,
        distance=ride.distance,
        duration=ride.duration,
        payment_method=ride.payment_method,
        payment_status=ride.payment_status,
        status=ride.status,
        delivery_details=(
            ride.delivery_details.to_dict() if ride.delivery_details else None
        ),
        security_code=ride.security_code,
        company_id=ride.company_id,
        **{name: _utc(getattr(ride, name)) for name in TIMESTAMP_FIELDS},
    )


def _to_entity(row: RideModel) -> RideRequest:
    return RideRequest(
        id=row.id,
        passenger=PassengerSnapshot.from_dict(row.passenger),
        driver=DriverSnapshot.from_dict(row.driver),
        origin=row.origin,
        origin_coords=_coords(row.origin_lat, row.origin_lng),
        destination=row.destination,
        destination_coords=_coords(row.destination_lat, row.destination_lng),
        waypoints=[Coords.from_dict(w) for w in row.waypoints or []],
        route_polyline=row.route_polyline,
        service_type=row.service_type,
        price=Decimal(row.price).quantize(CENTS),
        distance=row.distance,
        duration=row.duration,
        payment_method=row.payment_method,
        payment_status=row.payment_status,
        status=row.status,
        delivery_details=DeliveryDetails.from_dict(row.delivery_details),
        security_code=row.security_code,
        company_id=row.company_id,
        **{name: _utc(getattr(row, name)) for name in TIMESTAMP_FIELDS},
    )


def _columns(fields: dict[str, Any]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for name, value in fields.items():
        if name == "driver":
            values["driver"] = value.to_dict() if value else None
            values["driver_id"] = value.id if value else None
        elif name in TIMESTAMP_FIELDS:
            values[name] = _utc(value)
        else:
            values[name] = value
    return values


class SqlRideStore(RideStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def create(self, ride: RideRequest) -> str:
        self._prepare_create(ride)
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    session.add(_to_model(ride))
        except SQLAlchemyError as exc:
            logger.exception("Failed to persist ride %s", ride.id)
            raise TransientIOError(f"Could not create ride: {exc}") from exc
        return ride.id

    async def get_by_id(self, ride_id: str) -> Optional[RideRequest]:
        try:
            async with self.session_factory() as session:
                row = await session.get(RideModel, ride_id)
                return _to_entity(row) if row else None
        except SQLAlchemyError as exc:
            raise TransientIOError(f"Could not read ride {ride_id}") from exc

    async def query_by_status(self, status: RideStatus) -> list[RideRequest]:
        return await self._select(RideModel.status == RideStatus(status))

    async def query_by_participant(
        self, role: ParticipantRole, participant_id: str
    ) -> list[RideRequest]:
        column = (
            RideModel.passenger_id
            if ParticipantRole(role) == ParticipantRole.PASSENGER
            else RideModel.driver_id
        )
        return await self._select(column == participant_id)

    async def update(
        self,
        ride_id: str,
        fields: dict[str, Any],
        expected_status: Optional[RideStatus] = None,
    ) -> RideRequest:
        self._check_update(ride_id, fields, expected_status)

        stmt = update(RideModel).where(RideModel.id == ride_id)
        if expected_status is not None:
            stmt = stmt.where(RideModel.status == expected_status)
        for name in TIMESTAMP_FIELDS:
            if name in fields:
                stmt = stmt.where(getattr(RideModel, name).is_(None))
        stmt = stmt.values(**_columns(fields)).execution_options(
            synchronize_session=False
        )

        try:
            async with self.session_factory() as session:
                async with session.begin():
                    result = await session.execute(stmt)
                    row = await session.get(RideModel, ride_id)
                    if row is None:
                        raise NotFoundError(ride_id)
                    if result.rowcount == 0:
                        raise InvalidTransitionError(
                            ride_id,
                            RideStatus(row.status).value,
                            describe_update(fields),
                        )
                    return _to_entity(row)
        except SQLAlchemyError as exc:
            logger.exception("Failed to update ride %s", ride_id)
            raise TransientIOError(f"Could not update ride {ride_id}") from exc

    async def _select(self, criterion) -> list[RideRequest]:
        try:
            async with self.session_factory() as session:
                result = await session.execute(select(RideModel).where(criterion))
                return [_to_entity(row) for row in result.scalars().all()]
        except SQLAlchemyError as exc:
            raise TransientIOError("Could not query rides") from exc
