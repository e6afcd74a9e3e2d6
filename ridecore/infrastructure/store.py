"""
Ride Store -- persistence contract for ride documents.

Only the lifecycle engine writes through this interface.  ``update`` is a
compare-and-swap: when ``expected_status`` is given the write applies only
if the stored status still equals it, so two transitions racing on the
same ride can never both commit.

Backends
--------
* ``InMemoryRideStore`` -- tests and single-process demos.
* ``SqlRideStore``      -- durable store (see ``sql_store.py``).
"""

from __future__ import annotations

import asyncio
import uuid
from abc import ABC, abstractmethod
from typing import Any, Optional

from ridecore.domain.entities import TIMESTAMP_FIELDS, RideRequest, utcnow
from ridecore.domain.enums import (
    RIDE_TRANSITIONS,
    ParticipantRole,
    PaymentStatus,
    RideStatus,
)
from ridecore.domain.errors import (
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)

UPDATABLE_FIELDS = frozenset(
    {
        "status",
        "driver",
        "payment_status",
        "route_polyline",
        "accepted_at",
        "started_at",
        "completed_at",
        "cancelled_at",
    }
)


def new_ride_id() -> str:
    return uuid.uuid4().hex


class RideStore(ABC):
    @abstractmethod
    async def create(self, ride: RideRequest) -> str:
        """Persist a new pending ride; assigns and returns its id."""

    @abstractmethod
    async def get_by_id(self, ride_id: str) -> Optional[RideRequest]: ...

    @abstractmethod
    async def query_by_status(self, status: RideStatus) -> list[RideRequest]: ...

    @abstractmethod
    async def query_by_participant(
        self, role: ParticipantRole, participant_id: str
    ) -> list[RideRequest]: ...

    @abstractmethod
    async def update(
        self,
        ride_id: str,
        fields: dict[str, Any],
        expected_status: Optional[RideStatus] = None,
    ) -> RideRequest:
        """Apply a partial merge and return the stored record."""

    async def close(self) -> None:
        return None

    # ── shared guards ─────────────────────────────────────────────

    @staticmethod
    def _prepare_create(ride: RideRequest) -> None:
        if ride.status != RideStatus.PENDING:
            raise ValidationError("New rides must start in status pending")
        if ride.driver is not None:
            raise ValidationError("A pending ride cannot have a driver")
        if ride.id is None:
            ride.id = new_ride_id()
        if ride.created_at is None:
            ride.created_at = utcnow()

    @staticmethod
    def _check_update(
        ride_id: str,
        fields: dict[str, Any],
        expected_status: Optional[RideStatus],
    ) -> None:
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(
                f"Fields cannot be updated: {', '.join(sorted(unknown))}"
            )
        if "payment_status" in fields and (
            PaymentStatus(fields["payment_status"]) != PaymentStatus.COMPLETED
        ):
            raise ValidationError("Payment status can only move to completed")
        if "status" in fields:
            if expected_status is None:
                raise ValidationError(
                    "Status changes require the expected current status"
                )
            new_status = RideStatus(fields["status"])
            if new_status not in RIDE_TRANSITIONS[expected_status]:
                raise InvalidTransitionError(
                    ride_id, expected_status.value, f"move to {new_status.value}"
                )


class InMemoryRideStore(RideStore):
    """Dict-backed store holding JSON documents (snapshot semantics)."""

    def __init__(self):
        self._docs: dict[str, dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    async def create(self, ride: RideRequest) -> str:
        self._prepare_create(ride)
        async with self._lock:
            if ride.id in self._docs:
                raise ValidationError(f"Ride {ride.id} already exists")
            self._docs[ride.id] = ride.to_document()
        return ride.id

    async def get_by_id(self, ride_id: str) -> Optional[RideRequest]:
        doc = self._docs.get(ride_id)
        return RideRequest.from_document(doc) if doc else None

    async def query_by_status(self, status: RideStatus) -> list[RideRequest]:
        return [
            RideRequest.from_document(d)
            for d in self._docs.values()
            if d["status"] == RideStatus(status).value
        ]

    async def query_by_participant(
        self, role: ParticipantRole, participant_id: str
    ) -> list[RideRequest]:
        key = ParticipantRole(role).value
        return [
            RideRequest.from_document(d)
            for d in self._docs.values()
            if d.get(key) and d[key]["id"] == participant_id
        ]

    async def update(
        self,
        ride_id: str,
        fields: dict[str, Any],
        expected_status: Optional[RideStatus] = None,
    ) -> RideRequest:
        self._check_update(ride_id, fields, expected_status)
        async with self._lock:
            doc = self._docs.get(ride_id)
            if doc is None:
                raise NotFoundError(ride_id)
            ride = RideRequest.from_document(doc)
            if expected_status is not None and ride.status != expected_status:
                raise InvalidTransitionError(
                    ride_id, ride.status.value, describe_update(fields)
                )
            for name in TIMESTAMP_FIELDS:
                if name in fields and getattr(ride, name) is not None:
                    raise InvalidTransitionError(
                        ride_id, ride.status.value, describe_update(fields)
                    )
            for name, value in fields.items():
                setattr(ride, name, value)
            self._docs[ride_id] = ride.to_document()
            return RideRequest.from_document(self._docs[ride_id])


def describe_update(fields: dict[str, Any]) -> str:
    if "status" in fields:
        return f"move to {RideStatus(fields['status']).value}"
    return "update"
