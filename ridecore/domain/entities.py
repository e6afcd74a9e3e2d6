"""
Domain entities with business logic.

Patterns used
-------------
- **State Pattern** on ``RideRequest``: enforces valid lifecycle transitions
  (pending -> accepted -> in_progress -> completed, cancel from any
  non-terminal state).  Each transition method validates first, then
  mutates, then returns the changed fields so the store can apply them
  as a single compare-and-swap.
- Passenger / driver are embedded point-in-time snapshots, never live
  references: a later profile edit does not rewrite past rides.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from .enums import (
    RIDE_TRANSITIONS,
    TERMINAL_STATUSES,
    DeliveryType,
    PaymentMethod,
    PaymentStatus,
    RideStatus,
    ServiceType,
)
from .errors import InvalidTransitionError, ValidationError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Coords:
    lat: float
    lng: float

    def to_dict(self) -> dict[str, float]:
        return {"lat": self.lat, "lng": self.lng}

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["Coords"]:
        if data is None:
            return None
        return cls(lat=float(data["lat"]), lng=float(data["lng"]))


@dataclass(frozen=True)
class PassengerSnapshot:
    id: str
    name: str
    phone: str = ""
    rating: float = 5.0
    avatar: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "rating": self.rating,
            "avatar": self.avatar,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PassengerSnapshot":
        return cls(
            id=data["id"],
            name=data["name"],
            phone=data.get("phone", ""),
            rating=data.get("rating", 5.0),
            avatar=data.get("avatar", ""),
        )


@dataclass(frozen=True)
class DriverSnapshot:
    id: str
    name: str
    phone: str = ""
    rating: float = 5.0
    vehicle: str = ""
    plate: str = ""
    avatar: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "rating": self.rating,
            "vehicle": self.vehicle,
            "plate": self.plate,
            "avatar": self.avatar,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["DriverSnapshot"]:
        if data is None:
            return None
        return cls(
            id=data["id"],
            name=data["name"],
            phone=data.get("phone", ""),
            rating=data.get("rating", 5.0),
            vehicle=data.get("vehicle", ""),
            plate=data.get("plate", ""),
            avatar=data.get("avatar", ""),
        )


@dataclass(frozen=True)
class DeliveryDetails:
    type: DeliveryType
    contact_name: str
    contact_phone: str
    instructions: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "contact_name": self.contact_name,
            "contact_phone": self.contact_phone,
            "instructions": self.instructions,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["DeliveryDetails"]:
        if data is None:
            return None
        return cls(
            type=DeliveryType(data["type"]),
            contact_name=data["contact_name"],
            contact_phone=data["contact_phone"],
            instructions=data.get("instructions"),
        )


# ── Entity ────────────────────────────────────────────────────────────


TIMESTAMP_FIELDS = (
    "created_at",
    "accepted_at",
    "started_at",
    "completed_at",
    "cancelled_at",
)


@dataclass
class RideRequest:
    passenger: PassengerSnapshot
    origin: str
    destination: str
    service_type: ServiceType
    price: Decimal
    id: Optional[str] = None
    origin_coords: Optional[Coords] = None
    destination_coords: Optional[Coords] = None
    waypoints: list[Coords] = field(default_factory=list)
    route_polyline: Optional[str] = None
    distance: str = ""
    duration: str = ""
    payment_method: PaymentMethod = PaymentMethod.PIX
    payment_status: PaymentStatus = PaymentStatus.PENDING
    status: RideStatus = RideStatus.PENDING
    driver: Optional[DriverSnapshot] = None
    delivery_details: Optional[DeliveryDetails] = None
    security_code: Optional[str] = None
    company_id: Optional[str] = None
    created_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    # ── State machine ─────────────────────────────────────────────

    def transition_to(self, new_status: RideStatus, action: str) -> None:
        """Move to *new_status* if the transition is legal, else raise."""
        allowed = RIDE_TRANSITIONS.get(self.status, set())
        if new_status not in allowed:
            raise InvalidTransitionError(self.id, self.status.value, action)
        self.status = new_status

    def _stamp(self, at: datetime) -> datetime:
        # Never earlier than a timestamp already on the record
        previous = [
            getattr(self, name)
            for name in TIMESTAMP_FIELDS
            if getattr(self, name) is not None
        ]
        return max([at, *previous]) if previous else at

    def accept(self, driver: DriverSnapshot, at: datetime) -> dict[str, Any]:
        if driver is None:
            raise ValidationError("A driver snapshot is required to accept")
        self.transition_to(RideStatus.ACCEPTED, "accept")
        self.driver = driver
        self.accepted_at = self._stamp(at)
        return {
            "status": self.status,
            "driver": self.driver,
            "accepted_at": self.accepted_at,
        }

    def start(self, at: datetime) -> dict[str, Any]:
        self.transition_to(RideStatus.IN_PROGRESS, "start")
        self.started_at = self._stamp(at)
        return {"status": self.status, "started_at": self.started_at}

    def complete(self, at: datetime) -> dict[str, Any]:
        self.transition_to(RideStatus.COMPLETED, "complete")
        self.completed_at = self._stamp(at)
        return {"status": self.status, "completed_at": self.completed_at}

    def cancel(self, at: datetime) -> dict[str, Any]:
        self.transition_to(RideStatus.CANCELLED, "cancel")
        self.cancelled_at = self._stamp(at)
        return {"status": self.status, "cancelled_at": self.cancelled_at}

    def mark_paid(self) -> dict[str, Any]:
        """Record payment confirmation.  Returns {} when already paid."""
        if self.status == RideStatus.CANCELLED:
            raise InvalidTransitionError(
                self.id, self.status.value, "mark_paid"
            )
        if self.payment_status == PaymentStatus.COMPLETED:
            return {}
        self.payment_status = PaymentStatus.COMPLETED
        return {"payment_status": self.payment_status}

    # ── Document mapping ──────────────────────────────────────────

    def to_document(self) -> dict[str, Any]:
        """JSON-safe representation, used for persistence and webhooks."""
        return {
            "id": self.id,
            "passenger": self.passenger.to_dict(),
            "driver": self.driver.to_dict() if self.driver else None,
            "origin": self.origin,
            "destination": self.destination,
            "origin_coords": (
                self.origin_coords.to_dict() if self.origin_coords else None
            ),
            "destination_coords": (
                self.destination_coords.to_dict()
                if self.destination_coords
                else None
            ),
            "waypoints": [w.to_dict() for w in self.waypoints],
            "route_polyline": self.route_polyline,
            "service_type": self.service_type.value,
            "price": str(self.price),
            "distance": self.distance,
            "duration": self.duration,
            "payment_method": self.payment_method.value,
            "payment_status": self.payment_status.value,
            "status": self.status.value,
            "delivery_details": (
                self.delivery_details.to_dict()
                if self.delivery_details
                else None
            ),
            "security_code": self.security_code,
            "company_id": self.company_id,
            **{
                name: (
                    getattr(self, name).isoformat()
                    if getattr(self, name)
                    else None
                )
                for name in TIMESTAMP_FIELDS
            },
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "RideRequest":
        return cls(
            id=doc.get("id"),
            passenger=PassengerSnapshot.from_dict(doc["passenger"]),
            driver=DriverSnapshot.from_dict(doc.get("driver")),
            origin=doc["origin"],
            destination=doc["destination"],
            origin_coords=Coords.from_dict(doc.get("origin_coords")),
            destination_coords=Coords.from_dict(doc.get("destination_coords")),
            waypoints=[Coords.from_dict(w) for w in doc.get("waypoints") or []],
            route_polyline=doc.get("route_polyline"),
            service_type=ServiceType(doc["service_type"]),
            price=Decimal(doc["price"]),
            distance=doc.get("distance", ""),
            duration=doc.get("duration", ""),
            payment_method=PaymentMethod(doc["payment_method"]),
            payment_status=PaymentStatus(doc["payment_status"]),
            status=RideStatus(doc["status"]),
            delivery_details=DeliveryDetails.from_dict(
                doc.get("delivery_details")
            ),
            security_code=doc.get("security_code"),
            company_id=doc.get("company_id"),
            **{
                name: (
                    datetime.fromisoformat(doc[name]) if doc.get(name) else None
                )
                for name in TIMESTAMP_FIELDS
            },
        )
