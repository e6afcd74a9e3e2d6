"""Domain enumerations and state-transition rules."""

import enum


class RideStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# State machine: maps current status -> set of valid next statuses
RIDE_TRANSITIONS: dict[RideStatus, set[RideStatus]] = {
    RideStatus.PENDING: {RideStatus.ACCEPTED, RideStatus.CANCELLED},
    RideStatus.ACCEPTED: {RideStatus.IN_PROGRESS, RideStatus.CANCELLED},
    RideStatus.IN_PROGRESS: {RideStatus.COMPLETED, RideStatus.CANCELLED},
    RideStatus.COMPLETED: set(),
    RideStatus.CANCELLED: set(),
}

TERMINAL_STATUSES = frozenset({RideStatus.COMPLETED, RideStatus.CANCELLED})

# Location is only tracked while a driver is attached to a live ride
TRACKED_STATUSES = frozenset({RideStatus.ACCEPTED, RideStatus.IN_PROGRESS})


class ServiceType(str, enum.Enum):
    MOTO_TAXI = "MOTO_TAXI"
    DELIVERY_MOTO = "DELIVERY_MOTO"
    DELIVERY_BIKE = "DELIVERY_BIKE"


class PaymentMethod(str, enum.Enum):
    PIX = "pix"
    CASH = "cash"
    CORPORATE = "corporate"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PENDING_INVOICE = "pending_invoice"
    COMPLETED = "completed"


class DeliveryType(str, enum.Enum):
    SEND = "send"
    RECEIVE = "receive"


class CompanyStatus(str, enum.Enum):
    ACTIVE = "active"
    BLOCKED = "blocked"
    PENDING = "pending"


class ParticipantRole(str, enum.Enum):
    PASSENGER = "passenger"
    DRIVER = "driver"


class RideEvent(str, enum.Enum):
    """Outbound webhook event names."""

    REQUESTED = "ride_requested"
    ACCEPTED = "ride_accepted"
    COMPLETED = "ride_completed"
    CANCELLED = "ride_cancelled"
