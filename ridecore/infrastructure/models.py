"""
SQLAlchemy ORM models.

Tables
------
* ``rides`` -- one row per ride request.  Passenger / driver snapshots,
  delivery details and waypoints are stored as JSON documents so the
  record keeps the embedded, point-in-time shape of the ride.

Indexes
-------
* **B-Tree** on ``status`` (dispatch polling), ``passenger_id`` /
  ``driver_id`` (history) and ``company_id`` (corporate billing).
"""

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Enum,
    Float,
    Index,
    Numeric,
    String,
    Text,
)

from .database import Base
from ridecore.domain.enums import (
    PaymentMethod,
    PaymentStatus,
    RideStatus,
    ServiceType,
)


def _values(enum_cls):
    return [member.value for member in enum_cls]


def _enum(enum_cls):
    return Enum(
        enum_cls,
        values_callable=_values,
        native_enum=False,
        create_constraint=True,
        length=20,
        validate_strings=True,
    )


class RideModel(Base):
    __tablename__ = "rides"

    id = Column(String(36), primary_key=True)

    passenger = Column(JSON, nullable=False)
    passenger_id = Column(String(64), nullable=False)
    driver = Column(JSON, nullable=True)
    driver_id = Column(String(64), nullable=True)

    origin = Column(String(500), nullable=False)
    origin_lat = Column(Float, nullable=True)
    origin_lng = Column(Float, nullable=True)
    destination = Column(String(500), nullable=False)
    destination_lat = Column(Float, nullable=True)
    destination_lng = Column(Float, nullable=True)
    waypoints = Column(JSON, nullable=False, default=list)
    route_polyline = Column(Text, nullable=True)

    service_type = Column(_enum(ServiceType), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    distance = Column(String(32), nullable=False, default="")
    duration = Column(String(32), nullable=False, default="")
    payment_method = Column(_enum(PaymentMethod), nullable=False)
    payment_status = Column(_enum(PaymentStatus), nullable=False)
    status = Column(_enum(RideStatus), default=RideStatus.PENDING, nullable=False)

    delivery_details = Column(JSON, nullable=True)
    security_code = Column(String(4), nullable=True)
    company_id = Column(String(64), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False)
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_rides_status", "status"),
        Index("idx_rides_passenger", "passenger_id"),
        Index("idx_rides_driver", "driver_id"),
        Index("idx_rides_company", "company_id"),
    )
