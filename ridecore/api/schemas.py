"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from ridecore.domain.billing import Company
from ridecore.domain.entities import (
    Coords,
    DeliveryDetails,
    DriverSnapshot,
    PassengerSnapshot,
    RideRequest,
)
from ridecore.domain.enums import (
    CompanyStatus,
    DeliveryType,
    PaymentMethod,
    PaymentStatus,
    RideStatus,
    ServiceType,
)


# ── Shared ────────────────────────────────────────────────────────────


class CoordsSchema(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)

    def to_domain(self) -> Coords:
        return Coords(lat=self.lat, lng=self.lng)


class PassengerSchema(BaseModel):
    id: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., min_length=1)
    phone: str = ""
    rating: float = Field(5.0, ge=0, le=5)
    avatar: str = ""

    def to_domain(self) -> PassengerSnapshot:
        return PassengerSnapshot(**self.model_dump())


class DriverSchema(BaseModel):
    id: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., min_length=1)
    phone: str = ""
    rating: float = Field(5.0, ge=0, le=5)
    vehicle: str = ""
    plate: str = ""
    avatar: str = ""

    def to_domain(self) -> DriverSnapshot:
        return DriverSnapshot(**self.model_dump())


class DeliveryDetailsSchema(BaseModel):
    type: DeliveryType
    contact_name: str = Field(..., min_length=1)
    contact_phone: str = Field(..., min_length=1)
    instructions: Optional[str] = None

    def to_domain(self) -> DeliveryDetails:
        return DeliveryDetails(**self.model_dump())


# ── Requests ──────────────────────────────────────────────────────────


class RideCreateRequest(BaseModel):
    passenger: PassengerSchema
    origin: str = Field(..., min_length=1, max_length=500)
    destination: str = Field(..., min_length=1, max_length=500)
    origin_coords: Optional[CoordsSchema] = None
    destination_coords: Optional[CoordsSchema] = None
    waypoints: list[CoordsSchema] = []
    route_polyline: Optional[str] = None
    service_type: ServiceType
    distance_km: float = Field(..., ge=0, le=10_000, allow_inf_nan=False)
    distance: Optional[str] = Field(None, max_length=32)
    duration: str = Field("", max_length=32)
    payment_method: PaymentMethod = PaymentMethod.PIX
    delivery_details: Optional[DeliveryDetailsSchema] = None
    security_mode: bool = Field(
        False, description="Generate a 4-digit code for handoff verification."
    )
    company_id: Optional[str] = Field(
        None, description="Required when payment_method is 'corporate'."
    )


class PricingSettingsSchema(BaseModel):
    base_price: float = Field(..., ge=0)
    price_per_km: float = Field(..., ge=0)
    bike_base_price: float = Field(..., ge=0)
    bike_price_per_km: float = Field(..., ge=0)
    bike_max_distance: float = Field(..., ge=0)
    delivery_moto_base_price: float = Field(..., ge=0)
    delivery_moto_price_per_km: float = Field(..., ge=0)


class PricingSettingsUpdate(BaseModel):
    base_price: Optional[float] = Field(None, ge=0)
    price_per_km: Optional[float] = Field(None, ge=0)
    bike_base_price: Optional[float] = Field(None, ge=0)
    bike_price_per_km: Optional[float] = Field(None, ge=0)
    bike_max_distance: Optional[float] = Field(None, ge=0)
    delivery_moto_base_price: Optional[float] = Field(None, ge=0)
    delivery_moto_price_per_km: Optional[float] = Field(None, ge=0)


class CompanyUpsert(BaseModel):
    name: str = ""
    credit_limit: float = Field(..., ge=0)
    used_credit: float = Field(0, ge=0)
    status: CompanyStatus = CompanyStatus.ACTIVE

    def to_domain(self, company_id: str) -> Company:
        return Company(
            id=company_id,
            name=self.name,
            credit_limit=Decimal(str(self.credit_limit)),
            used_credit=Decimal(str(self.used_credit)),
            status=self.status,
        )


# ── Responses ─────────────────────────────────────────────────────────


class RideResponse(BaseModel):
    id: str
    passenger: PassengerSchema
    driver: Optional[DriverSchema] = None
    origin: str
    destination: str
    origin_coords: Optional[CoordsSchema] = None
    destination_coords: Optional[CoordsSchema] = None
    waypoints: list[CoordsSchema] = []
    route_polyline: Optional[str] = None
    service_type: ServiceType
    # Serialised as a string so the cents survive JSON
    price: Decimal
    distance: str
    duration: str
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    status: RideStatus
    delivery_details: Optional[DeliveryDetailsSchema] = None
    security_code: Optional[str] = None
    company_id: Optional[str] = None
    created_at: datetime
    accepted_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, ride: RideRequest) -> "RideResponse":
        return cls.model_validate(ride.to_document())


class QuoteResponse(BaseModel):
    distance_km: float
    prices: dict[ServiceType, Optional[Decimal]]


class CompanyResponse(BaseModel):
    id: str
    name: str
    credit_limit: float
    used_credit: float
    available_credit: float
    status: CompanyStatus

    @classmethod
    def from_domain(cls, company: Company) -> "CompanyResponse":
        return cls(
            id=company.id,
            name=company.name,
            credit_limit=float(company.credit_limit),
            used_credit=float(company.used_credit),
            available_credit=float(company.available_credit),
            status=company.status,
        )


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    detail: str
