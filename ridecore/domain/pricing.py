"""
Pricing Engine  (Strategy Pattern)
==================================

Formula
-------
Price = Base_Price(service) + Distance x Rate_Per_KM(service)

rounded half-up to 2 decimal places.  Bike delivery additionally refuses
distances above ``bike_max_distance``.

Configuration is read from a provider on every call, so an admin change
takes effect for the next ride without touching rides already priced.

Complexity: O(1) per price calculation.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, replace
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional, Protocol

from .enums import ServiceType
from .errors import ConfigurationError, ValidationError

CENTS = Decimal("0.01")

# Longest distance a ride may be priced for
MAX_DISTANCE_KM = Decimal("10000")
# Largest amount the ride record can hold (NUMERIC(10, 2))
MAX_PRICE = Decimal("99999999.99")


@dataclass(frozen=True)
class PricingSettings:
    base_price: Decimal = Decimal("5.00")
    price_per_km: Decimal = Decimal("2.00")
    bike_base_price: Decimal = Decimal("3.00")
    bike_price_per_km: Decimal = Decimal("1.50")
    bike_max_distance: Decimal = Decimal("5")
    delivery_moto_base_price: Decimal = Decimal("5.00")
    delivery_moto_price_per_km: Decimal = Decimal("2.00")

    def to_dict(self) -> dict[str, Decimal]:
        return asdict(self)


class PricingSettingsProvider(Protocol):
    def get_settings(self) -> PricingSettings: ...


class StaticPricingProvider:
    """Holds the current configuration in memory; admin may replace it."""

    def __init__(self, settings: Optional[PricingSettings] = None):
        self._settings = settings or PricingSettings()

    def get_settings(self) -> PricingSettings:
        return self._settings

    def update(self, **changes) -> PricingSettings:
        self._settings = replace(
            self._settings,
            **{k: Decimal(str(v)) for k, v in changes.items()},
        )
        return self._settings


# ── Strategy hierarchy ────────────────────────────────────────────────


class PricingStrategy(ABC):
    @abstractmethod
    def calculate(self, distance_km: Decimal) -> Decimal: ...


class DistanceRatePricing(PricingStrategy):
    def __init__(self, base_price: Decimal, price_per_km: Decimal):
        self.base_price = base_price
        self.price_per_km = price_per_km

    def calculate(self, distance_km: Decimal) -> Decimal:
        raw = self.base_price + distance_km * self.price_per_km
        try:
            price = raw.quantize(CENTS, rounding=ROUND_HALF_UP)
        except InvalidOperation:
            raise ValidationError(
                f"Price for {distance_km} km is out of range"
            ) from None
        if price > MAX_PRICE:
            raise ValidationError(
                f"Price {price} exceeds the maximum of {MAX_PRICE}"
            )
        return price


class CappedDistancePricing(DistanceRatePricing):
    """Distance pricing for vehicles with a maximum range."""

    def __init__(
        self, base_price: Decimal, price_per_km: Decimal, max_distance: Decimal
    ):
        super().__init__(base_price, price_per_km)
        self.max_distance = max_distance

    def calculate(self, distance_km: Decimal) -> Decimal:
        if distance_km > self.max_distance:
            raise ValidationError(
                f"Distance {distance_km} km exceeds the maximum of "
                f"{self.max_distance} km for this service"
            )
        return super().calculate(distance_km)


def strategy_for(
    service_type: ServiceType, settings: PricingSettings
) -> PricingStrategy:
    if service_type == ServiceType.MOTO_TAXI:
        return DistanceRatePricing(settings.base_price, settings.price_per_km)
    if service_type == ServiceType.DELIVERY_MOTO:
        return DistanceRatePricing(
            settings.delivery_moto_base_price,
            settings.delivery_moto_price_per_km,
        )
    if service_type == ServiceType.DELIVERY_BIKE:
        return CappedDistancePricing(
            settings.bike_base_price,
            settings.bike_price_per_km,
            settings.bike_max_distance,
        )
    raise ConfigurationError(f"No pricing configured for {service_type!r}")


def _validate_distance(distance_km) -> Decimal:
    if isinstance(distance_km, bool) or not isinstance(
        distance_km, (int, float, Decimal)
    ):
        raise ValidationError(f"Distance must be a number, got {distance_km!r}")
    if isinstance(distance_km, float) and not math.isfinite(distance_km):
        raise ValidationError("Distance must be finite")
    value = Decimal(str(distance_km))
    if not value.is_finite():
        raise ValidationError("Distance must be finite")
    if value < 0:
        raise ValidationError("Distance must not be negative")
    if value > MAX_DISTANCE_KM:
        raise ValidationError(
            f"Distance must not exceed {MAX_DISTANCE_KM} km, got {value}"
        )
    return value


# ── Calculator facade ─────────────────────────────────────────────────


class PricingCalculator:
    """High-level API used by the lifecycle engine and the admin routes."""

    def __init__(self, provider: PricingSettingsProvider):
        self.provider = provider

    def price(self, service_type, distance_km) -> Decimal:
        try:
            service_type = ServiceType(service_type)
        except ValueError:
            raise ConfigurationError(
                f"Unknown service type {service_type!r}"
            ) from None
        distance = _validate_distance(distance_km)
        strategy = strategy_for(service_type, self.provider.get_settings())
        return strategy.calculate(distance)

    def quote(self, distance_km) -> dict[ServiceType, Optional[Decimal]]:
        """Price every service; ``None`` marks a service out of range."""
        distance = _validate_distance(distance_km)
        settings = self.provider.get_settings()
        result: dict[ServiceType, Optional[Decimal]] = {}
        for service_type in ServiceType:
            try:
                result[service_type] = strategy_for(
                    service_type, settings
                ).calculate(distance)
            except ConfigurationError:
                raise
            except ValidationError:
                result[service_type] = None
        return result
