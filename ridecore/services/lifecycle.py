"""
Ride Lifecycle Engine
=====================

The only writer of ride records.  Every transition runs as:

1. take the per-ride lock,
2. load the ride and let the entity validate + apply the transition,
3. write the changed fields with a compare-and-swap on the status read in
   step 2,
4. still under the lock: open / close the location channel and publish
   the new state on the ride change feed, so channel state and feed
   order follow commit order,
5. after the lock: fire the webhook (best-effort).

A failure in steps 1-3 leaves the stored ride untouched and surfaces to
the caller; failures in steps 4-5 are only logged.

Transitions
-----------
    create                      -> pending      notify ride_requested
    pending     --accept-->        accepted     open location, notify
    accepted    --start-->         in_progress
    in_progress --complete-->      completed    close location, notify
    non-terminal --cancel-->       cancelled    close location, notify
    not cancelled --mark_paid-->   (unchanged)  payment_status=completed
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime
from typing import Any, Awaitable, Callable, Iterable, Optional

from ridecore.domain.billing import Company, can_book
from ridecore.domain.entities import (
    Coords,
    DeliveryDetails,
    DriverSnapshot,
    PassengerSnapshot,
    RideRequest,
    utcnow,
)
from ridecore.domain.enums import (
    TERMINAL_STATUSES,
    ParticipantRole,
    PaymentMethod,
    PaymentStatus,
    RideEvent,
    ServiceType,
)
from ridecore.domain.errors import (
    CreditLimitExceededError,
    InvalidTransitionError,
    NotFoundError,
    RideCoreError,
    ValidationError,
)
from ridecore.domain.pricing import PricingCalculator
from ridecore.infrastructure.locks import LocalRideLocks, RideLocks
from ridecore.infrastructure.store import RideStore
from ridecore.notifications.webhooks import Notifier
from ridecore.realtime.location import LocationChannel
from ridecore.realtime.pubsub import OnChange, Unsubscribe, deliver
from ridecore.realtime.ride_updates import InMemoryRideUpdates, RideUpdateChannel

logger = logging.getLogger(__name__)


def generate_security_code() -> str:
    """Four-digit code shown to the passenger and relayed at handoff."""
    return str(1000 + secrets.randbelow(9000))


class RideLifecycleEngine:
    def __init__(
        self,
        store: RideStore,
        pricing: PricingCalculator,
        notifier: Notifier,
        locations: LocationChannel,
        locks: Optional[RideLocks] = None,
        updates: Optional[RideUpdateChannel] = None,
        clock: Callable[[], datetime] = utcnow,
        history_limit: int = 50,
    ):
        self.store = store
        self.pricing = pricing
        self.notifier = notifier
        self.locations = locations
        self.locks = locks or LocalRideLocks()
        self.updates = updates or InMemoryRideUpdates()
        self.clock = clock
        self.history_limit = history_limit

    # ── Creation ──────────────────────────────────────────────────

    async def create_ride(
        self,
        *,
        passenger: PassengerSnapshot,
        origin: str,
        destination: str,
        service_type: ServiceType,
        distance_km: float,
        origin_coords: Optional[Coords] = None,
        destination_coords: Optional[Coords] = None,
        waypoints: Iterable[Coords] = (),
        route_polyline: Optional[str] = None,
        distance: Optional[str] = None,
        duration: str = "",
        payment_method: PaymentMethod = PaymentMethod.PIX,
        delivery_details: Optional[DeliveryDetails] = None,
        security_mode: bool = False,
        company: Optional[Company] = None,
    ) -> RideRequest:
        if passenger is None:
            raise ValidationError("A passenger is required")
        if not origin or not origin.strip():
            raise ValidationError("An origin is required")
        if not destination or not destination.strip():
            raise ValidationError("A destination is required")
        try:
            payment_method = PaymentMethod(payment_method)
        except ValueError:
            raise ValidationError(
                f"Unknown payment method {payment_method!r}"
            ) from None

        price = self.pricing.price(service_type, distance_km)

        company_id = None
        payment_status = PaymentStatus.PENDING
        if payment_method == PaymentMethod.CORPORATE:
            if company is None:
                raise ValidationError("Corporate rides require a company")
            if not can_book(company, price):
                raise CreditLimitExceededError(company.id, price)
            company_id = company.id
            payment_status = PaymentStatus.PENDING_INVOICE

        ride = RideRequest(
            passenger=passenger,
            origin=origin,
            destination=destination,
            service_type=ServiceType(service_type),
            price=price,
            origin_coords=origin_coords,
            destination_coords=destination_coords,
            waypoints=list(waypoints),
            route_polyline=route_polyline,
            distance=distance if distance is not None else f"{distance_km:.1f} km",
            duration=duration,
            payment_method=payment_method,
            payment_status=payment_status,
            delivery_details=delivery_details,
            security_code=generate_security_code() if security_mode else None,
            company_id=company_id,
            created_at=self.clock(),
        )
        ride_id = await self.store.create(ride)
        logger.info(
            "Ride %s requested (%s, %s)", ride_id, ride.service_type.value, price
        )
        self._notify(RideEvent.REQUESTED, ride)
        return ride

    # ── Transitions ───────────────────────────────────────────────

    async def accept(self, ride_id: str, driver: DriverSnapshot) -> RideRequest:
        ride = await self._transition(
            ride_id,
            lambda r, now: r.accept(driver, now),
            after_commit=self._open_location,
        )
        logger.info("Ride %s accepted by driver %s", ride_id, driver.id)
        self._notify(RideEvent.ACCEPTED, ride)
        return ride

    async def start(self, ride_id: str) -> RideRequest:
        ride = await self._transition(ride_id, lambda r, now: r.start(now))
        logger.info("Ride %s started", ride_id)
        return ride

    async def complete(self, ride_id: str) -> RideRequest:
        ride = await self._transition(
            ride_id,
            lambda r, now: r.complete(now),
            after_commit=self._close_location,
        )
        logger.info("Ride %s completed", ride_id)
        self._notify(RideEvent.COMPLETED, ride)
        return ride

    async def cancel(self, ride_id: str) -> RideRequest:
        ride = await self._transition(
            ride_id,
            lambda r, now: r.cancel(now),
            after_commit=self._close_location,
        )
        logger.info("Ride %s cancelled", ride_id)
        self._notify(RideEvent.CANCELLED, ride)
        return ride

    async def mark_paid(self, ride_id: str) -> RideRequest:
        """Payment confirmation from the payment collaborator; idempotent."""
        ride = await self._transition(ride_id, lambda r, now: r.mark_paid())
        logger.info("Ride %s marked as paid", ride_id)
        return ride

    # ── Queries ───────────────────────────────────────────────────

    async def get_ride(self, ride_id: str) -> RideRequest:
        ride = await self.store.get_by_id(ride_id)
        if ride is None:
            raise NotFoundError(ride_id)
        return ride

    async def history(
        self, role: ParticipantRole, participant_id: str
    ) -> list[RideRequest]:
        """Finished rides of a passenger or driver, most recent first."""
        rides = await self.store.query_by_participant(role, participant_id)
        finished = [r for r in rides if r.status in TERMINAL_STATUSES]
        finished.sort(key=lambda r: r.created_at, reverse=True)
        return finished[: self.history_limit]

    # ── Live location ─────────────────────────────────────────────

    async def publish_location(self, ride_id: str, coords: Coords) -> None:
        await self.locations.publish(ride_id, coords)

    async def subscribe_location(
        self, ride_id: str, on_change: OnChange
    ) -> Unsubscribe:
        ride = await self.get_ride(ride_id)
        if ride.is_terminal:
            raise InvalidTransitionError(
                ride_id, ride.status.value, "track location of"
            )
        return await self.locations.subscribe(ride_id, on_change)

    # ── Ride change feed ──────────────────────────────────────────

    async def subscribe_ride(
        self, ride_id: str, on_change: OnChange
    ) -> Unsubscribe:
        """Push every committed change of the ride, starting with its
        current state."""
        # Under the lock no transition can slip between replay and feed
        async with self.locks.hold(ride_id):
            unsubscribe = await self.updates.subscribe(ride_id, on_change)
            try:
                ride = await self.get_ride(ride_id)
            except RideCoreError:
                await unsubscribe()
                raise
            await deliver(on_change, ride, ride_id)
        return unsubscribe

    # ── Internals ─────────────────────────────────────────────────

    async def _transition(
        self,
        ride_id: str,
        apply: Callable[[RideRequest, datetime], dict[str, Any]],
        after_commit: Optional[Callable[[RideRequest], Awaitable[None]]] = None,
    ) -> RideRequest:
        async with self.locks.hold(ride_id):
            ride = await self.get_ride(ride_id)
            expected = ride.status
            changes = apply(ride, self.clock())
            if not changes:
                return ride
            ride = await self.store.update(
                ride_id, changes, expected_status=expected
            )
            if after_commit is not None:
                await after_commit(ride)
            await self.updates.publish(ride)
            return ride

    async def _open_location(self, ride: RideRequest) -> None:
        await self.locations.open(ride.id)

    async def _close_location(self, ride: RideRequest) -> None:
        await self.locations.close(ride.id)

    def _notify(self, event: RideEvent, ride: RideRequest) -> None:
        try:
            self.notifier.trigger(event.value, ride.to_document())
        except Exception:
            logger.exception("Could not schedule %s for ride %s", event.value, ride.id)
