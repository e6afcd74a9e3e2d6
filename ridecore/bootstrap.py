"""
Wiring of backends from configuration.

``build_container`` is called from the application lifespan (and from
``seed.py``); ``Container.aclose`` releases every resource it opened.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from ridecore.config import Settings
from ridecore.domain.pricing import (
    PricingCalculator,
    PricingSettings,
    StaticPricingProvider,
)
from ridecore.infrastructure.companies import (
    CompanyDirectory,
    InMemoryCompanyDirectory,
)
from ridecore.infrastructure.database import (
    build_engine,
    build_session_factory,
    create_schema,
)
from ridecore.infrastructure.locks import LocalRideLocks, RedisRideLocks
from ridecore.infrastructure.redis_client import create_redis
from ridecore.infrastructure.sql_store import SqlRideStore
from ridecore.infrastructure.store import InMemoryRideStore
from ridecore.notifications.webhooks import WebhookNotifier
from ridecore.realtime.location import (
    InMemoryLocationChannel,
    RedisLocationChannel,
)
from ridecore.realtime.ride_updates import (
    InMemoryRideUpdates,
    RedisRideUpdates,
)
from ridecore.services.dispatch import DispatchService
from ridecore.services.lifecycle import RideLifecycleEngine

logger = logging.getLogger(__name__)


@dataclass
class Container:
    engine: RideLifecycleEngine
    dispatch: DispatchService
    pricing: StaticPricingProvider
    companies: CompanyDirectory
    _closers: list[Callable[[], Awaitable[None]]] = field(default_factory=list)

    async def aclose(self) -> None:
        for closer in reversed(self._closers):
            try:
                await closer()
            except Exception:
                logger.exception("Error while releasing resources")


def pricing_from_settings(settings: Settings) -> PricingSettings:
    return PricingSettings(
        base_price=settings.base_price,
        price_per_km=settings.price_per_km,
        bike_base_price=settings.bike_base_price,
        bike_price_per_km=settings.bike_price_per_km,
        bike_max_distance=settings.bike_max_distance,
        delivery_moto_base_price=settings.delivery_moto_base_price,
        delivery_moto_price_per_km=settings.delivery_moto_price_per_km,
    )


async def build_container(
    settings: Settings, companies: Optional[CompanyDirectory] = None
) -> Container:
    closers: list[Callable[[], Awaitable[None]]] = []

    if settings.store_backend == "sql":
        db_engine = build_engine(settings.database_url)
        closers.append(db_engine.dispose)
        if settings.database_url.startswith("sqlite"):
            await create_schema(db_engine)
        store = SqlRideStore(build_session_factory(db_engine))
    else:
        store = InMemoryRideStore()

    redis = None
    if "redis" in (settings.realtime_backend, settings.lock_backend):
        redis = create_redis(settings.redis_url)
        closers.append(redis.aclose)

    if settings.realtime_backend == "redis":
        locations = RedisLocationChannel(redis)
        updates = RedisRideUpdates(redis)
    else:
        locations = InMemoryLocationChannel()
        updates = InMemoryRideUpdates()

    if settings.lock_backend == "redis":
        locks = RedisRideLocks(
            redis, settings.lock_ttl_seconds, settings.lock_wait_seconds
        )
    else:
        locks = LocalRideLocks()

    notifier = WebhookNotifier(
        settings.webhook_url,
        enabled=settings.webhook_enabled,
        events=settings.webhook_events,
        timeout=settings.webhook_timeout_seconds,
    )
    closers.append(notifier.aclose)

    pricing = StaticPricingProvider(pricing_from_settings(settings))
    engine = RideLifecycleEngine(
        store=store,
        pricing=PricingCalculator(pricing),
        notifier=notifier,
        locations=locations,
        locks=locks,
        updates=updates,
        history_limit=settings.history_limit,
    )
    logger.info(
        "Ride core ready (store=%s, realtime=%s, locks=%s)",
        settings.store_backend,
        settings.realtime_backend,
        settings.lock_backend,
    )
    return Container(
        engine=engine,
        dispatch=DispatchService(store, settings.dispatch_max_results),
        pricing=pricing,
        companies=companies or InMemoryCompanyDirectory(),
        _closers=closers,
    )
