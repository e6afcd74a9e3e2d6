"""
Ride-record change feed.

Every committed lifecycle transition publishes the new ride state, so the
passenger (or any other watcher) is pushed "accepted by driver X",
"in progress", "completed" instead of polling the ride.

Unlike the location channel there is nothing to open or close: a ride
that never changes again simply stops publishing.  Delivery is
best-effort; a watcher that misses an update reads the ride again.

Backends
--------
* ``InMemoryRideUpdates`` -- single process.
* ``RedisRideUpdates``    -- Redis pub/sub on ``ride:{id}:updates``.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from ridecore.domain.entities import RideRequest
from ridecore.realtime.pubsub import (
    OnChange,
    Unsubscribe,
    deliver,
    redis_subscribe,
)

logger = logging.getLogger(__name__)


class RideUpdateChannel(ABC):
    @abstractmethod
    async def publish(self, ride: RideRequest) -> None: ...

    @abstractmethod
    async def subscribe(self, ride_id: str, on_change: OnChange) -> Unsubscribe: ...


class InMemoryRideUpdates(RideUpdateChannel):
    def __init__(self):
        self._subscribers: dict[str, list[OnChange]] = {}

    async def publish(self, ride: RideRequest) -> None:
        document = ride.to_document()
        for callback in list(self._subscribers.get(ride.id, ())):
            # Each watcher gets its own copy
            await deliver(callback, RideRequest.from_document(document), ride.id)

    async def subscribe(self, ride_id: str, on_change: OnChange) -> Unsubscribe:
        self._subscribers.setdefault(ride_id, []).append(on_change)

        async def unsubscribe() -> None:
            callbacks = self._subscribers.get(ride_id)
            if callbacks and on_change in callbacks:
                callbacks.remove(on_change)
            if not callbacks:
                self._subscribers.pop(ride_id, None)

        return unsubscribe


class RedisRideUpdates(RideUpdateChannel):
    def __init__(self, client: aioredis.Redis):
        self.redis = client

    @staticmethod
    def channel(ride_id: str) -> str:
        return f"ride:{ride_id}:updates"

    async def publish(self, ride: RideRequest) -> None:
        try:
            await self.redis.publish(
                self.channel(ride.id), json.dumps(ride.to_document())
            )
        except RedisError:
            logger.exception("Failed to publish update for ride %s", ride.id)

    async def subscribe(self, ride_id: str, on_change: OnChange) -> Unsubscribe:
        return await redis_subscribe(
            self.redis,
            self.channel(ride_id),
            RideRequest.from_document,
            on_change,
            ride_id,
        )
