"""
Ephemeral driver-location channel.

Live positions are high-frequency and disposable, so they never touch the
durable ride record.  A ride's channel is *opened* when a driver accepts
and *closed* (latest position discarded) when the ride ends; publishes on
a closed ride are dropped.

Semantics
---------
* ``publish`` is fire-and-forget: failures are logged, never raised.
* ``subscribe`` pushes the latest value to each subscriber independently,
  replays the current position on subscribe, and returns an async
  ``unsubscribe`` callable.
* No history and no ordering guarantee beyond "latest write wins".

Backends
--------
* ``InMemoryLocationChannel`` -- single process.
* ``RedisLocationChannel``    -- latest value in a key, fan-out via
  Redis pub/sub.  Check-open / set / publish run as one Lua script.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from ridecore.domain.entities import Coords
from ridecore.domain.errors import TransientIOError
from ridecore.realtime.pubsub import (
    OnChange,
    Unsubscribe,
    deliver,
    redis_subscribe,
)

logger = logging.getLogger(__name__)


class LocationChannel(ABC):
    @abstractmethod
    async def open(self, ride_id: str) -> None: ...

    @abstractmethod
    async def close(self, ride_id: str) -> None: ...

    @abstractmethod
    async def publish(self, ride_id: str, coords: Coords) -> None: ...

    @abstractmethod
    async def subscribe(self, ride_id: str, on_change: OnChange) -> Unsubscribe: ...

    @abstractmethod
    async def latest(self, ride_id: str) -> Optional[Coords]: ...

    async def aclose(self) -> None:
        return None


class InMemoryLocationChannel(LocationChannel):
    def __init__(self):
        self._open: set[str] = set()
        self._latest: dict[str, Coords] = {}
        self._subscribers: dict[str, list[OnChange]] = {}

    async def open(self, ride_id: str) -> None:
        self._open.add(ride_id)

    async def close(self, ride_id: str) -> None:
        self._open.discard(ride_id)
        self._latest.pop(ride_id, None)
        self._subscribers.pop(ride_id, None)

    async def publish(self, ride_id: str, coords: Coords) -> None:
        if ride_id not in self._open:
            logger.debug("Dropping location for untracked ride %s", ride_id)
            return
        self._latest[ride_id] = coords
        for callback in list(self._subscribers.get(ride_id, ())):
            await deliver(callback, coords, ride_id)

    async def subscribe(self, ride_id: str, on_change: OnChange) -> Unsubscribe:
        self._subscribers.setdefault(ride_id, []).append(on_change)
        current = self._latest.get(ride_id)
        if current is not None:
            await deliver(on_change, current, ride_id)

        async def unsubscribe() -> None:
            callbacks = self._subscribers.get(ride_id)
            if callbacks and on_change in callbacks:
                callbacks.remove(on_change)
            if not callbacks:
                self._subscribers.pop(ride_id, None)

        return unsubscribe

    async def latest(self, ride_id: str) -> Optional[Coords]:
        return self._latest.get(ride_id)


class RedisLocationChannel(LocationChannel):
    PUBLISH_SCRIPT = """
    if redis.call("exists", KEYS[1]) == 0 then
        return 0
    end
    redis.call("set", KEYS[2], ARGV[1], "EX", ARGV[2])
    redis.call("publish", KEYS[3], ARGV[1])
    return 1
    """

    def __init__(self, client: aioredis.Redis, ttl_seconds: int = 6 * 3600):
        self.redis = client
        self.ttl = ttl_seconds

    @staticmethod
    def _keys(ride_id: str) -> tuple[str, str, str]:
        return (
            f"ride:{ride_id}:tracking",
            f"ride:{ride_id}:location",
            f"ride:{ride_id}:location:channel",
        )

    async def open(self, ride_id: str) -> None:
        tracking, _, _ = self._keys(ride_id)
        try:
            await self.redis.set(tracking, "1", ex=self.ttl)
        except RedisError:
            logger.exception("Failed to open location channel for %s", ride_id)

    async def close(self, ride_id: str) -> None:
        tracking, location, _ = self._keys(ride_id)
        try:
            await self.redis.delete(tracking, location)
        except RedisError:
            logger.exception("Failed to close location channel for %s", ride_id)

    async def publish(self, ride_id: str, coords: Coords) -> None:
        payload = json.dumps(coords.to_dict())
        try:
            published = await self.redis.eval(
                self.PUBLISH_SCRIPT, 3, *self._keys(ride_id), payload, self.ttl
            )
        except RedisError:
            logger.exception("Failed to publish location for ride %s", ride_id)
            return
        if not published:
            logger.debug("Dropping location for untracked ride %s", ride_id)

    async def latest(self, ride_id: str) -> Optional[Coords]:
        _, location, _ = self._keys(ride_id)
        try:
            raw = await self.redis.get(location)
        except RedisError as exc:
            raise TransientIOError(f"Could not read location of {ride_id}") from exc
        return Coords.from_dict(json.loads(raw)) if raw else None

    async def subscribe(self, ride_id: str, on_change: OnChange) -> Unsubscribe:
        _, _, channel = self._keys(ride_id)
        unsubscribe = await redis_subscribe(
            self.redis, channel, Coords.from_dict, on_change, ride_id
        )

        try:
            current = await self.latest(ride_id)
        except TransientIOError:
            # Live updates still flow; only the replay is lost
            logger.warning("Could not replay location for ride %s", ride_id)
            current = None
        if current is not None:
            await deliver(on_change, current, ride_id)

        return unsubscribe
