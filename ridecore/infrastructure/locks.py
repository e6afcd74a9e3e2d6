"""
Per-ride serialisation of lifecycle transitions.

Only one transition may be in flight for a given ride.  Two providers:

* ``LocalRideLocks`` -- one ``asyncio.Lock`` per ride, for a single process.
* ``RedisRideLocks`` -- a ``DistributedLock`` per ride, for several API
  processes sharing one store.

Both are a first line of defence; the store's compare-and-swap on the
current status remains the arbiter.

The distributed lock uses SET NX EX for acquire and a Lua script for
atomic check-and-delete on release.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from ridecore.domain.errors import TransientIOError

logger = logging.getLogger(__name__)


class DistributedLock:
    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    def __init__(
        self,
        client: aioredis.Redis,
        key: str,
        ttl_seconds: int = 30,
        retry_interval: float = 0.05,
    ):
        self.redis = client
        self.key = f"lock:{key}"
        self.ttl = ttl_seconds
        self.retry_interval = retry_interval
        self.token = str(uuid.uuid4())

    async def acquire(self, blocking_timeout: float = 0) -> bool:
        """Try to acquire, retrying up to *blocking_timeout* seconds."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + blocking_timeout
        while True:
            if await self.redis.set(self.key, self.token, nx=True, ex=self.ttl):
                return True
            if loop.time() >= deadline:
                return False
            await asyncio.sleep(self.retry_interval)

    async def release(self) -> None:
        """Release only if we still own the lock (atomic via Lua)."""
        await self.redis.eval(self.RELEASE_SCRIPT, 1, self.key, self.token)

    # context-manager support
    async def __aenter__(self):
        acquired = await self.acquire()
        if not acquired:
            raise RuntimeError(f"Could not acquire lock: {self.key}")
        return self

    async def __aexit__(self, *args):
        await self.release()


class RideLocks(ABC):
    @abstractmethod
    def hold(self, ride_id: str):
        """Async context manager serialising work on *ride_id*."""


@dataclass
class _Slot:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class LocalRideLocks(RideLocks):
    """One ``asyncio.Lock`` per ride, kept only while someone holds or waits."""

    def __init__(self):
        self._slots: dict[str, _Slot] = {}

    @asynccontextmanager
    async def hold(self, ride_id: str) -> AsyncIterator[None]:
        slot = self._slots.setdefault(ride_id, _Slot())
        slot.users += 1
        try:
            async with slot.lock:
                yield
        finally:
            slot.users -= 1
            if slot.users == 0:
                del self._slots[ride_id]


class RedisRideLocks(RideLocks):
    def __init__(
        self,
        client: aioredis.Redis,
        ttl_seconds: int = 10,
        wait_seconds: float = 5.0,
    ):
        self.redis = client
        self.ttl = ttl_seconds
        self.wait = wait_seconds

    @asynccontextmanager
    async def hold(self, ride_id: str) -> AsyncIterator[None]:
        lock = DistributedLock(self.redis, f"ride:{ride_id}", self.ttl)
        try:
            acquired = await lock.acquire(blocking_timeout=self.wait)
        except RedisError as exc:
            raise TransientIOError(f"Lock service unavailable: {exc}") from exc
        if not acquired:
            raise TransientIOError(f"Timed out waiting for ride {ride_id}")
        try:
            yield
        finally:
            try:
                await lock.release()
            except RedisError:
                # The TTL frees the key if the release never lands
                logger.warning("Could not release lock for ride %s", ride_id)
