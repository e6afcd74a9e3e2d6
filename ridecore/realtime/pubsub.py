"""
Fan-out helpers shared by the realtime channels.

* ``deliver``         -- call one subscriber (sync or async), logging its
  failures so one broken listener never starves the others.
* ``redis_subscribe`` -- run a Redis pub/sub listener for one channel as a
  background task and hand back an async ``unsubscribe``.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from typing import Any, Awaitable, Callable, TypeVar, Union

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from ridecore.domain.errors import TransientIOError

logger = logging.getLogger(__name__)

T = TypeVar("T")

OnChange = Callable[[Any], Union[None, Awaitable[None]]]
Unsubscribe = Callable[[], Awaitable[None]]


async def deliver(callback: OnChange, value: Any, ride_id: str) -> None:
    try:
        result = callback(value)
        if inspect.isawaitable(result):
            await result
    except Exception:
        logger.exception("Subscriber failed for ride %s", ride_id)


async def redis_subscribe(
    client: aioredis.Redis,
    channel: str,
    decode: Callable[[dict], T],
    on_change: OnChange,
    ride_id: str,
) -> Unsubscribe:
    """Listen on *channel*, decoding each JSON message before delivery."""
    pubsub = client.pubsub()
    try:
        await pubsub.subscribe(channel)
    except RedisError as exc:
        await pubsub.aclose()
        raise TransientIOError(f"Could not subscribe to {channel}") from exc

    async def listen() -> None:
        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                try:
                    value = decode(json.loads(message["data"]))
                except (ValueError, KeyError, TypeError):
                    logger.warning("Malformed message on %s", channel)
                    continue
                await deliver(on_change, value, ride_id)
        except RedisError:
            logger.exception("Subscription to %s lost", channel)

    task = asyncio.create_task(listen())

    async def unsubscribe() -> None:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        try:
            await pubsub.unsubscribe(channel)
        except RedisError:
            logger.warning("Could not unsubscribe from %s", channel)
        finally:
            await pubsub.aclose()

    return unsubscribe
