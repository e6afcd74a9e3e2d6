"""Tests for the live driver-location channel."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from ridecore.domain.entities import Coords
from ridecore.domain.errors import TransientIOError
from ridecore.realtime.location import (
    InMemoryLocationChannel,
    RedisLocationChannel,
)


class TestInMemoryLocationChannel:
    @pytest.mark.asyncio
    async def test_publish_reaches_every_subscriber(self):
        channel = InMemoryLocationChannel()
        await channel.open("r1")
        first, second = [], []
        await channel.subscribe("r1", first.append)
        await channel.subscribe("r1", second.append)

        await channel.publish("r1", Coords(1.0, 2.0))

        assert first == [Coords(1.0, 2.0)]
        assert second == [Coords(1.0, 2.0)]

    @pytest.mark.asyncio
    async def test_latest_value_wins(self):
        channel = InMemoryLocationChannel()
        await channel.open("r1")
        await channel.publish("r1", Coords(1.0, 1.0))
        await channel.publish("r1", Coords(2.0, 2.0))
        assert await channel.latest("r1") == Coords(2.0, 2.0)

    @pytest.mark.asyncio
    async def test_subscribe_replays_current_position(self):
        channel = InMemoryLocationChannel()
        await channel.open("r1")
        await channel.publish("r1", Coords(1.0, 1.0))

        seen = []
        await channel.subscribe("r1", seen.append)
        assert seen == [Coords(1.0, 1.0)]

    @pytest.mark.asyncio
    async def test_unsubscribe_stops_delivery(self):
        channel = InMemoryLocationChannel()
        await channel.open("r1")
        seen = []
        unsubscribe = await channel.subscribe("r1", seen.append)
        await unsubscribe()
        await channel.publish("r1", Coords(1.0, 1.0))
        assert seen == []

    @pytest.mark.asyncio
    async def test_publish_on_closed_channel_is_dropped(self):
        channel = InMemoryLocationChannel()
        seen = []
        await channel.subscribe("r1", seen.append)
        await channel.publish("r1", Coords(1.0, 1.0))
        assert seen == []
        assert await channel.latest("r1") is None

    @pytest.mark.asyncio
    async def test_close_discards_position(self):
        channel = InMemoryLocationChannel()
        await channel.open("r1")
        await channel.publish("r1", Coords(1.0, 1.0))
        await channel.close("r1")
        assert await channel.latest("r1") is None

    @pytest.mark.asyncio
    async def test_failing_subscriber_does_not_block_others(self):
        channel = InMemoryLocationChannel()
        await channel.open("r1")

        def broken(coords):
            raise ValueError("boom")

        seen = []
        await channel.subscribe("r1", broken)
        await channel.subscribe("r1", seen.append)
        await channel.publish("r1", Coords(1.0, 1.0))
        assert seen == [Coords(1.0, 1.0)]

    @pytest.mark.asyncio
    async def test_async_subscriber(self):
        channel = InMemoryLocationChannel()
        await channel.open("r1")
        seen = []

        async def on_change(coords):
            seen.append(coords)

        await channel.subscribe("r1", on_change)
        await channel.publish("r1", Coords(3.0, 4.0))
        assert seen == [Coords(3.0, 4.0)]


class TestRedisLocationChannel:
    @pytest.mark.asyncio
    async def test_open_marks_ride_as_tracked(self):
        mock_redis = AsyncMock()
        await RedisLocationChannel(mock_redis, ttl_seconds=60).open("r1")
        mock_redis.set.assert_awaited_once_with("ride:r1:tracking", "1", ex=60)

    @pytest.mark.asyncio
    async def test_publish_runs_script(self):
        mock_redis = AsyncMock()
        mock_redis.eval = AsyncMock(return_value=1)

        await RedisLocationChannel(mock_redis, ttl_seconds=60).publish(
            "r1", Coords(1.5, 2.5)
        )

        args = mock_redis.eval.await_args.args
        assert args[1:5] == (
            3,
            "ride:r1:tracking",
            "ride:r1:location",
            "ride:r1:location:channel",
        )
        assert json.loads(args[5]) == {"lat": 1.5, "lng": 2.5}
        assert args[6] == 60

    @pytest.mark.asyncio
    async def test_publish_failure_is_swallowed(self):
        mock_redis = AsyncMock()
        mock_redis.eval = AsyncMock(side_effect=RedisConnectionError("down"))
        await RedisLocationChannel(mock_redis).publish("r1", Coords(1.0, 1.0))

    @pytest.mark.asyncio
    async def test_close_deletes_keys(self):
        mock_redis = AsyncMock()
        await RedisLocationChannel(mock_redis).close("r1")
        mock_redis.delete.assert_awaited_once_with(
            "ride:r1:tracking", "ride:r1:location"
        )

    @pytest.mark.asyncio
    async def test_latest_decodes_stored_value(self):
        mock_redis = AsyncMock()
        mock_redis.get = AsyncMock(return_value='{"lat": 1.0, "lng": 2.0}')
        assert await RedisLocationChannel(mock_redis).latest("r1") == Coords(1.0, 2.0)

    @pytest.mark.asyncio
    async def test_subscribe_replays_and_unsubscribes(self):
        async def no_messages():
            return
            yield

        pubsub = MagicMock()
        pubsub.subscribe = AsyncMock()
        pubsub.unsubscribe = AsyncMock()
        pubsub.aclose = AsyncMock()
        pubsub.listen = no_messages

        mock_redis = MagicMock()
        mock_redis.pubsub = MagicMock(return_value=pubsub)
        mock_redis.get = AsyncMock(return_value='{"lat": 1.0, "lng": 2.0}')

        seen = []
        channel = RedisLocationChannel(mock_redis)
        unsubscribe = await channel.subscribe("r1", seen.append)
        await unsubscribe()

        assert seen == [Coords(1.0, 2.0)]
        pubsub.subscribe.assert_awaited_once_with("ride:r1:location:channel")
        pubsub.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_latest_outage_is_transient(self):
        mock_redis = AsyncMock()
        mock_redis.get = AsyncMock(side_effect=RedisConnectionError("down"))
        with pytest.raises(TransientIOError):
            await RedisLocationChannel(mock_redis).latest("r1")


def _redis_with_pubsub(listen, stored=None):
    pubsub = MagicMock()
    pubsub.subscribe = AsyncMock()
    pubsub.unsubscribe = AsyncMock()
    pubsub.aclose = AsyncMock()
    pubsub.listen = listen

    mock_redis = MagicMock()
    mock_redis.pubsub = MagicMock(return_value=pubsub)
    mock_redis.get = AsyncMock(return_value=stored)
    return mock_redis, pubsub


class TestRedisLocationSubscription:
    @pytest.mark.asyncio
    async def test_live_message_is_delivered(self):
        async def messages():
            yield {"type": "subscribe", "data": 1}
            yield {"type": "message", "data": "not json"}
            yield {"type": "message", "data": '{"lat": 3.0, "lng": 4.0}'}

        mock_redis, _ = _redis_with_pubsub(messages)
        seen = []
        unsubscribe = await RedisLocationChannel(mock_redis).subscribe(
            "r1", seen.append
        )
        for _ in range(5):
            await asyncio.sleep(0)
        await unsubscribe()

        assert seen == [Coords(3.0, 4.0)]

    @pytest.mark.asyncio
    async def test_lost_connection_is_logged_and_cleaned_up(self, caplog):
        async def dropped():
            raise RedisConnectionError("dropped")
            yield

        mock_redis, pubsub = _redis_with_pubsub(dropped)
        unsubscribe = await RedisLocationChannel(mock_redis).subscribe(
            "r1", lambda coords: None
        )
        await asyncio.sleep(0)

        await unsubscribe()

        assert "Subscription to ride:r1:location:channel lost" in caplog.text
        pubsub.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_unsubscribe_still_closes_connection(self):
        async def idle():
            await asyncio.Event().wait()
            yield

        mock_redis, pubsub = _redis_with_pubsub(idle)
        pubsub.unsubscribe = AsyncMock(side_effect=RedisConnectionError("down"))
        unsubscribe = await RedisLocationChannel(mock_redis).subscribe(
            "r1", lambda coords: None
        )

        await unsubscribe()

        pubsub.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_subscribe_outage_is_transient(self):
        async def idle():
            return
            yield

        mock_redis, pubsub = _redis_with_pubsub(idle)
        pubsub.subscribe = AsyncMock(side_effect=RedisConnectionError("down"))

        with pytest.raises(TransientIOError):
            await RedisLocationChannel(mock_redis).subscribe(
                "r1", lambda coords: None
            )
        pubsub.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_replay_outage_keeps_live_feed(self):
        async def idle():
            await asyncio.Event().wait()
            yield

        mock_redis, pubsub = _redis_with_pubsub(idle)
        mock_redis.get = AsyncMock(side_effect=RedisConnectionError("down"))

        seen = []
        unsubscribe = await RedisLocationChannel(mock_redis).subscribe(
            "r1", seen.append
        )
        await unsubscribe()

        assert seen == []
        pubsub.aclose.assert_awaited_once()
