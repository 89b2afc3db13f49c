"""
Unit tests for the real-time event streams.

RedisEventStream is tested against a mocked redis.asyncio client.
"""

import json
from datetime import UTC, datetime
from unittest.mock import AsyncMock, patch

import pytest

from shopsource.bus.stream import (
    InMemoryEventStream,
    RedisEventStream,
    RedisStreamConfig,
    serialize_stream_fields,
)
from shopsource.events.order import OrderConfirmed
from shopsource.exceptions import EventBusError


def confirmed(aggregate_id: str = "order-1") -> OrderConfirmed:
    return OrderConfirmed(aggregate_id=aggregate_id, confirmed_at=datetime.now(UTC), confirmed_by="admin")


@pytest.fixture
def mock_redis() -> AsyncMock:
    client = AsyncMock()
    client.xadd.return_value = "1700000000000-0"
    return client


@pytest.fixture
def redis_stream(mock_redis: AsyncMock) -> RedisEventStream:
    config = RedisStreamConfig(stream_name="shop-events", max_length=500)
    return RedisEventStream(config, client=mock_redis, enable_tracing=False)


class TestInMemoryEventStream:
    """Tests for InMemoryEventStream."""

    @pytest.mark.asyncio
    async def test_ids_increase(self) -> None:
        stream = InMemoryEventStream()
        first = await stream.append(confirmed())
        second = await stream.append(confirmed())
        assert (first, second) == ("1-0", "2-0")
        assert len(stream) == 2

    @pytest.mark.asyncio
    async def test_read_is_exclusive_of_cursor(self) -> None:
        stream = InMemoryEventStream()
        for i in range(3):
            await stream.append(confirmed(f"order-{i}"))

        entries = await stream.read("1-0")

        assert [e.id for e in entries] == ["2-0", "3-0"]

    @pytest.mark.asyncio
    async def test_entry_carries_decoded_payload(self) -> None:
        stream = InMemoryEventStream()
        event = confirmed()
        await stream.append(event)

        [entry] = await stream.read()

        assert entry.event_id == event.event_id
        assert entry.event_type == "OrderConfirmed"
        assert entry.metadata["version"] == 1


class TestRedisEventStream:
    """Tests for RedisEventStream."""

    @pytest.mark.asyncio
    async def test_append_uses_capped_xadd(self, redis_stream: RedisEventStream, mock_redis: AsyncMock) -> None:
        event = confirmed()

        entry_id = await redis_stream.append(event)

        assert entry_id == "1700000000000-0"
        mock_redis.xadd.assert_awaited_once_with(
            "shop-events",
            serialize_stream_fields(event),
            maxlen=500,
            approximate=True,
        )

    @pytest.mark.asyncio
    async def test_read_decodes_entries(self, redis_stream: RedisEventStream, mock_redis: AsyncMock) -> None:
        fields = serialize_stream_fields(confirmed())
        mock_redis.xread.return_value = [["shop-events", [("5-0", fields)]]]

        entries = await redis_stream.read("4-0", count=10)

        mock_redis.xread.assert_awaited_once_with({"shop-events": "4-0"}, count=10)
        assert entries[0].id == "5-0"
        assert entries[0].data == json.loads(fields["data"])

    @pytest.mark.asyncio
    async def test_read_empty(self, redis_stream: RedisEventStream, mock_redis: AsyncMock) -> None:
        mock_redis.xread.return_value = None
        assert await redis_stream.read() == []

    @pytest.mark.asyncio
    async def test_length(self, redis_stream: RedisEventStream, mock_redis: AsyncMock) -> None:
        mock_redis.xlen.return_value = 7
        assert await redis_stream.length() == 7

    @pytest.mark.asyncio
    async def test_unconnected_stream_raises(self) -> None:
        stream = RedisEventStream(enable_tracing=False)
        with pytest.raises(EventBusError):
            await stream.append(confirmed())

    @pytest.mark.asyncio
    async def test_connect_pings(self, mock_redis: AsyncMock) -> None:
        stream = RedisEventStream(RedisStreamConfig(redis_url="redis://cache:6379"), enable_tracing=False)

        with patch("shopsource.bus.stream.aioredis.from_url", return_value=mock_redis) as from_url:
            await stream.connect()

        assert from_url.call_args.args == ("redis://cache:6379",)
        mock_redis.ping.assert_awaited_once()
        assert stream.is_connected

    @pytest.mark.asyncio
    async def test_failed_connect_leaves_stream_disconnected(self, mock_redis: AsyncMock) -> None:
        mock_redis.ping.side_effect = ConnectionError("refused")
        stream = RedisEventStream(enable_tracing=False)

        with patch("shopsource.bus.stream.aioredis.from_url", return_value=mock_redis):
            with pytest.raises(ConnectionError):
                await stream.connect()

        assert not stream.is_connected

    @pytest.mark.asyncio
    async def test_close(self, redis_stream: RedisEventStream, mock_redis: AsyncMock) -> None:
        await redis_stream.close()
        mock_redis.aclose.assert_awaited_once()
        assert not redis_stream.is_connected
