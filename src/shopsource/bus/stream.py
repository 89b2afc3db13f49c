"""
Bounded real-time event stream.

Every published event is also appended to a capped, ordered stream so
dashboards and late joiners can read recent activity without a broker
subscription. The stream is a convenience feed: the durable record is the
event store, and the durable fan-out is the broker.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from typing import Any

import redis.asyncio as aioredis

from shopsource.bus.interface import StreamEntry
from shopsource.events.base import DomainEvent
from shopsource.exceptions import EventBusError
from shopsource.observability import Tracer, create_tracer
from shopsource.observability.attributes import (
    ATTR_EVENT_ID,
    ATTR_EVENT_TYPE,
    ATTR_MESSAGING_DESTINATION,
    ATTR_MESSAGING_SYSTEM,
)

logger = logging.getLogger(__name__)

DEFAULT_STREAM_NAME = "event-stream"
DEFAULT_MAX_LENGTH = 10000


def _parse_stream_id(stream_id: str) -> tuple[int, int]:
    millis, _, seq = stream_id.partition("-")
    return int(millis), int(seq or 0)


def serialize_stream_fields(event: DomainEvent) -> dict[str, str]:
    """Flat string fields stored per stream entry."""
    return {
        "eventId": event.event_id,
        "eventType": event.event_type,
        "aggregateId": event.aggregate_id,
        "data": json.dumps(event.data),
        "metadata": json.dumps(event.metadata.to_dict()),
        "timestamp": event.timestamp.isoformat(),
    }


def entry_from_fields(entry_id: str, fields: dict[str, str]) -> StreamEntry:
    return StreamEntry(
        id=entry_id,
        event_id=fields.get("eventId", ""),
        event_type=fields.get("eventType", ""),
        aggregate_id=fields.get("aggregateId", ""),
        data=json.loads(fields.get("data") or "{}"),
        metadata=json.loads(fields.get("metadata") or "{}"),
        timestamp=fields.get("timestamp", ""),
    )


class EventStream(ABC):
    """Append-only, length-capped stream of recent events."""

    @abstractmethod
    async def append(self, event: DomainEvent) -> str:
        """Append one event and return its stream entry id."""
        pass

    @abstractmethod
    async def read(self, from_id: str = "0", count: int = 100) -> list[StreamEntry]:
        """Entries with an id greater than ``from_id``, oldest first, at most ``count``."""
        pass

    async def close(self) -> None:
        return None


class InMemoryEventStream(EventStream):
    """
    Process-local stream for tests and single-process use.

    Entry ids follow the Redis ``<n>-<seq>`` shape so readers can switch
    between implementations without changing their cursors.
    """

    def __init__(self, max_length: int = DEFAULT_MAX_LENGTH) -> None:
        self._entries: deque[StreamEntry] = deque(maxlen=max_length)
        self._sequence = 0

    async def append(self, event: DomainEvent) -> str:
        self._sequence += 1
        entry_id = f"{self._sequence}-0"
        self._entries.append(entry_from_fields(entry_id, serialize_stream_fields(event)))
        return entry_id

    async def read(self, from_id: str = "0", count: int = 100) -> list[StreamEntry]:
        cursor = _parse_stream_id(from_id)
        result = [entry for entry in self._entries if _parse_stream_id(entry.id) > cursor]
        return result[:count]

    def __len__(self) -> int:
        return len(self._entries)


@dataclass
class RedisStreamConfig:
    """
    Configuration for the Redis event stream.

    Attributes:
        redis_url: Redis connection URL (e.g., "redis://localhost:6379")
        stream_name: Key of the stream
        max_length: Approximate cap applied on every XADD
        socket_timeout: Socket timeout in seconds
        socket_connect_timeout: Socket connection timeout in seconds
    """

    redis_url: str = "redis://localhost:6379"
    stream_name: str = DEFAULT_STREAM_NAME
    max_length: int = DEFAULT_MAX_LENGTH
    socket_timeout: float = 5.0
    socket_connect_timeout: float = 5.0


class RedisEventStream(EventStream):
    """
    Event stream on a Redis stream key.

    Appends use ``XADD ... MAXLEN ~ max_length`` so trimming is cheap and
    approximate; reads use ``XREAD``.

    Example:
        >>> stream = RedisEventStream(RedisStreamConfig(redis_url="redis://localhost:6379"))
        >>> await stream.connect()
        >>> await stream.append(event)
        >>> recent = await stream.read("0", count=50)
    """

    def __init__(
        self,
        config: RedisStreamConfig | None = None,
        *,
        client: aioredis.Redis | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._config = config or RedisStreamConfig()
        self._redis: aioredis.Redis | None = client
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    @property
    def config(self) -> RedisStreamConfig:
        return self._config

    @property
    def is_connected(self) -> bool:
        return self._redis is not None

    async def connect(self) -> None:
        if self._redis is not None:
            return
        try:
            self._redis = aioredis.from_url(
                self._config.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_timeout=self._config.socket_timeout,
                socket_connect_timeout=self._config.socket_connect_timeout,
            )
            await self._redis.ping()
        except Exception as e:
            logger.error(f"Failed to connect to Redis: {e}", exc_info=True)
            self._redis = None
            raise
        logger.info(
            "Connected to Redis",
            extra={"redis_url": self._config.redis_url, "stream": self._config.stream_name},
        )

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            logger.info("Disconnected from Redis")

    def _client(self) -> aioredis.Redis:
        if self._redis is None:
            raise EventBusError("Redis stream is not connected")
        return self._redis

    async def append(self, event: DomainEvent) -> str:
        client = self._client()
        with self._tracer.span(
            "shopsource.event_stream.append",
            {
                ATTR_MESSAGING_SYSTEM: "redis",
                ATTR_MESSAGING_DESTINATION: self._config.stream_name,
                ATTR_EVENT_TYPE: event.event_type,
                ATTR_EVENT_ID: event.event_id,
            },
        ):
            entry_id = await client.xadd(
                self._config.stream_name,
                serialize_stream_fields(event),  # type: ignore[arg-type]
                maxlen=self._config.max_length,
                approximate=True,
            )
        logger.debug(
            f"Appended {event.event_type} to Redis stream",
            extra={
                "event_id": event.event_id,
                "event_type": event.event_type,
                "stream_id": entry_id,
                "stream": self._config.stream_name,
            },
        )
        return str(entry_id)

    async def read(self, from_id: str = "0", count: int = 100) -> list[StreamEntry]:
        client = self._client()
        response: Any = await client.xread({self._config.stream_name: from_id}, count=count)
        entries: list[StreamEntry] = []
        for _stream, messages in response or []:
            for entry_id, fields in messages:
                entries.append(entry_from_fields(str(entry_id), dict(fields)))
        return entries

    async def length(self) -> int:
        return int(await self._client().xlen(self._config.stream_name))
