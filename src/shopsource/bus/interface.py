"""Event bus interface definitions.

The event bus carries three kinds of traffic:

- domain events, fanned out to every subscribed service by event type;
- commands, delivered point to point to one named service;
- a bounded, ordered real-time stream of recent events.

Handlers are registered in-process per event type and may be plain or
coroutine functions, or objects with a ``handle`` method.
"""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from shopsource.events.base import DomainEvent, utc_now

# Type alias for simple function-based handlers
EventHandlerFunc = Callable[[DomainEvent], Awaitable[None] | None]
CommandHandlerFunc = Callable[["CommandMessage"], Awaitable[None] | None]

EventTypeKey = str | type[DomainEvent]


def event_type_name(event_type: EventTypeKey) -> str:
    """Subscription key for an event class or event type name."""
    if isinstance(event_type, str):
        return event_type
    return event_type.__name__


class CommandMessage(BaseModel):
    """
    A point-to-point command for one service.

    Serialized as ``{id, type, data, timestamp, targetService}``.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    type: str
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utc_now)
    target_service: str

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


@dataclass(frozen=True)
class StreamEntry:
    """One entry of the real-time event stream."""

    id: str
    event_id: str
    event_type: str
    aggregate_id: str
    data: dict[str, Any]
    metadata: dict[str, Any]
    timestamp: str


@dataclass
class EventBusStats:
    """
    Counters for bus operations.

    Attributes:
        events_published: Events confirmed by the broker
        events_consumed: Messages received from the broker
        events_processed_success: Messages dispatched and acked
        events_processed_failed: Messages that could not be decoded or routed
        handler_errors: Handler invocations that raised
        messages_retried: Messages republished for another attempt
        messages_sent_to_dlq: Messages moved to the dead-letter queue
        messages_requeued: Messages nacked with requeue (no retry limit)
        commands_published: Commands sent to other services
        commands_consumed: Commands received by this service
        stream_errors: Failed appends to the real-time stream
    """

    events_published: int = 0
    events_consumed: int = 0
    events_processed_success: int = 0
    events_processed_failed: int = 0
    handler_errors: int = 0
    messages_retried: int = 0
    messages_sent_to_dlq: int = 0
    messages_requeued: int = 0
    commands_published: int = 0
    commands_consumed: int = 0
    stream_errors: int = 0

    last_publish_at: datetime | None = None
    last_consume_at: datetime | None = None
    last_error_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for key in ("last_publish_at", "last_consume_at", "last_error_at"):
            value = data[key]
            data[key] = value.isoformat() if value is not None else None
        return data


class EventBus(ABC):
    """
    Abstract event bus for publishing and subscribing to domain events.

    Implementations open spans named ``shopsource.event_bus.<operation>``
    through a composed ``Tracer`` and log handler failures with their
    traceback. A failing handler never prevents its siblings from running.

    Example:
        >>> bus = InMemoryEventBus()
        >>> bus.subscribe(OrderCreated, reserve_stock_for_order)
        >>> await bus.publish(order_created)
    """

    @abstractmethod
    async def publish(self, event: DomainEvent) -> None:
        """
        Publish one event to every subscribed service.

        Broker-backed implementations return only once the broker has
        confirmed the message, so an event that was published survives a
        broker restart.

        Raises:
            EventBusError: If the bus is not connected or the broker rejected
                the message
        """
        pass

    async def publish_batch(self, events: Sequence[DomainEvent]) -> None:
        """
        Publish events one after another, in order.

        The batch is not atomic: if an event fails, the ones before it stay
        published and the exception propagates.
        """
        for event in events:
            await self.publish(event)

    @abstractmethod
    def subscribe(self, event_type: EventTypeKey, handler: Any) -> None:
        """
        Register a handler for an event type.

        Args:
            event_type: Event class or event type name
            handler: Object with handle() method or callable
        """
        pass

    @abstractmethod
    def unsubscribe(self, event_type: EventTypeKey, handler: Any) -> bool:
        """
        Remove a handler registered with ``subscribe``.

        Returns:
            True if the handler was found and removed, False otherwise
        """
        pass

    @abstractmethod
    def subscribe_to_all_events(self, handler: Any) -> None:
        """Register a handler that receives every event (audit, metrics)."""
        pass

    @abstractmethod
    def unsubscribe_from_all_events(self, handler: Any) -> bool:
        pass

    @abstractmethod
    async def publish_command(
        self,
        target_service: str,
        command_type: str,
        data: dict[str, Any],
    ) -> CommandMessage:
        """
        Send a command to exactly one service.

        Returns:
            The message that was sent
        """
        pass

    @abstractmethod
    def subscribe_to_commands(self, handler: Any) -> None:
        """Register the handler for commands addressed to this service."""
        pass

    @abstractmethod
    async def get_event_stream(self, from_id: str = "0", count: int = 100) -> list[StreamEntry]:
        """
        Read the real-time stream after ``from_id`` (exclusive).

        ``"0"`` reads from the oldest retained entry.
        """
        pass

    async def start_consuming(self) -> None:
        """Start delivering broker messages to handlers. No-op for in-process buses."""
        return None

    async def stop_consuming(self) -> None:
        return None

    async def disconnect(self) -> None:
        return None

    @abstractmethod
    def get_stats(self) -> EventBusStats:
        pass

    def get_stats_dict(self) -> dict[str, Any]:
        return self.get_stats().to_dict()


__all__ = [
    "CommandHandlerFunc",
    "CommandMessage",
    "EventBus",
    "EventBusStats",
    "EventHandlerFunc",
    "EventTypeKey",
    "StreamEntry",
    "event_type_name",
]
