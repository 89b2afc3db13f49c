"""In-memory event bus implementation.

Distributes events and commands to handlers within the same process and
keeps a bounded in-memory stream. Suitable for development, tests and
single-process deployments; use RabbitMQEventBus to span services.
"""

import logging
from collections import deque
from datetime import UTC, datetime
from typing import Any

from shopsource.bus.dispatcher import EventDispatcher
from shopsource.bus.interface import (
    CommandMessage,
    EventBus,
    EventBusStats,
    EventTypeKey,
    StreamEntry,
)
from shopsource.bus.stream import DEFAULT_MAX_LENGTH, EventStream, InMemoryEventStream
from shopsource.events.base import DomainEvent
from shopsource.observability import Tracer, create_tracer
from shopsource.observability.attributes import (
    ATTR_AGGREGATE_ID,
    ATTR_COMMAND_TYPE,
    ATTR_EVENT_ID,
    ATTR_EVENT_TYPE,
    ATTR_TARGET_SERVICE,
)

logger = logging.getLogger(__name__)


class InMemoryEventBus(EventBus):
    """
    In-memory event bus.

    ``publish`` dispatches to the subscribed handlers before returning.
    Commands are delivered to this bus's command handlers only when they
    are addressed to ``service_name`` (or when no service name is set),
    which mirrors the broker's direct routing.

    Example:
        >>> bus = InMemoryEventBus()
        >>> bus.subscribe(OrderCreated, my_handler)
        >>> await bus.publish(order_created)
    """

    def __init__(
        self,
        service_name: str | None = None,
        *,
        stream: EventStream | None = None,
        stream_max_length: int = DEFAULT_MAX_LENGTH,
        sent_commands_max_length: int = DEFAULT_MAX_LENGTH,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._service_name = service_name
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._stats = EventBusStats()
        self._dispatcher = EventDispatcher(self._tracer, self._stats)
        self._stream = stream or InMemoryEventStream(stream_max_length)
        self._sent_commands: deque[CommandMessage] = deque(maxlen=sent_commands_max_length)

    @property
    def sent_commands(self) -> list[CommandMessage]:
        """The most recent commands published through this bus, oldest first."""
        return list(self._sent_commands)

    async def publish(self, event: DomainEvent) -> None:
        with self._tracer.span(
            "shopsource.event_bus.publish",
            {
                ATTR_EVENT_TYPE: event.event_type,
                ATTR_EVENT_ID: event.event_id,
                ATTR_AGGREGATE_ID: event.aggregate_id,
            },
        ):
            await self._stream.append(event)
            self._stats.events_published += 1
            self._stats.last_publish_at = datetime.now(UTC)
            await self._dispatcher.dispatch_event(event)

    def subscribe(self, event_type: EventTypeKey, handler: Any) -> None:
        self._dispatcher.subscribe(event_type, handler)

    def unsubscribe(self, event_type: EventTypeKey, handler: Any) -> bool:
        return self._dispatcher.unsubscribe(event_type, handler)

    def subscribe_to_all_events(self, handler: Any) -> None:
        self._dispatcher.subscribe_to_all_events(handler)

    def unsubscribe_from_all_events(self, handler: Any) -> bool:
        return self._dispatcher.unsubscribe_from_all_events(handler)

    async def publish_command(
        self,
        target_service: str,
        command_type: str,
        data: dict[str, Any],
    ) -> CommandMessage:
        command = CommandMessage(type=command_type, data=data, target_service=target_service)
        with self._tracer.span(
            "shopsource.event_bus.publish_command",
            {ATTR_COMMAND_TYPE: command_type, ATTR_TARGET_SERVICE: target_service},
        ):
            self._sent_commands.append(command)
            self._stats.commands_published += 1
            if self._service_name is None or self._service_name == target_service:
                self._stats.commands_consumed += 1
                await self._dispatcher.dispatch_command(command)
        logger.debug(
            f"Published command {command_type} to {target_service}",
            extra={"command_id": command.id, "command_type": command_type, "target_service": target_service},
        )
        return command

    def subscribe_to_commands(self, handler: Any) -> None:
        self._dispatcher.subscribe_to_commands(handler)

    async def get_event_stream(self, from_id: str = "0", count: int = 100) -> list[StreamEntry]:
        return await self._stream.read(from_id, count)

    def clear_subscribers(self) -> None:
        self._dispatcher.clear()

    def get_subscriber_count(self, event_type: EventTypeKey | None = None) -> int:
        return self._dispatcher.get_subscriber_count(event_type)

    def get_stats(self) -> EventBusStats:
        return self._stats
