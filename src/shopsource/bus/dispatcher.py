"""
In-process handler registry and dispatch, shared by every bus.

The buses differ in how events reach a process; once an event is there it
is handed to its subscribers the same way everywhere: sequentially, in
subscription order, with each handler isolated from the failures of the
others.
"""

import logging
import threading
from collections import defaultdict
from typing import Any

from shopsource.bus.interface import CommandMessage, EventBusStats, EventTypeKey, event_type_name
from shopsource.events.base import DomainEvent
from shopsource.handlers.adapter import HandlerAdapter
from shopsource.observability import Tracer
from shopsource.observability.attributes import (
    ATTR_AGGREGATE_ID,
    ATTR_COMMAND_TYPE,
    ATTR_EVENT_ID,
    ATTR_EVENT_TYPE,
    ATTR_HANDLER_COUNT,
    ATTR_HANDLER_NAME,
    ATTR_HANDLER_SUCCESS,
)

logger = logging.getLogger(__name__)


class EventDispatcher:
    """
    Subscriber registry for events and commands.

    Subscriptions are keyed by event type name, so events decoded from the
    wire as ``UnknownEvent`` still reach handlers registered by name.

    Thread Safety:
        Subscription methods are thread-safe. Dispatch must run in the
        event loop.
    """

    def __init__(self, tracer: Tracer, stats: EventBusStats) -> None:
        self._tracer = tracer
        self._stats = stats
        self._subscribers: dict[str, list[HandlerAdapter]] = defaultdict(list)
        self._all_event_handlers: list[HandlerAdapter] = []
        self._command_handlers: list[HandlerAdapter] = []
        self._lock = threading.RLock()

    def subscribe(self, event_type: EventTypeKey, handler: Any) -> None:
        adapter = HandlerAdapter(handler)
        name = event_type_name(event_type)
        with self._lock:
            self._subscribers[name].append(adapter)
        logger.info(
            "Registered handler %s for %s",
            adapter.name,
            name,
            extra={"handler": adapter.name, "event_type": name},
        )

    def unsubscribe(self, event_type: EventTypeKey, handler: Any) -> bool:
        name = event_type_name(event_type)
        with self._lock:
            adapters = self._subscribers.get(name, [])
            for i, adapter in enumerate(adapters):
                if adapter == handler:
                    adapters.pop(i)
                    logger.info(
                        "Unsubscribed handler %s from %s",
                        adapter.name,
                        name,
                        extra={"handler": adapter.name, "event_type": name},
                    )
                    return True
        return False

    def subscribe_to_all_events(self, handler: Any) -> None:
        adapter = HandlerAdapter(handler)
        with self._lock:
            self._all_event_handlers.append(adapter)
        logger.info("Registered wildcard handler %s", adapter.name, extra={"handler": adapter.name})

    def unsubscribe_from_all_events(self, handler: Any) -> bool:
        with self._lock:
            for i, adapter in enumerate(self._all_event_handlers):
                if adapter == handler:
                    self._all_event_handlers.pop(i)
                    return True
        return False

    def subscribe_to_commands(self, handler: Any) -> None:
        adapter = HandlerAdapter(handler)
        with self._lock:
            self._command_handlers.append(adapter)
        logger.info("Registered command handler %s", adapter.name, extra={"handler": adapter.name})

    def clear(self) -> None:
        with self._lock:
            self._subscribers.clear()
            self._all_event_handlers.clear()
            self._command_handlers.clear()

    def get_subscriber_count(self, event_type: EventTypeKey | None = None) -> int:
        """Handlers for one event type (wildcards excluded), or for all types."""
        with self._lock:
            if event_type is None:
                return sum(len(handlers) for handlers in self._subscribers.values())
            return len(self._subscribers.get(event_type_name(event_type), []))

    @property
    def command_handler_count(self) -> int:
        with self._lock:
            return len(self._command_handlers)

    async def dispatch_event(self, event: DomainEvent) -> None:
        """Run every handler for ``event`` in order. Handler errors are logged, not raised."""
        with self._lock:
            handlers = list(self._subscribers.get(event.event_type, [])) + list(self._all_event_handlers)

        if not handlers:
            logger.debug(
                "No handlers registered for event type: %s",
                event.event_type,
                extra={"event_type": event.event_type},
            )
            return

        with self._tracer.span(
            "shopsource.event_bus.dispatch",
            {
                ATTR_EVENT_TYPE: event.event_type,
                ATTR_EVENT_ID: event.event_id,
                ATTR_AGGREGATE_ID: event.aggregate_id,
                ATTR_HANDLER_COUNT: len(handlers),
            },
        ):
            for adapter in handlers:
                await self._safe_handle(
                    adapter,
                    event,
                    {
                        ATTR_EVENT_TYPE: event.event_type,
                        ATTR_EVENT_ID: event.event_id,
                        ATTR_HANDLER_NAME: adapter.name,
                    },
                )

    async def dispatch_command(self, command: CommandMessage) -> None:
        """Run the command handlers for ``command``. Handler errors are logged, not raised."""
        with self._lock:
            handlers = list(self._command_handlers)

        if not handlers:
            logger.warning(
                "No command handler registered for %s",
                command.type,
                extra={"command_type": command.type, "command_id": command.id},
            )
            return

        for adapter in handlers:
            await self._safe_handle(
                adapter,
                command,
                {ATTR_COMMAND_TYPE: command.type, ATTR_HANDLER_NAME: adapter.name},
            )

    async def _safe_handle(self, adapter: HandlerAdapter, message: Any, attributes: dict[str, Any]) -> None:
        with self._tracer.span("shopsource.event_bus.handle", attributes) as span:
            try:
                await adapter.handle(message)
                if span:
                    span.set_attribute(ATTR_HANDLER_SUCCESS, True)
            except Exception as e:
                if span:
                    span.set_attribute(ATTR_HANDLER_SUCCESS, False)
                    span.record_exception(e)
                self._stats.handler_errors += 1
                logger.error(
                    "Handler %s failed: %s",
                    adapter.name,
                    e,
                    exc_info=True,
                    extra={
                        "handler": adapter.name,
                        "message_type": getattr(message, "event_type", None) or getattr(message, "type", None),
                        "error": str(e),
                        "error_type": type(e).__name__,
                    },
                )
