"""
Event type registry.

Maps the ``eventType`` tag carried by serialized events to the Pydantic class
that knows how to validate its payload. Every event class of the five
aggregates registers itself in ``default_registry`` through
``@register_event``; tests can build isolated ``EventRegistry`` instances.

Usage:
    @register_event
    class OrderShipped(DomainEvent):
        tracking_number: str
        carrier: str

    default_registry.get("OrderShipped")  # -> OrderShipped
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from typing import TYPE_CHECKING, TypeVar, overload

from shopsource.exceptions import ShopSourceError

if TYPE_CHECKING:
    from shopsource.events.base import DomainEvent

logger = logging.getLogger(__name__)

TEvent = TypeVar("TEvent", bound="DomainEvent")


class EventTypeNotFoundError(ShopSourceError, KeyError):
    """Raised when an event type name has no registered class."""

    def __init__(self, event_type: str, available_types: list[str]) -> None:
        self.event_type = event_type
        self.available_types = available_types
        available = ", ".join(sorted(available_types)) if available_types else "none"
        super().__init__(f"Unknown event type: '{event_type}'. Registered types: {available}.")

    def __str__(self) -> str:
        # KeyError would otherwise wrap the message in quotes
        return str(self.args[0])


class DuplicateEventTypeError(ShopSourceError, ValueError):
    """Raised when a second, different class claims an already registered type name."""

    def __init__(
        self,
        event_type: str,
        existing_class: type[DomainEvent],
        new_class: type[DomainEvent],
    ) -> None:
        self.event_type = event_type
        self.existing_class = existing_class
        self.new_class = new_class
        super().__init__(
            f"Event type '{event_type}' is already registered to {existing_class.__name__}; "
            f"cannot register {new_class.__name__} under the same name."
        )


class EventRegistry:
    """
    Thread-safe mapping of event type names to event classes.

    Registering the same class twice is a no-op; registering a different
    class under an existing name raises DuplicateEventTypeError.
    """

    def __init__(self) -> None:
        self._registry: dict[str, type[DomainEvent]] = {}
        self._lock = threading.RLock()

    def register(
        self,
        event_class: type[TEvent],
        event_type: str | None = None,
    ) -> type[TEvent]:
        """
        Register an event class.

        Args:
            event_class: The event class to register
            event_type: Optional type name; defaults to the class's
                event_type default, then to the class name

        Returns:
            The class itself, so register() can back a decorator

        Raises:
            DuplicateEventTypeError: If the name belongs to another class
        """
        resolved_type = self._resolve_event_type(event_class, event_type)

        with self._lock:
            existing = self._registry.get(resolved_type)
            if existing is not None:
                if existing is not event_class:
                    raise DuplicateEventTypeError(resolved_type, existing, event_class)
                return event_class

            self._registry[resolved_type] = event_class
            logger.debug(
                "Registered event type '%s' -> %s",
                resolved_type,
                event_class.__name__,
                extra={"event_type": resolved_type, "event_class": event_class.__name__},
            )
            return event_class

    @staticmethod
    def _resolve_event_type(event_class: type[TEvent], event_type: str | None) -> str:
        if event_type:
            return event_type
        field_info = event_class.model_fields.get("event_type")
        if field_info is not None and isinstance(field_info.default, str) and field_info.default:
            return field_info.default
        return event_class.__name__

    def get(self, event_type: str) -> type[DomainEvent]:
        """
        Look up the class registered for ``event_type``.

        Raises:
            EventTypeNotFoundError: If nothing is registered under that name
        """
        with self._lock:
            try:
                return self._registry[event_type]
            except KeyError:
                raise EventTypeNotFoundError(event_type, list(self._registry)) from None

    def get_or_none(self, event_type: str) -> type[DomainEvent] | None:
        with self._lock:
            return self._registry.get(event_type)

    def contains(self, event_type: str) -> bool:
        with self._lock:
            return event_type in self._registry

    def event_types(self) -> list[str]:
        """Sorted list of registered type names."""
        with self._lock:
            return sorted(self._registry)

    def unregister(self, event_type: str) -> bool:
        with self._lock:
            return self._registry.pop(event_type, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._registry.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._registry)

    def __bool__(self) -> bool:
        return True

    def __contains__(self, event_type: object) -> bool:
        return isinstance(event_type, str) and self.contains(event_type)

    def __iter__(self) -> Iterator[str]:
        with self._lock:
            return iter(list(self._registry))


default_registry = EventRegistry()


@overload
def register_event(event_class: type[TEvent]) -> type[TEvent]: ...


@overload
def register_event(
    event_class: None = None,
    *,
    event_type: str | None = None,
    registry: EventRegistry | None = None,
) -> Callable[[type[TEvent]], type[TEvent]]: ...


def register_event(
    event_class: type[TEvent] | None = None,
    *,
    event_type: str | None = None,
    registry: EventRegistry | None = None,
) -> type[TEvent] | Callable[[type[TEvent]], type[TEvent]]:
    """
    Class decorator registering an event in a registry.

    Works bare (``@register_event``) or with arguments
    (``@register_event(event_type="order.shipped", registry=my_registry)``).
    """
    target_registry = registry if registry is not None else default_registry

    def decorator(cls: type[TEvent]) -> type[TEvent]:
        return target_registry.register(cls, event_type)

    if event_class is not None:
        return decorator(event_class)
    return decorator
