"""
Domain events and their registry.

Importing this package registers the event catalog of every aggregate in
``default_registry``, so ``DomainEvent.from_dict`` can resolve them.
"""

from shopsource.events import inventory, order, payment, product, user
from shopsource.events.base import (
    DomainEvent,
    EventMetadata,
    UnknownEvent,
    ValueObject,
    create_event,
    utc_now,
)
from shopsource.events.registry import (
    DuplicateEventTypeError,
    EventRegistry,
    EventTypeNotFoundError,
    default_registry,
    register_event,
)

__all__ = [
    "DomainEvent",
    "DuplicateEventTypeError",
    "EventMetadata",
    "EventRegistry",
    "EventTypeNotFoundError",
    "UnknownEvent",
    "ValueObject",
    "create_event",
    "default_registry",
    "inventory",
    "order",
    "payment",
    "product",
    "register_event",
    "user",
    "utc_now",
]
