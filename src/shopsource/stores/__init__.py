"""Event store implementations."""

from shopsource.stores.database import Database
from shopsource.stores.in_memory import InMemoryEventStore
from shopsource.stores.interface import (
    DEFAULT_PAGE_SIZE,
    AppendResult,
    EventStore,
    Snapshot,
    StoredEvent,
)
from shopsource.stores.postgresql import PostgreSQLEventStore

__all__ = [
    "DEFAULT_PAGE_SIZE",
    "AppendResult",
    "Database",
    "EventStore",
    "InMemoryEventStore",
    "PostgreSQLEventStore",
    "Snapshot",
    "StoredEvent",
]
