"""
Event store interface and core data structures.

The event store is the single admission point for new facts. It persists
per-aggregate streams whose versions are contiguous from 1, rejects writes
made against a stale version, and exposes global feeds ordered by insertion
position for rebuilding read models elsewhere.

This module provides:
- StoredEvent: a persisted event with its store position and version
- AppendResult: outcome of ``save_events``
- Snapshot: point-in-time aggregate state, an accelerator only
- EventStore: abstract base class for store implementations
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from shopsource.events.base import DomainEvent

DEFAULT_PAGE_SIZE = 100


@dataclass(frozen=True)
class StoredEvent:
    """
    A persisted event together with the store's bookkeeping.

    Attributes:
        event: The domain event, stamped with its authoritative version
        position: Store-assigned identity, strictly increasing across the
            whole store; used as the cursor of the global feeds
        version: Position of the event within its aggregate's stream (1-based)
        stored_at: When the event was written
    """

    event: DomainEvent
    position: int
    version: int
    stored_at: datetime

    @property
    def event_id(self) -> str:
        return self.event.event_id

    @property
    def event_type(self) -> str:
        return self.event.event_type

    @property
    def aggregate_id(self) -> str:
        return self.event.aggregate_id

    def __str__(self) -> str:
        return f"StoredEvent({self.event_type}, version={self.version}, position={self.position})"


@dataclass(frozen=True)
class AppendResult:
    """
    Result of appending events to the event store.

    Attributes:
        success: Whether the append was successful
        new_version: Stream version after the append
        global_position: Position of the last appended event
    """

    success: bool
    new_version: int
    global_position: int = 0

    @classmethod
    def successful(cls, new_version: int, global_position: int = 0) -> AppendResult:
        return cls(success=True, new_version=new_version, global_position=global_position)


@dataclass(frozen=True)
class Snapshot:
    """
    Point-in-time capture of an aggregate's state.

    Snapshots are never the source of truth: deleting every snapshot must
    leave all aggregates reconstructable from events alone. A snapshot whose
    ``schema_version`` no longer matches the aggregate class is ignored and
    the aggregate is replayed in full.

    Attributes:
        aggregate_id: ID of the captured aggregate
        aggregate_type: Type name of the aggregate (e.g., "Order")
        version: Aggregate version at capture; events up to it are folded in
        state: JSON-compatible state produced by ``model_dump(mode="json")``
        schema_version: Version of the aggregate's state schema
        created_at: When the snapshot was taken
    """

    aggregate_id: str
    aggregate_type: str
    version: int
    state: dict[str, Any]
    schema_version: int = 1
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __str__(self) -> str:
        return (
            f"Snapshot({self.aggregate_type}/{self.aggregate_id}, "
            f"v{self.version}, schema_v{self.schema_version})"
        )


class EventStore(ABC):
    """
    Abstract base class for event stores.

    Implementations must guarantee that for one aggregate the versions they
    hand out are gap-free and unique, and that a batch is persisted entirely
    or not at all.

    Concrete implementations:
    - InMemoryEventStore: tests and single-process use
    - PostgreSQLEventStore: production use
    """

    @abstractmethod
    async def save_events(
        self,
        aggregate_id: str,
        events: Sequence[DomainEvent],
        expected_version: int,
    ) -> AppendResult:
        """
        Append events to an aggregate's stream under an optimistic lock.

        The store checks that the stream's current maximum version equals
        ``expected_version``. On success the events receive versions
        ``expected_version + 1 .. expected_version + len(events)`` and are
        written in one transaction.

        Args:
            aggregate_id: ID of the aggregate
            events: Events to append, in order
            expected_version: Version the caller observed before producing
                the events (0 for a new aggregate)

        Returns:
            AppendResult with the new stream version

        Raises:
            OptimisticLockError: If the stream moved past ``expected_version``;
                nothing is written
        """
        pass

    @abstractmethod
    async def get_events(self, aggregate_id: str, from_version: int = 0) -> list[StoredEvent]:
        """
        Get an aggregate's events with version greater than ``from_version``.

        Returns:
            Stored events in ascending version order (empty if none)
        """
        pass

    @abstractmethod
    async def get_all_events(
        self,
        from_position: int = 0,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> list[StoredEvent]:
        """
        Read the global feed.

        Args:
            from_position: Exclusive cursor; pass the ``position`` of the
                last event of the previous page
            limit: Maximum number of events to return

        Returns:
            Stored events in insertion order
        """
        pass

    @abstractmethod
    async def get_events_by_type(
        self,
        event_type: str,
        from_position: int = 0,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> list[StoredEvent]:
        """Read the global feed restricted to one event type. Same paging as get_all_events."""
        pass

    @abstractmethod
    async def save_snapshot(self, snapshot: Snapshot) -> None:
        """Store a snapshot, replacing any existing one at the same (aggregate_id, version)."""
        pass

    @abstractmethod
    async def get_latest_snapshot(
        self,
        aggregate_id: str,
        max_version: int | None = None,
    ) -> Snapshot | None:
        """
        Get the highest-version snapshot at or below ``max_version``.

        Args:
            aggregate_id: ID of the aggregate
            max_version: Upper bound (inclusive); None means no bound

        Returns:
            The snapshot, or None when there is none
        """
        pass

    @abstractmethod
    async def event_exists(self, event_id: str) -> bool:
        """Check whether an event id was already stored (idempotency checks)."""
        pass

    async def get_stream_version(self, aggregate_id: str) -> int:
        """
        Current version of an aggregate's stream, 0 if it has no events.

        Default implementation reads the stream; implementations may
        override it with something cheaper.
        """
        events = await self.get_events(aggregate_id)
        return events[-1].version if events else 0
