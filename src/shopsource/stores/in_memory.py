"""
In-memory event store implementation.

Useful for testing, development and single-process services. All events are
lost when the process terminates.
"""

import asyncio
import logging
from collections import defaultdict
from collections.abc import Sequence
from datetime import UTC, datetime

from shopsource.events.base import DomainEvent
from shopsource.exceptions import EventStoreError, OptimisticLockError
from shopsource.observability import (
    ATTR_AGGREGATE_ID,
    ATTR_EVENT_COUNT,
    ATTR_EXPECTED_VERSION,
    ATTR_FROM_POSITION,
    ATTR_FROM_VERSION,
    Tracer,
    create_tracer,
)
from shopsource.stores.interface import (
    DEFAULT_PAGE_SIZE,
    AppendResult,
    EventStore,
    Snapshot,
    StoredEvent,
)

logger = logging.getLogger(__name__)


class InMemoryEventStore(EventStore):
    """
    In-memory implementation of the event store.

    A single ``asyncio.Lock`` serializes writers, which makes the version
    check and the append one atomic step, the same guarantee the PostgreSQL
    store gets from its transaction and unique constraint.

    Example:
        >>> store = InMemoryEventStore()
        >>> await store.save_events("order-1", [order_created], expected_version=0)
        >>> [e.version for e in await store.get_events("order-1")]
        [1]

    Attributes:
        _streams: Stored events per aggregate, in version order
        _global: Every stored event in insertion order
        _event_ids: Event ids already stored
        _snapshots: Snapshots per aggregate, keyed by version
    """

    def __init__(
        self,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._streams: dict[str, list[StoredEvent]] = defaultdict(list)
        self._global: list[StoredEvent] = []
        self._event_ids: set[str] = set()
        self._snapshots: dict[str, dict[int, Snapshot]] = defaultdict(dict)
        self._position = 0
        self._lock = asyncio.Lock()

    async def save_events(
        self,
        aggregate_id: str,
        events: Sequence[DomainEvent],
        expected_version: int,
    ) -> AppendResult:
        if not events:
            return AppendResult.successful(expected_version, self._position)

        with self._tracer.span(
            "shopsource.event_store.save_events",
            {
                ATTR_AGGREGATE_ID: aggregate_id,
                ATTR_EVENT_COUNT: len(events),
                ATTR_EXPECTED_VERSION: expected_version,
            },
        ):
            async with self._lock:
                stream = self._streams[aggregate_id]
                current_version = stream[-1].version if stream else 0
                if current_version != expected_version:
                    raise OptimisticLockError(aggregate_id, expected_version, current_version)

                for event in events:
                    if event.aggregate_id != aggregate_id:
                        raise EventStoreError(
                            f"Event {event.event_id} belongs to aggregate {event.aggregate_id}, "
                            f"not {aggregate_id}"
                        )
                batch_ids = [event.event_id for event in events]
                if len(set(batch_ids)) != len(batch_ids) or self._event_ids.intersection(batch_ids):
                    raise EventStoreError(f"Duplicate event id in batch for aggregate {aggregate_id}")

                stored_at = datetime.now(UTC)
                for offset, event in enumerate(events, start=1):
                    version = expected_version + offset
                    self._position += 1
                    stored = StoredEvent(
                        event=event.with_version(version),
                        position=self._position,
                        version=version,
                        stored_at=stored_at,
                    )
                    stream.append(stored)
                    self._global.append(stored)
                    self._event_ids.add(event.event_id)

                new_version = expected_version + len(events)
                logger.debug(
                    "Appended %d events to %s (version %d)",
                    len(events),
                    aggregate_id,
                    new_version,
                    extra={"aggregate_id": aggregate_id, "new_version": new_version},
                )
                return AppendResult.successful(new_version, self._position)

    async def get_events(self, aggregate_id: str, from_version: int = 0) -> list[StoredEvent]:
        with self._tracer.span(
            "shopsource.event_store.get_events",
            {ATTR_AGGREGATE_ID: aggregate_id, ATTR_FROM_VERSION: from_version},
        ):
            async with self._lock:
                return [e for e in self._streams.get(aggregate_id, []) if e.version > from_version]

    async def get_all_events(
        self,
        from_position: int = 0,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> list[StoredEvent]:
        with self._tracer.span(
            "shopsource.event_store.get_all_events",
            {ATTR_FROM_POSITION: from_position},
        ):
            async with self._lock:
                return [e for e in self._global if e.position > from_position][:limit]

    async def get_events_by_type(
        self,
        event_type: str,
        from_position: int = 0,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> list[StoredEvent]:
        with self._tracer.span(
            "shopsource.event_store.get_events_by_type",
            {ATTR_FROM_POSITION: from_position, "shopsource.event.type": event_type},
        ):
            async with self._lock:
                matching = [
                    e
                    for e in self._global
                    if e.position > from_position and e.event_type == event_type
                ]
                return matching[:limit]

    async def save_snapshot(self, snapshot: Snapshot) -> None:
        async with self._lock:
            self._snapshots[snapshot.aggregate_id][snapshot.version] = snapshot

    async def get_latest_snapshot(
        self,
        aggregate_id: str,
        max_version: int | None = None,
    ) -> Snapshot | None:
        async with self._lock:
            candidates = [
                snapshot
                for version, snapshot in self._snapshots.get(aggregate_id, {}).items()
                if max_version is None or version <= max_version
            ]
        return max(candidates, key=lambda s: s.version, default=None)

    async def event_exists(self, event_id: str) -> bool:
        async with self._lock:
            return event_id in self._event_ids

    async def get_stream_version(self, aggregate_id: str) -> int:
        async with self._lock:
            stream = self._streams.get(aggregate_id)
            return stream[-1].version if stream else 0

    def clear(self) -> None:
        """Drop every event and snapshot. Test helper."""
        self._streams.clear()
        self._global.clear()
        self._event_ids.clear()
        self._snapshots.clear()
        self._position = 0

    @property
    def event_count(self) -> int:
        return len(self._global)
