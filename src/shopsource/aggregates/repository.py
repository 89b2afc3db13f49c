"""
Repository pattern for event-sourced aggregates.

Repositories load aggregates by replaying their events (optionally starting
from a snapshot) and save them by appending their uncommitted events under
an optimistic lock. Publishing is left to the command handlers, which only
publish after ``save`` has returned.
"""

import logging
from typing import Any, Generic, TypeVar

from shopsource.aggregates.base import AggregateRoot
from shopsource.exceptions import AggregateNotFoundError, DeletionNotSupportedError
from shopsource.observability import Tracer, create_tracer
from shopsource.observability.attributes import (
    ATTR_AGGREGATE_ID,
    ATTR_AGGREGATE_TYPE,
    ATTR_EVENT_COUNT,
    ATTR_EXPECTED_VERSION,
    ATTR_VERSION,
)
from shopsource.stores.interface import EventStore, Snapshot

logger = logging.getLogger(__name__)

TAggregate = TypeVar("TAggregate", bound="AggregateRoot[Any]")


class AggregateRepository(Generic[TAggregate]):
    """
    Repository for one aggregate type.

    Example:
        >>> repo = AggregateRepository(store, Order, "Order", snapshot_threshold=50)
        >>> order = Order.create(order_id, user_id, items, shipping, billing, "card")
        >>> await repo.save(order)
        >>> loaded = await repo.load(order_id)
        >>> assert loaded.version == order.version

    Attributes:
        _event_store: The event store for persistence
        _aggregate_class: Class instantiated when loading
        _aggregate_type: String identifier for the aggregate type
        _snapshot_threshold: Take a snapshot each time the version crosses a
            multiple of this value; None disables snapshots
    """

    def __init__(
        self,
        event_store: EventStore,
        aggregate_class: type[TAggregate],
        aggregate_type: str | None = None,
        snapshot_threshold: int | None = None,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        if snapshot_threshold is not None and snapshot_threshold <= 0:
            raise ValueError("snapshot_threshold must be positive")
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._event_store = event_store
        self._aggregate_class = aggregate_class
        self._aggregate_type = aggregate_type or aggregate_class.aggregate_type
        self._snapshot_threshold = snapshot_threshold

    @property
    def aggregate_type(self) -> str:
        return self._aggregate_type

    @property
    def event_store(self) -> EventStore:
        return self._event_store

    @property
    def snapshot_threshold(self) -> int | None:
        return self._snapshot_threshold

    @property
    def has_snapshot_support(self) -> bool:
        return self._snapshot_threshold is not None

    async def save(self, aggregate: TAggregate) -> None:
        """
        Persist the aggregate's uncommitted events.

        The expected version is the version before the uncommitted events
        were applied. On success the events are marked committed and, when
        a snapshot threshold boundary was crossed, a snapshot is taken.

        Raises:
            OptimisticLockError: If another writer appended to the stream
                first; the aggregate keeps its uncommitted events
        """
        uncommitted_events = aggregate.uncommitted_events
        if not uncommitted_events:
            return

        expected_version = aggregate.version - len(uncommitted_events)
        with self._tracer.span(
            "shopsource.repository.save",
            {
                ATTR_AGGREGATE_ID: aggregate.aggregate_id,
                ATTR_AGGREGATE_TYPE: self._aggregate_type,
                ATTR_EVENT_COUNT: len(uncommitted_events),
                ATTR_EXPECTED_VERSION: expected_version,
                ATTR_VERSION: aggregate.version,
            },
        ):
            await self._event_store.save_events(
                aggregate.aggregate_id,
                uncommitted_events,
                expected_version,
            )
            aggregate.mark_events_as_committed()

            logger.debug(
                "Saved %d events for %s/%s at version %d",
                len(uncommitted_events),
                self._aggregate_type,
                aggregate.aggregate_id,
                aggregate.version,
                extra={
                    "aggregate_id": aggregate.aggregate_id,
                    "aggregate_type": self._aggregate_type,
                    "version": aggregate.version,
                },
            )

            if self._crossed_snapshot_boundary(expected_version, aggregate.version):
                await self._try_create_snapshot(aggregate)

    async def find_by_id(self, aggregate_id: str) -> TAggregate | None:
        """
        Load an aggregate, or return None when it has no events.

        A usable snapshot (same aggregate type and schema version) is
        restored first and only the later events are replayed. Any snapshot
        that cannot be restored is ignored in favor of a full replay.
        """
        with self._tracer.span(
            "shopsource.repository.find_by_id",
            {
                ATTR_AGGREGATE_ID: aggregate_id,
                ATTR_AGGREGATE_TYPE: self._aggregate_type,
            },
        ) as span:
            aggregate = self._aggregate_class(aggregate_id)
            from_version = 0

            snapshot = await self._load_snapshot(aggregate_id)
            if snapshot is not None:
                try:
                    aggregate._restore_from_snapshot(snapshot.state, snapshot.version)
                    from_version = snapshot.version
                except Exception as e:
                    logger.warning(
                        "Failed to restore from snapshot for %s/%s: %s. "
                        "Falling back to full event replay.",
                        self._aggregate_type,
                        aggregate_id,
                        e,
                        exc_info=True,
                    )
                    aggregate = self._aggregate_class(aggregate_id)

            stored = await self._event_store.get_events(aggregate_id, from_version=from_version)
            if from_version == 0 and not stored:
                return None

            aggregate.load_from_history(s.event for s in stored)

            if span:
                span.set_attribute("snapshot.used", from_version > 0)
                span.set_attribute("events.replayed", len(stored))
                span.set_attribute(ATTR_VERSION, aggregate.version)

            logger.debug(
                "Loaded %s/%s at version %d (snapshot: %s, events replayed: %d)",
                self._aggregate_type,
                aggregate_id,
                aggregate.version,
                "yes" if from_version else "no",
                len(stored),
            )
            return aggregate

    async def load(self, aggregate_id: str) -> TAggregate:
        """
        Load an aggregate that must exist.

        Raises:
            AggregateNotFoundError: If no events exist for the aggregate
        """
        aggregate = await self.find_by_id(aggregate_id)
        if aggregate is None:
            raise AggregateNotFoundError(aggregate_id, self._aggregate_type)
        return aggregate

    async def exists(self, aggregate_id: str) -> bool:
        return await self._event_store.get_stream_version(aggregate_id) > 0

    async def get_version(self, aggregate_id: str) -> int:
        """Current stream version, 0 if the aggregate does not exist."""
        return await self._event_store.get_stream_version(aggregate_id)

    async def delete(self, aggregate_id: str) -> None:
        """
        Event streams are append-only; model removal as a domain event instead.

        Raises:
            DeletionNotSupportedError: Always
        """
        raise DeletionNotSupportedError(aggregate_id)

    async def create_snapshot(self, aggregate: TAggregate) -> Snapshot:
        """Snapshot the aggregate's current state regardless of the threshold."""
        snapshot = Snapshot(
            aggregate_id=aggregate.aggregate_id,
            aggregate_type=self._aggregate_type,
            version=aggregate.version,
            state=aggregate._serialize_state(),
            schema_version=aggregate.schema_version,
        )
        with self._tracer.span(
            "shopsource.repository.create_snapshot",
            {
                ATTR_AGGREGATE_ID: aggregate.aggregate_id,
                ATTR_AGGREGATE_TYPE: self._aggregate_type,
                ATTR_VERSION: aggregate.version,
            },
        ):
            await self._event_store.save_snapshot(snapshot)
        return snapshot

    def _crossed_snapshot_boundary(self, old_version: int, new_version: int) -> bool:
        if self._snapshot_threshold is None:
            return False
        return old_version // self._snapshot_threshold < new_version // self._snapshot_threshold

    async def _try_create_snapshot(self, aggregate: TAggregate) -> None:
        try:
            await self.create_snapshot(aggregate)
        except Exception as e:
            # The events are already committed; a missing snapshot only costs replay time
            logger.warning(
                "Failed to create snapshot for %s/%s at version %d: %s",
                self._aggregate_type,
                aggregate.aggregate_id,
                aggregate.version,
                e,
                exc_info=True,
            )

    async def _load_snapshot(self, aggregate_id: str) -> Snapshot | None:
        if self._snapshot_threshold is None:
            return None
        snapshot = await self._event_store.get_latest_snapshot(aggregate_id)
        if snapshot is None:
            return None
        if snapshot.aggregate_type != self._aggregate_type:
            logger.warning(
                "Ignoring snapshot of type %s for %s/%s",
                snapshot.aggregate_type,
                self._aggregate_type,
                aggregate_id,
            )
            return None
        if snapshot.schema_version != self._aggregate_class.schema_version:
            logger.info(
                "Snapshot schema version mismatch for %s/%s: snapshot has %d, aggregate expects %d",
                self._aggregate_type,
                aggregate_id,
                snapshot.schema_version,
                self._aggregate_class.schema_version,
            )
            return None
        return snapshot


__all__ = [
    "AggregateRepository",
    "TAggregate",
]
