"""
Unit tests for InMemoryEventStore.

Tests cover:
- Appending and reading per-aggregate streams
- Optimistic concurrency, including two interleaved writers
- Global and typed feeds with exclusive position cursors
- Snapshots and idempotency lookups
"""

import asyncio
from datetime import UTC, datetime

import pytest

from shopsource.events.base import DomainEvent
from shopsource.events.order import OrderConfirmed, OrderShipped
from shopsource.exceptions import EventStoreError, OptimisticLockError
from shopsource.observability import MockTracer
from shopsource.stores.in_memory import InMemoryEventStore
from shopsource.stores.interface import AppendResult, Snapshot


def confirmed(aggregate_id: str) -> OrderConfirmed:
    return OrderConfirmed(aggregate_id=aggregate_id, confirmed_at=datetime.now(UTC), confirmed_by="admin")


def shipped(aggregate_id: str) -> OrderShipped:
    return OrderShipped(
        aggregate_id=aggregate_id,
        tracking_number="T1",
        carrier="UPS",
        shipped_at=datetime.now(UTC),
    )


class TestSaveEvents:
    """Tests for appending events."""

    @pytest.mark.asyncio
    async def test_assigns_contiguous_versions(self, event_store: InMemoryEventStore) -> None:
        result = await event_store.save_events("order-1", [confirmed("order-1"), shipped("order-1")], 0)

        stored = await event_store.get_events("order-1")
        assert result == AppendResult(success=True, new_version=2, global_position=stored[-1].position)
        assert [s.version for s in stored] == [1, 2]
        assert [s.event.version for s in stored] == [1, 2]

    @pytest.mark.asyncio
    async def test_appends_after_existing_version(self, event_store: InMemoryEventStore) -> None:
        await event_store.save_events("order-1", [confirmed("order-1")], 0)
        result = await event_store.save_events("order-1", [shipped("order-1")], 1)

        assert result.new_version == 2
        assert await event_store.get_stream_version("order-1") == 2

    @pytest.mark.asyncio
    async def test_stale_expected_version_raises(self, event_store: InMemoryEventStore) -> None:
        await event_store.save_events("order-1", [confirmed("order-1")], 0)

        with pytest.raises(OptimisticLockError) as exc_info:
            await event_store.save_events("order-1", [shipped("order-1")], 0)

        assert exc_info.value.expected_version == 0
        assert exc_info.value.actual_version == 1
        assert len(await event_store.get_events("order-1")) == 1

    @pytest.mark.asyncio
    async def test_exactly_one_of_two_interleaved_writers_wins(self, event_store: InMemoryEventStore) -> None:
        await event_store.save_events("order-1", [confirmed("order-1")], 0)

        results = await asyncio.gather(
            event_store.save_events("order-1", [shipped("order-1")], 1),
            event_store.save_events("order-1", [shipped("order-1")], 1),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, OptimisticLockError)]
        assert len(failures) == 1
        assert await event_store.get_stream_version("order-1") == 2

    @pytest.mark.asyncio
    async def test_empty_batch_is_noop(self, event_store: InMemoryEventStore) -> None:
        result = await event_store.save_events("order-1", [], 0)
        assert result.success
        assert event_store.event_count == 0

    @pytest.mark.asyncio
    async def test_event_of_another_aggregate_is_rejected(self, event_store: InMemoryEventStore) -> None:
        with pytest.raises(EventStoreError):
            await event_store.save_events("order-1", [confirmed("order-2")], 0)
        assert await event_store.get_stream_version("order-1") == 0

    @pytest.mark.asyncio
    async def test_duplicate_event_id_is_rejected(self, event_store: InMemoryEventStore) -> None:
        event = confirmed("order-1")
        await event_store.save_events("order-1", [event], 0)

        with pytest.raises(EventStoreError):
            await event_store.save_events("order-1", [event], 1)

    @pytest.mark.asyncio
    async def test_opens_span(self) -> None:
        tracer = MockTracer()
        store = InMemoryEventStore(tracer=tracer)

        await store.save_events("order-1", [confirmed("order-1")], 0)

        assert "shopsource.event_store.save_events" in tracer.span_names


class TestReading:
    """Tests for stream and feed reads."""

    @pytest.mark.asyncio
    async def test_get_events_from_version(self, event_store: InMemoryEventStore) -> None:
        await event_store.save_events("order-1", [confirmed("order-1"), shipped("order-1")], 0)

        stored = await event_store.get_events("order-1", from_version=1)

        assert [s.version for s in stored] == [2]
        assert isinstance(stored[0].event, OrderShipped)

    @pytest.mark.asyncio
    async def test_missing_stream_is_empty(self, event_store: InMemoryEventStore) -> None:
        assert await event_store.get_events("nope") == []
        assert await event_store.get_stream_version("nope") == 0

    @pytest.mark.asyncio
    async def test_global_feed_pages_by_position(self, event_store: InMemoryEventStore) -> None:
        await event_store.save_events("order-1", [confirmed("order-1")], 0)
        await event_store.save_events("order-2", [confirmed("order-2")], 0)
        await event_store.save_events("order-1", [shipped("order-1")], 1)

        first_page = await event_store.get_all_events(limit=2)
        second_page = await event_store.get_all_events(from_position=first_page[-1].position, limit=2)

        assert [s.aggregate_id for s in first_page] == ["order-1", "order-2"]
        assert [s.event_type for s in second_page] == ["OrderShipped"]
        positions = [s.position for s in first_page + second_page]
        assert positions == sorted(positions)

    @pytest.mark.asyncio
    async def test_typed_feed(self, event_store: InMemoryEventStore) -> None:
        await event_store.save_events("order-1", [confirmed("order-1"), shipped("order-1")], 0)
        await event_store.save_events("order-2", [confirmed("order-2")], 0)

        stored = await event_store.get_events_by_type("OrderConfirmed")

        assert [s.aggregate_id for s in stored] == ["order-1", "order-2"]

    @pytest.mark.asyncio
    async def test_event_exists(self, event_store: InMemoryEventStore) -> None:
        event: DomainEvent = confirmed("order-1")
        await event_store.save_events("order-1", [event], 0)

        assert await event_store.event_exists(event.event_id)
        assert not await event_store.event_exists("missing")


class TestSnapshots:
    """Tests for snapshot storage."""

    @pytest.mark.asyncio
    async def test_latest_snapshot_respects_max_version(self, event_store: InMemoryEventStore) -> None:
        for version in (5, 10):
            await event_store.save_snapshot(
                Snapshot(aggregate_id="order-1", aggregate_type="Order", version=version, state={"v": version})
            )

        latest = await event_store.get_latest_snapshot("order-1")
        bounded = await event_store.get_latest_snapshot("order-1", max_version=7)

        assert latest is not None and latest.version == 10
        assert bounded is not None and bounded.version == 5
        assert await event_store.get_latest_snapshot("order-1", max_version=4) is None

    @pytest.mark.asyncio
    async def test_same_version_is_replaced(self, event_store: InMemoryEventStore) -> None:
        await event_store.save_snapshot(Snapshot("order-1", "Order", 5, {"v": "old"}))
        await event_store.save_snapshot(Snapshot("order-1", "Order", 5, {"v": "new"}))

        latest = await event_store.get_latest_snapshot("order-1")

        assert latest is not None
        assert latest.state == {"v": "new"}

    @pytest.mark.asyncio
    async def test_clear_drops_everything(self, event_store: InMemoryEventStore) -> None:
        await event_store.save_events("order-1", [confirmed("order-1")], 0)
        await event_store.save_snapshot(Snapshot("order-1", "Order", 1, {}))

        event_store.clear()

        assert event_store.event_count == 0
        assert await event_store.get_latest_snapshot("order-1") is None
