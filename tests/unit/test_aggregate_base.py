"""
Unit tests for AggregateRoot and DeclarativeAggregate.

Tests cover:
- Version validation of new events
- Replay versus new events
- Unregistered event handling modes
- Event context propagation into metadata
- Snapshot state helpers
"""

import logging
from datetime import UTC, datetime
from typing import ClassVar

import pytest
from pydantic import ValidationError

from shopsource.aggregates.base import UnregisteredEventHandling
from shopsource.aggregates.order import Order, OrderStatus
from shopsource.events.base import EventMetadata, UnknownEvent
from shopsource.events.order import OrderConfirmed
from shopsource.exceptions import DomainError, EventVersionError, UnhandledEventError


def confirmed(version: int, aggregate_id: str = "order-1") -> OrderConfirmed:
    return OrderConfirmed(
        aggregate_id=aggregate_id,
        confirmed_at=datetime.now(UTC),
        confirmed_by="admin",
        metadata=EventMetadata(version=version),
    )


def gift_wrapped(version: int) -> UnknownEvent:
    return UnknownEvent.model_validate(
        {
            "eventType": "GiftWrapped",
            "aggregateId": "order-1",
            "paperColor": "red",
            "metadata": {"version": version},
        }
    )


class StrictOrder(Order):
    unregistered_event_handling: ClassVar[UnregisteredEventHandling] = "error"


class QuietOrder(Order):
    unregistered_event_handling: ClassVar[UnregisteredEventHandling] = "ignore"


class TestApplyEvent:
    """Tests for apply_event."""

    def test_new_event_must_carry_next_version(self, order: Order) -> None:
        with pytest.raises(EventVersionError) as exc_info:
            order.apply_event(confirmed(version=5))

        assert exc_info.value.expected_version == 2
        assert order.version == 1
        assert order.status == OrderStatus.PENDING

    def test_new_event_with_next_version_is_recorded(self, order: Order) -> None:
        order.apply_event(confirmed(version=2))
        assert order.version == 2
        assert len(order.uncommitted_events) == 2

    def test_replayed_events_are_not_recorded(self, order: Order) -> None:
        replayed = Order.from_events("order-1", order.uncommitted_events)
        assert replayed.version == 1
        assert not replayed.has_uncommitted_events

    def test_uncommitted_events_is_a_copy(self, order: Order) -> None:
        order.uncommitted_events.clear()
        assert len(order.uncommitted_events) == 1

    def test_mark_events_as_committed(self, order: Order) -> None:
        order.mark_events_as_committed()
        assert order.uncommitted_events == []
        assert order.version == 1

    def test_failed_precondition_leaves_aggregate_untouched(self, order: Order) -> None:
        with pytest.raises(DomainError) as exc_info:
            order.ship("T", "UPS")

        assert exc_info.value.aggregate_id == "order-1"
        assert order.version == 1
        assert len(order.uncommitted_events) == 1


class TestUnregisteredEvents:
    """Tests for events without a reducer."""

    def test_warn_skips_and_logs(self, order: Order, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="shopsource.aggregates.base"):
            order.apply_event(gift_wrapped(version=2))

        assert order.version == 2
        assert order.status == OrderStatus.PENDING
        assert "GiftWrapped" in caplog.text

    def test_ignore_skips_silently(self, caplog: pytest.LogCaptureFixture) -> None:
        order = QuietOrder("order-1")
        with caplog.at_level(logging.WARNING, logger="shopsource.aggregates.base"):
            order.apply_event(gift_wrapped(version=1))

        assert order.version == 1
        assert "GiftWrapped" not in caplog.text

    def test_error_raises(self) -> None:
        order = StrictOrder("order-1")
        with pytest.raises(UnhandledEventError) as exc_info:
            order.apply_event(gift_wrapped(version=1))

        assert "OrderCreated" in exc_info.value.available_handlers
        assert order.version == 0


class TestEventContext:
    """Tests for set_event_context."""

    def test_context_is_stamped_on_new_events(self, order: Order) -> None:
        order.set_event_context(user_id="admin-1", correlation_id="corr-1")
        order.confirm("admin-1")

        metadata = order.uncommitted_events[-1].metadata
        assert metadata.user_id == "admin-1"
        assert metadata.correlation_id == "corr-1"
        assert metadata.causation_id is None
        assert metadata.version == 2

    def test_context_is_replaced_not_merged(self, order: Order) -> None:
        order.set_event_context(user_id="admin-1", correlation_id="corr-1")
        order.set_event_context(user_id="admin-2")
        order.confirm("admin-2")

        metadata = order.uncommitted_events[-1].metadata
        assert metadata.user_id == "admin-2"
        assert metadata.correlation_id is None


class TestSnapshotState:
    """Tests for the snapshot helpers."""

    def test_serialize_and_restore(self, order: Order) -> None:
        order.confirm("admin")
        data = order._serialize_state()

        restored = Order("order-1")
        restored._restore_from_snapshot(data, order.version)

        assert restored.state == order.state
        assert restored.version == 2

    def test_empty_aggregate_serializes_to_empty_dict(self) -> None:
        assert Order("order-1")._serialize_state() == {}

    def test_restore_rejects_incompatible_state(self) -> None:
        with pytest.raises(ValidationError):
            Order("order-1")._restore_from_snapshot({"status": "paid"}, 3)
