"""
Unit tests for DomainEvent, EventMetadata and the event registry.

Tests cover:
- Event type defaults and the camelCase wire shape
- Deserialization through the registry, including unknown types
- Metadata helpers (with_version, with_metadata, with_causation)
- Registry registration rules
"""

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from shopsource.events import default_registry
from shopsource.events.base import DomainEvent, EventMetadata, UnknownEvent, create_event
from shopsource.events.order import OrderCreated, OrderShipped
from shopsource.events.registry import (
    DuplicateEventTypeError,
    EventRegistry,
    EventTypeNotFoundError,
    register_event,
)
from shopsource.exceptions import SerializationError


class TestEventShape:
    """Tests for event construction and serialization."""

    def test_event_type_defaults_to_class_name(self) -> None:
        event = OrderShipped(aggregate_id="order-1", tracking_number="T1", carrier="UPS", shipped_at=datetime.now(UTC))
        assert event.event_type == "OrderShipped"

    def test_event_id_is_generated(self) -> None:
        first = OrderShipped(aggregate_id="o", tracking_number="T", carrier="C", shipped_at=datetime.now(UTC))
        second = OrderShipped(aggregate_id="o", tracking_number="T", carrier="C", shipped_at=datetime.now(UTC))
        assert first.event_id != second.event_id

    def test_events_are_frozen(self) -> None:
        event = OrderShipped(aggregate_id="o", tracking_number="T", carrier="C", shipped_at=datetime.now(UTC))
        with pytest.raises(ValidationError):
            event.carrier = "DHL"  # type: ignore[misc]

    def test_to_dict_uses_camel_case_wire_shape(self) -> None:
        event = OrderShipped(
            aggregate_id="order-1",
            tracking_number="T1",
            carrier="UPS",
            shipped_at=datetime(2024, 1, 1, tzinfo=UTC),
            metadata=EventMetadata(version=5, user_id="admin-1"),
        )

        wire = event.to_dict()

        assert wire["eventType"] == "OrderShipped"
        assert wire["aggregateId"] == "order-1"
        assert wire["data"]["trackingNumber"] == "T1"
        assert "eventId" not in wire["data"]
        assert wire["metadata"]["version"] == 5
        assert wire["metadata"]["userId"] == "admin-1"

    def test_data_excludes_envelope_fields(self) -> None:
        event = OrderShipped(aggregate_id="o", tracking_number="T", carrier="C", shipped_at=datetime.now(UTC))
        assert set(event.data) == {"trackingNumber", "carrier", "shippedAt", "estimatedDelivery"}

    def test_version_and_timestamp_come_from_metadata(self) -> None:
        metadata = EventMetadata(version=3)
        event = OrderShipped(
            aggregate_id="o",
            tracking_number="T",
            carrier="C",
            shipped_at=datetime.now(UTC),
            metadata=metadata,
        )
        assert event.version == 3
        assert event.timestamp == metadata.timestamp


class TestFromDict:
    """Tests for DomainEvent.from_dict."""

    def test_round_trip_resolves_registered_class(self) -> None:
        original = OrderShipped(
            aggregate_id="order-1",
            tracking_number="T1",
            carrier="UPS",
            shipped_at=datetime(2024, 1, 1, tzinfo=UTC),
        )

        restored = DomainEvent.from_dict(original.to_dict())

        assert isinstance(restored, OrderShipped)
        assert restored == original

    def test_unknown_type_becomes_unknown_event(self) -> None:
        restored = DomainEvent.from_dict(
            {
                "eventType": "GiftWrapped",
                "aggregateId": "order-1",
                "data": {"paperColor": "red"},
                "metadata": {"version": 2},
            }
        )

        assert isinstance(restored, UnknownEvent)
        assert restored.event_type == "GiftWrapped"
        assert restored.version == 2
        assert restored.data["paperColor"] == "red"

    def test_missing_event_type_raises(self) -> None:
        with pytest.raises(SerializationError):
            DomainEvent.from_dict({"aggregateId": "order-1", "data": {}})

    def test_invalid_payload_raises_serialization_error(self) -> None:
        with pytest.raises(SerializationError) as exc_info:
            DomainEvent.from_dict({"eventType": "OrderShipped", "aggregateId": "order-1", "data": {}})
        assert exc_info.value.event_type == "OrderShipped"

    def test_uses_given_registry(self) -> None:
        registry = EventRegistry()
        restored = DomainEvent.from_dict(
            OrderShipped(
                aggregate_id="o",
                tracking_number="T",
                carrier="C",
                shipped_at=datetime.now(UTC),
            ).to_dict(),
            registry=registry,
        )
        assert isinstance(restored, UnknownEvent)

    def test_create_event_builds_typed_event(self) -> None:
        event = create_event(
            "OrderConfirmed",
            "order-1",
            {"confirmedAt": "2024-01-01T00:00:00Z", "confirmedBy": "u1"},
            {"userId": "u1"},
        )
        assert type(event).__name__ == "OrderConfirmed"
        assert event.metadata.user_id == "u1"


class TestMetadataHelpers:
    """Tests for the with_* copy helpers."""

    def test_with_version_returns_stamped_copy(self) -> None:
        event = OrderShipped(aggregate_id="o", tracking_number="T", carrier="C", shipped_at=datetime.now(UTC))
        stamped = event.with_version(7)
        assert stamped.version == 7
        assert event.version == 1
        assert stamped.event_id == event.event_id

    def test_with_metadata_keeps_extra_keys(self) -> None:
        event = OrderShipped(aggregate_id="o", tracking_number="T", carrier="C", shipped_at=datetime.now(UTC))
        enriched = event.with_metadata(user_id="admin-1", request_id="r-42")
        assert enriched.metadata.user_id == "admin-1"
        assert enriched.metadata.to_dict()["request_id"] == "r-42"

    def test_with_causation_inherits_correlation(self) -> None:
        cause = OrderShipped(
            aggregate_id="o",
            tracking_number="T",
            carrier="C",
            shipped_at=datetime.now(UTC),
            metadata=EventMetadata(correlation_id="corr-1"),
        )
        effect = OrderShipped(aggregate_id="o", tracking_number="T", carrier="C", shipped_at=datetime.now(UTC))

        caused = effect.with_causation(cause)

        assert caused.metadata.causation_id == cause.event_id
        assert caused.metadata.correlation_id == "corr-1"

    def test_with_causation_falls_back_to_event_id(self) -> None:
        cause = OrderShipped(aggregate_id="o", tracking_number="T", carrier="C", shipped_at=datetime.now(UTC))
        effect = OrderShipped(aggregate_id="o", tracking_number="T", carrier="C", shipped_at=datetime.now(UTC))
        assert effect.with_causation(cause).metadata.correlation_id == cause.event_id


class TestEventRegistry:
    """Tests for EventRegistry."""

    def test_catalog_is_registered_on_import(self) -> None:
        for event_type in ("UserRegistered", "ProductCreated", "OrderCreated", "PaymentProcessed", "StockReserved"):
            assert event_type in default_registry

    def test_register_and_get(self) -> None:
        registry = EventRegistry()
        registry.register(OrderCreated)
        assert registry.get("OrderCreated") is OrderCreated
        assert len(registry) == 1

    def test_registering_same_class_twice_is_noop(self) -> None:
        registry = EventRegistry()
        registry.register(OrderCreated)
        registry.register(OrderCreated)
        assert registry.event_types() == ["OrderCreated"]

    def test_different_class_under_same_name_raises(self) -> None:
        registry = EventRegistry()
        registry.register(OrderCreated)
        with pytest.raises(DuplicateEventTypeError):
            registry.register(OrderShipped, event_type="OrderCreated")

    def test_get_unknown_raises(self) -> None:
        registry = EventRegistry()
        with pytest.raises(EventTypeNotFoundError, match="GiftWrapped"):
            registry.get("GiftWrapped")
        assert registry.get_or_none("GiftWrapped") is None

    def test_decorator_with_explicit_registry(self) -> None:
        registry = EventRegistry()

        @register_event(registry=registry)
        class GiftWrapped(DomainEvent):
            paper_color: str

        assert registry.get("GiftWrapped") is GiftWrapped
        assert "GiftWrapped" not in default_registry
