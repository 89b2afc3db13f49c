"""
Shared pytest fixtures for the shopsource tests.

This module provides:
- Infrastructure fixtures (event_store, event_bus, mock_tracer)
- Sample data fixtures (order lines, addresses, ids)
- Aggregate fixtures (a created order, a stocked inventory item)
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any
from uuid import uuid4

import pytest

from shopsource.aggregates.inventory import Inventory
from shopsource.aggregates.order import Order
from shopsource.bus.memory import InMemoryEventBus
from shopsource.events.base import utc_now
from shopsource.events.order import OrderAddress, OrderLine
from shopsource.observability import MockTracer
from shopsource.stores.in_memory import InMemoryEventStore

# =============================================================================
# Infrastructure Fixtures
# =============================================================================


@pytest.fixture
def event_store() -> InMemoryEventStore:
    """Provide an empty in-memory event store with tracing disabled."""
    return InMemoryEventStore(enable_tracing=False)


@pytest.fixture
def event_bus() -> InMemoryEventBus:
    """Provide an in-memory event bus with tracing disabled."""
    return InMemoryEventBus(enable_tracing=False)


@pytest.fixture
def mock_tracer() -> MockTracer:
    """Provide a tracer that records span names and attributes."""
    return MockTracer()


# =============================================================================
# Sample Data Fixtures
# =============================================================================


@pytest.fixture
def new_id() -> Callable[[str], str]:
    """Factory for readable unique ids: new_id("order") -> "order-1a2b3c4d"."""

    def factory(prefix: str) -> str:
        return f"{prefix}-{uuid4().hex[:8]}"

    return factory


@pytest.fixture
def address() -> OrderAddress:
    return OrderAddress(
        street="1 Main St",
        city="Springfield",
        state="IL",
        zip_code="62701",
        country="US",
    )


@pytest.fixture
def order_lines() -> list[OrderLine]:
    """The order from the reference scenario: 2 x p1 at 10.0."""
    return [OrderLine(product_id="p1", quantity=2, price=10.0, sku="S1")]


@pytest.fixture
def future() -> datetime:
    """A reservation expiry safely in the future."""
    return utc_now() + timedelta(minutes=15)


# =============================================================================
# Aggregate Fixtures
# =============================================================================


@pytest.fixture
def make_order(order_lines: list[OrderLine], address: OrderAddress) -> Callable[..., Order]:
    """Factory creating a pending order; keyword arguments override Order.create's."""

    def factory(order_id: str = "order-1", **overrides: Any) -> Order:
        params: dict[str, Any] = {
            "user_id": "user-1",
            "items": order_lines,
            "shipping_address": address,
            "billing_address": address,
            "payment_method": "credit_card",
        }
        params.update(overrides)
        return Order.create(order_id, **params)

    return factory


@pytest.fixture
def order(make_order: Callable[..., Order]) -> Order:
    """A freshly created, pending order with a total of 20.0."""
    return make_order()


@pytest.fixture
def inventory() -> Inventory:
    """Inventory with 5 units on hand and a low stock threshold of 2."""
    return Inventory.create("inv-1", "p1", "S1", initial_stock=5, low_stock_threshold=2)
