"""
Unit tests for the Inventory aggregate.

Tests cover:
- Reservations against available stock
- Partial and full allocation, release
- Stock updates and the alerts they raise
- The reserved-stock bookkeeping across replay
"""

from datetime import datetime

import pytest

from shopsource.aggregates.inventory import Inventory
from shopsource.events.inventory import (
    LowStockAlert,
    OutOfStockAlert,
    StockAllocated,
    StockReleased,
    StockReserved,
    StockUpdated,
)
from shopsource.exceptions import DomainError


def active_reserved_total(inventory: Inventory) -> int:
    return sum(r.quantity for r in inventory.get_reservations() if r.is_active)


class TestCreate:
    """Tests for Inventory.create."""

    def test_initial_levels(self, inventory: Inventory) -> None:
        assert inventory.current_stock == 5
        assert inventory.reserved_stock == 0
        assert inventory.available_stock == 5
        assert inventory.version == 1

    def test_rejects_negative_initial_stock(self) -> None:
        with pytest.raises(DomainError, match="cannot be negative"):
            Inventory.create("inv-1", "p1", "S1", initial_stock=-1)


class TestReserve:
    """Tests for reserve_stock."""

    def test_second_reservation_beyond_available_fails(self, inventory: Inventory, future: datetime) -> None:
        inventory.reserve_stock("orderA", 4, future)
        assert inventory.available_stock == 1

        with pytest.raises(DomainError, match="Insufficient available stock"):
            inventory.reserve_stock("orderB", 3, future)

        assert inventory.reserved_stock == 4
        assert inventory.get_reservation("orderB") is None

    def test_reservation_is_recorded(self, inventory: Inventory, future: datetime) -> None:
        inventory.reserve_stock("orderA", 2, future)

        event = inventory.uncommitted_events[-1]
        assert isinstance(event, StockReserved)
        reservation = inventory.get_reservation("orderA")
        assert reservation is not None
        assert reservation.quantity == 2
        assert reservation.expires_at == future
        assert not reservation.is_expired()

    def test_one_active_reservation_per_order(self, inventory: Inventory, future: datetime) -> None:
        inventory.reserve_stock("orderA", 1, future)
        with pytest.raises(DomainError, match="already holds an active reservation"):
            inventory.reserve_stock("orderA", 1, future)

    @pytest.mark.parametrize("quantity", [0, -2])
    def test_quantity_must_be_positive(self, inventory: Inventory, future: datetime, quantity: int) -> None:
        with pytest.raises(DomainError):
            inventory.reserve_stock("orderA", quantity, future)

    def test_order_can_reserve_again_after_full_allocation(
        self,
        inventory: Inventory,
        future: datetime,
    ) -> None:
        inventory.reserve_stock("orderA", 1, future)
        inventory.allocate_stock("orderA", 1)

        inventory.reserve_stock("orderA", 2, future)

        assert inventory.reserved_stock == 2


class TestAllocateAndRelease:
    """Tests for allocate_stock and release_stock."""

    def test_partial_allocation_keeps_reservation_active(self, inventory: Inventory, future: datetime) -> None:
        inventory.reserve_stock("orderA", 4, future)

        inventory.allocate_stock("orderA", 1)

        reservation = inventory.get_reservation("orderA")
        assert reservation is not None
        assert reservation.is_active
        assert reservation.quantity == 3
        assert inventory.current_stock == 4
        assert inventory.reserved_stock == 3

    def test_full_allocation_marks_reservation_allocated(self, inventory: Inventory, future: datetime) -> None:
        inventory.reserve_stock("orderA", 4, future)

        inventory.allocate_stock("orderA", 4)

        reservation = inventory.get_reservation("orderA")
        assert reservation is not None
        assert reservation.is_allocated
        assert inventory.current_stock == 1
        assert inventory.reserved_stock == 0
        assert isinstance(inventory.uncommitted_events[-1], StockAllocated)

    def test_allocating_more_than_reserved_fails(self, inventory: Inventory, future: datetime) -> None:
        inventory.reserve_stock("orderA", 2, future)
        with pytest.raises(DomainError, match="cannot exceed reserved quantity"):
            inventory.allocate_stock("orderA", 3)

    @pytest.mark.parametrize("operation", ["allocate", "release"])
    def test_missing_reservation_fails_without_event(self, inventory: Inventory, operation: str) -> None:
        with pytest.raises(DomainError, match="Stock reservation not found"):
            if operation == "allocate":
                inventory.allocate_stock("orderA", 1)
            else:
                inventory.release_stock("orderA", "order cancelled")

        assert inventory.version == 1
        assert len(inventory.uncommitted_events) == 1

    def test_release_returns_units(self, inventory: Inventory, future: datetime) -> None:
        inventory.reserve_stock("orderA", 4, future)

        inventory.release_stock("orderA", "order cancelled")

        event = inventory.uncommitted_events[-1]
        assert isinstance(event, StockReleased)
        assert event.quantity == 4
        assert inventory.available_stock == 5
        assert inventory.get_reservation("orderA") is None

    def test_release_of_allocated_reservation_fails(self, inventory: Inventory, future: datetime) -> None:
        inventory.reserve_stock("orderA", 2, future)
        inventory.allocate_stock("orderA", 2)
        with pytest.raises(DomainError, match="Stock reservation not found"):
            inventory.release_stock("orderA", "too late")


class TestUpdateStock:
    """Tests for update_stock and stock alerts."""

    def test_set(self, inventory: Inventory) -> None:
        inventory.update_stock(50, "recount")
        assert inventory.current_stock == 50
        assert isinstance(inventory.uncommitted_events[-1], StockUpdated)

    def test_increment(self, inventory: Inventory) -> None:
        inventory.update_stock(10, "delivery", "increment")
        assert inventory.current_stock == 15

    def test_decrement_clamps_at_zero(self, inventory: Inventory) -> None:
        inventory.update_stock(10, "shrinkage", "decrement")
        assert inventory.current_stock == 0

    def test_negative_quantity_rejected(self, inventory: Inventory) -> None:
        with pytest.raises(DomainError):
            inventory.update_stock(-1, "oops")

    def test_low_stock_alert(self, inventory: Inventory) -> None:
        inventory.update_stock(2, "recount")

        alert = inventory.uncommitted_events[-1]
        assert isinstance(alert, LowStockAlert)
        assert alert.current_stock == 2
        assert alert.threshold == 2
        assert inventory.is_low_stock()

    def test_out_of_stock_alert(self, inventory: Inventory) -> None:
        inventory.update_stock(0, "recount")

        assert isinstance(inventory.uncommitted_events[-1], OutOfStockAlert)
        assert inventory.is_out_of_stock()

    def test_alerts_use_available_stock(self, inventory: Inventory, future: datetime) -> None:
        inventory.reserve_stock("orderA", 4, future)

        inventory.update_stock(6, "recount")

        alert = inventory.uncommitted_events[-1]
        assert isinstance(alert, LowStockAlert)
        assert alert.current_stock == 2

    def test_no_alert_when_plenty_left(self, inventory: Inventory) -> None:
        inventory.update_stock(40, "delivery")
        assert isinstance(inventory.uncommitted_events[-1], StockUpdated)

    def test_threshold_update(self, inventory: Inventory) -> None:
        inventory.update_threshold(7)
        assert inventory.state is not None
        assert inventory.state.low_stock_threshold == 7
        assert inventory.is_low_stock()


class TestReservedBookkeeping:
    """reserved_stock always equals the sum of active reservations."""

    def test_holds_through_mixed_operations_and_replay(self, future: datetime) -> None:
        inventory = Inventory.create("inv-1", "p1", "S1", initial_stock=20, low_stock_threshold=2)
        inventory.reserve_stock("orderA", 5, future)
        inventory.reserve_stock("orderB", 3, future)
        inventory.allocate_stock("orderA", 2)
        inventory.release_stock("orderB", "cancelled")
        inventory.reserve_stock("orderC", 4, future)
        inventory.allocate_stock("orderC", 4)

        assert inventory.reserved_stock == active_reserved_total(inventory) == 3
        assert inventory.current_stock == 14

        replayed = Inventory.from_events(inventory.aggregate_id, inventory.uncommitted_events)
        assert replayed.state == inventory.state
        assert replayed.reserved_stock == active_reserved_total(replayed)
