"""
Inventory aggregate: stock levels and per-order reservations.

``reserved_stock`` always equals the sum of the quantities of the active
(unreleased, unallocated) reservations. Allocation converts reserved units
into shipped ones by decrementing both ``current_stock`` and
``reserved_stock``.
"""

from datetime import datetime
from typing import Self

from pydantic import BaseModel, Field

from shopsource.aggregates.base import DeclarativeAggregate
from shopsource.events.base import ValueObject, utc_now
from shopsource.events.inventory import (
    InventoryItemCreated,
    InventoryThresholdUpdated,
    LowStockAlert,
    OutOfStockAlert,
    StockAllocated,
    StockChangeType,
    StockReleased,
    StockReserved,
    StockUpdated,
)
from shopsource.handlers import handles


class StockReservation(ValueObject):
    id: str
    order_id: str
    quantity: int
    reserved_at: datetime
    expires_at: datetime
    is_allocated: bool = False

    @property
    def is_active(self) -> bool:
        return not self.is_allocated

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or utc_now()) >= self.expires_at


class InventoryState(BaseModel):
    inventory_id: str
    product_id: str
    sku: str
    current_stock: int = 0
    reserved_stock: int = 0
    low_stock_threshold: int = 10
    # Keyed by order id
    reservations: dict[str, StockReservation] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime

    @property
    def available_stock(self) -> int:
        return max(0, self.current_stock - self.reserved_stock)


class Inventory(DeclarativeAggregate[InventoryState]):
    """
    Stock of a single product.

    Example:
        >>> inventory = Inventory.create("inv-1", "prod-1", "SKU-1", initial_stock=100)
        >>> inventory.reserve_stock("order-1", 30, expires_at)
        >>> inventory.available_stock
        70
    """

    aggregate_type = "Inventory"

    @classmethod
    def create(
        cls,
        inventory_id: str,
        product_id: str,
        sku: str,
        initial_stock: int,
        low_stock_threshold: int = 10,
    ) -> Self:
        inventory = cls(inventory_id)
        inventory._require(initial_stock >= 0, "Initial stock cannot be negative")
        inventory._require(low_stock_threshold >= 0, "Low stock threshold cannot be negative")
        inventory._record(
            InventoryItemCreated,
            product_id=product_id,
            sku=sku,
            initial_stock=initial_stock,
            low_stock_threshold=low_stock_threshold,
            reserved_stock=0,
        )
        return inventory

    # Commands

    def update_stock(self, new_stock: int, reason: str, change_type: StockChangeType = "set") -> None:
        """
        Change the on-hand stock, then raise a stock alert when needed.

        ``new_stock`` is the target level for "set" and the delta for
        "increment" and "decrement". Decrements clamp at zero.
        """
        state = self._require_state()
        self._require(new_stock >= 0, "Stock quantity cannot be negative")
        if change_type == "increment":
            target = state.current_stock + new_stock
        elif change_type == "decrement":
            target = max(0, state.current_stock - new_stock)
        elif change_type == "set":
            target = new_stock
        else:
            self._fail(f"Unknown stock change type {change_type!r}")

        self._record(
            StockUpdated,
            product_id=state.product_id,
            old_stock=state.current_stock,
            new_stock=target,
            change_reason=reason,
            change_type=change_type,
        )
        self._check_stock_alerts()

    def reserve_stock(self, order_id: str, quantity: int, expires_at: datetime) -> None:
        state = self._require_state()
        self._require(quantity > 0, "Reservation quantity must be greater than zero")
        existing = state.reservations.get(order_id)
        self._require(
            existing is None or not existing.is_active,
            f"Order {order_id} already holds an active reservation",
        )
        self._require(
            state.available_stock >= quantity,
            "Insufficient available stock for reservation",
        )
        self._record(
            StockReserved,
            product_id=state.product_id,
            order_id=order_id,
            quantity=quantity,
            reserved_at=utc_now(),
            expires_at=expires_at,
        )

    def release_stock(self, order_id: str, reason: str) -> None:
        state = self._require_state()
        reservation = state.reservations.get(order_id)
        if reservation is None or not reservation.is_active:
            self._fail("Stock reservation not found")
        self._record(
            StockReleased,
            product_id=state.product_id,
            order_id=order_id,
            quantity=reservation.quantity,
            released_at=utc_now(),
            reason=reason,
        )

    def allocate_stock(self, order_id: str, quantity: int) -> None:
        state = self._require_state()
        reservation = state.reservations.get(order_id)
        if reservation is None or not reservation.is_active:
            self._fail("Stock reservation not found")
        self._require(quantity > 0, "Allocation quantity must be greater than zero")
        self._require(
            reservation.quantity >= quantity,
            "Allocation quantity cannot exceed reserved quantity",
        )
        self._record(
            StockAllocated,
            product_id=state.product_id,
            order_id=order_id,
            quantity=quantity,
            allocated_at=utc_now(),
        )

    def update_threshold(self, new_threshold: int) -> None:
        state = self._require_state()
        self._require(new_threshold >= 0, "Low stock threshold cannot be negative")
        self._record(
            InventoryThresholdUpdated,
            product_id=state.product_id,
            old_threshold=state.low_stock_threshold,
            new_threshold=new_threshold,
            updated_at=utc_now(),
        )

    def _check_stock_alerts(self) -> None:
        state = self._require_state()
        available = state.available_stock
        if available == 0:
            self._record(OutOfStockAlert, product_id=state.product_id, alerted_at=utc_now())
        elif available <= state.low_stock_threshold:
            self._record(
                LowStockAlert,
                product_id=state.product_id,
                current_stock=available,
                threshold=state.low_stock_threshold,
                alerted_at=utc_now(),
            )

    # Queries

    @property
    def current_stock(self) -> int:
        return self._state.current_stock if self._state else 0

    @property
    def reserved_stock(self) -> int:
        return self._state.reserved_stock if self._state else 0

    @property
    def available_stock(self) -> int:
        return self._state.available_stock if self._state else 0

    def is_low_stock(self) -> bool:
        if self._state is None:
            return False
        return 0 < self._state.available_stock <= self._state.low_stock_threshold

    def is_out_of_stock(self) -> bool:
        return self.available_stock == 0

    def get_reservation(self, order_id: str) -> StockReservation | None:
        return self._state.reservations.get(order_id) if self._state else None

    def get_reservations(self) -> list[StockReservation]:
        return list(self._state.reservations.values()) if self._state else []

    # Reducers

    @handles(InventoryItemCreated)
    def _created(self, state: InventoryState | None, event: InventoryItemCreated) -> InventoryState:
        return InventoryState(
            inventory_id=self.aggregate_id,
            product_id=event.product_id,
            sku=event.sku,
            current_stock=event.initial_stock,
            reserved_stock=event.reserved_stock,
            low_stock_threshold=event.low_stock_threshold,
            created_at=event.timestamp,
            updated_at=event.timestamp,
        )

    @handles(StockUpdated)
    def _stock_updated(self, state: InventoryState, event: StockUpdated) -> InventoryState:
        return state.model_copy(update={"current_stock": event.new_stock, "updated_at": event.timestamp})

    @handles(StockReserved)
    def _reserved(self, state: InventoryState, event: StockReserved) -> InventoryState:
        reservation = StockReservation(
            id=f"{self.aggregate_id}-{event.order_id}",
            order_id=event.order_id,
            quantity=event.quantity,
            reserved_at=event.reserved_at,
            expires_at=event.expires_at,
        )
        return state.model_copy(
            update={
                "reservations": {**state.reservations, event.order_id: reservation},
                "reserved_stock": state.reserved_stock + event.quantity,
                "updated_at": event.timestamp,
            }
        )

    @handles(StockReleased)
    def _released(self, state: InventoryState, event: StockReleased) -> InventoryState:
        reservation = state.reservations.get(event.order_id)
        if reservation is None or not reservation.is_active:
            return state.model_copy(update={"updated_at": event.timestamp})
        reservations = {k: v for k, v in state.reservations.items() if k != event.order_id}
        return state.model_copy(
            update={
                "reservations": reservations,
                "reserved_stock": state.reserved_stock - reservation.quantity,
                "updated_at": event.timestamp,
            }
        )

    @handles(StockAllocated)
    def _allocated(self, state: InventoryState, event: StockAllocated) -> InventoryState:
        reservation = state.reservations.get(event.order_id)
        if reservation is None or not reservation.is_active:
            return state.model_copy(update={"updated_at": event.timestamp})
        remaining = reservation.quantity - event.quantity
        if remaining > 0:
            updated = reservation.model_copy(update={"quantity": remaining})
        else:
            updated = reservation.model_copy(update={"is_allocated": True})
        return state.model_copy(
            update={
                "reservations": {**state.reservations, event.order_id: updated},
                "current_stock": state.current_stock - event.quantity,
                "reserved_stock": state.reserved_stock - event.quantity,
                "updated_at": event.timestamp,
            }
        )

    @handles(LowStockAlert)
    def _low_stock(self, state: InventoryState, event: LowStockAlert) -> InventoryState:
        return state.model_copy(update={"updated_at": event.timestamp})

    @handles(OutOfStockAlert)
    def _out_of_stock(self, state: InventoryState, event: OutOfStockAlert) -> InventoryState:
        return state.model_copy(update={"updated_at": event.timestamp})

    @handles(InventoryThresholdUpdated)
    def _threshold_updated(self, state: InventoryState, event: InventoryThresholdUpdated) -> InventoryState:
        return state.model_copy(
            update={"low_stock_threshold": event.new_threshold, "updated_at": event.timestamp}
        )
