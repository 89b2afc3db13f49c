"""Events emitted by the Inventory aggregate."""

from __future__ import annotations

from datetime import datetime
from typing import ClassVar, Literal

from shopsource.events.base import DomainEvent
from shopsource.events.registry import register_event

StockChangeType = Literal["increment", "decrement", "set"]


class InventoryEvent(DomainEvent):
    aggregate_type: ClassVar[str] = "Inventory"


@register_event
class InventoryItemCreated(InventoryEvent):
    product_id: str
    sku: str
    initial_stock: int
    low_stock_threshold: int = 10
    reserved_stock: int = 0


@register_event
class StockUpdated(InventoryEvent):
    product_id: str
    old_stock: int
    new_stock: int
    change_reason: str
    change_type: StockChangeType = "set"


@register_event
class StockReserved(InventoryEvent):
    product_id: str
    order_id: str
    quantity: int
    reserved_at: datetime
    expires_at: datetime


@register_event
class StockReleased(InventoryEvent):
    product_id: str
    order_id: str
    quantity: int
    released_at: datetime
    reason: str


@register_event
class StockAllocated(InventoryEvent):
    product_id: str
    order_id: str
    quantity: int
    allocated_at: datetime


@register_event
class LowStockAlert(InventoryEvent):
    product_id: str
    current_stock: int
    threshold: int
    alerted_at: datetime


@register_event
class OutOfStockAlert(InventoryEvent):
    product_id: str
    alerted_at: datetime


@register_event
class InventoryThresholdUpdated(InventoryEvent):
    product_id: str
    old_threshold: int
    new_threshold: int
    updated_at: datetime
