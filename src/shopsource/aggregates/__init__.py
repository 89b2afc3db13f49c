"""Aggregates of the shop domain and the repository that persists them."""

from shopsource.aggregates.base import (
    AggregateRoot,
    DeclarativeAggregate,
    TState,
    UnregisteredEventHandling,
)
from shopsource.aggregates.inventory import Inventory, InventoryState, StockReservation
from shopsource.aggregates.order import Order, OrderItem, OrderState, OrderStatus
from shopsource.aggregates.payment import Payment, PaymentState, PaymentStatus
from shopsource.aggregates.product import Product, ProductState
from shopsource.aggregates.repository import AggregateRepository, TAggregate
from shopsource.aggregates.user import User, UserState

__all__ = [
    "AggregateRoot",
    "DeclarativeAggregate",
    "TState",
    "UnregisteredEventHandling",
    "AggregateRepository",
    "TAggregate",
    "Inventory",
    "InventoryState",
    "StockReservation",
    "Order",
    "OrderItem",
    "OrderState",
    "OrderStatus",
    "Payment",
    "PaymentState",
    "PaymentStatus",
    "Product",
    "ProductState",
    "User",
    "UserState",
]
