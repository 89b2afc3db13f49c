"""Events emitted by the Order aggregate, plus the value objects they carry."""

from __future__ import annotations

from datetime import datetime
from typing import ClassVar, Literal

from shopsource.events.base import DomainEvent, ValueObject
from shopsource.events.registry import register_event


class OrderAddress(ValueObject):
    street: str
    city: str
    state: str
    zip_code: str
    country: str
    phone: str | None = None
    email: str | None = None

    def format(self) -> str:
        """Single-line postal representation."""
        return f"{self.street}, {self.city}, {self.state} {self.zip_code}, {self.country}"


class OrderLine(ValueObject):
    """Item as requested at order creation time."""

    product_id: str
    quantity: int
    price: float
    sku: str
    name: str | None = None


class OrderEvent(DomainEvent):
    aggregate_type: ClassVar[str] = "Order"


@register_event
class OrderCreated(OrderEvent):
    user_id: str
    items: list[OrderLine]
    total_amount: float
    currency: str = "USD"
    shipping_address: OrderAddress
    billing_address: OrderAddress
    payment_method: str


@register_event
class OrderConfirmed(OrderEvent):
    confirmed_at: datetime
    confirmed_by: str


@register_event
class OrderPaymentRequested(OrderEvent):
    payment_id: str
    amount: float
    currency: str
    payment_method: str


@register_event
class OrderPaid(OrderEvent):
    payment_id: str
    paid_at: datetime
    transaction_id: str
    amount: float
    currency: str


@register_event
class OrderPaymentFailed(OrderEvent):
    payment_id: str
    failed_at: datetime
    reason: str
    error_code: str | None = None


@register_event
class OrderShipped(OrderEvent):
    tracking_number: str
    carrier: str
    shipped_at: datetime
    estimated_delivery: datetime | None = None


@register_event
class OrderDelivered(OrderEvent):
    delivered_at: datetime
    delivered_to: str
    signature: str | None = None


@register_event
class OrderCancelled(OrderEvent):
    cancelled_at: datetime
    cancelled_by: str
    reason: str
    refund_amount: float | None = None


@register_event
class OrderRefunded(OrderEvent):
    refund_id: str
    refunded_at: datetime
    refund_amount: float
    currency: str
    reason: str
    refund_method: str


@register_event
class OrderItemUpdated(OrderEvent):
    item_id: str
    product_id: str
    quantity: int
    price: float
    updated_at: datetime


@register_event
class OrderItemRemoved(OrderEvent):
    item_id: str
    product_id: str
    removed_at: datetime
    reason: str | None = None


@register_event
class OrderStatusChanged(OrderEvent):
    old_status: str
    new_status: str
    changed_at: datetime
    changed_by: str
    reason: str | None = None


@register_event
class OrderAddressUpdated(OrderEvent):
    address_type: Literal["shipping", "billing"]
    old_address: OrderAddress
    new_address: OrderAddress
    updated_at: datetime
