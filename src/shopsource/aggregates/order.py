"""Order aggregate: line items, addresses and the order status machine."""

from collections.abc import Iterable, Mapping
from datetime import datetime
from enum import StrEnum
from typing import Any, Literal, Self

from pydantic import BaseModel, Field

from shopsource.aggregates.base import DeclarativeAggregate
from shopsource.events.base import ValueObject, utc_now
from shopsource.events.order import (
    OrderAddress,
    OrderAddressUpdated,
    OrderCancelled,
    OrderConfirmed,
    OrderCreated,
    OrderDelivered,
    OrderItemRemoved,
    OrderItemUpdated,
    OrderLine,
    OrderPaid,
    OrderPaymentFailed,
    OrderPaymentRequested,
    OrderRefunded,
    OrderShipped,
    OrderStatusChanged,
)
from shopsource.handlers import handles


class OrderStatus(StrEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PAYMENT_PENDING = "payment_pending"
    PAID = "paid"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


# Once reached, items and addresses are frozen and the order cannot be cancelled
CLOSED_STATUSES = frozenset({OrderStatus.CANCELLED, OrderStatus.DELIVERED, OrderStatus.REFUNDED})
REFUNDABLE_STATUSES = frozenset({OrderStatus.PAID, OrderStatus.SHIPPED, OrderStatus.DELIVERED})


class OrderItem(ValueObject):
    id: str
    product_id: str
    sku: str
    name: str = ""
    quantity: int
    unit_price: float
    currency: str = "USD"

    @property
    def total_price(self) -> float:
        return self.unit_price * self.quantity


class OrderState(BaseModel):
    order_id: str
    user_id: str
    items: dict[str, OrderItem] = Field(default_factory=dict)
    total_amount: float = 0.0
    currency: str = "USD"
    status: OrderStatus = OrderStatus.PENDING
    shipping_address: OrderAddress
    billing_address: OrderAddress
    payment_method: str
    payment_id: str | None = None
    transaction_id: str | None = None
    tracking_number: str | None = None
    carrier: str | None = None
    estimated_delivery: datetime | None = None
    cancellation_reason: str | None = None
    refund_amount: float | None = None
    created_at: datetime
    updated_at: datetime
    confirmed_at: datetime | None = None
    paid_at: datetime | None = None
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None
    cancelled_at: datetime | None = None
    refunded_at: datetime | None = None


def item_id_for(order_id: str, product_id: str) -> str:
    return f"{order_id}-{product_id}"


def _with_items(state: OrderState, items: dict[str, OrderItem], **changes: Any) -> OrderState:
    total = sum(item.total_price for item in items.values())
    return state.model_copy(update={"items": items, "total_amount": total, **changes})


class Order(DeclarativeAggregate[OrderState]):
    """
    An order moves forward through
    pending -> confirmed -> payment_pending -> paid -> shipped -> delivered,
    can be cancelled from any status that is not closed, and refunded once
    paid. A failed payment sends it back to pending.

    ``total_amount`` is always the sum of the current item totals.
    """

    aggregate_type = "Order"

    @classmethod
    def create(
        cls,
        order_id: str,
        user_id: str,
        items: Iterable[OrderLine | Mapping[str, Any]],
        shipping_address: OrderAddress | Mapping[str, Any],
        billing_address: OrderAddress | Mapping[str, Any],
        payment_method: str,
        currency: str = "USD",
    ) -> Self:
        order = cls(order_id)
        lines = [item if isinstance(item, OrderLine) else OrderLine.model_validate(item) for item in items]
        order._require(bool(lines), "Order must contain at least one item")
        seen: set[str] = set()
        for line in lines:
            order._require(line.quantity > 0, f"Quantity for product {line.product_id} must be positive")
            order._require(line.price >= 0, f"Price for product {line.product_id} cannot be negative")
            order._require(line.product_id not in seen, f"Product {line.product_id} appears twice")
            seen.add(line.product_id)

        order._record(
            OrderCreated,
            user_id=user_id,
            items=lines,
            total_amount=sum(line.price * line.quantity for line in lines),
            currency=currency,
            shipping_address=OrderAddress.model_validate(shipping_address)
            if not isinstance(shipping_address, OrderAddress)
            else shipping_address,
            billing_address=OrderAddress.model_validate(billing_address)
            if not isinstance(billing_address, OrderAddress)
            else billing_address,
            payment_method=payment_method,
        )
        return order

    # Commands

    def confirm(self, confirmed_by: str) -> None:
        state = self._require_state()
        self._require(
            state.status == OrderStatus.PENDING,
            "Order can only be confirmed when in pending status",
        )
        self._record(OrderConfirmed, confirmed_at=utc_now(), confirmed_by=confirmed_by)

    def request_payment(
        self,
        payment_id: str,
        amount: float | None = None,
        currency: str | None = None,
    ) -> None:
        state = self._require_state()
        self._require(
            state.status == OrderStatus.CONFIRMED,
            "Order can only request payment when confirmed",
        )
        self._record(
            OrderPaymentRequested,
            payment_id=payment_id,
            amount=state.total_amount if amount is None else amount,
            currency=currency or state.currency,
            payment_method=state.payment_method,
        )

    def mark_as_paid(
        self,
        payment_id: str,
        transaction_id: str,
        amount: float | None = None,
        currency: str | None = None,
    ) -> None:
        state = self._require_state()
        self._require(
            state.status == OrderStatus.PAYMENT_PENDING,
            "Order can only be marked as paid when payment is pending",
        )
        self._record(
            OrderPaid,
            payment_id=payment_id,
            paid_at=utc_now(),
            transaction_id=transaction_id,
            amount=state.total_amount if amount is None else amount,
            currency=currency or state.currency,
        )

    def mark_payment_failed(self, payment_id: str, reason: str, error_code: str | None = None) -> None:
        state = self._require_state()
        self._require(
            state.status == OrderStatus.PAYMENT_PENDING,
            "Order can only mark payment failed when payment is pending",
        )
        self._record(
            OrderPaymentFailed,
            payment_id=payment_id,
            failed_at=utc_now(),
            reason=reason,
            error_code=error_code,
        )

    def ship(
        self,
        tracking_number: str,
        carrier: str,
        estimated_delivery: datetime | None = None,
    ) -> None:
        state = self._require_state()
        self._require(state.status == OrderStatus.PAID, "Order can only be shipped when paid")
        self._record(
            OrderShipped,
            tracking_number=tracking_number,
            carrier=carrier,
            shipped_at=utc_now(),
            estimated_delivery=estimated_delivery,
        )

    def deliver(self, delivered_to: str, signature: str | None = None) -> None:
        state = self._require_state()
        self._require(state.status == OrderStatus.SHIPPED, "Order can only be delivered when shipped")
        self._record(
            OrderDelivered,
            delivered_at=utc_now(),
            delivered_to=delivered_to,
            signature=signature,
        )

    def cancel(self, cancelled_by: str, reason: str, refund_amount: float | None = None) -> None:
        state = self._require_state()
        self._require(
            state.status not in CLOSED_STATUSES,
            f"Order cannot be cancelled in status {state.status}",
        )
        self._record(
            OrderCancelled,
            cancelled_at=utc_now(),
            cancelled_by=cancelled_by,
            reason=reason,
            refund_amount=refund_amount,
        )

    def refund(
        self,
        refund_id: str,
        refund_amount: float,
        reason: str,
        refund_method: str,
        currency: str | None = None,
    ) -> None:
        state = self._require_state()
        self._require(
            state.status in REFUNDABLE_STATUSES,
            "Order can only be refunded when paid, shipped, or delivered",
        )
        self._require(refund_amount > 0, "Refund amount must be positive")
        self._require(
            refund_amount <= state.total_amount,
            "Refund amount cannot exceed the order total",
        )
        self._record(
            OrderRefunded,
            refund_id=refund_id,
            refunded_at=utc_now(),
            refund_amount=refund_amount,
            currency=currency or state.currency,
            reason=reason,
            refund_method=refund_method,
        )

    def update_item_quantity(self, item_id: str, quantity: int) -> None:
        state = self._require_state()
        self._require(
            state.status not in CLOSED_STATUSES,
            "Cannot update items in current order status",
        )
        item = state.items.get(item_id)
        if item is None:
            self._fail("Order item not found")
        self._require(quantity > 0, "Quantity must be positive")
        self._record(
            OrderItemUpdated,
            item_id=item_id,
            product_id=item.product_id,
            quantity=quantity,
            price=item.unit_price,
            updated_at=utc_now(),
        )

    def remove_item(self, item_id: str, reason: str | None = None) -> None:
        state = self._require_state()
        self._require(
            state.status not in CLOSED_STATUSES,
            "Cannot remove items in current order status",
        )
        item = state.items.get(item_id)
        if item is None:
            self._fail("Order item not found")
        self._record(
            OrderItemRemoved,
            item_id=item_id,
            product_id=item.product_id,
            removed_at=utc_now(),
            reason=reason,
        )

    def update_address(
        self,
        address_type: Literal["shipping", "billing"],
        new_address: OrderAddress | Mapping[str, Any],
    ) -> None:
        state = self._require_state()
        self._require(
            state.status not in CLOSED_STATUSES,
            "Cannot update address in current order status",
        )
        self._require(address_type in ("shipping", "billing"), f"Unknown address type {address_type!r}")
        old_address = state.shipping_address if address_type == "shipping" else state.billing_address
        self._record(
            OrderAddressUpdated,
            address_type=address_type,
            old_address=old_address,
            new_address=new_address
            if isinstance(new_address, OrderAddress)
            else OrderAddress.model_validate(new_address),
            updated_at=utc_now(),
        )

    # Queries

    @property
    def status(self) -> OrderStatus | None:
        return self._state.status if self._state else None

    @property
    def total_amount(self) -> float:
        return self._state.total_amount if self._state else 0.0

    @property
    def items(self) -> list[OrderItem]:
        return list(self._state.items.values()) if self._state else []

    def get_item(self, item_id: str) -> OrderItem | None:
        return self._state.items.get(item_id) if self._state else None

    # Reducers

    @handles(OrderCreated)
    def _created(self, state: OrderState | None, event: OrderCreated) -> OrderState:
        items = {
            item_id_for(self.aggregate_id, line.product_id): OrderItem(
                id=item_id_for(self.aggregate_id, line.product_id),
                product_id=line.product_id,
                sku=line.sku,
                name=line.name or "",
                quantity=line.quantity,
                unit_price=line.price,
                currency=event.currency,
            )
            for line in event.items
        }
        created = OrderState(
            order_id=self.aggregate_id,
            user_id=event.user_id,
            currency=event.currency,
            shipping_address=event.shipping_address,
            billing_address=event.billing_address,
            payment_method=event.payment_method,
            created_at=event.timestamp,
            updated_at=event.timestamp,
        )
        return _with_items(created, items)

    @handles(OrderConfirmed)
    def _confirmed(self, state: OrderState, event: OrderConfirmed) -> OrderState:
        return state.model_copy(
            update={
                "status": OrderStatus.CONFIRMED,
                "confirmed_at": event.confirmed_at,
                "updated_at": event.timestamp,
            }
        )

    @handles(OrderPaymentRequested)
    def _payment_requested(self, state: OrderState, event: OrderPaymentRequested) -> OrderState:
        return state.model_copy(
            update={
                "status": OrderStatus.PAYMENT_PENDING,
                "payment_id": event.payment_id,
                "updated_at": event.timestamp,
            }
        )

    @handles(OrderPaid)
    def _paid(self, state: OrderState, event: OrderPaid) -> OrderState:
        return state.model_copy(
            update={
                "status": OrderStatus.PAID,
                "payment_id": event.payment_id,
                "transaction_id": event.transaction_id,
                "paid_at": event.paid_at,
                "updated_at": event.timestamp,
            }
        )

    @handles(OrderPaymentFailed)
    def _payment_failed(self, state: OrderState, event: OrderPaymentFailed) -> OrderState:
        return state.model_copy(update={"status": OrderStatus.PENDING, "updated_at": event.timestamp})

    @handles(OrderShipped)
    def _shipped(self, state: OrderState, event: OrderShipped) -> OrderState:
        return state.model_copy(
            update={
                "status": OrderStatus.SHIPPED,
                "tracking_number": event.tracking_number,
                "carrier": event.carrier,
                "estimated_delivery": event.estimated_delivery,
                "shipped_at": event.shipped_at,
                "updated_at": event.timestamp,
            }
        )

    @handles(OrderDelivered)
    def _delivered(self, state: OrderState, event: OrderDelivered) -> OrderState:
        return state.model_copy(
            update={
                "status": OrderStatus.DELIVERED,
                "delivered_at": event.delivered_at,
                "updated_at": event.timestamp,
            }
        )

    @handles(OrderCancelled)
    def _cancelled(self, state: OrderState, event: OrderCancelled) -> OrderState:
        return state.model_copy(
            update={
                "status": OrderStatus.CANCELLED,
                "cancelled_at": event.cancelled_at,
                "cancellation_reason": event.reason,
                "updated_at": event.timestamp,
            }
        )

    @handles(OrderRefunded)
    def _refunded(self, state: OrderState, event: OrderRefunded) -> OrderState:
        return state.model_copy(
            update={
                "status": OrderStatus.REFUNDED,
                "refunded_at": event.refunded_at,
                "refund_amount": event.refund_amount,
                "updated_at": event.timestamp,
            }
        )

    @handles(OrderItemUpdated)
    def _item_updated(self, state: OrderState, event: OrderItemUpdated) -> OrderState:
        items = dict(state.items)
        current = items.get(event.item_id)
        if current is not None:
            items[event.item_id] = current.model_copy(update={"quantity": event.quantity})
        return _with_items(state, items, updated_at=event.timestamp)

    @handles(OrderItemRemoved)
    def _item_removed(self, state: OrderState, event: OrderItemRemoved) -> OrderState:
        items = {item_id: item for item_id, item in state.items.items() if item_id != event.item_id}
        return _with_items(state, items, updated_at=event.timestamp)

    @handles(OrderStatusChanged)
    def _status_changed(self, state: OrderState, event: OrderStatusChanged) -> OrderState:
        return state.model_copy(
            update={"status": OrderStatus(event.new_status), "updated_at": event.timestamp}
        )

    @handles(OrderAddressUpdated)
    def _address_updated(self, state: OrderState, event: OrderAddressUpdated) -> OrderState:
        field = "shipping_address" if event.address_type == "shipping" else "billing_address"
        return state.model_copy(update={field: event.new_address, "updated_at": event.timestamp})
