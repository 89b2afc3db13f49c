"""Events emitted by the Payment aggregate."""

from __future__ import annotations

from datetime import datetime
from typing import Any, ClassVar

from pydantic import Field

from shopsource.events.base import DomainEvent, ValueObject
from shopsource.events.registry import register_event


class PaymentDetails(ValueObject):
    """Instrument details captured with the payment request."""

    card_number: str | None = None
    card_type: str | None = None
    billing_address: dict[str, Any] = Field(default_factory=dict)

    @property
    def masked_card_number(self) -> str | None:
        if not self.card_number:
            return None
        return f"****{self.card_number[-4:]}"


class PaymentEvent(DomainEvent):
    aggregate_type: ClassVar[str] = "Payment"


@register_event
class PaymentRequested(PaymentEvent):
    order_id: str
    user_id: str
    amount: float
    currency: str
    payment_method: str
    payment_details: PaymentDetails = Field(default_factory=PaymentDetails)


@register_event
class PaymentProcessed(PaymentEvent):
    order_id: str
    transaction_id: str
    amount: float
    currency: str
    payment_method: str
    processed_at: datetime
    gateway_response: dict[str, Any] = Field(default_factory=dict)


@register_event
class PaymentFailed(PaymentEvent):
    order_id: str
    failure_reason: str
    error_code: str
    failed_at: datetime
    gateway_response: dict[str, Any] | None = None


@register_event
class PaymentRefunded(PaymentEvent):
    order_id: str
    refund_id: str
    refund_amount: float
    currency: str
    refund_reason: str
    refunded_at: datetime
    gateway_response: dict[str, Any] | None = None


@register_event
class PaymentCancelled(PaymentEvent):
    order_id: str
    cancelled_at: datetime
    cancelled_by: str
    reason: str
