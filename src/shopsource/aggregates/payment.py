"""Payment aggregate."""

from collections.abc import Mapping
from datetime import datetime
from enum import StrEnum
from typing import Any, Self

from pydantic import BaseModel, Field

from shopsource.aggregates.base import DeclarativeAggregate
from shopsource.events.base import utc_now
from shopsource.events.payment import (
    PaymentCancelled,
    PaymentDetails,
    PaymentFailed,
    PaymentProcessed,
    PaymentRefunded,
    PaymentRequested,
)
from shopsource.handlers import handles


class PaymentStatus(StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentState(BaseModel):
    payment_id: str
    order_id: str
    user_id: str
    amount: float
    currency: str = "USD"
    payment_method: str
    status: PaymentStatus = PaymentStatus.PENDING
    payment_details: PaymentDetails = Field(default_factory=PaymentDetails)
    transaction_id: str | None = None
    gateway_response: dict[str, Any] | None = None
    failure_reason: str | None = None
    error_code: str | None = None
    refund_id: str | None = None
    refund_amount: float | None = None
    refund_reason: str | None = None
    cancellation_reason: str | None = None
    created_at: datetime
    updated_at: datetime
    processed_at: datetime | None = None
    failed_at: datetime | None = None
    refunded_at: datetime | None = None
    cancelled_at: datetime | None = None


class Payment(DeclarativeAggregate[PaymentState]):
    """
    A single payment attempt for an order.

    pending -> completed -> refunded, or pending -> failed, or
    pending -> cancelled.
    """

    aggregate_type = "Payment"

    @classmethod
    def create(
        cls,
        payment_id: str,
        order_id: str,
        user_id: str,
        amount: float,
        payment_method: str,
        currency: str = "USD",
        payment_details: PaymentDetails | Mapping[str, Any] | None = None,
    ) -> Self:
        payment = cls(payment_id)
        payment._require(amount > 0, "Payment amount must be positive")
        if payment_details is None:
            details = PaymentDetails()
        elif isinstance(payment_details, PaymentDetails):
            details = payment_details
        else:
            details = PaymentDetails.model_validate(payment_details)
        payment._record(
            PaymentRequested,
            order_id=order_id,
            user_id=user_id,
            amount=amount,
            currency=currency,
            payment_method=payment_method,
            payment_details=details,
        )
        return payment

    def process(self, transaction_id: str, gateway_response: dict[str, Any] | None = None) -> None:
        state = self._require_state()
        self._require(
            state.status == PaymentStatus.PENDING,
            "Payment can only be processed when in pending status",
        )
        self._record(
            PaymentProcessed,
            order_id=state.order_id,
            transaction_id=transaction_id,
            amount=state.amount,
            currency=state.currency,
            payment_method=state.payment_method,
            processed_at=utc_now(),
            gateway_response=gateway_response or {},
        )

    def mark_as_failed(
        self,
        failure_reason: str,
        error_code: str,
        gateway_response: dict[str, Any] | None = None,
    ) -> None:
        state = self._require_state()
        self._require(
            state.status == PaymentStatus.PENDING,
            "Payment can only be marked as failed when pending",
        )
        self._record(
            PaymentFailed,
            order_id=state.order_id,
            failure_reason=failure_reason,
            error_code=error_code,
            failed_at=utc_now(),
            gateway_response=gateway_response,
        )

    def refund(
        self,
        refund_id: str,
        refund_amount: float,
        refund_reason: str,
        gateway_response: dict[str, Any] | None = None,
    ) -> None:
        state = self._require_state()
        self._require(
            state.status == PaymentStatus.COMPLETED,
            "Payment can only be refunded when completed",
        )
        self._require(refund_amount > 0, "Refund amount must be positive")
        self._require(refund_amount <= state.amount, "Refund amount cannot exceed payment amount")
        self._record(
            PaymentRefunded,
            order_id=state.order_id,
            refund_id=refund_id,
            refund_amount=refund_amount,
            currency=state.currency,
            refund_reason=refund_reason,
            refunded_at=utc_now(),
            gateway_response=gateway_response,
        )

    def cancel(self, cancelled_by: str, reason: str) -> None:
        state = self._require_state()
        self._require(
            state.status == PaymentStatus.PENDING,
            "Payment can only be cancelled when in pending status",
        )
        self._record(
            PaymentCancelled,
            order_id=state.order_id,
            cancelled_at=utc_now(),
            cancelled_by=cancelled_by,
            reason=reason,
        )

    @property
    def status(self) -> PaymentStatus | None:
        return self._state.status if self._state else None

    @handles(PaymentRequested)
    def _requested(self, state: PaymentState | None, event: PaymentRequested) -> PaymentState:
        return PaymentState(
            payment_id=self.aggregate_id,
            order_id=event.order_id,
            user_id=event.user_id,
            amount=event.amount,
            currency=event.currency,
            payment_method=event.payment_method,
            payment_details=event.payment_details,
            created_at=event.timestamp,
            updated_at=event.timestamp,
        )

    @handles(PaymentProcessed)
    def _processed(self, state: PaymentState, event: PaymentProcessed) -> PaymentState:
        return state.model_copy(
            update={
                "status": PaymentStatus.COMPLETED,
                "transaction_id": event.transaction_id,
                "gateway_response": event.gateway_response,
                "processed_at": event.processed_at,
                "updated_at": event.timestamp,
            }
        )

    @handles(PaymentFailed)
    def _failed(self, state: PaymentState, event: PaymentFailed) -> PaymentState:
        return state.model_copy(
            update={
                "status": PaymentStatus.FAILED,
                "failure_reason": event.failure_reason,
                "error_code": event.error_code,
                "gateway_response": event.gateway_response,
                "failed_at": event.failed_at,
                "updated_at": event.timestamp,
            }
        )

    @handles(PaymentRefunded)
    def _refunded(self, state: PaymentState, event: PaymentRefunded) -> PaymentState:
        return state.model_copy(
            update={
                "status": PaymentStatus.REFUNDED,
                "refund_id": event.refund_id,
                "refund_amount": event.refund_amount,
                "refund_reason": event.refund_reason,
                "gateway_response": event.gateway_response,
                "refunded_at": event.refunded_at,
                "updated_at": event.timestamp,
            }
        )

    @handles(PaymentCancelled)
    def _cancelled(self, state: PaymentState, event: PaymentCancelled) -> PaymentState:
        return state.model_copy(
            update={
                "status": PaymentStatus.CANCELLED,
                "cancellation_reason": event.reason,
                "cancelled_at": event.cancelled_at,
                "updated_at": event.timestamp,
            }
        )
