"""Command handler of the payment service."""

from shopsource.aggregates.payment import Payment
from shopsource.commands.base import CommandHandler, handles_command
from shopsource.commands.models import CancelPayment, FailPayment, ProcessPayment, RefundPayment, RequestPayment


class PaymentCommandHandler(CommandHandler[Payment]):
    @handles_command(RequestPayment)
    async def request_payment(self, command: RequestPayment) -> Payment:
        return await self._create(
            command,
            command.payment_id,
            lambda: Payment.create(
                payment_id=command.payment_id,
                order_id=command.order_id,
                user_id=command.user_id,
                amount=command.amount,
                payment_method=command.payment_method,
                currency=command.currency,
                payment_details=command.payment_details,
            ),
        )

    @handles_command(ProcessPayment)
    async def process_payment(self, command: ProcessPayment) -> Payment:
        return await self._update(
            command,
            command.payment_id,
            lambda payment: payment.process(command.transaction_id, command.gateway_response),
        )

    @handles_command(FailPayment)
    async def fail_payment(self, command: FailPayment) -> Payment:
        return await self._update(
            command,
            command.payment_id,
            lambda payment: payment.mark_as_failed(
                command.failure_reason,
                command.error_code,
                command.gateway_response,
            ),
        )

    @handles_command(RefundPayment)
    async def refund_payment(self, command: RefundPayment) -> Payment:
        return await self._update(
            command,
            command.payment_id,
            lambda payment: payment.refund(
                command.refund_id,
                command.refund_amount,
                command.refund_reason,
                command.gateway_response,
            ),
        )

    @handles_command(CancelPayment)
    async def cancel_payment(self, command: CancelPayment) -> Payment:
        return await self._update(
            command,
            command.payment_id,
            lambda payment: payment.cancel(command.cancelled_by, command.reason),
        )
