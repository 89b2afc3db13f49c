"""
Command handler of the order service.

``CreateOrder`` generates the order id when none is given and defaults the
currency to USD. Every other command loads the order first and fails with
AggregateNotFoundError when it does not exist.
"""

from shopsource.aggregates.order import Order
from shopsource.commands.base import CommandHandler, handles_command
from shopsource.commands.models import (
    CancelOrder,
    ConfirmOrder,
    CreateOrder,
    DeliverOrder,
    MarkOrderPaid,
    MarkOrderPaymentFailed,
    RefundOrder,
    RemoveOrderItem,
    RequestOrderPayment,
    ShipOrder,
    UpdateOrderAddress,
    UpdateOrderItemQuantity,
)


class OrderCommandHandler(CommandHandler[Order]):
    @handles_command(CreateOrder)
    async def create_order(self, command: CreateOrder) -> Order:
        return await self._create(
            command,
            command.order_id,
            lambda: Order.create(
                order_id=command.order_id,
                user_id=command.user_id,
                items=command.items,
                shipping_address=command.shipping_address,
                billing_address=command.billing_address,
                payment_method=command.payment_method,
                currency=command.currency,
            ),
        )

    @handles_command(ConfirmOrder)
    async def confirm_order(self, command: ConfirmOrder) -> Order:
        return await self._update(command, command.order_id, lambda order: order.confirm(command.confirmed_by))

    @handles_command(RequestOrderPayment)
    async def request_payment(self, command: RequestOrderPayment) -> Order:
        return await self._update(
            command,
            command.order_id,
            lambda order: order.request_payment(command.payment_id, command.amount, command.currency),
        )

    @handles_command(MarkOrderPaid)
    async def mark_as_paid(self, command: MarkOrderPaid) -> Order:
        return await self._update(
            command,
            command.order_id,
            lambda order: order.mark_as_paid(
                command.payment_id,
                command.transaction_id,
                command.amount,
                command.currency,
            ),
        )

    @handles_command(MarkOrderPaymentFailed)
    async def mark_payment_failed(self, command: MarkOrderPaymentFailed) -> Order:
        return await self._update(
            command,
            command.order_id,
            lambda order: order.mark_payment_failed(command.payment_id, command.reason, command.error_code),
        )

    @handles_command(ShipOrder)
    async def ship_order(self, command: ShipOrder) -> Order:
        return await self._update(
            command,
            command.order_id,
            lambda order: order.ship(command.tracking_number, command.carrier, command.estimated_delivery),
        )

    @handles_command(DeliverOrder)
    async def deliver_order(self, command: DeliverOrder) -> Order:
        return await self._update(
            command,
            command.order_id,
            lambda order: order.deliver(command.delivered_to, command.signature),
        )

    @handles_command(CancelOrder)
    async def cancel_order(self, command: CancelOrder) -> Order:
        return await self._update(
            command,
            command.order_id,
            lambda order: order.cancel(command.cancelled_by, command.reason, command.refund_amount),
        )

    @handles_command(RefundOrder)
    async def refund_order(self, command: RefundOrder) -> Order:
        return await self._update(
            command,
            command.order_id,
            lambda order: order.refund(
                command.refund_id,
                command.refund_amount,
                command.reason,
                command.refund_method,
                command.currency,
            ),
        )

    @handles_command(UpdateOrderItemQuantity)
    async def update_item_quantity(self, command: UpdateOrderItemQuantity) -> Order:
        return await self._update(
            command,
            command.order_id,
            lambda order: order.update_item_quantity(command.item_id, command.quantity),
        )

    @handles_command(RemoveOrderItem)
    async def remove_item(self, command: RemoveOrderItem) -> Order:
        return await self._update(
            command,
            command.order_id,
            lambda order: order.remove_item(command.item_id, command.reason),
        )

    @handles_command(UpdateOrderAddress)
    async def update_address(self, command: UpdateOrderAddress) -> Order:
        return await self._update(
            command,
            command.order_id,
            lambda order: order.update_address(command.address_type, command.new_address),
        )
