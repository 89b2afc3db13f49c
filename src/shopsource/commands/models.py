"""
Command models for the five services.

Commands that create an aggregate generate its id when the caller does not
supply one. Field names follow the aggregate methods they drive; on the
command channel the camelCase aliases are accepted as well.
"""

from datetime import datetime, timedelta
from typing import Any, Literal
from uuid import uuid4

from pydantic import Field

from shopsource.commands.base import Command
from shopsource.events.base import utc_now
from shopsource.events.inventory import StockChangeType
from shopsource.events.order import OrderAddress, OrderLine
from shopsource.events.payment import PaymentDetails
from shopsource.events.user import UserAddressChanges, UserAddressData

RESERVATION_TTL = timedelta(minutes=15)


def new_id() -> str:
    return str(uuid4())


# User


class RegisterUser(Command):
    user_id: str = Field(default_factory=new_id)
    email: str
    first_name: str
    last_name: str
    password_hash: str


class UpdateUserProfile(Command):
    user_id: str
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None
    date_of_birth: str | None = None
    gender: str | None = None
    avatar: str | None = None

    def changes(self) -> dict[str, Any]:
        """Profile fields that were set on this command."""
        return self.model_dump(
            include={"first_name", "last_name", "phone", "date_of_birth", "gender", "avatar"},
            exclude_none=True,
        )


class ChangeUserPassword(Command):
    user_id: str
    password_hash: str


class VerifyUserEmail(Command):
    user_id: str


class DeactivateUser(Command):
    user_id: str
    reason: str | None = None


class ReactivateUser(Command):
    user_id: str


class RecordUserLogin(Command):
    user_id: str
    success: bool
    ip_address: str | None = None
    user_agent: str | None = None


class AddUserAddress(Command):
    user_id: str
    address: UserAddressData


class UpdateUserAddress(Command):
    user_id: str
    address_id: str
    changes: UserAddressChanges


class RemoveUserAddress(Command):
    user_id: str
    address_id: str


# Product


class CreateProduct(Command):
    product_id: str = Field(default_factory=new_id)
    name: str
    description: str
    price: float
    category_id: str
    sku: str
    images: list[str] = Field(default_factory=list)
    attributes: dict[str, Any] = Field(default_factory=dict)
    currency: str = "USD"


class UpdateProduct(Command):
    product_id: str
    name: str | None = None
    description: str | None = None
    category_id: str | None = None
    images: list[str] | None = None
    attributes: dict[str, Any] | None = None


class ChangeProductPrice(Command):
    product_id: str
    new_price: float
    reason: str | None = None


class DiscontinueProduct(Command):
    product_id: str
    reason: str | None = None


class ReactivateProduct(Command):
    product_id: str


class UpdateProductStock(Command):
    product_id: str
    new_stock: int
    reason: str


class ChangeProductCategory(Command):
    product_id: str
    new_category_id: str


class AddProductImage(Command):
    product_id: str
    image_url: str
    is_primary: bool = False


class RemoveProductImage(Command):
    product_id: str
    image_url: str


class UpdateProductAttribute(Command):
    product_id: str
    key: str
    value: Any


# Order


class CreateOrder(Command):
    order_id: str = Field(default_factory=new_id)
    user_id: str
    items: list[OrderLine]
    shipping_address: OrderAddress
    billing_address: OrderAddress
    payment_method: str
    currency: str = "USD"


class ConfirmOrder(Command):
    order_id: str
    confirmed_by: str


class RequestOrderPayment(Command):
    order_id: str
    payment_id: str
    amount: float | None = None
    currency: str | None = None


class MarkOrderPaid(Command):
    order_id: str
    payment_id: str
    transaction_id: str
    amount: float | None = None
    currency: str | None = None


class MarkOrderPaymentFailed(Command):
    order_id: str
    payment_id: str
    reason: str
    error_code: str | None = None


class ShipOrder(Command):
    order_id: str
    tracking_number: str
    carrier: str
    estimated_delivery: datetime | None = None


class DeliverOrder(Command):
    order_id: str
    delivered_to: str
    signature: str | None = None


class CancelOrder(Command):
    order_id: str
    cancelled_by: str
    reason: str
    refund_amount: float | None = None


class RefundOrder(Command):
    order_id: str
    refund_id: str = Field(default_factory=new_id)
    refund_amount: float
    reason: str
    refund_method: str
    currency: str | None = None


class UpdateOrderItemQuantity(Command):
    order_id: str
    item_id: str
    quantity: int


class RemoveOrderItem(Command):
    order_id: str
    item_id: str
    reason: str | None = None


class UpdateOrderAddress(Command):
    order_id: str
    address_type: Literal["shipping", "billing"]
    new_address: OrderAddress


# Payment


class RequestPayment(Command):
    payment_id: str = Field(default_factory=new_id)
    order_id: str
    user_id: str
    amount: float
    payment_method: str
    currency: str = "USD"
    payment_details: PaymentDetails | None = None


class ProcessPayment(Command):
    payment_id: str
    transaction_id: str
    gateway_response: dict[str, Any] | None = None


class FailPayment(Command):
    payment_id: str
    failure_reason: str
    error_code: str
    gateway_response: dict[str, Any] | None = None


class RefundPayment(Command):
    payment_id: str
    refund_id: str = Field(default_factory=new_id)
    refund_amount: float
    refund_reason: str
    gateway_response: dict[str, Any] | None = None


class CancelPayment(Command):
    payment_id: str
    cancelled_by: str
    reason: str


# Inventory


class CreateInventoryItem(Command):
    inventory_id: str = Field(default_factory=new_id)
    product_id: str
    sku: str
    initial_stock: int
    low_stock_threshold: int = 10


class UpdateStock(Command):
    inventory_id: str
    new_stock: int
    reason: str
    change_type: StockChangeType = "set"


class ReserveStock(Command):
    inventory_id: str
    order_id: str
    quantity: int
    expires_at: datetime = Field(default_factory=lambda: utc_now() + RESERVATION_TTL)


class ReleaseStock(Command):
    inventory_id: str
    order_id: str
    reason: str


class AllocateStock(Command):
    inventory_id: str
    order_id: str
    quantity: int


class UpdateLowStockThreshold(Command):
    inventory_id: str
    new_threshold: int
