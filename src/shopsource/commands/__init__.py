"""Commands and the handlers that turn them into persisted, published events."""

from shopsource.commands.base import Command, CommandHandler, UnknownCommandError, handles_command
from shopsource.commands.inventory import InventoryCommandHandler
from shopsource.commands.models import (
    AddProductImage,
    AddUserAddress,
    AllocateStock,
    CancelOrder,
    CancelPayment,
    ChangeProductCategory,
    ChangeProductPrice,
    ChangeUserPassword,
    ConfirmOrder,
    CreateInventoryItem,
    CreateOrder,
    CreateProduct,
    DeactivateUser,
    DeliverOrder,
    DiscontinueProduct,
    FailPayment,
    MarkOrderPaid,
    MarkOrderPaymentFailed,
    ProcessPayment,
    ReactivateProduct,
    ReactivateUser,
    RecordUserLogin,
    RefundOrder,
    RefundPayment,
    RegisterUser,
    ReleaseStock,
    RemoveOrderItem,
    RemoveProductImage,
    RemoveUserAddress,
    RequestOrderPayment,
    RequestPayment,
    ReserveStock,
    ShipOrder,
    UpdateLowStockThreshold,
    UpdateOrderAddress,
    UpdateOrderItemQuantity,
    UpdateProduct,
    UpdateProductAttribute,
    UpdateProductStock,
    UpdateStock,
    UpdateUserAddress,
    UpdateUserProfile,
    VerifyUserEmail,
    RESERVATION_TTL,
)
from shopsource.commands.order import OrderCommandHandler
from shopsource.commands.payment import PaymentCommandHandler
from shopsource.commands.product import ProductCommandHandler
from shopsource.commands.user import UserCommandHandler

__all__ = [
    "AddProductImage",
    "AddUserAddress",
    "AllocateStock",
    "CancelOrder",
    "CancelPayment",
    "ChangeProductCategory",
    "ChangeProductPrice",
    "ChangeUserPassword",
    "Command",
    "CommandHandler",
    "ConfirmOrder",
    "CreateInventoryItem",
    "CreateOrder",
    "CreateProduct",
    "DeactivateUser",
    "DeliverOrder",
    "DiscontinueProduct",
    "FailPayment",
    "InventoryCommandHandler",
    "MarkOrderPaid",
    "MarkOrderPaymentFailed",
    "OrderCommandHandler",
    "PaymentCommandHandler",
    "ProcessPayment",
    "ProductCommandHandler",
    "RESERVATION_TTL",
    "ReactivateProduct",
    "ReactivateUser",
    "RecordUserLogin",
    "RefundOrder",
    "RefundPayment",
    "RegisterUser",
    "ReleaseStock",
    "RemoveOrderItem",
    "RemoveProductImage",
    "RemoveUserAddress",
    "RequestOrderPayment",
    "RequestPayment",
    "ReserveStock",
    "ShipOrder",
    "UnknownCommandError",
    "UpdateLowStockThreshold",
    "UpdateOrderAddress",
    "UpdateOrderItemQuantity",
    "UpdateProduct",
    "UpdateProductAttribute",
    "UpdateProductStock",
    "UpdateStock",
    "UpdateUserAddress",
    "UpdateUserProfile",
    "UserCommandHandler",
    "VerifyUserEmail",
    "handles_command",
]
