"""
Command handler of the inventory service.

Reservations are keyed by order id: reserving, releasing and allocating all
name the order the stock is held for.
"""

from shopsource.aggregates.inventory import Inventory
from shopsource.commands.base import CommandHandler, handles_command
from shopsource.commands.models import (
    AllocateStock,
    CreateInventoryItem,
    ReleaseStock,
    ReserveStock,
    UpdateLowStockThreshold,
    UpdateStock,
)


class InventoryCommandHandler(CommandHandler[Inventory]):
    @handles_command(CreateInventoryItem)
    async def create_inventory_item(self, command: CreateInventoryItem) -> Inventory:
        return await self._create(
            command,
            command.inventory_id,
            lambda: Inventory.create(
                inventory_id=command.inventory_id,
                product_id=command.product_id,
                sku=command.sku,
                initial_stock=command.initial_stock,
                low_stock_threshold=command.low_stock_threshold,
            ),
        )

    @handles_command(UpdateStock)
    async def update_stock(self, command: UpdateStock) -> Inventory:
        return await self._update(
            command,
            command.inventory_id,
            lambda inventory: inventory.update_stock(command.new_stock, command.reason, command.change_type),
        )

    @handles_command(ReserveStock)
    async def reserve_stock(self, command: ReserveStock) -> Inventory:
        return await self._update(
            command,
            command.inventory_id,
            lambda inventory: inventory.reserve_stock(command.order_id, command.quantity, command.expires_at),
        )

    @handles_command(ReleaseStock)
    async def release_stock(self, command: ReleaseStock) -> Inventory:
        return await self._update(
            command,
            command.inventory_id,
            lambda inventory: inventory.release_stock(command.order_id, command.reason),
        )

    @handles_command(AllocateStock)
    async def allocate_stock(self, command: AllocateStock) -> Inventory:
        return await self._update(
            command,
            command.inventory_id,
            lambda inventory: inventory.allocate_stock(command.order_id, command.quantity),
        )

    @handles_command(UpdateLowStockThreshold)
    async def update_threshold(self, command: UpdateLowStockThreshold) -> Inventory:
        return await self._update(
            command,
            command.inventory_id,
            lambda inventory: inventory.update_threshold(command.new_threshold),
        )
