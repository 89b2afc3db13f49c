"""Command handler of the product catalog service."""

from shopsource.aggregates.product import Product
from shopsource.commands.base import CommandHandler, handles_command
from shopsource.commands.models import (
    AddProductImage,
    ChangeProductCategory,
    ChangeProductPrice,
    CreateProduct,
    DiscontinueProduct,
    ReactivateProduct,
    RemoveProductImage,
    UpdateProduct,
    UpdateProductAttribute,
    UpdateProductStock,
)


class ProductCommandHandler(CommandHandler[Product]):
    @handles_command(CreateProduct)
    async def create_product(self, command: CreateProduct) -> Product:
        return await self._create(
            command,
            command.product_id,
            lambda: Product.create(
                product_id=command.product_id,
                name=command.name,
                description=command.description,
                price=command.price,
                category_id=command.category_id,
                sku=command.sku,
                images=list(command.images),
                attributes=dict(command.attributes),
                currency=command.currency,
            ),
        )

    @handles_command(UpdateProduct)
    async def update_product(self, command: UpdateProduct) -> Product:
        return await self._update(
            command,
            command.product_id,
            lambda product: product.update_product(
                name=command.name,
                description=command.description,
                category_id=command.category_id,
                images=command.images,
                attributes=command.attributes,
            ),
        )

    @handles_command(ChangeProductPrice)
    async def change_price(self, command: ChangeProductPrice) -> Product:
        return await self._update(
            command,
            command.product_id,
            lambda product: product.change_price(command.new_price, command.reason),
        )

    @handles_command(DiscontinueProduct)
    async def discontinue_product(self, command: DiscontinueProduct) -> Product:
        return await self._update(command, command.product_id, lambda product: product.discontinue(command.reason))

    @handles_command(ReactivateProduct)
    async def reactivate_product(self, command: ReactivateProduct) -> Product:
        return await self._update(command, command.product_id, lambda product: product.reactivate())

    @handles_command(UpdateProductStock)
    async def update_stock(self, command: UpdateProductStock) -> Product:
        return await self._update(
            command,
            command.product_id,
            lambda product: product.update_stock(command.new_stock, command.reason),
        )

    @handles_command(ChangeProductCategory)
    async def change_category(self, command: ChangeProductCategory) -> Product:
        return await self._update(
            command,
            command.product_id,
            lambda product: product.change_category(command.new_category_id),
        )

    @handles_command(AddProductImage)
    async def add_image(self, command: AddProductImage) -> Product:
        return await self._update(
            command,
            command.product_id,
            lambda product: product.add_image(command.image_url, command.is_primary),
        )

    @handles_command(RemoveProductImage)
    async def remove_image(self, command: RemoveProductImage) -> Product:
        return await self._update(command, command.product_id, lambda product: product.remove_image(command.image_url))

    @handles_command(UpdateProductAttribute)
    async def update_attribute(self, command: UpdateProductAttribute) -> Product:
        return await self._update(
            command,
            command.product_id,
            lambda product: product.update_attribute(command.key, command.value),
        )
