"""Product catalog aggregate."""

from datetime import datetime
from typing import Any, Self

from pydantic import BaseModel, Field

from shopsource.aggregates.base import DeclarativeAggregate
from shopsource.events.base import utc_now
from shopsource.events.product import (
    ProductAttributeUpdated,
    ProductCategoryChanged,
    ProductCreated,
    ProductDiscontinued,
    ProductImageAdded,
    ProductImageRemoved,
    ProductPriceChanged,
    ProductReactivated,
    ProductStockUpdated,
    ProductUpdated,
)
from shopsource.handlers import handles


class ProductState(BaseModel):
    product_id: str
    name: str
    description: str
    price: float
    currency: str = "USD"
    category_id: str
    sku: str
    images: list[str] = Field(default_factory=list)
    attributes: dict[str, Any] = Field(default_factory=dict)
    stock: int = 0
    is_active: bool = True
    created_at: datetime
    updated_at: datetime
    discontinued_at: datetime | None = None


class Product(DeclarativeAggregate[ProductState]):
    """
    A sellable product. Every mutation except ``reactivate`` is rejected
    while the product is discontinued.
    """

    aggregate_type = "Product"

    @classmethod
    def create(
        cls,
        product_id: str,
        name: str,
        description: str,
        price: float,
        category_id: str,
        sku: str,
        images: list[str] | None = None,
        attributes: dict[str, Any] | None = None,
        currency: str = "USD",
    ) -> Self:
        product = cls(product_id)
        product._require(bool(name), "Product name is required")
        product._require(price > 0, "Price must be greater than zero")
        product._record(
            ProductCreated,
            name=name,
            description=description,
            price=price,
            currency=currency,
            category_id=category_id,
            sku=sku,
            images=list(images or []),
            attributes=dict(attributes or {}),
            is_active=True,
        )
        return product

    def _require_active(self, action: str) -> ProductState:
        state = self._require_state()
        self._require(state.is_active, f"Cannot {action} a discontinued product")
        return state

    # Commands

    def update_product(
        self,
        name: str | None = None,
        description: str | None = None,
        category_id: str | None = None,
        images: list[str] | None = None,
        attributes: dict[str, Any] | None = None,
    ) -> None:
        self._require_active("update")
        changes = (name, description, category_id, images, attributes)
        self._require(any(value is not None for value in changes), "No product fields to update")
        self._record(
            ProductUpdated,
            name=name,
            description=description,
            category_id=category_id,
            images=images,
            attributes=attributes,
        )

    def change_price(self, new_price: float, reason: str | None = None) -> None:
        state = self._require_active("change price of")
        self._require(new_price > 0, "Price must be greater than zero")
        self._record(ProductPriceChanged, old_price=state.price, new_price=new_price, reason=reason)

    def discontinue(self, reason: str | None = None) -> None:
        state = self._require_state()
        self._require(state.is_active, "Product is already discontinued")
        self._record(ProductDiscontinued, reason=reason, discontinued_at=utc_now())

    def reactivate(self) -> None:
        state = self._require_state()
        self._require(not state.is_active, "Product is already active")
        self._record(ProductReactivated, reactivated_at=utc_now())

    def update_stock(self, new_stock: int, reason: str) -> None:
        state = self._require_active("update stock of")
        self._require(new_stock >= 0, "Stock cannot be negative")
        self._record(
            ProductStockUpdated,
            old_stock=state.stock,
            new_stock=new_stock,
            change_reason=reason,
        )

    def change_category(self, new_category_id: str) -> None:
        state = self._require_active("change category of")
        self._record(
            ProductCategoryChanged,
            old_category_id=state.category_id,
            new_category_id=new_category_id,
        )

    def add_image(self, image_url: str, is_primary: bool = False) -> None:
        state = self._require_active("add image to")
        self._require(image_url not in state.images, "Image already added")
        self._record(ProductImageAdded, image_url=image_url, is_primary=is_primary)

    def remove_image(self, image_url: str) -> None:
        state = self._require_active("remove image from")
        self._require(image_url in state.images, "Image not found")
        self._record(ProductImageRemoved, image_url=image_url)

    def update_attribute(self, key: str, value: Any) -> None:
        state = self._require_active("update attributes of")
        self._record(
            ProductAttributeUpdated,
            attribute_key=key,
            old_value=state.attributes.get(key),
            new_value=value,
        )

    @property
    def is_active(self) -> bool:
        return bool(self._state and self._state.is_active)

    @property
    def primary_image(self) -> str | None:
        if self._state is None or not self._state.images:
            return None
        return self._state.images[0]

    # Reducers

    @handles(ProductCreated)
    def _created(self, state: ProductState | None, event: ProductCreated) -> ProductState:
        return ProductState(
            product_id=self.aggregate_id,
            name=event.name,
            description=event.description,
            price=event.price,
            currency=event.currency,
            category_id=event.category_id,
            sku=event.sku,
            images=list(event.images),
            attributes=dict(event.attributes),
            is_active=event.is_active,
            created_at=event.timestamp,
            updated_at=event.timestamp,
        )

    @handles(ProductUpdated)
    def _updated(self, state: ProductState, event: ProductUpdated) -> ProductState:
        changes = {
            field: getattr(event, field)
            for field in ("name", "description", "category_id", "images", "attributes", "is_active")
            if getattr(event, field) is not None
        }
        return state.model_copy(update={**changes, "updated_at": event.timestamp})

    @handles(ProductPriceChanged)
    def _price_changed(self, state: ProductState, event: ProductPriceChanged) -> ProductState:
        return state.model_copy(update={"price": event.new_price, "updated_at": event.timestamp})

    @handles(ProductDiscontinued)
    def _discontinued(self, state: ProductState, event: ProductDiscontinued) -> ProductState:
        return state.model_copy(
            update={
                "is_active": False,
                "discontinued_at": event.discontinued_at,
                "updated_at": event.timestamp,
            }
        )

    @handles(ProductReactivated)
    def _reactivated(self, state: ProductState, event: ProductReactivated) -> ProductState:
        return state.model_copy(
            update={"is_active": True, "discontinued_at": None, "updated_at": event.timestamp}
        )

    @handles(ProductStockUpdated)
    def _stock_updated(self, state: ProductState, event: ProductStockUpdated) -> ProductState:
        return state.model_copy(update={"stock": event.new_stock, "updated_at": event.timestamp})

    @handles(ProductCategoryChanged)
    def _category_changed(self, state: ProductState, event: ProductCategoryChanged) -> ProductState:
        return state.model_copy(
            update={"category_id": event.new_category_id, "updated_at": event.timestamp}
        )

    @handles(ProductImageAdded)
    def _image_added(self, state: ProductState, event: ProductImageAdded) -> ProductState:
        if event.is_primary:
            images = [event.image_url, *state.images]
        else:
            images = [*state.images, event.image_url]
        return state.model_copy(update={"images": images, "updated_at": event.timestamp})

    @handles(ProductImageRemoved)
    def _image_removed(self, state: ProductState, event: ProductImageRemoved) -> ProductState:
        images = [image for image in state.images if image != event.image_url]
        return state.model_copy(update={"images": images, "updated_at": event.timestamp})

    @handles(ProductAttributeUpdated)
    def _attribute_updated(self, state: ProductState, event: ProductAttributeUpdated) -> ProductState:
        attributes = {**state.attributes, event.attribute_key: event.new_value}
        return state.model_copy(update={"attributes": attributes, "updated_at": event.timestamp})
