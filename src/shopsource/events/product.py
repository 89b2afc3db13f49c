"""Events emitted by the Product aggregate."""

from __future__ import annotations

from datetime import datetime
from typing import Any, ClassVar

from pydantic import Field

from shopsource.events.base import DomainEvent
from shopsource.events.registry import register_event


class ProductEvent(DomainEvent):
    aggregate_type: ClassVar[str] = "Product"


@register_event
class ProductCreated(ProductEvent):
    name: str
    description: str
    price: float
    currency: str = "USD"
    category_id: str
    sku: str
    images: list[str] = Field(default_factory=list)
    attributes: dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True


@register_event
class ProductUpdated(ProductEvent):
    name: str | None = None
    description: str | None = None
    category_id: str | None = None
    images: list[str] | None = None
    attributes: dict[str, Any] | None = None
    is_active: bool | None = None


@register_event
class ProductPriceChanged(ProductEvent):
    old_price: float
    new_price: float
    reason: str | None = None


@register_event
class ProductDiscontinued(ProductEvent):
    reason: str | None = None
    discontinued_at: datetime


@register_event
class ProductReactivated(ProductEvent):
    reactivated_at: datetime


@register_event
class ProductStockUpdated(ProductEvent):
    old_stock: int
    new_stock: int
    change_reason: str


@register_event
class ProductCategoryChanged(ProductEvent):
    old_category_id: str
    new_category_id: str


@register_event
class ProductImageAdded(ProductEvent):
    image_url: str
    is_primary: bool = False


@register_event
class ProductImageRemoved(ProductEvent):
    image_url: str


@register_event
class ProductAttributeUpdated(ProductEvent):
    attribute_key: str
    old_value: Any = None
    new_value: Any = None
