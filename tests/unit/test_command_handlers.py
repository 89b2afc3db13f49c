"""
Unit tests for the command handlers.

Tests cover:
- Persist-then-publish ordering, and no publish on failure
- Not-found and domain failures
- Reload-and-retry on version conflicts
- Routing command objects and command-channel messages
- Command context on event metadata
- One end-to-end path per service
"""

from collections.abc import Sequence
from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from shopsource.aggregates.inventory import Inventory
from shopsource.aggregates.order import Order, OrderStatus, item_id_for
from shopsource.aggregates.payment import Payment, PaymentStatus
from shopsource.aggregates.product import Product
from shopsource.aggregates.repository import AggregateRepository
from shopsource.aggregates.user import User
from shopsource.bus.interface import CommandMessage
from shopsource.bus.memory import InMemoryEventBus
from shopsource.commands import (
    ChangeProductPrice,
    Command,
    ConfirmOrder,
    CreateInventoryItem,
    CreateOrder,
    CreateProduct,
    InventoryCommandHandler,
    OrderCommandHandler,
    PaymentCommandHandler,
    ProcessPayment,
    ProductCommandHandler,
    RegisterUser,
    RequestPayment,
    ReserveStock,
    UnknownCommandError,
    UpdateOrderItemQuantity,
    UpdateStock,
    UserCommandHandler,
    VerifyUserEmail,
)
from shopsource.events.base import DomainEvent
from shopsource.events.order import OrderAddress, OrderConfirmed, OrderLine
from shopsource.exceptions import AggregateNotFoundError, DomainError, OptimisticLockError
from shopsource.observability import MockTracer
from shopsource.stores.in_memory import InMemoryEventStore
from shopsource.stores.interface import AppendResult

# --- Fixtures ---


class RacingEventStore(InMemoryEventStore):
    """Store that lets another writer append ``interleave`` right before the next save."""

    def __init__(self) -> None:
        super().__init__(enable_tracing=False)
        self.interleave: DomainEvent | None = None

    async def save_events(
        self,
        aggregate_id: str,
        events: Sequence[DomainEvent],
        expected_version: int,
    ) -> AppendResult:
        competing, self.interleave = self.interleave, None
        if competing is not None:
            await super().save_events(aggregate_id, [competing], expected_version)
        return await super().save_events(aggregate_id, events, expected_version)


@pytest.fixture
def published(event_bus: InMemoryEventBus) -> list[DomainEvent]:
    """Every event published on the bus, in order."""
    received: list[DomainEvent] = []

    async def record(event: DomainEvent) -> None:
        received.append(event)

    event_bus.subscribe_to_all_events(record)
    return received


@pytest.fixture
def order_handler(event_store: InMemoryEventStore, event_bus: InMemoryEventBus) -> OrderCommandHandler:
    return OrderCommandHandler(
        AggregateRepository(event_store, Order, enable_tracing=False),
        event_bus,
        enable_tracing=False,
    )


@pytest.fixture
def create_order(order_lines: list[OrderLine], address: OrderAddress) -> CreateOrder:
    return CreateOrder(
        order_id="order-1",
        user_id="user-1",
        items=order_lines,
        shipping_address=address,
        billing_address=address,
        payment_method="credit_card",
    )


def racing_handler(event_bus: InMemoryEventBus, max_conflict_retries: int) -> tuple[RacingEventStore, OrderCommandHandler]:
    store = RacingEventStore()
    handler = OrderCommandHandler(
        AggregateRepository(store, Order, enable_tracing=False),
        event_bus,
        max_conflict_retries=max_conflict_retries,
        enable_tracing=False,
    )
    return store, handler


class TestPersistThenPublish:
    """Events are published only after the store accepted them."""

    @pytest.mark.asyncio
    async def test_events_are_stored_before_they_are_published(
        self,
        order_handler: OrderCommandHandler,
        event_store: InMemoryEventStore,
        event_bus: InMemoryEventBus,
        create_order: CreateOrder,
    ) -> None:
        stored_when_published: list[bool] = []

        async def check_store(event: DomainEvent) -> None:
            stored_when_published.append(await event_store.event_exists(event.event_id))

        event_bus.subscribe_to_all_events(check_store)

        await order_handler.dispatch(create_order)
        await order_handler.dispatch(ConfirmOrder(order_id="order-1", confirmed_by="admin"))

        assert stored_when_published == [True, True]

    @pytest.mark.asyncio
    async def test_published_events_carry_store_versions(
        self,
        order_handler: OrderCommandHandler,
        published: list[DomainEvent],
        create_order: CreateOrder,
    ) -> None:
        order = await order_handler.dispatch(create_order)
        await order_handler.dispatch(ConfirmOrder(order_id="order-1", confirmed_by="admin"))

        assert order.total_amount == 20.0
        assert [(e.event_type, e.version) for e in published] == [("OrderCreated", 1), ("OrderConfirmed", 2)]

    @pytest.mark.asyncio
    async def test_domain_error_persists_and_publishes_nothing(
        self,
        order_handler: OrderCommandHandler,
        event_store: InMemoryEventStore,
        published: list[DomainEvent],
        create_order: CreateOrder,
    ) -> None:
        await order_handler.dispatch(create_order)
        published.clear()

        with pytest.raises(DomainError):
            await order_handler.dispatch(UpdateOrderItemQuantity(order_id="order-1", item_id="nope", quantity=1))

        assert published == []
        assert event_store.event_count == 1

    @pytest.mark.asyncio
    async def test_creating_existing_aggregate_fails_without_publishing(
        self,
        order_handler: OrderCommandHandler,
        published: list[DomainEvent],
        create_order: CreateOrder,
    ) -> None:
        await order_handler.dispatch(create_order)
        published.clear()

        with pytest.raises(OptimisticLockError):
            await order_handler.dispatch(create_order)

        assert published == []

    @pytest.mark.asyncio
    async def test_missing_aggregate_raises_not_found(self, order_handler: OrderCommandHandler) -> None:
        with pytest.raises(AggregateNotFoundError) as exc_info:
            await order_handler.dispatch(ConfirmOrder(order_id="ghost", confirmed_by="admin"))
        assert exc_info.value.aggregate_type == "Order"

    @pytest.mark.asyncio
    async def test_handle_span(
        self,
        event_store: InMemoryEventStore,
        event_bus: InMemoryEventBus,
        create_order: CreateOrder,
    ) -> None:
        tracer = MockTracer()
        handler = OrderCommandHandler(AggregateRepository(event_store, Order, enable_tracing=False), event_bus, tracer=tracer)

        await handler.dispatch(create_order)

        name, attributes = tracer.spans[0]
        assert name == "shopsource.command.handle"
        assert attributes is not None
        assert attributes["shopsource.command.type"] == "CreateOrder"
        assert "shopsource.command.publish" in tracer.span_names


class TestConflictRetry:
    """Reload and retry on OptimisticLockError."""

    @pytest.mark.asyncio
    async def test_conflict_is_retried_on_fresh_state(
        self,
        event_bus: InMemoryEventBus,
        published: list[DomainEvent],
        create_order: CreateOrder,
    ) -> None:
        store, handler = racing_handler(event_bus, max_conflict_retries=1)
        await handler.dispatch(create_order)
        store.interleave = OrderConfirmed(aggregate_id="order-1", confirmed_at=datetime.now(UTC), confirmed_by="other")

        order = await handler.dispatch(
            UpdateOrderItemQuantity(order_id="order-1", item_id=item_id_for("order-1", "p1"), quantity=3)
        )

        assert order.version == 3
        assert order.status == OrderStatus.CONFIRMED
        assert order.total_amount == 30.0
        assert [e.event_type for e in published] == ["OrderCreated", "OrderItemUpdated"]

    @pytest.mark.asyncio
    async def test_conflict_without_retries_raises_and_publishes_nothing(
        self,
        event_bus: InMemoryEventBus,
        published: list[DomainEvent],
        create_order: CreateOrder,
    ) -> None:
        store, handler = racing_handler(event_bus, max_conflict_retries=0)
        await handler.dispatch(create_order)
        published.clear()
        store.interleave = OrderConfirmed(aggregate_id="order-1", confirmed_at=datetime.now(UTC), confirmed_by="other")

        with pytest.raises(OptimisticLockError):
            await handler.dispatch(ConfirmOrder(order_id="order-1", confirmed_by="admin"))

        assert published == []
        assert await store.get_stream_version("order-1") == 2

    def test_negative_retry_count_rejected(self, event_store: InMemoryEventStore, event_bus: InMemoryEventBus) -> None:
        with pytest.raises(ValueError):
            OrderCommandHandler(AggregateRepository(event_store, Order), event_bus, max_conflict_retries=-1)


class TestRouting:
    """Tests for dispatch and handle_command_message."""

    def test_command_types(self) -> None:
        assert "CreateOrder" in OrderCommandHandler.command_types()
        assert "ReserveStock" not in OrderCommandHandler.command_types()
        assert "ReserveStock" in InventoryCommandHandler.command_types()

    @pytest.mark.asyncio
    async def test_dispatch_unknown_command(self, order_handler: OrderCommandHandler) -> None:
        class ArchiveOrder(Command):
            order_id: str

        with pytest.raises(UnknownCommandError) as exc_info:
            await order_handler.dispatch(ArchiveOrder(order_id="order-1"))
        assert exc_info.value.command_type == "ArchiveOrder"

    @pytest.mark.asyncio
    async def test_command_message_with_camel_case_data(
        self,
        order_handler: OrderCommandHandler,
        create_order: CreateOrder,
    ) -> None:
        await order_handler.dispatch(create_order)
        message = CommandMessage(
            type="ConfirmOrder",
            data={"orderId": "order-1", "confirmedBy": "admin"},
            target_service="order-service",
        )

        order = await order_handler.handle_command_message(message)

        assert order.status == OrderStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_command_message_with_invalid_data(self, order_handler: OrderCommandHandler) -> None:
        message = CommandMessage(type="ConfirmOrder", data={"orderId": "order-1"}, target_service="order-service")
        with pytest.raises(ValidationError):
            await order_handler.handle_command_message(message)

    @pytest.mark.asyncio
    async def test_commands_over_the_bus(
        self,
        event_store: InMemoryEventStore,
        create_order: CreateOrder,
    ) -> None:
        bus = InMemoryEventBus("order-service", enable_tracing=False)
        handler = OrderCommandHandler(AggregateRepository(event_store, Order, enable_tracing=False), bus, enable_tracing=False)
        bus.subscribe_to_commands(handler.handle_command_message)

        await bus.publish_command("order-service", "CreateOrder", create_order.model_dump(mode="json", by_alias=True))
        await bus.publish_command("order-service", "ArchiveOrder", {"orderId": "order-1"})

        assert await event_store.get_stream_version("order-1") == 1
        assert bus.get_stats().handler_errors == 1


class TestCommandContext:
    """issued_by and correlation_id end up on event metadata."""

    @pytest.mark.asyncio
    async def test_creation_events_carry_context(
        self,
        order_handler: OrderCommandHandler,
        published: list[DomainEvent],
        create_order: CreateOrder,
    ) -> None:
        command = create_order.model_copy(update={"issued_by": "admin-1", "correlation_id": "corr-1"})

        await order_handler.dispatch(command)

        metadata = published[0].metadata
        assert metadata.user_id == "admin-1"
        assert metadata.correlation_id == "corr-1"
        assert metadata.version == 1

    @pytest.mark.asyncio
    async def test_update_events_carry_context(
        self,
        order_handler: OrderCommandHandler,
        event_store: InMemoryEventStore,
        create_order: CreateOrder,
    ) -> None:
        await order_handler.dispatch(create_order)

        await order_handler.dispatch(
            ConfirmOrder(order_id="order-1", confirmed_by="admin", issued_by="admin-2", correlation_id="corr-2")
        )

        stored = await event_store.get_events("order-1", from_version=1)
        assert stored[0].event.metadata.user_id == "admin-2"
        assert stored[0].event.metadata.correlation_id == "corr-2"


class TestServiceHandlers:
    """One path through each service's handler."""

    @pytest.mark.asyncio
    async def test_user(self, event_store: InMemoryEventStore, event_bus: InMemoryEventBus) -> None:
        handler = UserCommandHandler(AggregateRepository(event_store, User, enable_tracing=False), event_bus)

        user = await handler.dispatch(
            RegisterUser(email="Ada@Example.com", first_name="Ada", last_name="Lovelace", password_hash="h")
        )
        user = await handler.dispatch(VerifyUserEmail(user_id=user.aggregate_id))

        assert user.state is not None
        assert user.state.email == "ada@example.com"
        assert user.state.email_verified

    @pytest.mark.asyncio
    async def test_product(self, event_store: InMemoryEventStore, event_bus: InMemoryEventBus) -> None:
        handler = ProductCommandHandler(AggregateRepository(event_store, Product, enable_tracing=False), event_bus)

        product = await handler.dispatch(
            CreateProduct(name="Teapot", description="", price=20.0, category_id="kitchen", sku="TEA-1")
        )
        product = await handler.dispatch(ChangeProductPrice(product_id=product.aggregate_id, new_price=25.0))

        assert product.state is not None
        assert product.state.price == 25.0

    @pytest.mark.asyncio
    async def test_payment(self, event_store: InMemoryEventStore, event_bus: InMemoryEventBus) -> None:
        handler = PaymentCommandHandler(AggregateRepository(event_store, Payment, enable_tracing=False), event_bus)

        payment = await handler.dispatch(
            RequestPayment(order_id="order-1", user_id="user-1", amount=20.0, payment_method="credit_card")
        )
        payment = await handler.dispatch(ProcessPayment(payment_id=payment.aggregate_id, transaction_id="txn-1"))

        assert payment.status == PaymentStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_inventory(
        self,
        event_store: InMemoryEventStore,
        event_bus: InMemoryEventBus,
        published: list[DomainEvent],
    ) -> None:
        handler = InventoryCommandHandler(
            AggregateRepository(event_store, Inventory, enable_tracing=False),
            event_bus,
            enable_tracing=False,
        )
        await handler.dispatch(
            CreateInventoryItem(inventory_id="inv-1", product_id="p1", sku="S1", initial_stock=5, low_stock_threshold=2)
        )

        await handler.dispatch(ReserveStock(inventory_id="inv-1", order_id="orderA", quantity=4))
        with pytest.raises(DomainError):
            await handler.dispatch(ReserveStock(inventory_id="inv-1", order_id="orderB", quantity=3))
        inventory = await handler.dispatch(UpdateStock(inventory_id="inv-1", new_stock=1, reason="damaged", change_type="increment"))

        assert inventory.available_stock == 2
        assert [e.event_type for e in published] == [
            "InventoryItemCreated",
            "StockReserved",
            "StockUpdated",
            "LowStockAlert",
        ]
