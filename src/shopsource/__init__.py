"""
shopsource - event-sourced core of an e-commerce platform.

This package provides:
- Domain events for users, products, orders, payments and inventory
- Aggregates that derive their state by folding those events
- An event store with optimistic concurrency and snapshots (PostgreSQL and in-memory)
- An event bus: RabbitMQ topic fan-out, a direct command channel and a Redis event stream
- Command handlers that persist events before publishing them
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("shopsource")
except PackageNotFoundError:
    __version__ = "0.0.0.dev0"

from shopsource.aggregates import (
    AggregateRepository,
    AggregateRoot,
    DeclarativeAggregate,
    Inventory,
    Order,
    OrderStatus,
    Payment,
    PaymentStatus,
    Product,
    User,
)
from shopsource.bus import (
    CommandMessage,
    EventBus,
    InMemoryEventBus,
    InMemoryEventStream,
    RabbitMQEventBus,
    RabbitMQEventBusConfig,
    RedisEventStream,
    RedisStreamConfig,
)
from shopsource.commands import (
    Command,
    CommandHandler,
    InventoryCommandHandler,
    OrderCommandHandler,
    PaymentCommandHandler,
    ProductCommandHandler,
    UserCommandHandler,
)
from shopsource.config import ServiceSettings, configure_logging
from shopsource.events import DomainEvent, EventMetadata, EventRegistry, default_registry, register_event
from shopsource.exceptions import (
    AggregateNotFoundError,
    DomainError,
    EventBusError,
    EventStoreError,
    OptimisticLockError,
    ShopSourceError,
)
from shopsource.handlers import handles
from shopsource.runtime import ServiceContainer
from shopsource.stores import Database, EventStore, InMemoryEventStore, PostgreSQLEventStore, Snapshot, StoredEvent

__all__ = [
    "AggregateNotFoundError",
    "AggregateRepository",
    "AggregateRoot",
    "Command",
    "CommandHandler",
    "CommandMessage",
    "Database",
    "DeclarativeAggregate",
    "DomainError",
    "DomainEvent",
    "EventBus",
    "EventBusError",
    "EventMetadata",
    "EventRegistry",
    "EventStore",
    "EventStoreError",
    "InMemoryEventBus",
    "InMemoryEventStore",
    "InMemoryEventStream",
    "Inventory",
    "InventoryCommandHandler",
    "OptimisticLockError",
    "Order",
    "OrderCommandHandler",
    "OrderStatus",
    "Payment",
    "PaymentCommandHandler",
    "PaymentStatus",
    "PostgreSQLEventStore",
    "Product",
    "ProductCommandHandler",
    "RabbitMQEventBus",
    "RabbitMQEventBusConfig",
    "RedisEventStream",
    "RedisStreamConfig",
    "ServiceContainer",
    "ServiceSettings",
    "ShopSourceError",
    "Snapshot",
    "StoredEvent",
    "User",
    "UserCommandHandler",
    "__version__",
    "configure_logging",
    "default_registry",
    "handles",
    "register_event",
]
