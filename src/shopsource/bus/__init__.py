"""Event bus implementations: in-memory, RabbitMQ, and the Redis real-time stream."""

from shopsource.bus.dispatcher import EventDispatcher
from shopsource.bus.interface import (
    CommandHandlerFunc,
    CommandMessage,
    EventBus,
    EventBusStats,
    EventHandlerFunc,
    StreamEntry,
)
from shopsource.bus.memory import InMemoryEventBus
from shopsource.bus.rabbitmq import RabbitMQEventBus, RabbitMQEventBusConfig
from shopsource.bus.stream import (
    EventStream,
    InMemoryEventStream,
    RedisEventStream,
    RedisStreamConfig,
)

__all__ = [
    "CommandHandlerFunc",
    "CommandMessage",
    "EventBus",
    "EventBusStats",
    "EventDispatcher",
    "EventHandlerFunc",
    "EventStream",
    "InMemoryEventBus",
    "InMemoryEventStream",
    "RabbitMQEventBus",
    "RabbitMQEventBusConfig",
    "RedisEventStream",
    "RedisStreamConfig",
    "StreamEntry",
]
