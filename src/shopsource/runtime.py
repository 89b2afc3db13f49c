"""
Wiring of one service process.

``ServiceContainer`` owns the infrastructure a service talks to: the event
store database, the Redis event stream and the RabbitMQ bus. ``start``
opens them in dependency order and ``stop`` closes them in reverse.

Example:
    >>> settings = ServiceSettings(service_name="order-service")
    >>> async with ServiceContainer(settings) as container:
    ...     handler = container.command_handler(OrderCommandHandler, Order)
    ...     await container.bus.start_consuming()
"""

from __future__ import annotations

import logging
from typing import Any, TypeVar

from shopsource.aggregates.base import AggregateRoot
from shopsource.aggregates.repository import AggregateRepository
from shopsource.bus.rabbitmq import RabbitMQEventBus
from shopsource.bus.stream import RedisEventStream
from shopsource.commands.base import CommandHandler
from shopsource.config import ServiceSettings, configure_logging
from shopsource.events.registry import EventRegistry, default_registry
from shopsource.stores.database import Database
from shopsource.stores.postgresql import PostgreSQLEventStore

logger = logging.getLogger(__name__)

TAggregate = TypeVar("TAggregate", bound="AggregateRoot[Any]")
THandler = TypeVar("THandler", bound="CommandHandler[Any]")


class ServiceContainer:
    """
    Opens and closes the infrastructure of one service.

    Args:
        settings: Settings of the service; read from the environment if None
        event_registry: Registry used to decode stored and delivered events
        enable_tracing: Passed to every component
    """

    def __init__(
        self,
        settings: ServiceSettings | None = None,
        *,
        event_registry: EventRegistry | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self.settings = settings or ServiceSettings()
        self._enable_tracing = enable_tracing
        registry = event_registry or default_registry

        self.database = Database(self.settings.database_url)
        self.stream = RedisEventStream(self.settings.redis_stream_config(), enable_tracing=enable_tracing)
        self.bus = RabbitMQEventBus(
            self.settings.rabbitmq_config(),
            stream=self.stream,
            event_registry=registry,
            enable_tracing=enable_tracing,
        )
        self._event_registry = registry
        self._event_store: PostgreSQLEventStore | None = None
        self._started = False

    @property
    def event_store(self) -> PostgreSQLEventStore:
        if self._event_store is None:
            raise RuntimeError("ServiceContainer is not started")
        return self._event_store

    @property
    def is_started(self) -> bool:
        return self._started

    async def start(self) -> None:
        """Open the database, create the schema, connect the stream and the bus."""
        if self._started:
            return
        configure_logging(self.settings.log_level)
        await self.database.open()
        try:
            self._event_store = PostgreSQLEventStore(
                self.database.session_factory,
                event_registry=self._event_registry,
                enable_tracing=self._enable_tracing,
            )
            await self._event_store.initialize()
            await self.stream.connect()
            await self.bus.connect()
        except Exception:
            await self._close()
            raise
        self._started = True
        logger.info("Service started", extra={"service_name": self.settings.service_name})

    async def stop(self) -> None:
        """Disconnect the bus, close the stream and dispose the database engine."""
        if not self._started:
            return
        await self._close()
        self._started = False
        logger.info("Service stopped", extra={"service_name": self.settings.service_name})

    async def _close(self) -> None:
        await self.bus.disconnect()
        await self.stream.close()
        await self.database.close()
        self._event_store = None

    def repository(self, aggregate_class: type[TAggregate]) -> AggregateRepository[TAggregate]:
        return AggregateRepository(
            self.event_store,
            aggregate_class,
            snapshot_threshold=self.settings.snapshot_threshold,
            enable_tracing=self._enable_tracing,
        )

    def command_handler(self, handler_class: type[THandler], aggregate_class: type[AggregateRoot[Any]]) -> THandler:
        """
        Build a command handler and subscribe it to this service's command queue.

        Commands arriving on the queue are routed by their ``type`` through
        ``handle_command_message``.
        """
        handler = handler_class(self.repository(aggregate_class), self.bus, enable_tracing=self._enable_tracing)
        self.bus.subscribe_to_commands(handler.handle_command_message)
        return handler

    async def __aenter__(self) -> ServiceContainer:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()
