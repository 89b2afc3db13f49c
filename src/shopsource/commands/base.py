"""
Command handling: load, decide, persist, then publish.

Every command runs the same sequence. The aggregate is loaded, the domain
command is invoked, the resulting events are saved, and only then are they
published, one by one, in order. Nothing is published when the save fails,
so subscribers never see an event the store does not have.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any, ClassVar, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel

from shopsource.aggregates.repository import AggregateRepository, TAggregate
from shopsource.bus.interface import CommandMessage, EventBus
from shopsource.events.base import DomainEvent
from shopsource.exceptions import AggregateNotFoundError, OptimisticLockError, ShopSourceError
from shopsource.observability import Tracer, create_tracer
from shopsource.observability.attributes import (
    ATTR_AGGREGATE_ID,
    ATTR_AGGREGATE_TYPE,
    ATTR_COMMAND_TYPE,
    ATTR_EVENT_COUNT,
)

logger = logging.getLogger(__name__)


class UnknownCommandError(ShopSourceError, LookupError):
    """Raised when a handler has no route for a command type."""

    def __init__(self, command_type: str, handler_class: str) -> None:
        self.command_type = command_type
        self.handler_class = handler_class
        super().__init__(f"{handler_class} does not handle command type '{command_type}'")


class Command(BaseModel):
    """
    Base class for commands.

    ``command_type`` defaults to the class name and is the ``type`` used on
    the command channel. ``issued_by`` and ``correlation_id`` are copied onto
    the metadata of every event the command produces.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    command_type: ClassVar[str] = ""

    issued_by: str | None = None
    correlation_id: str | None = None

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if not cls.__dict__.get("command_type"):
            cls.command_type = cls.__name__


def handles_command(command_class: type[Command]) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Mark a handler coroutine as the route for ``command_class``.

    Example:
        >>> class OrderCommandHandler(CommandHandler[Order]):
        ...     @handles_command(ConfirmOrder)
        ...     async def confirm_order(self, command: ConfirmOrder) -> None:
        ...         ...
    """

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        func._handles_command = command_class  # type: ignore[attr-defined]
        return func

    return decorator


class CommandHandler(Generic[TAggregate]):
    """
    Base class of the per-service command handlers.

    Args:
        repository: Repository of the aggregate this service owns
        event_bus: Bus the committed events are published to
        max_conflict_retries: How many times a command is reloaded and
            re-run after an OptimisticLockError before the error is raised
        tracer: Optional custom Tracer instance
        enable_tracing: Ignored if tracer is explicitly provided
    """

    _command_routes: ClassVar[dict[type[Command], str]] = {}
    _command_names: ClassVar[dict[str, type[Command]]] = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        cls._command_routes = {}
        cls._command_names = {}
        for name in dir(cls):
            member = getattr(cls, name, None)
            command_class = getattr(member, "_handles_command", None)
            if command_class is not None:
                cls._command_routes[command_class] = name
                cls._command_names[command_class.command_type] = command_class

    def __init__(
        self,
        repository: AggregateRepository[TAggregate],
        event_bus: EventBus,
        *,
        max_conflict_retries: int = 0,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        if max_conflict_retries < 0:
            raise ValueError("max_conflict_retries cannot be negative")
        self._repository = repository
        self._event_bus = event_bus
        self._max_conflict_retries = max_conflict_retries
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    @property
    def repository(self) -> AggregateRepository[TAggregate]:
        return self._repository

    @classmethod
    def command_types(cls) -> list[str]:
        """Names of the commands this handler accepts on the command channel."""
        return sorted(cls._command_names)

    async def dispatch(self, command: Command) -> Any:
        """
        Route a command object to its handler coroutine.

        Raises:
            UnknownCommandError: If this handler has no route for the command
        """
        route = self._command_routes.get(type(command))
        if route is None:
            raise UnknownCommandError(type(command).__name__, type(self).__name__)
        return await getattr(self, route)(command)

    async def handle_command_message(self, message: CommandMessage) -> Any:
        """
        Validate a command received on the command channel and dispatch it.

        Raises:
            UnknownCommandError: If the message type has no route here
            ValidationError: If the message data does not match the command
        """
        command_class = self._command_names.get(message.type)
        if command_class is None:
            raise UnknownCommandError(message.type, type(self).__name__)
        return await self.dispatch(command_class.model_validate(message.data))

    # Execution

    async def _create(
        self,
        command: Command,
        aggregate_id: str,
        factory: Callable[[], TAggregate],
    ) -> TAggregate:
        """Run a creation command: build the aggregate, save it, then publish its events."""
        return await self._run(command, aggregate_id, lambda: self._save_new(command, factory))

    async def _update(
        self,
        command: Command,
        aggregate_id: str,
        action: Callable[[TAggregate], None],
    ) -> TAggregate:
        """Run a command against an existing aggregate, reloading on version conflicts."""
        return await self._run(command, aggregate_id, lambda: self._load_and_apply(command, aggregate_id, action))

    async def _run(
        self,
        command: Command,
        aggregate_id: str,
        operation: Callable[[], Awaitable[TAggregate]],
    ) -> TAggregate:
        log_extra = {"command_type": command.command_type, "aggregate_id": aggregate_id}
        with self._tracer.span(
            "shopsource.command.handle",
            {
                ATTR_COMMAND_TYPE: command.command_type,
                ATTR_AGGREGATE_TYPE: self._repository.aggregate_type,
                ATTR_AGGREGATE_ID: aggregate_id,
            },
        ):
            try:
                aggregate = await operation()
            except Exception as e:
                logger.error(
                    f"Failed to handle {command.command_type}: {e}",
                    exc_info=True,
                    extra={**log_extra, "error": str(e), "error_type": type(e).__name__},
                )
                raise

        logger.info(
            f"Handled {command.command_type}",
            extra={**log_extra, "aggregate_id": aggregate.aggregate_id, "version": aggregate.version},
        )
        return aggregate

    async def _save_new(self, command: Command, factory: Callable[[], TAggregate]) -> TAggregate:
        aggregate = self._with_command_context(command, factory())
        await self._commit(aggregate)
        return aggregate

    def _with_command_context(self, command: Command, created: TAggregate) -> TAggregate:
        """Refold a freshly created aggregate with the command's metadata on its events."""
        context = {
            key: value
            for key, value in (("user_id", command.issued_by), ("correlation_id", command.correlation_id))
            if value is not None
        }
        if not context:
            return created
        aggregate = type(created)(created.aggregate_id)
        aggregate.set_event_context(**context)
        for event in created.uncommitted_events:
            aggregate.apply_event(event.with_metadata(**context))
        return aggregate

    async def _load_and_apply(
        self,
        command: Command,
        aggregate_id: str,
        action: Callable[[TAggregate], None],
    ) -> TAggregate:
        attempt = 0
        while True:
            aggregate = await self._repository.find_by_id(aggregate_id)
            if aggregate is None:
                raise AggregateNotFoundError(aggregate_id, self._repository.aggregate_type)
            aggregate.set_event_context(user_id=command.issued_by, correlation_id=command.correlation_id)
            action(aggregate)
            try:
                await self._commit(aggregate)
                return aggregate
            except OptimisticLockError:
                if attempt >= self._max_conflict_retries:
                    raise
                attempt += 1
                logger.warning(
                    f"Version conflict handling {command.command_type}; retrying ({attempt}/{self._max_conflict_retries})",
                    extra={"command_type": command.command_type, "aggregate_id": aggregate_id, "attempt": attempt},
                )

    async def _commit(self, aggregate: TAggregate) -> None:
        events = aggregate.uncommitted_events
        await self._repository.save(aggregate)
        await self._publish(events)

    async def _publish(self, events: list[DomainEvent]) -> None:
        with self._tracer.span("shopsource.command.publish", {ATTR_EVENT_COUNT: len(events)}):
            for event in events:
                await self._event_bus.publish(event)
