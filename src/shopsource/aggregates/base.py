"""
Base classes for event-sourced aggregates.

An aggregate is a consistency boundary whose state is a pure fold of its
events. Command methods never touch state directly: they check
preconditions, build an event and hand it to ``apply_event``, which is the
same path replay goes through. Replaying the committed events therefore
always reproduces the state a live command produced.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from typing import Any, ClassVar, Generic, Literal, NoReturn, Self, TypeVar, cast, get_args, get_origin

from pydantic import BaseModel

from shopsource.events.base import DomainEvent, EventMetadata
from shopsource.exceptions import DomainError, EventVersionError, UnhandledEventError

logger = logging.getLogger(__name__)

TState = TypeVar("TState", bound=BaseModel)
TEvent = TypeVar("TEvent", bound=DomainEvent)

UnregisteredEventHandling = Literal["ignore", "warn", "error"]


class AggregateRoot(Generic[TState], ABC):
    """
    Base class for event-sourced aggregate roots.

    Subclasses implement ``_apply(state, event)``, a reducer returning the
    next state. ``state`` is None until the creation event has been applied.

    Attributes:
        aggregate_type: Type name used in logs, spans and snapshots
        schema_version: Version of the state model; bump it when the state
            shape changes so old snapshots are ignored
        validate_versions: Reject new events that do not carry version + 1
    """

    aggregate_type: ClassVar[str] = "Unknown"
    schema_version: ClassVar[int] = 1
    validate_versions: ClassVar[bool] = True

    def __init__(self, aggregate_id: str) -> None:
        self._aggregate_id = aggregate_id
        self._version = 0
        self._uncommitted_events: list[DomainEvent] = []
        self._state: TState | None = None
        self._event_context: dict[str, Any] = {}

    @classmethod
    def from_events(cls, aggregate_id: str, events: Iterable[DomainEvent]) -> Self:
        """
        Rebuild an aggregate by folding ``events`` in order from a blank state.

        The events are treated as already committed and are not recorded as
        uncommitted.
        """
        aggregate = cls(aggregate_id)
        aggregate.load_from_history(events)
        return aggregate

    @property
    def aggregate_id(self) -> str:
        return self._aggregate_id

    @property
    def version(self) -> int:
        """Number of events applied so far."""
        return self._version

    @property
    def state(self) -> TState | None:
        return self._state

    @property
    def uncommitted_events(self) -> list[DomainEvent]:
        """Events produced since load, oldest first. Returns a copy."""
        return self._uncommitted_events.copy()

    @property
    def has_uncommitted_events(self) -> bool:
        return bool(self._uncommitted_events)

    def apply_event(self, event: DomainEvent, is_new: bool = True) -> None:
        """
        Fold one event into the aggregate.

        The next state is computed before anything is updated, so a reducer
        that raises leaves version, state and uncommitted events untouched.

        Args:
            event: The event to apply
            is_new: True for events produced by a command (they are version
                checked and recorded as uncommitted), False for replay

        Raises:
            EventVersionError: If a new event does not carry version + 1
        """
        expected_version = self._version + 1
        if is_new and self.validate_versions and event.version != expected_version:
            raise EventVersionError(
                expected_version=expected_version,
                actual_version=event.version,
                event_id=event.event_id,
                aggregate_id=self._aggregate_id,
            )

        next_state = self._apply(self._state, event)

        self._state = next_state
        self._version = expected_version
        if is_new:
            self._uncommitted_events.append(event)

    @abstractmethod
    def _apply(self, state: TState | None, event: DomainEvent) -> TState | None:
        """Return the state that results from applying ``event`` to ``state``."""
        pass

    def load_from_history(self, events: Iterable[DomainEvent]) -> None:
        for event in events:
            self.apply_event(event, is_new=False)

    def mark_events_as_committed(self) -> None:
        """Forget uncommitted events once the repository has persisted them."""
        self._uncommitted_events.clear()

    def set_event_context(
        self,
        *,
        user_id: str | None = None,
        correlation_id: str | None = None,
        causation_id: str | None = None,
    ) -> Self:
        """
        Metadata copied onto every event this instance records from now on.

        Example:
            >>> order.set_event_context(user_id="admin-1", correlation_id=request_id)
            >>> order.confirm("admin-1")
        """
        context = {
            "user_id": user_id,
            "correlation_id": correlation_id,
            "causation_id": causation_id,
        }
        self._event_context = {k: v for k, v in context.items() if v is not None}
        return self

    def _record(self, event_class: type[TEvent], **payload: Any) -> TEvent:
        """Build the next event of this aggregate and apply it as new."""
        event = event_class(
            aggregate_id=self._aggregate_id,
            metadata=EventMetadata(version=self._version + 1, **self._event_context),
            **payload,
        )
        self.apply_event(event)
        return event

    def _fail(self, message: str) -> NoReturn:
        raise DomainError(message, aggregate_id=self._aggregate_id)

    def _require(self, condition: bool, message: str) -> None:
        if not condition:
            self._fail(message)

    def _require_state(self) -> TState:
        if self._state is None:
            self._fail(f"{self.aggregate_type} {self._aggregate_id} does not exist")
        return self._state

    def _serialize_state(self) -> dict[str, Any]:
        """JSON-compatible copy of the state for snapshot storage."""
        if self._state is None:
            return {}
        return self._state.model_dump(mode="json")

    def _restore_from_snapshot(self, state_dict: dict[str, Any], version: int) -> None:
        """
        Restore state and version from a snapshot.

        Raises:
            ValidationError: If ``state_dict`` no longer matches the state model
        """
        self._state = self._get_state_type().model_validate(state_dict) if state_dict else None
        self._version = version

    def _get_state_type(self) -> type[TState]:
        """Concrete TState, read from the class's AggregateRoot[...] parameterization."""
        for base in type(self).__mro__:
            for orig_base in getattr(base, "__orig_bases__", ()):
                origin = get_origin(orig_base)
                if isinstance(origin, type) and issubclass(origin, AggregateRoot):
                    args = get_args(orig_base)
                    if args and isinstance(args[0], type):
                        return cast(type[TState], args[0])
        raise RuntimeError(
            f"Cannot determine state type for {type(self).__name__}; "
            "inherit from AggregateRoot[StateType] or DeclarativeAggregate[StateType]"
        )

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"id={self._aggregate_id}, "
            f"version={self._version}, "
            f"uncommitted={len(self._uncommitted_events)})"
        )


class DeclarativeAggregate(AggregateRoot[TState], ABC):
    """
    Aggregate whose reducers are methods marked with ``@handles``.

    Handlers are looked up by event class and then by ``event_type`` name,
    so an event deserialized through another registry still reaches the
    right reducer.

    Attributes:
        unregistered_event_handling: What to do with an event type that has
            no reducer. Such events come from newer producers (or from a
            typo), so the aggregate's version still advances but its state
            does not change:
            - "ignore": silently
            - "warn": with a warning log (default)
            - "error": raise UnhandledEventError instead
    """

    unregistered_event_handling: ClassVar[UnregisteredEventHandling] = "warn"

    _event_handlers: ClassVar[dict[type[DomainEvent], str]] = {}
    _event_handlers_by_name: ClassVar[dict[str, str]] = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        cls._event_handlers = {}
        cls._event_handlers_by_name = {}
        for name in dir(cls):
            member = getattr(cls, name, None)
            event_type = getattr(member, "_handles_event_type", None)
            if event_type is not None:
                cls._event_handlers[event_type] = name
                cls._event_handlers_by_name[event_type.__name__] = name

    def _apply(self, state: TState | None, event: DomainEvent) -> TState | None:
        handler_name = self._event_handlers.get(type(event)) or self._event_handlers_by_name.get(
            event.event_type
        )
        if handler_name is None:
            self._handle_unregistered_event(event)
            return state
        handler = cast(Callable[[TState | None, DomainEvent], TState | None], getattr(self, handler_name))
        return handler(state, event)

    def _handle_unregistered_event(self, event: DomainEvent) -> None:
        available_handlers = sorted(self._event_handlers_by_name)
        if self.unregistered_event_handling == "error":
            raise UnhandledEventError(
                event_type=event.event_type,
                event_id=event.event_id,
                handler_class=self.__class__.__name__,
                available_handlers=available_handlers,
            )
        if self.unregistered_event_handling == "warn":
            logger.warning(
                "No handler registered for event type %s in %s; skipping",
                event.event_type,
                self.__class__.__name__,
                extra={
                    "event_type": event.event_type,
                    "event_id": event.event_id,
                    "aggregate_id": self._aggregate_id,
                    "handler_class": self.__class__.__name__,
                },
            )
