"""The ``@handles`` decorator used by declarative aggregates."""

from collections.abc import Callable
from typing import Any, TypeVar

from shopsource.events.base import DomainEvent

F = TypeVar("F", bound=Callable[..., Any])


def handles(event_type: type[DomainEvent]) -> Callable[[F], F]:
    """
    Mark an aggregate method as the reducer for one event type.

    The decorated method receives the current state (None before the first
    event) and the event, and returns the next state::

        @handles(OrderShipped)
        def _shipped(self, state: OrderState, event: OrderShipped) -> OrderState:
            return state.model_copy(update={"status": OrderStatus.SHIPPED})

    Args:
        event_type: The DomainEvent subclass the method reduces
    """

    def decorator(func: F) -> F:
        func._handles_event_type = event_type  # type: ignore[attr-defined]
        return func

    return decorator


def get_handled_event_type(func: Callable[..., Any]) -> type[DomainEvent] | None:
    return getattr(func, "_handles_event_type", None)
