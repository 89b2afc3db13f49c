"""
Normalization of subscriber callables.

The buses accept event and command handlers in several shapes: plain
functions, coroutine functions, or objects exposing a ``handle`` method in
either flavour. ``HandlerAdapter`` turns all of them into one awaitable
``handle(message)`` so dispatch code never inspects handler types.
"""

import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)

AsyncHandlerFunc = Callable[[Any], Awaitable[None]]


def get_handler_name(handler: Any) -> str:
    """Descriptive name for a handler, for logs and span attributes."""
    if inspect.isfunction(handler) or inspect.ismethod(handler):
        return str(handler.__qualname__)
    if hasattr(handler, "__class__") and handler.__class__.__name__ != "function":
        return str(handler.__class__.__name__)
    return repr(handler)


def _wrap_sync(func: Callable[[Any], Any]) -> AsyncHandlerFunc:
    async def wrapper(message: Any) -> None:
        result = func(message)
        # a sync callable may still hand back an awaitable (e.g. functools.partial of a coroutine)
        if inspect.isawaitable(result):
            await result

    return wrapper


class HandlerAdapter:
    """
    Wraps a handler behind a uniform async ``handle`` method.

    Equality and hashing follow the wrapped handler, so a subscriber can be
    found again (for ``unsubscribe``) by passing the original object.

    Raises:
        TypeError: If the handler has no ``handle`` method and is not callable
    """

    def __init__(self, handler: Any) -> None:
        self._original = handler
        self._name = get_handler_name(handler)
        self._async_handler = self._normalize(handler)

    @staticmethod
    def _normalize(handler: Any) -> AsyncHandlerFunc:
        target = getattr(handler, "handle", None)
        if target is None:
            if not callable(handler):
                raise TypeError(
                    f"Handler must have a handle() method or be callable, got {type(handler)}"
                )
            target = handler

        if inspect.iscoroutinefunction(target):
            return target  # type: ignore[no-any-return]
        return _wrap_sync(target)

    @property
    def original(self) -> Any:
        return self._original

    @property
    def name(self) -> str:
        return self._name

    async def handle(self, message: Any) -> None:
        await self._async_handler(message)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, HandlerAdapter):
            return self._original is other._original
        return self._original is other

    def __hash__(self) -> int:
        return id(self._original)

    def __repr__(self) -> str:
        return f"HandlerAdapter({self._name})"
