"""Handler plumbing shared by aggregates and buses."""

from shopsource.handlers.adapter import AsyncHandlerFunc, HandlerAdapter, get_handler_name
from shopsource.handlers.decorators import get_handled_event_type, handles

__all__ = [
    "AsyncHandlerFunc",
    "HandlerAdapter",
    "get_handled_event_type",
    "get_handler_name",
    "handles",
]
