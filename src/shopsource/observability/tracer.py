"""
Injectable tracers.

Components take a ``Tracer`` in their constructor instead of inheriting a
tracing mixin. ``create_tracer`` picks the OpenTelemetry implementation when
tracing is enabled and a no-op implementation otherwise, so components never
need to branch on configuration themselves.

Example:
    >>> tracer = create_tracer(__name__, enable_tracing=False)
    >>> with tracer.span("shopsource.event_store.save_events", {"k": "v"}):
    ...     pass
"""

from __future__ import annotations

import contextlib
from collections.abc import Generator
from contextlib import AbstractContextManager
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from opentelemetry import trace
from opentelemetry.trace import Span
from opentelemetry.trace import SpanKind as OtelSpanKind


class SpanKindEnum(Enum):
    """Role of a span, mapped onto OpenTelemetry's SpanKind."""

    INTERNAL = "internal"
    PRODUCER = "producer"
    CONSUMER = "consumer"
    CLIENT = "client"
    SERVER = "server"


_OTEL_KINDS = {
    SpanKindEnum.INTERNAL: OtelSpanKind.INTERNAL,
    SpanKindEnum.PRODUCER: OtelSpanKind.PRODUCER,
    SpanKindEnum.CONSUMER: OtelSpanKind.CONSUMER,
    SpanKindEnum.CLIENT: OtelSpanKind.CLIENT,
    SpanKindEnum.SERVER: OtelSpanKind.SERVER,
}


@runtime_checkable
class Tracer(Protocol):
    """
    Protocol implemented by every tracer.

    Implementations:
    - NullTracer: does nothing, used when tracing is disabled
    - OpenTelemetryTracer: thin wrapper over ``opentelemetry.trace``
    - MockTracer: records span names for assertions in tests
    """

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[Span | None]:
        """
        Open a span for the duration of a ``with`` block.

        Args:
            name: Span name (e.g., "shopsource.repository.save")
            attributes: Span attributes (optional)

        Returns:
            Context manager yielding the span, or None when disabled
        """
        ...

    def span_with_kind(
        self,
        name: str,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[Span | None]:
        """Like ``span()`` but with an explicit span kind (PRODUCER, CONSUMER, ...)."""
        ...

    @property
    def enabled(self) -> bool:
        """True when spans are actually recorded."""
        ...


class NullTracer:
    """No-op tracer. Yields None from every span."""

    @contextlib.contextmanager
    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> Generator[None, None, None]:
        yield None

    @contextlib.contextmanager
    def span_with_kind(
        self,
        name: str,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
        attributes: dict[str, Any] | None = None,
    ) -> Generator[None, None, None]:
        yield None

    @property
    def enabled(self) -> bool:
        return False


class OpenTelemetryTracer:
    """
    Tracer backed by the globally configured OpenTelemetry provider.

    Without an SDK provider installed the OpenTelemetry API hands out
    non-recording spans, so this is safe to use unconditionally.

    Args:
        tracer_name: Name for the tracer (typically __name__)
    """

    def __init__(self, tracer_name: str) -> None:
        self._tracer = trace.get_tracer(tracer_name)

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[Span | None]:
        return self._tracer.start_as_current_span(name, attributes=attributes or {})

    def span_with_kind(
        self,
        name: str,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[Span | None]:
        return self._tracer.start_as_current_span(
            name,
            kind=_OTEL_KINDS.get(kind, OtelSpanKind.INTERNAL),
            attributes=attributes or {},
        )

    @property
    def enabled(self) -> bool:
        return True


class MockTracer:
    """
    Tracer for tests that records every span opened through it.

    Example:
        >>> tracer = MockTracer()
        >>> with tracer.span("op", {"key": "value"}):
        ...     pass
        >>> tracer.span_names
        ['op']
    """

    def __init__(self) -> None:
        self.spans: list[tuple[str, dict[str, Any] | None]] = []
        self.kinds: dict[str, SpanKindEnum] = {}

    @contextlib.contextmanager
    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> Generator[None, None, None]:
        self.spans.append((name, attributes))
        yield None

    @contextlib.contextmanager
    def span_with_kind(
        self,
        name: str,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
        attributes: dict[str, Any] | None = None,
    ) -> Generator[None, None, None]:
        self.spans.append((name, attributes))
        self.kinds[name] = kind
        yield None

    @property
    def enabled(self) -> bool:
        return True

    @property
    def span_names(self) -> list[str]:
        """Names of the recorded spans, in order."""
        return [name for name, _ in self.spans]

    def clear(self) -> None:
        self.spans.clear()
        self.kinds.clear()


def create_tracer(name: str, enable_tracing: bool = True) -> Tracer:
    """
    Build the tracer a component should use.

    Args:
        name: Tracer name (typically __name__)
        enable_tracing: Whether spans should be recorded

    Returns:
        OpenTelemetryTracer when enabled, NullTracer otherwise
    """
    if enable_tracing:
        return OpenTelemetryTracer(name)
    return NullTracer()
