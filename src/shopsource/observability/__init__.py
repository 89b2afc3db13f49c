"""Tracing support for shopsource components."""

from shopsource.observability.attributes import (
    ATTR_AGGREGATE_ID,
    ATTR_AGGREGATE_TYPE,
    ATTR_COMMAND_TYPE,
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_EVENT_COUNT,
    ATTR_EVENT_ID,
    ATTR_EVENT_TYPE,
    ATTR_EXPECTED_VERSION,
    ATTR_FROM_POSITION,
    ATTR_FROM_VERSION,
    ATTR_HANDLER_COUNT,
    ATTR_HANDLER_NAME,
    ATTR_HANDLER_SUCCESS,
    ATTR_MESSAGING_DESTINATION,
    ATTR_MESSAGING_OPERATION,
    ATTR_MESSAGING_SYSTEM,
    ATTR_RETRY_COUNT,
    ATTR_TARGET_SERVICE,
    ATTR_VERSION,
)
from shopsource.observability.tracer import (
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    SpanKindEnum,
    Tracer,
    create_tracer,
)

__all__ = [
    "ATTR_AGGREGATE_ID",
    "ATTR_AGGREGATE_TYPE",
    "ATTR_COMMAND_TYPE",
    "ATTR_DB_OPERATION",
    "ATTR_DB_SYSTEM",
    "ATTR_EVENT_COUNT",
    "ATTR_EVENT_ID",
    "ATTR_EVENT_TYPE",
    "ATTR_EXPECTED_VERSION",
    "ATTR_FROM_POSITION",
    "ATTR_FROM_VERSION",
    "ATTR_HANDLER_COUNT",
    "ATTR_HANDLER_NAME",
    "ATTR_HANDLER_SUCCESS",
    "ATTR_MESSAGING_DESTINATION",
    "ATTR_MESSAGING_OPERATION",
    "ATTR_MESSAGING_SYSTEM",
    "ATTR_RETRY_COUNT",
    "ATTR_TARGET_SERVICE",
    "ATTR_VERSION",
    "MockTracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "SpanKindEnum",
    "Tracer",
    "create_tracer",
]
