"""Library exceptions for the shopsource package."""


class ShopSourceError(Exception):
    """Base exception for shopsource."""

    pass


class DomainError(ShopSourceError):
    """
    Raised when a command precondition fails on an aggregate.

    Domain errors are raised before any event is produced, so the aggregate
    is left untouched. They describe client-correctable problems (wrong
    status, negative quantity, insufficient stock, missing sub-entity) and
    retrying without changing the request is pointless.

    Attributes:
        aggregate_id: ID of the aggregate that rejected the command, if known
    """

    def __init__(self, message: str, aggregate_id: str | None = None) -> None:
        self.aggregate_id = aggregate_id
        super().__init__(message)


class OptimisticLockError(ShopSourceError):
    """Raised when there's a version conflict during event append."""

    def __init__(self, aggregate_id: str, expected_version: int, actual_version: int) -> None:
        self.aggregate_id = aggregate_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Optimistic lock error for aggregate {aggregate_id}: "
            f"expected version {expected_version}, but current version is {actual_version}"
        )


class AggregateNotFoundError(ShopSourceError):
    """Raised when an aggregate cannot be found."""

    def __init__(self, aggregate_id: str, aggregate_type: str | None = None) -> None:
        self.aggregate_id = aggregate_id
        self.aggregate_type = aggregate_type
        type_info = f" of type {aggregate_type}" if aggregate_type else ""
        super().__init__(f"Aggregate{type_info} not found: {aggregate_id}")


class DeletionNotSupportedError(ShopSourceError):
    """Raised when a caller tries to delete an event-sourced aggregate."""

    def __init__(self, aggregate_id: str) -> None:
        self.aggregate_id = aggregate_id
        super().__init__(
            f"Delete not supported in event sourcing (aggregate {aggregate_id}); "
            "append a compensating event instead"
        )


class EventStoreError(ShopSourceError):
    """Raised when there's an error in the event store."""

    pass


class EventBusError(ShopSourceError):
    """Raised when there's an error in the event bus."""

    pass


class SerializationError(ShopSourceError):
    """Raised when event serialization or deserialization fails."""

    def __init__(self, event_type: str, message: str) -> None:
        self.event_type = event_type
        super().__init__(f"Serialization error for {event_type}: {message}")


class EventVersionError(ShopSourceError):
    """
    Raised when a new event does not carry the next aggregate version.

    Attributes:
        expected_version: The version that was expected (current version + 1)
        actual_version: The version found in the event
        event_id: ID of the event with invalid version
        aggregate_id: ID of the aggregate being updated
    """

    def __init__(
        self,
        expected_version: int,
        actual_version: int,
        event_id: str,
        aggregate_id: str,
    ) -> None:
        self.expected_version = expected_version
        self.actual_version = actual_version
        self.event_id = event_id
        self.aggregate_id = aggregate_id
        super().__init__(
            f"Event version mismatch for aggregate {aggregate_id}: "
            f"expected version {expected_version}, got {actual_version} "
            f"(event_id: {event_id})"
        )


class UnhandledEventError(ShopSourceError):
    """
    Raised when an aggregate meets an event type it has no handler for and
    its unregistered_event_handling is set to "error".

    Attributes:
        event_type: The name of the event type that wasn't handled
        event_id: ID of the unhandled event
        handler_class: Name of the aggregate class
        available_handlers: Event type names that do have handlers
    """

    def __init__(
        self,
        event_type: str,
        event_id: str,
        handler_class: str,
        available_handlers: list[str],
    ) -> None:
        self.event_type = event_type
        self.event_id = event_id
        self.handler_class = handler_class
        self.available_handlers = available_handlers
        handlers_str = ", ".join(available_handlers) if available_handlers else "none"
        super().__init__(
            f"No handler registered for event type '{event_type}' "
            f"in {handler_class}. "
            f"Available handlers: {handlers_str}. "
            f"Set unregistered_event_handling='ignore' or 'warn' to tolerate "
            f"event types from newer producers."
        )
