"""
Base classes for domain events.

Events are immutable records of facts about one aggregate. They are the only
source of truth: aggregate state is rebuilt by folding them, the event store
persists them and the event bus carries them between services.

Every event serializes to the same wire shape::

    {
        "eventId": "...",
        "eventType": "OrderShipped",
        "aggregateId": "...",
        "data": {"trackingNumber": "...", "carrier": "..."},
        "metadata": {"timestamp": "2024-01-01T00:00:00Z", "version": 3,
                     "userId": "...", "correlationId": "...", "causationId": "..."}
    }

Concrete events declare their payload as typed Pydantic fields. Field names
are snake_case in Python and camelCase on the wire.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, ClassVar, Self
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic.alias_generators import to_camel

from shopsource.exceptions import SerializationError

if TYPE_CHECKING:
    from shopsource.events.registry import EventRegistry

logger = logging.getLogger(__name__)

ENVELOPE_FIELDS = frozenset({"event_id", "event_type", "aggregate_id", "metadata"})


class ValueObject(BaseModel):
    """Immutable nested value carried inside event payloads and aggregate state."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class EventMetadata(BaseModel):
    """
    Metadata attached to every event.

    ``version`` defaults to 1; the aggregate stamps the real sequence number
    when it records an event, and the event store treats the number it
    assigns on append as authoritative. Unknown keys are kept so that
    producers can attach their own context (request ids, trace ids).

    Attributes:
        timestamp: When the event was created (UTC)
        version: Position of the event in its aggregate's stream
        user_id: User that triggered the event, if any
        correlation_id: ID linking events of one logical operation
        causation_id: ID of the event or command that caused this event
    """

    model_config = ConfigDict(
        frozen=True,
        extra="allow",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    version: int = Field(default=1, ge=1)
    user_id: str | None = None
    correlation_id: str | None = None
    causation_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """JSON-compatible mapping with camelCase keys; unset optionals are omitted."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def merged(self, **overrides: Any) -> EventMetadata:
        """Return a copy with ``overrides`` applied (snake_case or camelCase keys)."""
        current = self.model_dump(by_alias=False)
        return EventMetadata.model_validate({**current, **overrides})


class DomainEvent(BaseModel):
    """
    Base class for all domain events.

    The ``event_type`` tag defaults to the class name, so concrete events
    only declare their payload::

        @register_event
        class OrderShipped(DomainEvent):
            tracking_number: str
            carrier: str

        event = OrderShipped(aggregate_id="order-1", tracking_number="T1", carrier="UPS")
        assert event.event_type == "OrderShipped"
        assert event.data == {"trackingNumber": "T1", "carrier": "UPS"}

    Events are frozen. The ``with_*`` helpers return modified copies.

    Attributes:
        event_id: Globally unique identifier, generated on creation
        event_type: Tag identifying the event variant
        aggregate_id: ID of the aggregate this event belongs to
        metadata: Timestamp, version and tracing context
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    # Type name of the aggregate emitting the event, used in logs and spans
    aggregate_type: ClassVar[str] = ""

    event_id: str = Field(default_factory=lambda: str(uuid4()))
    event_type: str = ""
    aggregate_id: str
    metadata: EventMetadata = Field(default_factory=EventMetadata)

    @model_validator(mode="before")
    @classmethod
    def _ensure_event_type(cls, data: Any) -> Any:
        """Fill in event_type from the class when the input does not carry one."""
        if isinstance(data, dict) and not (data.get("event_type") or data.get("eventType")):
            field_info = cls.model_fields.get("event_type")
            default = field_info.default if field_info is not None else ""
            data = dict(data)
            data.pop("eventType", None)
            data["event_type"] = default if isinstance(default, str) and default else cls.__name__
        return data

    @property
    def version(self) -> int:
        """Version of the aggregate after this event."""
        return self.metadata.version

    @property
    def timestamp(self) -> datetime:
        return self.metadata.timestamp

    @property
    def data(self) -> dict[str, Any]:
        """Event payload as a JSON-compatible mapping with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True, exclude=set(ENVELOPE_FIELDS))

    def __str__(self) -> str:
        return (
            f"{self.event_type}(event_id={self.event_id}, "
            f"aggregate_id={self.aggregate_id}, version={self.version})"
        )

    def with_version(self, version: int) -> Self:
        """Return a copy stamped with the given aggregate version."""
        return self.model_copy(update={"metadata": self.metadata.merged(version=version)})

    def with_metadata(self, **kwargs: Any) -> Self:
        """
        Return a copy with extra or replaced metadata.

        Example:
            >>> enriched = event.with_metadata(user_id="admin-1", request_id="r-42")
            >>> enriched.metadata.user_id
            'admin-1'
        """
        return self.model_copy(update={"metadata": self.metadata.merged(**kwargs)})

    def with_causation(self, causing_event: DomainEvent) -> Self:
        """
        Return a copy marked as caused by ``causing_event``.

        The correlation id is inherited from the causing event (falling back
        to its event id) so whole chains of reactions can be followed.
        """
        correlation_id = causing_event.metadata.correlation_id or causing_event.event_id
        return self.with_metadata(
            causation_id=causing_event.event_id,
            correlation_id=correlation_id,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the wire shape used by the event store and the event bus."""
        return {
            "eventId": self.event_id,
            "eventType": self.event_type,
            "aggregateId": self.aggregate_id,
            "data": self.data,
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        registry: EventRegistry | None = None,
    ) -> DomainEvent:
        """
        Deserialize an event from its wire shape.

        When called on ``DomainEvent`` itself the concrete class is looked up
        in the registry by ``eventType``; types nobody registered come back as
        ``UnknownEvent`` so that newer producers never break older consumers.
        Called on a concrete class, that class is used directly.

        Args:
            data: Mapping produced by ``to_dict()``
            registry: Registry to resolve types in (defaults to the global one)

        Returns:
            The deserialized event

        Raises:
            SerializationError: If the mapping is malformed or the payload does
                not validate against the registered class
        """
        event_type = data.get("eventType") or data.get("event_type")
        aggregate_id = data.get("aggregateId") or data.get("aggregate_id")
        if not event_type or aggregate_id is None:
            raise SerializationError(
                str(event_type or "<missing>"),
                "eventType and aggregateId are required",
            )

        target: type[DomainEvent] = cls
        if cls is DomainEvent:
            from shopsource.events.registry import default_registry

            lookup = registry if registry is not None else default_registry
            target = lookup.get_or_none(event_type) or UnknownEvent

        payload = data.get("data") or {}
        if not isinstance(payload, dict):
            raise SerializationError(event_type, "data must be a mapping")

        fields: dict[str, Any] = {
            **payload,
            "eventType": event_type,
            "aggregateId": str(aggregate_id),
            "metadata": data.get("metadata") or {},
        }
        event_id = data.get("eventId") or data.get("event_id")
        if event_id:
            fields["eventId"] = str(event_id)

        try:
            return target.model_validate(fields)
        except ValidationError as e:
            raise SerializationError(event_type, str(e)) from e


class UnknownEvent(DomainEvent):
    """
    Event whose type is not registered in this process.

    Keeps the original payload keys untouched so the event can be stored and
    forwarded without loss.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="allow",
        alias_generator=to_camel,
        populate_by_name=True,
    )


def create_event(
    event_type: str,
    aggregate_id: str,
    data: dict[str, Any] | None = None,
    metadata: dict[str, Any] | None = None,
    registry: EventRegistry | None = None,
) -> DomainEvent:
    """
    Build an event from a type tag, a payload mapping and metadata overrides.

    A fresh event id is generated; timestamp defaults to now and version to 1
    unless ``metadata`` overrides them.

    Example:
        >>> event = create_event("OrderConfirmed", "order-1",
        ...                      {"confirmedAt": "2024-01-01T00:00:00Z", "confirmedBy": "u1"},
        ...                      {"userId": "u1"})
        >>> type(event).__name__
        'OrderConfirmed'
    """
    return DomainEvent.from_dict(
        {
            "eventType": event_type,
            "aggregateId": aggregate_id,
            "data": dict(data or {}),
            "metadata": dict(metadata or {}),
        },
        registry=registry,
    )


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)
