"""
PostgreSQL event store implementation.

Events live in one ``events`` table. ``id`` is a BIGSERIAL and doubles as
the global feed position; a unique constraint on ``(aggregate_id, version)``
backs up the optimistic version check so that two transactions racing past
the check cannot both commit.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shopsource.events.base import DomainEvent
from shopsource.events.registry import EventRegistry, default_registry
from shopsource.exceptions import EventStoreError, OptimisticLockError
from shopsource.observability import (
    ATTR_AGGREGATE_ID,
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_EVENT_COUNT,
    ATTR_EVENT_TYPE,
    ATTR_EXPECTED_VERSION,
    ATTR_FROM_POSITION,
    ATTR_FROM_VERSION,
    Tracer,
    create_tracer,
)
from shopsource.stores.interface import (
    DEFAULT_PAGE_SIZE,
    AppendResult,
    EventStore,
    Snapshot,
    StoredEvent,
)

logger = logging.getLogger(__name__)

VERSION_CONSTRAINT = "uq_events_aggregate_version"

SCHEMA_STATEMENTS = (
    f"""
    CREATE TABLE IF NOT EXISTS events (
        id BIGSERIAL PRIMARY KEY,
        event_id VARCHAR(64) NOT NULL UNIQUE,
        aggregate_id VARCHAR(255) NOT NULL,
        event_type VARCHAR(255) NOT NULL,
        event_data JSONB NOT NULL,
        metadata JSONB NOT NULL,
        version INTEGER NOT NULL,
        timestamp TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
        created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
        CONSTRAINT {VERSION_CONSTRAINT} UNIQUE (aggregate_id, version)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_events_aggregate_id ON events(aggregate_id)",
    "CREATE INDEX IF NOT EXISTS idx_events_event_type ON events(event_type, id)",
    "CREATE INDEX IF NOT EXISTS idx_events_timestamp ON events(timestamp)",
    """
    CREATE TABLE IF NOT EXISTS snapshots (
        id BIGSERIAL PRIMARY KEY,
        aggregate_id VARCHAR(255) NOT NULL,
        aggregate_type VARCHAR(255) NOT NULL,
        snapshot_data JSONB NOT NULL,
        version INTEGER NOT NULL,
        schema_version INTEGER NOT NULL DEFAULT 1,
        created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
        CONSTRAINT uq_snapshots_aggregate_version UNIQUE (aggregate_id, version)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_snapshots_aggregate_id ON snapshots(aggregate_id)",
)

_SELECT_COLUMNS = "id, event_id, aggregate_id, event_type, event_data, metadata, version, created_at"


def _load_json(value: Any) -> Any:
    # asyncpg hands JSONB back as text unless a codec is registered
    if isinstance(value, str | bytes):
        return json.loads(value)
    return value


class PostgreSQLEventStore(EventStore):
    """
    PostgreSQL implementation of the event store.

    Uses async SQLAlchemy sessions with plain ``text()`` SQL. Each
    ``save_events`` call runs in its own transaction: the current version is
    read, compared with the expected one, and every event of the batch is
    inserted before a single commit.

    Example:
        >>> database = Database(settings.database_url)
        >>> await database.open()
        >>> store = PostgreSQLEventStore(database.session_factory)
        >>> await store.initialize()

    Attributes:
        _session_factory: SQLAlchemy async session factory
        _event_registry: Registry used to rebuild typed events from rows
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        event_registry: EventRegistry | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._session_factory = session_factory
        self._event_registry = event_registry or default_registry
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    async def initialize(self) -> None:
        """Create the events and snapshots tables if they do not exist."""
        async with self._session_factory() as session:
            for statement in SCHEMA_STATEMENTS:
                await session.execute(text(statement))
            await session.commit()
        logger.info("Event store schema ready")

    async def save_events(
        self,
        aggregate_id: str,
        events: Sequence[DomainEvent],
        expected_version: int,
    ) -> AppendResult:
        if not events:
            return AppendResult.successful(expected_version)

        with self._tracer.span(
            "shopsource.event_store.save_events",
            {
                ATTR_AGGREGATE_ID: aggregate_id,
                ATTR_EVENT_COUNT: len(events),
                ATTR_EXPECTED_VERSION: expected_version,
                ATTR_DB_SYSTEM: "postgresql",
                ATTR_DB_OPERATION: "INSERT",
            },
        ):
            return await self._do_save_events(aggregate_id, events, expected_version)

    async def _do_save_events(
        self,
        aggregate_id: str,
        events: Sequence[DomainEvent],
        expected_version: int,
    ) -> AppendResult:
        async with self._session_factory() as session:
            try:
                current_version = await self._current_version(session, aggregate_id)
                if current_version != expected_version:
                    logger.debug(
                        "Version conflict for %s: expected=%d, actual=%d",
                        aggregate_id,
                        expected_version,
                        current_version,
                    )
                    raise OptimisticLockError(aggregate_id, expected_version, current_version)

                last_position = 0
                for offset, event in enumerate(events, start=1):
                    version = expected_version + offset
                    stamped = event.with_version(version)
                    result = await session.execute(
                        text(
                            """
                            INSERT INTO events (
                                event_id, aggregate_id, event_type,
                                event_data, metadata, version, timestamp
                            )
                            VALUES (
                                :event_id, :aggregate_id, :event_type,
                                CAST(:event_data AS JSONB), CAST(:metadata AS JSONB),
                                :version, :timestamp
                            )
                            RETURNING id
                            """
                        ),
                        {
                            "event_id": stamped.event_id,
                            "aggregate_id": aggregate_id,
                            "event_type": stamped.event_type,
                            "event_data": json.dumps(stamped.data),
                            "metadata": json.dumps(stamped.metadata.to_dict()),
                            "version": version,
                            "timestamp": stamped.timestamp,
                        },
                    )
                    row = result.fetchone()
                    if row:
                        last_position = row[0]

                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                if VERSION_CONSTRAINT in str(e).lower():
                    actual_version = await self._current_version(session, aggregate_id)
                    raise OptimisticLockError(aggregate_id, expected_version, actual_version) from e
                raise EventStoreError(f"Failed to append events for {aggregate_id}: {e}") from e
            except BaseException:
                await session.rollback()
                raise

        new_version = expected_version + len(events)
        logger.debug(
            "Appended %d events to %s, new version: %d",
            len(events),
            aggregate_id,
            new_version,
            extra={"aggregate_id": aggregate_id, "new_version": new_version},
        )
        return AppendResult.successful(new_version, last_position)

    @staticmethod
    async def _current_version(session: AsyncSession, aggregate_id: str) -> int:
        result = await session.execute(
            text(
                """
                SELECT COALESCE(MAX(version), 0) AS current_version
                FROM events
                WHERE aggregate_id = :aggregate_id
                """
            ),
            {"aggregate_id": aggregate_id},
        )
        row = result.fetchone()
        return int(row[0]) if row else 0

    async def get_events(self, aggregate_id: str, from_version: int = 0) -> list[StoredEvent]:
        with self._tracer.span(
            "shopsource.event_store.get_events",
            {
                ATTR_AGGREGATE_ID: aggregate_id,
                ATTR_FROM_VERSION: from_version,
                ATTR_DB_SYSTEM: "postgresql",
            },
        ):
            return await self._fetch(
                f"""
                SELECT {_SELECT_COLUMNS}
                FROM events
                WHERE aggregate_id = :aggregate_id AND version > :from_version
                ORDER BY version ASC
                """,
                {"aggregate_id": aggregate_id, "from_version": from_version},
            )

    async def get_all_events(
        self,
        from_position: int = 0,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> list[StoredEvent]:
        with self._tracer.span(
            "shopsource.event_store.get_all_events",
            {ATTR_FROM_POSITION: from_position, ATTR_DB_SYSTEM: "postgresql"},
        ):
            return await self._fetch(
                f"""
                SELECT {_SELECT_COLUMNS}
                FROM events
                WHERE id > :from_position
                ORDER BY id ASC
                LIMIT :limit
                """,
                {"from_position": from_position, "limit": limit},
            )

    async def get_events_by_type(
        self,
        event_type: str,
        from_position: int = 0,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> list[StoredEvent]:
        with self._tracer.span(
            "shopsource.event_store.get_events_by_type",
            {
                ATTR_EVENT_TYPE: event_type,
                ATTR_FROM_POSITION: from_position,
                ATTR_DB_SYSTEM: "postgresql",
            },
        ):
            return await self._fetch(
                f"""
                SELECT {_SELECT_COLUMNS}
                FROM events
                WHERE event_type = :event_type AND id > :from_position
                ORDER BY id ASC
                LIMIT :limit
                """,
                {"event_type": event_type, "from_position": from_position, "limit": limit},
            )

    async def _fetch(self, sql: str, params: dict[str, Any]) -> list[StoredEvent]:
        async with self._session_factory() as session:
            result = await session.execute(text(sql), params)
            rows = result.fetchall()
        return [self._row_to_stored_event(row) for row in rows]

    def _row_to_stored_event(self, row: Any) -> StoredEvent:
        position, event_id, aggregate_id, event_type, event_data, metadata, version, created_at = row
        event = DomainEvent.from_dict(
            {
                "eventId": event_id,
                "eventType": event_type,
                "aggregateId": aggregate_id,
                "data": _load_json(event_data),
                "metadata": _load_json(metadata),
            },
            registry=self._event_registry,
        ).with_version(version)
        return StoredEvent(
            event=event,
            position=position,
            version=version,
            stored_at=created_at or datetime.now(UTC),
        )

    async def save_snapshot(self, snapshot: Snapshot) -> None:
        async with self._session_factory() as session:
            await session.execute(
                text(
                    """
                    INSERT INTO snapshots (
                        aggregate_id, aggregate_type, snapshot_data,
                        version, schema_version, created_at
                    )
                    VALUES (
                        :aggregate_id, :aggregate_type, CAST(:snapshot_data AS JSONB),
                        :version, :schema_version, :created_at
                    )
                    ON CONFLICT (aggregate_id, version) DO UPDATE SET
                        aggregate_type = EXCLUDED.aggregate_type,
                        snapshot_data = EXCLUDED.snapshot_data,
                        schema_version = EXCLUDED.schema_version,
                        created_at = EXCLUDED.created_at
                    """
                ),
                {
                    "aggregate_id": snapshot.aggregate_id,
                    "aggregate_type": snapshot.aggregate_type,
                    "snapshot_data": json.dumps(snapshot.state),
                    "version": snapshot.version,
                    "schema_version": snapshot.schema_version,
                    "created_at": snapshot.created_at,
                },
            )
            await session.commit()

    async def get_latest_snapshot(
        self,
        aggregate_id: str,
        max_version: int | None = None,
    ) -> Snapshot | None:
        params: dict[str, Any] = {"aggregate_id": aggregate_id}
        version_filter = ""
        if max_version is not None:
            version_filter = "AND version <= :max_version"
            params["max_version"] = max_version

        async with self._session_factory() as session:
            result = await session.execute(
                text(
                    f"""
                    SELECT aggregate_id, aggregate_type, snapshot_data,
                           version, schema_version, created_at
                    FROM snapshots
                    WHERE aggregate_id = :aggregate_id {version_filter}
                    ORDER BY version DESC
                    LIMIT 1
                    """
                ),
                params,
            )
            row = result.fetchone()

        if row is None:
            return None
        return Snapshot(
            aggregate_id=row[0],
            aggregate_type=row[1],
            state=_load_json(row[2]),
            version=row[3],
            schema_version=row[4],
            created_at=row[5],
        )

    async def event_exists(self, event_id: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                text("SELECT 1 FROM events WHERE event_id = :event_id"),
                {"event_id": event_id},
            )
            return result.fetchone() is not None

    async def get_stream_version(self, aggregate_id: str) -> int:
        async with self._session_factory() as session:
            return await self._current_version(session, aggregate_id)
