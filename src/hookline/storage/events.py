"""Event log storage operations for Hookline.

Appends events with per-stream sequence numbers and serves the read
projections over the log.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, insert, select, update
from sqlalchemy.exc import IntegrityError

from hookline.models import Event, utc_now

from .base import clamp_limit
from .retry import StreamCounterConflict, storage_retrying
from .schema import events_table, stream_counters_table

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from hookline.config import Settings

logger = logging.getLogger(__name__)


class EventMixin:
    """Mixin providing event log operations for HooklineStorage.

    This mixin expects the following attributes/methods from the base class:
    - session_factory: async_sessionmaker[AsyncSession]
    - settings: Settings
    - _persistence_errors(operation) -> context manager
    """

    session_factory: async_sessionmaker[AsyncSession]
    settings: Settings
    _persistence_errors: Any

    async def append_event(
        self,
        stream_id: str,
        event_type: str,
        source: str,
        data: dict[str, Any],
    ) -> Event:
        """Append an event, assigning the next sequence number of its stream.

        The counter bump and the event insert share one transaction: if the
        insert or the commit fails, the counter is rolled back too and no
        sequence number is consumed.

        Args:
            stream_id: Stream to append to.
            event_type: Event type.
            source: Producer name.
            data: JSON-compatible payload.

        Returns:
            The persisted Event with its sequence number.

        Raises:
            PersistenceError: If the event could not be committed.
        """
        with self._persistence_errors(f"append to stream {stream_id!r}"):
            async for attempt in storage_retrying(self.settings.storage_retry_attempts):
                with attempt:
                    async with self.session_factory.begin() as session:
                        sequence = await self._next_sequence(session, stream_id)
                        event = Event(
                            type=event_type,
                            stream_id=stream_id,
                            source=source,
                            data=data,
                            sequence_number=sequence,
                        )
                        await session.execute(
                            insert(events_table).values(**event.model_dump())
                        )

        logger.debug(
            "Appended event %s to stream %s (seq %d)", event.type, stream_id, sequence
        )
        return event

    async def _next_sequence(self, session: AsyncSession, stream_id: str) -> int:
        """Atomically increment and read the stream counter."""
        now = utc_now()
        result = await session.execute(
            update(stream_counters_table)
            .where(stream_counters_table.c.stream_id == stream_id)
            .values(
                last_sequence=stream_counters_table.c.last_sequence + 1,
                updated_at=now,
            )
            .returning(stream_counters_table.c.last_sequence)
        )
        sequence = result.scalar_one_or_none()
        if sequence is not None:
            return int(sequence)

        # New stream: the unique key on stream_id arbitrates concurrent creators
        try:
            await session.execute(
                insert(stream_counters_table).values(
                    stream_id=stream_id, last_sequence=1, updated_at=now
                )
            )
        except IntegrityError as e:
            raise StreamCounterConflict(stream_id) from e
        return 1

    async def get_event(self, event_id: str) -> Event | None:
        """Get an event by ID."""
        with self._persistence_errors("get event"):
            async with self.session_factory() as session:
                result = await session.execute(
                    select(events_table).where(events_table.c.id == event_id)
                )
                row = result.mappings().first()
        return Event.model_validate(dict(row)) if row else None

    async def list_events(
        self,
        event_type: str | None = None,
        limit: int = 50,
    ) -> list[Event]:
        """List events newest first, optionally filtered by type."""
        query = select(events_table)
        if event_type:
            query = query.where(events_table.c.type == event_type)
        query = query.order_by(
            events_table.c.timestamp.desc(), events_table.c.sequence_number.desc()
        ).limit(clamp_limit(limit))

        with self._persistence_errors("list events"):
            async with self.session_factory() as session:
                result = await session.execute(query)
                rows = result.mappings().all()
        return [Event.model_validate(dict(row)) for row in rows]

    async def list_stream_events(
        self,
        stream_id: str,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Event]:
        """List a stream's events in ascending sequence order."""
        query = (
            select(events_table)
            .where(events_table.c.stream_id == stream_id)
            .order_by(events_table.c.sequence_number.asc())
            .offset(max(offset, 0))
            .limit(clamp_limit(limit))
        )
        with self._persistence_errors("list stream events"):
            async with self.session_factory() as session:
                result = await session.execute(query)
                rows = result.mappings().all()
        return [Event.model_validate(dict(row)) for row in rows]

    async def count_stream_events(self, stream_id: str) -> int:
        """Number of committed events in a stream."""
        query = (
            select(func.count())
            .select_from(events_table)
            .where(events_table.c.stream_id == stream_id)
        )
        with self._persistence_errors("count stream events"):
            async with self.session_factory() as session:
                count = await session.scalar(query)
        return int(count or 0)

    async def list_streams(self, limit: int = 50) -> list[str]:
        """List stream IDs, most recently appended first."""
        query = (
            select(stream_counters_table.c.stream_id)
            .order_by(
                stream_counters_table.c.updated_at.desc(),
                stream_counters_table.c.stream_id,
            )
            .limit(clamp_limit(limit))
        )
        with self._persistence_errors("list streams"):
            async with self.session_factory() as session:
                result = await session.execute(query)
                return list(result.scalars().all())

    async def count_events_by_type(self) -> dict[str, int]:
        """Count events grouped by type."""
        query = select(events_table.c.type, func.count()).group_by(events_table.c.type)
        with self._persistence_errors("count events by type"):
            async with self.session_factory() as session:
                result = await session.execute(query)
                return {row[0]: int(row[1]) for row in result.all()}


__all__ = ["EventMixin"]
