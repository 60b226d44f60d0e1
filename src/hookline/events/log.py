"""Append-only, per-stream ordered event log.

The log serializes appends per stream inside this process with one
asyncio.Lock per stream ID; the storage layer makes the sequence bump atomic
across processes. Appends to different streams never share a lock.
"""

from __future__ import annotations

import asyncio
import weakref
from typing import TYPE_CHECKING, Any

from hookline.exceptions import ValidationError
from hookline.logging import get_logger

if TYPE_CHECKING:
    from hookline.models import Event
    from hookline.storage import HooklineStorage

logger = get_logger(__name__)

DEFAULT_LIMIT = 50


class EventLog:
    """Durable event log with dense per-stream sequence numbers.

    Example:
        ```python
        log = EventLog(storage)
        first = await log.append("order-42", "order.created", "shop", {"total": 10})
        second = await log.append("order-42", "order.paid", "billing", {})
        assert (first.sequence_number, second.sequence_number) == (1, 2)
        ```
    """

    def __init__(self, storage: HooklineStorage) -> None:
        self._storage = storage
        # Entries vanish once no coroutine holds or waits on the lock
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def stream_lock(self, stream_id: str) -> asyncio.Lock:
        """Lock guarding sequence assignment for one stream."""
        lock = self._locks.get(stream_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[stream_id] = lock
        return lock

    async def append(
        self,
        stream_id: str,
        event_type: str,
        source: str,
        data: dict[str, Any] | None = None,
    ) -> Event:
        """Append an event to a stream.

        Raises:
            ValidationError: If stream_id, event_type or source is empty.
            PersistenceError: If the event could not be committed. No
                sequence number is consumed in that case.
        """
        for field, value in (("stream_id", stream_id), ("type", event_type), ("source", source)):
            if not value or not value.strip():
                raise ValidationError(field, "must not be empty")

        lock = self.stream_lock(stream_id)
        async with lock:
            event = await self._storage.append_event(stream_id, event_type, source, data or {})

        logger.info(
            "event_appended",
            event_id=event.id,
            event_type=event.type,
            stream_id=stream_id,
            sequence_number=event.sequence_number,
        )
        return event

    async def get(self, event_id: str) -> Event | None:
        return await self._storage.get_event(event_id)

    async def query(self, event_type: str | None = None, limit: int = DEFAULT_LIMIT) -> list[Event]:
        """Most recent events first, optionally of one type."""
        return await self._storage.list_events(event_type=event_type, limit=limit)

    async def query_by_stream(
        self,
        stream_id: str,
        limit: int = DEFAULT_LIMIT,
        offset: int = 0,
    ) -> list[Event]:
        """A stream's events in sequence order."""
        return await self._storage.list_stream_events(stream_id, limit=limit, offset=offset)

    async def count_stream(self, stream_id: str) -> int:
        return await self._storage.count_stream_events(stream_id)

    async def list_streams(self, limit: int = DEFAULT_LIMIT) -> list[str]:
        """Stream IDs, most recently appended first."""
        return await self._storage.list_streams(limit=limit)

    async def stats_by_type(self) -> dict[str, int]:
        return await self._storage.count_events_by_type()


__all__ = ["EventLog"]
