"""Storage backends for Hookline.

This module provides the SQL storage layer (SQLAlchemy asyncio) for the
event log, webhook registrations and delivery records.

Example:
    ```python
    from hookline.storage import HooklineStorage

    async with HooklineStorage() as storage:
        await storage.store_webhook(webhook)
        events = await storage.list_stream_events("order-42")
    ```
"""

from .base import MAX_QUERY_LIMIT, clamp_limit
from .client import HooklineStorage
from .retry import StreamCounterConflict, storage_retrying
from .schema import metadata

__all__ = [
    "HooklineStorage",
    "MAX_QUERY_LIMIT",
    "StreamCounterConflict",
    "clamp_limit",
    "metadata",
    "storage_retrying",
]
