"""SQL storage client for Hookline.

This module provides the main HooklineStorage class that combines
all storage operations through mixins.

Example:
    ```python
    from hookline.storage import HooklineStorage

    async with HooklineStorage() as storage:
        event = await storage.append_event("order-42", "order.paid", "billing", {"total": 10})
        deliveries = await storage.get_event_deliveries(event.id)
    ```
"""

from __future__ import annotations

from typing import Any

from .base import StorageBase
from .delivery import DeliveryMixin
from .events import EventMixin
from .webhook import WebhookMixin


class HooklineStorage(EventMixin, WebhookMixin, DeliveryMixin, StorageBase):
    """Async SQL storage for events, webhook endpoints and deliveries.

    This class combines functionality from multiple mixins:
    - EventMixin: append_event, list_events, list_stream_events, list_streams, ...
    - WebhookMixin: store_webhook, get_webhook, list_webhooks, update_webhook, ...
    - DeliveryMixin: create_delivery, claim_delivery, save_delivery, get_due_deliveries, ...
    """

    async def __aenter__(self) -> HooklineStorage:
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()


__all__ = ["HooklineStorage"]
