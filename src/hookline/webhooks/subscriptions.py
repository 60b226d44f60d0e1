"""Resolve which webhook endpoints receive an event type."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from hookline.models import WebhookEndpoint
    from hookline.storage import HooklineStorage


class SubscriptionIndex:
    """Read-only view over registered endpoints, queried at dispatch time."""

    def __init__(self, storage: HooklineStorage) -> None:
        self._storage = storage

    async def matching(self, event_type: str) -> list[WebhookEndpoint]:
        """Enabled endpoints subscribed to event_type."""
        return await self._storage.get_webhooks_for_event(event_type)


__all__ = ["SubscriptionIndex"]
