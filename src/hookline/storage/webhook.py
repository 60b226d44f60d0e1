"""Webhook endpoint storage operations for Hookline.

Provides methods to store, retrieve, and manage webhook registrations.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, insert, select, update

from hookline.models import WebhookEndpoint, utc_now

from .base import clamp_limit
from .schema import webhook_endpoints_table

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

_UPDATABLE_FIELDS = frozenset(
    {
        "name",
        "url",
        "secret",
        "event_types",
        "enabled",
        "max_retries",
        "timeout_seconds",
        "description",
    }
)


def _endpoint_to_row(webhook: WebhookEndpoint) -> dict[str, Any]:
    row = webhook.model_dump()
    row["url"] = str(webhook.url)
    return row


class WebhookMixin:
    """Mixin providing webhook endpoint operations for HooklineStorage.

    This mixin expects the following attributes/methods from the base class:
    - session_factory: async_sessionmaker[AsyncSession]
    - _persistence_errors(operation) -> context manager
    """

    session_factory: async_sessionmaker[AsyncSession]
    _persistence_errors: Any

    async def store_webhook(self, webhook: WebhookEndpoint) -> str:
        """Insert or replace a webhook endpoint.

        Args:
            webhook: WebhookEndpoint to store.

        Returns:
            The webhook ID.
        """
        row = _endpoint_to_row(webhook)
        with self._persistence_errors("store webhook"):
            async with self.session_factory.begin() as session:
                result = await session.execute(
                    update(webhook_endpoints_table)
                    .where(webhook_endpoints_table.c.id == webhook.id)
                    .values(**row)
                )
                if result.rowcount == 0:
                    await session.execute(insert(webhook_endpoints_table).values(**row))

        return webhook.id

    async def get_webhook(self, webhook_id: str) -> WebhookEndpoint | None:
        """Get a webhook by ID.

        Returns:
            WebhookEndpoint or None if not found.
        """
        with self._persistence_errors("get webhook"):
            async with self.session_factory() as session:
                result = await session.execute(
                    select(webhook_endpoints_table).where(
                        webhook_endpoints_table.c.id == webhook_id
                    )
                )
                row = result.mappings().first()
        return WebhookEndpoint.model_validate(dict(row)) if row else None

    async def list_webhooks(
        self,
        enabled_only: bool = False,
        limit: int = 1000,
    ) -> list[WebhookEndpoint]:
        """List webhooks, newest first.

        Args:
            enabled_only: If True, only return enabled webhooks.
            limit: Maximum webhooks to return.
        """
        query = select(webhook_endpoints_table)
        if enabled_only:
            query = query.where(webhook_endpoints_table.c.enabled.is_(True))
        query = query.order_by(
            webhook_endpoints_table.c.created_at.desc(), webhook_endpoints_table.c.id
        ).limit(clamp_limit(limit))

        with self._persistence_errors("list webhooks"):
            async with self.session_factory() as session:
                result = await session.execute(query)
                rows = result.mappings().all()
        return [WebhookEndpoint.model_validate(dict(row)) for row in rows]

    async def get_webhooks_for_event(self, event_type: str) -> list[WebhookEndpoint]:
        """Get all enabled webhooks that subscribe to an event type.

        Unlike ``list_webhooks`` this is not capped: every enabled endpoint
        is scanned. Event types are stored as a JSON list, so membership is
        checked here rather than in SQL to stay portable across backends.
        """
        query = (
            select(webhook_endpoints_table)
            .where(webhook_endpoints_table.c.enabled.is_(True))
            .order_by(webhook_endpoints_table.c.created_at, webhook_endpoints_table.c.id)
        )
        with self._persistence_errors("get webhooks for event"):
            async with self.session_factory() as session:
                result = await session.execute(query)
                rows = result.mappings().all()
        webhooks = (WebhookEndpoint.model_validate(dict(row)) for row in rows)
        return [wh for wh in webhooks if wh.subscribes_to(event_type)]

    async def update_webhook(self, webhook_id: str, **updates: Any) -> WebhookEndpoint | None:
        """Update fields of a webhook.

        Unknown fields are ignored. The result is re-validated, so an invalid
        URL raises pydantic's ValidationError before anything is written.

        Returns:
            Updated WebhookEndpoint or None if not found.
        """
        webhook = await self.get_webhook(webhook_id)
        if webhook is None:
            return None

        changes = {k: v for k, v in updates.items() if k in _UPDATABLE_FIELDS}
        data = webhook.model_dump()
        data.update(changes)
        data["updated_at"] = utc_now()
        updated = WebhookEndpoint.model_validate(data)

        await self.store_webhook(updated)
        return updated

    async def delete_webhook(self, webhook_id: str) -> bool:
        """Delete a webhook (its delivery rows cascade).

        Returns:
            True if deleted, False if not found.
        """
        with self._persistence_errors("delete webhook"):
            async with self.session_factory.begin() as session:
                result = await session.execute(
                    delete(webhook_endpoints_table).where(
                        webhook_endpoints_table.c.id == webhook_id
                    )
                )
        return bool(result.rowcount)


__all__ = ["WebhookMixin"]
