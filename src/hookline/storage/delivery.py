"""Delivery record storage for Hookline.

Persists webhook delivery state, implements the claim step that keeps two
workers from attempting the same delivery, and serves delivery history and
statistics.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, insert, or_, select, update

from hookline.models import DeliveryStats, WebhookDelivery, utc_now

from .base import clamp_limit
from .schema import webhook_deliveries_table

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)

_t = webhook_deliveries_table

# Columns written back after each attempt
_STATE_COLUMNS = (
    "status",
    "attempt_count",
    "last_attempt",
    "next_retry",
    "response",
    "response_code",
    "error_message",
)


def _claim_is_free(now: datetime) -> Any:
    return or_(_t.c.claimed_until.is_(None), _t.c.claimed_until <= now)


class DeliveryMixin:
    """Mixin providing delivery record operations for HooklineStorage.

    This mixin expects the following attributes/methods from the base class:
    - session_factory: async_sessionmaker[AsyncSession]
    - _persistence_errors(operation) -> context manager
    """

    session_factory: async_sessionmaker[AsyncSession]
    _persistence_errors: Any

    async def create_delivery(self, delivery: WebhookDelivery) -> str:
        """Insert a new delivery record (optionally already claimed).

        Returns:
            The delivery ID.
        """
        with self._persistence_errors("create delivery"):
            async with self.session_factory.begin() as session:
                await session.execute(insert(_t).values(**delivery.model_dump()))
        return delivery.id

    async def claim_delivery(
        self,
        delivery_id: str,
        claim_token: str,
        claimed_until: datetime,
        now: datetime | None = None,
    ) -> bool:
        """Take the claim on a pending delivery.

        Succeeds only if the delivery is still pending and nobody holds an
        unexpired claim. The check and the write are a single conditional
        UPDATE, so of two concurrent claimers exactly one wins.

        Returns:
            True if the claim was taken.
        """
        now = now or utc_now()
        with self._persistence_errors("claim delivery"):
            async with self.session_factory.begin() as session:
                result = await session.execute(
                    update(_t)
                    .where(
                        _t.c.id == delivery_id,
                        _t.c.status == "pending",
                        _claim_is_free(now),
                    )
                    .values(claim_token=claim_token, claimed_until=claimed_until)
                )
        return result.rowcount == 1

    async def renew_claim(
        self,
        delivery_id: str,
        claim_token: str,
        claimed_until: datetime,
    ) -> bool:
        """Push the expiry of a claim this worker still holds.

        Fails if the delivery is no longer pending or its claim was taken
        over by another token, in which case the caller must not attempt it.

        Returns:
            True if the claim was renewed.
        """
        with self._persistence_errors("renew claim"):
            async with self.session_factory.begin() as session:
                result = await session.execute(
                    update(_t)
                    .where(
                        _t.c.id == delivery_id,
                        _t.c.status == "pending",
                        _t.c.claim_token == claim_token,
                    )
                    .values(claimed_until=claimed_until)
                )
        return result.rowcount == 1

    async def save_delivery(self, delivery: WebhookDelivery, claim_token: str) -> bool:
        """Persist attempt results and release the claim.

        The write only lands if claim_token still owns the delivery. A worker
        whose claim lapsed and was taken over gets False and must drop its
        result.

        Returns:
            True if the record was updated.
        """
        values = {name: getattr(delivery, name) for name in _STATE_COLUMNS}
        values.update(claim_token=None, claimed_until=None, updated_at=utc_now())

        with self._persistence_errors("save delivery"):
            async with self.session_factory.begin() as session:
                result = await session.execute(
                    update(_t)
                    .where(_t.c.id == delivery.id, _t.c.claim_token == claim_token)
                    .values(**values)
                )
        if result.rowcount == 1:
            delivery.claim_token = None
            delivery.claimed_until = None
            delivery.updated_at = values["updated_at"]
            return True

        logger.warning("Delivery %s was claimed by another worker; result dropped", delivery.id)
        return False

    async def get_delivery(self, delivery_id: str) -> WebhookDelivery | None:
        """Get a delivery by ID."""
        with self._persistence_errors("get delivery"):
            async with self.session_factory() as session:
                result = await session.execute(select(_t).where(_t.c.id == delivery_id))
                row = result.mappings().first()
        return WebhookDelivery.model_validate(dict(row)) if row else None

    async def get_due_deliveries(
        self,
        now: datetime | None = None,
        limit: int = 100,
    ) -> list[WebhookDelivery]:
        """Get pending deliveries whose retry time has come.

        Rows without next_retry, terminal rows, and rows under a live claim
        are never returned.

        Returns:
            Deliveries ordered by next_retry, oldest first.
        """
        now = now or utc_now()
        query = (
            select(_t)
            .where(
                _t.c.status == "pending",
                _t.c.next_retry.is_not(None),
                _t.c.next_retry <= now,
                _claim_is_free(now),
            )
            .order_by(_t.c.next_retry.asc(), _t.c.id)
            .limit(clamp_limit(limit, default=100))
        )
        with self._persistence_errors("get due deliveries"):
            async with self.session_factory() as session:
                result = await session.execute(query)
                rows = result.mappings().all()
        return [WebhookDelivery.model_validate(dict(row)) for row in rows]

    async def get_delivery_logs(
        self,
        webhook_id: str,
        since: datetime | None = None,
        limit: int = 50,
    ) -> list[WebhookDelivery]:
        """Get delivery history for a webhook, newest first."""
        query = select(_t).where(_t.c.webhook_id == webhook_id)
        if since is not None:
            query = query.where(_t.c.created_at >= since)
        query = query.order_by(_t.c.created_at.desc(), _t.c.id).limit(clamp_limit(limit))

        with self._persistence_errors("get delivery logs"):
            async with self.session_factory() as session:
                result = await session.execute(query)
                rows = result.mappings().all()
        return [WebhookDelivery.model_validate(dict(row)) for row in rows]

    async def get_event_deliveries(self, event_id: str) -> list[WebhookDelivery]:
        """Get every delivery created for an event."""
        query = select(_t).where(_t.c.event_id == event_id).order_by(_t.c.created_at, _t.c.id)
        with self._persistence_errors("get event deliveries"):
            async with self.session_factory() as session:
                result = await session.execute(query)
                rows = result.mappings().all()
        return [WebhookDelivery.model_validate(dict(row)) for row in rows]

    async def get_delivery_stats(self, webhook_id: str | None = None) -> DeliveryStats:
        """Count deliveries by status, optionally for one webhook."""
        query = select(_t.c.status, func.count()).group_by(_t.c.status)
        if webhook_id is not None:
            query = query.where(_t.c.webhook_id == webhook_id)

        with self._persistence_errors("get delivery stats"):
            async with self.session_factory() as session:
                result = await session.execute(query)
                counts = {row[0]: int(row[1]) for row in result.all()}
        return DeliveryStats.from_counts(counts)


__all__ = ["DeliveryMixin"]
