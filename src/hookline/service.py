"""Hookline service layer.

Wires the event log, the in-process bus and webhook delivery into one
object with a publish/observe interface.

Example:
    ```python
    from hookline.service import HooklineService

    async with HooklineService.create() as hookline:
        await hookline.register_webhook(
            WebhookEndpoint(
                name="billing",
                url="https://billing.example.com/hooks",
                secret="s3cret",
                event_types=["order.paid"],
            )
        )
        event = await hookline.publish("order-42", "order.paid", "shop", {"total": 10})
        await hookline.wait_idle()
        print(await hookline.delivery_stats())
    ```
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

import httpx

from hookline.config import Settings
from hookline.events import EventBus, EventLog, Handler
from hookline.exceptions import NotFoundError
from hookline.logging import get_logger
from hookline.storage import HooklineStorage
from hookline.webhooks import DeliveryEngine, RetrySweeper

if TYPE_CHECKING:
    from hookline.models import DeliveryStats, Event, WebhookDelivery, WebhookEndpoint

logger = get_logger(__name__)


@dataclass
class HooklineService:
    """High-level Hookline service.

    This service provides a simple interface for:
    - publish(): Append an event and fan it out to handlers and webhooks
    - subscribe(): Register an in-process handler for an event type
    - retry_due(): Sweep due webhook retries immediately
    - delivery_history() / delivery_stats(): Observe delivery outcomes

    Attributes:
        storage: SQL storage for events, endpoints and deliveries.
        settings: Configuration settings.
        event_log: Per-stream ordered event log.
        bus: In-process event bus.
        engine: Webhook delivery engine.
        sweeper: Background retry sweeper.
        run_sweeper: Start the periodic sweep loop on initialize().
    """

    storage: HooklineStorage
    settings: Settings
    event_log: EventLog
    bus: EventBus
    engine: DeliveryEngine
    sweeper: RetrySweeper
    run_sweeper: bool = field(default=True)

    @classmethod
    def create(
        cls,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
        run_sweeper: bool = True,
    ) -> HooklineService:
        """Create a HooklineService with default dependencies.

        Args:
            settings: Optional settings. Uses defaults if None.
            http_client: Optional client for webhook POSTs (e.g. one built on
                httpx.MockTransport in tests).
            run_sweeper: Whether initialize() starts the retry loop.
        """
        if settings is None:
            settings = Settings()

        storage = HooklineStorage(settings=settings)
        engine = DeliveryEngine(storage, settings=settings, http_client=http_client)
        return cls(
            storage=storage,
            settings=settings,
            event_log=EventLog(storage),
            bus=EventBus(),
            engine=engine,
            sweeper=RetrySweeper(storage, engine, settings=settings),
            run_sweeper=run_sweeper,
        )

    async def initialize(self) -> None:
        """Create tables and start the retry loop."""
        await self.storage.initialize()
        if self.run_sweeper:
            await self.sweeper.start()

    async def close(self) -> None:
        """Stop background work and release the database."""
        await self.sweeper.stop()
        await self.engine.aclose()
        await self.bus.close()
        await self.storage.close()

    async def __aenter__(self) -> HooklineService:
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    async def publish(
        self,
        stream_id: str,
        event_type: str,
        source: str,
        data: dict[str, Any] | None = None,
    ) -> Event:
        """Append an event, then fan it out in the background.

        Returns once the event is durable; handlers and webhook deliveries
        run afterwards. Use ``wait_idle()`` to wait for them.

        Raises:
            ValidationError: If stream_id, event_type or source is empty.
            PersistenceError: If the event could not be stored.
        """
        event = await self.event_log.append(stream_id, event_type, source, data)
        handlers = self.bus.publish(event)
        self.engine.spawn_dispatch(event)
        logger.debug("event_published", event_id=event.id, handlers=handlers)
        return event

    def subscribe(self, event_type: str, handler: Handler) -> None:
        self.bus.subscribe(event_type, handler)

    async def register_webhook(self, endpoint: WebhookEndpoint) -> str:
        """Store a webhook endpoint; it receives events published afterwards."""
        return await self.storage.store_webhook(endpoint)

    async def retry_due(self, now: datetime | None = None) -> int:
        """Sweep due retries now. Failed deliveries are never revived."""
        return await self.sweeper.retry_due(now)

    async def delivery_history(
        self,
        webhook_id: str,
        limit: int = 50,
        since: datetime | None = None,
    ) -> list[WebhookDelivery]:
        """Deliveries for one webhook, newest first.

        Raises:
            NotFoundError: If no webhook has this ID.
        """
        if await self.storage.get_webhook(webhook_id) is None:
            raise NotFoundError("webhook", webhook_id)
        return await self.storage.get_delivery_logs(webhook_id, since=since, limit=limit)

    async def delivery_stats(self, webhook_id: str | None = None) -> DeliveryStats:
        return await self.storage.get_delivery_stats(webhook_id)

    async def wait_idle(self) -> None:
        """Wait for in-flight handlers and first delivery attempts."""
        await self.bus.wait()
        await self.engine.wait_idle()


__all__ = ["HooklineService"]
