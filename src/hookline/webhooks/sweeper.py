"""Background retry of pending webhook deliveries."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from hookline.config import Settings
from hookline.logging import get_logger
from hookline.models import WebhookDelivery, generate_id, utc_now

if TYPE_CHECKING:
    from hookline.storage import HooklineStorage

    from .delivery import DeliveryEngine

logger = get_logger(__name__)


class RetrySweeper:
    """Re-attempts deliveries whose ``next_retry`` has passed.

    ``retry_due`` can be called directly (tests, admin tooling) or run
    periodically with ``start``. ``trigger`` wakes the loop for an immediate
    sweep. Terminal deliveries are never picked up, so a manual sweep cannot
    revive a failed delivery.

    Example:
        ```python
        sweeper = RetrySweeper(storage, engine)
        await sweeper.start()
        ...
        sweeper.trigger()  # sweep now instead of at the next tick
        await sweeper.stop()
        ```
    """

    def __init__(
        self,
        storage: HooklineStorage,
        engine: DeliveryEngine,
        settings: Settings | None = None,
    ) -> None:
        self._storage = storage
        self._engine = engine
        self._settings = settings or engine.settings
        self._wake = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._stopped = True

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def retry_due(self, now: datetime | None = None) -> int:
        """Attempt every due delivery once.

        Args:
            now: Reference time for "due" and claim expiry; defaults to now.

        Returns:
            Number of deliveries this sweep claimed and processed.
        """
        now = now or utc_now()
        due = await self._storage.get_due_deliveries(now=now, limit=self._settings.retry_batch_size)
        if not due:
            return 0

        results = await asyncio.gather(
            *(self._retry(delivery, now) for delivery in due),
            return_exceptions=True,
        )

        processed = 0
        for delivery, result in zip(due, results, strict=True):
            if isinstance(result, BaseException):
                logger.error(
                    "retry_failed",
                    delivery_id=delivery.id,
                    error=str(result),
                    exc_info=result,
                )
            elif result:
                processed += 1

        logger.info("retry_sweep_finished", due=len(due), processed=processed)
        return processed

    async def _retry(self, delivery: WebhookDelivery, now: datetime) -> bool:
        endpoint = await self._storage.get_webhook(delivery.webhook_id)
        event = await self._storage.get_event(delivery.event_id)

        if endpoint is not None:
            claimed_until = self._engine.claim_expiry(endpoint, now)
        else:
            claimed_until = now + timedelta(seconds=self._settings.claim_grace_seconds)

        token = generate_id("clm")
        if not await self._storage.claim_delivery(delivery.id, token, claimed_until, now=now):
            # Another sweeper got there first
            return False
        delivery.claim_token = token
        delivery.claimed_until = claimed_until

        if endpoint is None:
            await self._abandon(delivery, token, f"Webhook {delivery.webhook_id} no longer exists")
        elif not endpoint.enabled:
            await self._abandon(delivery, token, f"Webhook {endpoint.id} is disabled")
        elif event is None:
            await self._abandon(delivery, token, f"Event {delivery.event_id} no longer exists")
        else:
            await self._engine.attempt(endpoint, event, delivery)
        return True

    async def _abandon(self, delivery: WebhookDelivery, token: str, reason: str) -> None:
        delivery.mark_failed(error=reason)
        await self._storage.save_delivery(delivery, token)
        logger.warning("delivery_abandoned", delivery_id=delivery.id, reason=reason)

    async def start(self) -> None:
        """Start the periodic sweep loop."""
        if self.is_running:
            return
        self._stopped = False
        self._wake.clear()
        self._task = asyncio.create_task(self._sweep_loop(), name="retry_sweeper")
        logger.info(
            "retry_sweeper_started",
            interval_seconds=self._settings.retry_sweep_interval_seconds,
        )

    async def stop(self) -> None:
        """Stop the loop, letting a sweep in progress finish."""
        self._stopped = True
        self._wake.set()
        if self._task is not None:
            await self._task
            self._task = None
        logger.info("retry_sweeper_stopped")

    def trigger(self) -> None:
        """Run a sweep now instead of waiting for the next interval."""
        self._wake.set()

    async def _sweep_loop(self) -> None:
        while not self._stopped:
            try:
                await asyncio.wait_for(
                    self._wake.wait(),
                    timeout=self._settings.retry_sweep_interval_seconds,
                )
            except TimeoutError:
                pass
            self._wake.clear()

            if self._stopped:
                break

            try:
                await self.retry_due()
            except Exception:
                logger.exception("retry_sweep_failed")


__all__ = ["RetrySweeper"]
