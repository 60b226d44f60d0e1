"""Webhook delivery with HMAC signing and exponential backoff.

Each (endpoint, event) pair gets one WebhookDelivery row. The first attempt
is made immediately by the dispatching task; later attempts are made by the
RetrySweeper once ``next_retry`` has passed. A row is only ever mutated by
the worker holding its claim token.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

import httpx

from hookline.config import Settings
from hookline.config import settings as default_settings
from hookline.exceptions import DeliveryError, RejectedError, TransportError
from hookline.logging import bind_context, get_logger, unbind_context
from hookline.models import WebhookDelivery, WebhookPayload, generate_id, truncate, utc_now
from hookline.tasks import TaskSet

from .signing import compute_signature
from .subscriptions import SubscriptionIndex

if TYPE_CHECKING:
    from hookline.models import Event, WebhookEndpoint
    from hookline.storage import HooklineStorage

logger = get_logger(__name__)


def backoff(attempt: int, cap: float = 30.0) -> float:
    """Delay in seconds before retrying after the given attempt.

    1, 2, 4, 8, 16, then capped: ``min(2 ** (attempt - 1), cap)``.
    """
    exponent = min(max(attempt - 1, 0), 32)
    return min(float(2**exponent), cap)


class DeliveryEngine:
    """Delivers events to webhook endpoints.

    Handles:
    - Creating a claimed delivery row per subscribed endpoint
    - Signing payloads with HMAC-SHA256
    - Classifying outcomes and scheduling retries with backoff
    - Persisting every attempt and releasing the claim

    Example:
        ```python
        engine = DeliveryEngine(storage)

        # Deliver to every subscribed endpoint and wait for the first attempts
        deliveries = await engine.dispatch_event(event)

        # Or fire and forget, then wait deterministically
        engine.spawn_dispatch(event)
        await engine.wait_idle()
        ```
    """

    def __init__(
        self,
        storage: HooklineStorage,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
        subscriptions: SubscriptionIndex | None = None,
    ) -> None:
        """Initialize the delivery engine.

        Args:
            storage: HooklineStorage for endpoint and delivery records.
            settings: Delivery defaults; the global settings when omitted.
            http_client: Client used for POSTs. One is created (and closed by
                ``aclose``) when omitted.
            subscriptions: Endpoint matcher; built over storage when omitted.
        """
        self._storage = storage
        self._settings = settings or default_settings
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(follow_redirects=False)
        self._subscriptions = subscriptions or SubscriptionIndex(storage)
        self._semaphore = asyncio.Semaphore(self._settings.max_concurrent_deliveries)
        self._tasks = TaskSet("delivery_engine")

    @property
    def settings(self) -> Settings:
        return self._settings

    def timeout_for(self, endpoint: WebhookEndpoint) -> float:
        return endpoint.effective_timeout(self._settings.default_timeout_seconds)

    def claim_expiry(self, endpoint: WebhookEndpoint, now: datetime) -> datetime:
        """When a claim taken at ``now`` for this endpoint lapses."""
        seconds = self.timeout_for(endpoint) + self._settings.claim_grace_seconds
        return now + timedelta(seconds=seconds)

    def build_headers(
        self,
        endpoint: WebhookEndpoint,
        event: Event,
        delivery: WebhookDelivery,
        body: bytes,
    ) -> dict[str, str]:
        """Headers for one attempt. The signature covers exactly ``body``."""
        headers = {
            "Content-Type": "application/json",
            "User-Agent": self._settings.user_agent,
            "X-Event-Type": event.type,
            "X-Event-Stream": event.stream_id,
            "X-Event-ID": event.id,
            "X-Delivery-ID": delivery.id,
        }
        if endpoint.secret:
            headers["X-Webhook-Signature"] = compute_signature(body, endpoint.secret)
        return headers

    async def dispatch_event(self, event: Event) -> list[WebhookDelivery]:
        """Dispatch an event to all subscribed endpoints.

        Deliveries run concurrently and independently; a failure in one
        (including a storage error) is logged and does not affect the others.

        Returns:
            Deliveries whose first attempt completed.
        """
        endpoints = await self._subscriptions.matching(event.type)
        if not endpoints:
            logger.debug("no_subscribers", event_type=event.type, event_id=event.id)
            return []

        results = await asyncio.gather(
            *(self.dispatch(endpoint, event) for endpoint in endpoints),
            return_exceptions=True,
        )

        deliveries: list[WebhookDelivery] = []
        for endpoint, result in zip(endpoints, results, strict=True):
            if isinstance(result, BaseException):
                logger.error(
                    "dispatch_failed",
                    webhook_id=endpoint.id,
                    event_id=event.id,
                    error=str(result),
                    exc_info=result,
                )
            else:
                deliveries.append(result)
        return deliveries

    async def dispatch(self, endpoint: WebhookEndpoint, event: Event) -> WebhookDelivery:
        """Create the delivery row for one endpoint and make attempt 1.

        The row is inserted already claimed by this task with ``next_retry``
        set to now, so if the process dies before or during the attempt the
        sweeper picks the row up once the claim lapses.
        """
        now = utc_now()
        delivery = WebhookDelivery(
            webhook_id=endpoint.id,
            event_id=event.id,
            next_retry=now,
            claim_token=generate_id("clm"),
            claimed_until=self.claim_expiry(endpoint, now),
            created_at=now,
            updated_at=now,
        )
        await self._storage.create_delivery(delivery)
        return await self.attempt(endpoint, event, delivery)

    async def attempt(
        self,
        endpoint: WebhookEndpoint,
        event: Event,
        delivery: WebhookDelivery,
    ) -> WebhookDelivery:
        """Make one delivery attempt and persist its outcome.

        The caller must hold the claim: ``delivery.claim_token`` is the token
        used to write the result back. The lease is renewed once a
        concurrency slot is free, so time spent queued behind other attempts
        does not count against it. If the claim was lost while queued the
        attempt is skipped and the delivery is returned untouched.

        Returns:
            The delivery, updated in place.
        """
        claim_token = delivery.claim_token
        if claim_token is None:
            raise ValueError(f"Delivery {delivery.id} is not claimed")

        body = WebhookPayload.from_event(event).to_bytes()
        headers = self.build_headers(endpoint, event, delivery, body)
        timeout = self.timeout_for(endpoint)

        bind_context(delivery_id=delivery.id, webhook_id=endpoint.id)
        try:
            async with self._semaphore:
                started = utc_now()
                claimed_until = self.claim_expiry(endpoint, started)
                if not await self._storage.renew_claim(delivery.id, claim_token, claimed_until):
                    logger.warning("delivery_claim_lost", attempt=delivery.attempt_count + 1)
                    return delivery
                delivery.claimed_until = claimed_until

                delivery.begin_attempt(started)
                try:
                    response = await self._send(str(endpoint.url), body, headers, timeout)
                except DeliveryError as e:
                    self._record_failure(endpoint, delivery, e)
                except Exception as e:
                    logger.exception("delivery_error", url=str(endpoint.url))
                    self._record_failure(
                        endpoint, delivery, DeliveryError(f"Unexpected error: {e}")
                    )
                else:
                    delivery.mark_success(
                        response_code=response.status_code,
                        response_body=response.text,
                        max_chars=self._settings.response_max_chars,
                    )
                    logger.info(
                        "delivery_succeeded",
                        event_type=event.type,
                        status_code=response.status_code,
                        attempt=delivery.attempt_count,
                    )

            await self._storage.save_delivery(delivery, claim_token)
        finally:
            unbind_context("delivery_id", "webhook_id")
        return delivery

    async def _send(
        self,
        url: str,
        body: bytes,
        headers: dict[str, str],
        timeout: float,
    ) -> httpx.Response:
        """POST body and return a 2xx response.

        Raises:
            TransportError: Connection failure or timeout.
            RejectedError: Any non-2xx status.
        """
        try:
            async with asyncio.timeout(timeout):
                response = await self._client.post(
                    url,
                    content=body,
                    headers=headers,
                    timeout=timeout,
                )
        except (TimeoutError, httpx.TimeoutException) as e:
            raise TransportError(f"Request timed out after {timeout:g}s") from e
        except httpx.HTTPError as e:
            raise TransportError(str(e) or type(e).__name__) from e

        if not 200 <= response.status_code < 300:
            raise RejectedError(
                response.status_code,
                truncate(response.text, self._settings.response_max_chars),
            )
        return response

    def _record_failure(
        self,
        endpoint: WebhookEndpoint,
        delivery: WebhookDelivery,
        error: DeliveryError,
    ) -> None:
        response_code = response_body = None
        if isinstance(error, RejectedError):
            response_code, response_body = error.status_code, error.response_body

        max_retries = endpoint.effective_max_retries(self._settings.default_max_retries)
        if delivery.attempt_count >= max_retries:
            delivery.mark_failed(
                error=error.message,
                response_code=response_code,
                response_body=response_body,
                max_chars=self._settings.response_max_chars,
            )
            logger.warning(
                "delivery_exhausted",
                attempts=delivery.attempt_count,
                error=error.message,
            )
            return

        delay = backoff(delivery.attempt_count, self._settings.max_backoff_seconds)
        next_retry = utc_now() + timedelta(seconds=delay)
        delivery.mark_retrying(
            next_retry=next_retry,
            error=error.message,
            response_code=response_code,
            response_body=response_body,
            max_chars=self._settings.response_max_chars,
        )
        logger.info(
            "delivery_retry_scheduled",
            attempt=delivery.attempt_count,
            next_retry=next_retry.isoformat(),
            error=error.message,
        )

    def spawn_dispatch(self, event: Event) -> asyncio.Task[list[WebhookDelivery]]:
        """Dispatch in the background; see ``wait_idle``."""
        return self._tasks.spawn(self.dispatch_event(event), name=f"dispatch:{event.id}")

    async def wait_idle(self) -> None:
        """Wait until every background dispatch has finished."""
        await self._tasks.wait()

    async def aclose(self) -> None:
        """Finish in-flight dispatches and close the owned HTTP client."""
        await self.wait_idle()
        if self._owns_client:
            await self._client.aclose()


__all__ = ["DeliveryEngine", "backoff"]
