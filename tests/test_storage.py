"""Tests for the SQL storage layer."""

from __future__ import annotations

import warnings
from datetime import timedelta
from pathlib import Path

import pytest
from helpers import make_settings
from sqlalchemy import insert

from hookline.events import EventLog
from hookline.exceptions import ConfigurationError
from hookline.models import WebhookDelivery, WebhookEndpoint, generate_id, utc_now
from hookline.storage import MAX_QUERY_LIMIT, HooklineStorage, StreamCounterConflict, clamp_limit
from hookline.storage.retry import is_transient, storage_retrying
from hookline.storage.schema import webhook_endpoints_table


class TestClampLimit:
    """Tests for clamp_limit."""

    def test_within_range(self) -> None:
        assert clamp_limit(10) == 10

    def test_non_positive_uses_default(self) -> None:
        """Zero or negative limits should fall back to the default."""
        assert clamp_limit(0) == 50
        assert clamp_limit(-5, default=100) == 100

    def test_capped(self) -> None:
        assert clamp_limit(10_000) == MAX_QUERY_LIMIT


class TestRetryClassification:
    """Tests for transient error detection."""

    def test_counter_conflict_is_transient(self) -> None:
        assert is_transient(StreamCounterConflict("s"))

    def test_other_errors_are_not(self) -> None:
        assert not is_transient(ValueError("nope"))

    def test_building_retrying_emits_no_warnings(self) -> None:
        """The wait strategy should use non-deprecated tenacity arguments."""
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            storage_retrying(3)

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self) -> None:
        """A counter conflict should be retried and the next attempt kept."""
        calls = 0
        async for attempt in storage_retrying(3):
            with attempt:
                calls += 1
                if calls == 1:
                    raise StreamCounterConflict("order-42")

        assert calls == 2

    @pytest.mark.asyncio
    async def test_permanent_failure_is_not_retried(self) -> None:
        """Non-transient errors should propagate on the first attempt."""
        calls = 0
        with pytest.raises(ValueError):
            async for attempt in storage_retrying(3):
                with attempt:
                    calls += 1
                    raise ValueError("bad row")

        assert calls == 1


class TestEngineConfiguration:
    """Tests for engine creation from settings."""

    def test_sync_driver_rejected(self, tmp_path: Path) -> None:
        """Database URLs without an async driver should be refused."""
        settings = make_settings(tmp_path, database_url="postgresql://user@localhost/hookline")
        storage = HooklineStorage(settings=settings)

        with pytest.raises(ConfigurationError, match="async driver"):
            storage._create_engine()

    def test_uninitialized_access_raises(self, tmp_path: Path) -> None:
        """Using storage before initialize() should fail loudly."""
        storage = HooklineStorage(settings=make_settings(tmp_path))
        with pytest.raises(RuntimeError, match="not initialized"):
            _ = storage.session_factory


class TestWebhookStorage:
    """Tests for webhook endpoint persistence."""

    @pytest.mark.asyncio
    async def test_store_and_get(
        self, storage: HooklineStorage, sample_endpoint: WebhookEndpoint
    ) -> None:
        """A stored endpoint should round-trip unchanged."""
        await storage.store_webhook(sample_endpoint)

        loaded = await storage.get_webhook(sample_endpoint.id)

        assert loaded is not None
        assert loaded.url == sample_endpoint.url
        assert loaded.event_types == ["order.paid"]
        assert loaded.secret == "s3cret-signing-key"
        assert loaded.created_at == sample_endpoint.created_at

    @pytest.mark.asyncio
    async def test_store_replaces_existing(
        self, storage: HooklineStorage, sample_endpoint: WebhookEndpoint
    ) -> None:
        """Storing the same ID twice should update, not duplicate."""
        await storage.store_webhook(sample_endpoint)
        sample_endpoint.name = "renamed"
        await storage.store_webhook(sample_endpoint)

        webhooks = await storage.list_webhooks()
        assert [w.name for w in webhooks] == ["renamed"]

    @pytest.mark.asyncio
    async def test_get_webhooks_for_event(self, storage: HooklineStorage) -> None:
        """Only enabled endpoints subscribed to the type should match."""
        subscribed = WebhookEndpoint(
            name="a", url="https://a.example.com/", event_types=["order.paid"]
        )
        other_type = WebhookEndpoint(
            name="b", url="https://b.example.com/", event_types=["order.created"]
        )
        disabled = WebhookEndpoint(
            name="c", url="https://c.example.com/", event_types=["order.paid"], enabled=False
        )
        for webhook in (subscribed, other_type, disabled):
            await storage.store_webhook(webhook)

        matches = await storage.get_webhooks_for_event("order.paid")

        assert [w.id for w in matches] == [subscribed.id]
        assert len(await storage.list_webhooks(enabled_only=True)) == 2

    @pytest.mark.asyncio
    async def test_get_webhooks_for_event_is_not_capped(self, storage: HooklineStorage) -> None:
        """Matching should return every subscriber, beyond the listing cap."""
        endpoints = [
            WebhookEndpoint(
                name=f"hook-{n}", url=f"https://h{n}.example.com/", event_types=["order.paid"]
            )
            for n in range(MAX_QUERY_LIMIT + 5)
        ]
        rows = [{**endpoint.model_dump(), "url": str(endpoint.url)} for endpoint in endpoints]
        async with storage.session_factory.begin() as session:
            await session.execute(insert(webhook_endpoints_table), rows)

        matches = await storage.get_webhooks_for_event("order.paid")

        assert len(matches) == MAX_QUERY_LIMIT + 5
        assert {w.id for w in matches} == {e.id for e in endpoints}
        assert len(await storage.list_webhooks()) == MAX_QUERY_LIMIT

    @pytest.mark.asyncio
    async def test_update_webhook(
        self, storage: HooklineStorage, sample_endpoint: WebhookEndpoint
    ) -> None:
        """update_webhook should apply known fields and ignore the rest."""
        await storage.store_webhook(sample_endpoint)

        updated = await storage.update_webhook(
            sample_endpoint.id, enabled=False, max_retries=5, id="whk_hijack"
        )

        assert updated is not None
        assert updated.id == sample_endpoint.id
        assert updated.enabled is False
        assert updated.max_retries == 5
        assert updated.updated_at >= sample_endpoint.updated_at
        assert await storage.update_webhook("whk_missing", enabled=True) is None

    @pytest.mark.asyncio
    async def test_delete_webhook_cascades_deliveries(
        self,
        storage: HooklineStorage,
        event_log: EventLog,
        sample_endpoint: WebhookEndpoint,
    ) -> None:
        """Deleting an endpoint should remove its delivery history."""
        await storage.store_webhook(sample_endpoint)
        event = await event_log.append("s", "order.paid", "src")
        delivery = WebhookDelivery(webhook_id=sample_endpoint.id, event_id=event.id)
        await storage.create_delivery(delivery)

        assert await storage.delete_webhook(sample_endpoint.id) is True
        assert await storage.delete_webhook(sample_endpoint.id) is False
        assert await storage.get_delivery(delivery.id) is None


class TestDeliveryStorage:
    """Tests for delivery records, claims and statistics."""

    async def _seed(
        self,
        storage: HooklineStorage,
        event_log: EventLog,
        endpoint: WebhookEndpoint,
        **fields: object,
    ) -> WebhookDelivery:
        if await storage.get_webhook(endpoint.id) is None:
            await storage.store_webhook(endpoint)
        event = await event_log.append("s", "order.paid", "src")
        delivery = WebhookDelivery(webhook_id=endpoint.id, event_id=event.id, **fields)
        await storage.create_delivery(delivery)
        return delivery

    @pytest.mark.asyncio
    async def test_claim_is_exclusive(
        self,
        storage: HooklineStorage,
        event_log: EventLog,
        sample_endpoint: WebhookEndpoint,
    ) -> None:
        """Only one of two claimers should win."""
        delivery = await self._seed(storage, event_log, sample_endpoint, next_retry=utc_now())
        until = utc_now() + timedelta(seconds=60)

        first = await storage.claim_delivery(delivery.id, "clm_a", until)
        second = await storage.claim_delivery(delivery.id, "clm_b", until)

        assert (first, second) == (True, False)

    @pytest.mark.asyncio
    async def test_expired_claim_can_be_taken_over(
        self,
        storage: HooklineStorage,
        event_log: EventLog,
        sample_endpoint: WebhookEndpoint,
    ) -> None:
        """A lapsed claim should be claimable again; the old holder loses its write."""
        delivery = await self._seed(storage, event_log, sample_endpoint, next_retry=utc_now())
        now = utc_now()
        assert await storage.claim_delivery(delivery.id, "clm_old", now + timedelta(seconds=1))

        later = now + timedelta(seconds=5)
        assert await storage.claim_delivery(
            delivery.id, "clm_new", later + timedelta(seconds=60), now=later
        )

        delivery.begin_attempt().mark_success(response_code=200)
        assert await storage.save_delivery(delivery, "clm_old") is False
        assert await storage.save_delivery(delivery, "clm_new") is True

        stored = await storage.get_delivery(delivery.id)
        assert stored is not None
        assert stored.status == "success"
        assert stored.claim_token is None

    @pytest.mark.asyncio
    async def test_renew_claim_requires_current_token(
        self,
        storage: HooklineStorage,
        event_log: EventLog,
        sample_endpoint: WebhookEndpoint,
    ) -> None:
        """Only the current holder of a pending delivery may renew its lease."""
        delivery = await self._seed(storage, event_log, sample_endpoint, next_retry=utc_now())
        now = utc_now()
        assert await storage.claim_delivery(delivery.id, "clm_a", now + timedelta(seconds=1))

        later = now + timedelta(seconds=120)
        assert await storage.renew_claim(delivery.id, "clm_a", later)
        assert await storage.renew_claim(delivery.id, "clm_b", later) is False

        stored = await storage.get_delivery(delivery.id)
        assert stored is not None
        assert stored.claim_token == "clm_a"
        assert stored.claimed_until == later

        delivery.begin_attempt().mark_success(response_code=200)
        assert await storage.save_delivery(delivery, "clm_a")
        assert await storage.renew_claim(delivery.id, "clm_a", later) is False

    @pytest.mark.asyncio
    async def test_terminal_delivery_cannot_be_claimed(
        self,
        storage: HooklineStorage,
        event_log: EventLog,
        sample_endpoint: WebhookEndpoint,
    ) -> None:
        """Claims should only ever be granted on pending deliveries."""
        delivery = await self._seed(storage, event_log, sample_endpoint, status="failed")

        claimed = await storage.claim_delivery(
            delivery.id, "clm_x", utc_now() + timedelta(seconds=60)
        )

        assert claimed is False

    @pytest.mark.asyncio
    async def test_due_deliveries_selection(
        self,
        storage: HooklineStorage,
        event_log: EventLog,
        sample_endpoint: WebhookEndpoint,
    ) -> None:
        """Only pending, due, unclaimed rows should be returned."""
        now = utc_now()
        due = await self._seed(
            storage, event_log, sample_endpoint, next_retry=now - timedelta(seconds=5)
        )
        await self._seed(storage, event_log, sample_endpoint, next_retry=now + timedelta(hours=1))
        await self._seed(storage, event_log, sample_endpoint)
        await self._seed(
            storage,
            event_log,
            sample_endpoint,
            status="failed",
            next_retry=now - timedelta(seconds=5),
        )
        await self._seed(
            storage,
            event_log,
            sample_endpoint,
            next_retry=now - timedelta(seconds=5),
            claim_token=generate_id("clm"),
            claimed_until=now + timedelta(seconds=30),
        )

        result = await storage.get_due_deliveries(now=now)

        assert [d.id for d in result] == [due.id]

    @pytest.mark.asyncio
    async def test_delivery_logs_and_stats(
        self,
        storage: HooklineStorage,
        event_log: EventLog,
        sample_endpoint: WebhookEndpoint,
    ) -> None:
        """History should be newest first and stats should count by status."""
        older = await self._seed(storage, event_log, sample_endpoint, status="success")
        await self._seed(storage, event_log, sample_endpoint, status="success")
        await self._seed(storage, event_log, sample_endpoint, status="failed")
        newest = await self._seed(storage, event_log, sample_endpoint)

        logs = await storage.get_delivery_logs(sample_endpoint.id)
        assert logs[0].id == newest.id
        assert logs[-1].id == older.id
        assert len(await storage.get_delivery_logs(sample_endpoint.id, limit=2)) == 2
        assert await storage.get_delivery_logs(
            sample_endpoint.id, since=utc_now() + timedelta(minutes=1)
        ) == []

        stats = await storage.get_delivery_stats(sample_endpoint.id)
        assert stats.total_deliveries == 4
        assert stats.successful_deliveries == 2
        assert stats.failed_deliveries == 1
        assert stats.pending_deliveries == 1
        assert stats.success_rate == 50.0

        empty = await storage.get_delivery_stats("whk_none")
        assert empty.total_deliveries == 0
        assert empty.success_rate == 0.0
