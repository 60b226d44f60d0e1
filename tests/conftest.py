"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import sys
from collections.abc import AsyncIterator
from pathlib import Path

import pytest
import pytest_asyncio

# Add tests directory to path so helpers can be imported
tests_dir = Path(__file__).parent
if str(tests_dir) not in sys.path:
    sys.path.insert(0, str(tests_dir))

from helpers import make_settings  # noqa: E402

from hookline.config import Settings  # noqa: E402
from hookline.events import EventLog  # noqa: E402
from hookline.models import WebhookEndpoint  # noqa: E402
from hookline.storage import HooklineStorage  # noqa: E402


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings pointing at a fresh SQLite file."""
    return make_settings(tmp_path)


@pytest_asyncio.fixture
async def storage(settings: Settings) -> AsyncIterator[HooklineStorage]:
    """Initialized storage on a per-test database."""
    async with HooklineStorage(settings=settings) as store:
        yield store


@pytest.fixture
def event_log(storage: HooklineStorage) -> EventLog:
    return EventLog(storage)


@pytest.fixture
def sample_endpoint() -> WebhookEndpoint:
    """An enabled endpoint subscribed to order.paid."""
    return WebhookEndpoint(
        id="whk_billing",
        name="billing",
        url="https://hooks.example.com/billing",
        secret="s3cret-signing-key",
        event_types=["order.paid"],
    )
