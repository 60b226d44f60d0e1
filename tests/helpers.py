"""Test helpers shared across test modules."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from pathlib import Path

import httpx

from hookline.config import Settings


class WebhookReceiver:
    """Scripted webhook endpoint backed by httpx.MockTransport.

    Replies are consumed in order; the last one repeats once the script runs
    out. A reply is a status code, a ready Response, an exception to raise,
    or an async callable producing a Response.
    """

    def __init__(self, *replies: object, body: str = "ok") -> None:
        self.requests: list[httpx.Request] = []
        self._replies = list(replies) or [200]
        self._body = body

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        reply = self._replies.pop(0) if len(self._replies) > 1 else self._replies[0]
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, httpx.Response):
            return reply
        if isinstance(reply, int):
            return httpx.Response(reply, text=self._body)
        return await reply(request)  # type: ignore[operator]

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


def slow_reply(seconds: float) -> Callable[[httpx.Request], Awaitable[httpx.Response]]:
    """A reply that only answers after sleeping."""

    async def reply(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(seconds)
        return httpx.Response(200, text="late")

    return reply


def make_settings(tmp_path: Path, **overrides: object) -> Settings:
    """Test settings on a SQLite file under tmp_path."""
    values: dict[str, object] = {
        "env": "test",
        "database_url": f"sqlite+aiosqlite:///{tmp_path / 'hookline.db'}",
        "log_format": "text",
    }
    values.update(overrides)
    return Settings(**values)  # type: ignore[arg-type]


async def wait_until(predicate: Callable[[], Awaitable[bool]], timeout: float = 2.0) -> None:
    """Poll an async predicate until it holds or the timeout passes."""
    async with asyncio.timeout(timeout):
        while not await predicate():
            await asyncio.sleep(0.01)
