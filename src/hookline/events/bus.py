"""In-process event fan-out to locally registered handlers.

Independent of webhook delivery: a failing handler is logged and never
affects other handlers, event persistence, or webhooks.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from types import MappingProxyType
from typing import TYPE_CHECKING

from hookline.logging import get_logger
from hookline.tasks import TaskSet

if TYPE_CHECKING:
    from hookline.models import Event

logger = get_logger(__name__)

Handler = Callable[["Event"], Awaitable[None]]


class HandlerRegistry:
    """Event type -> handlers mapping with copy-on-write snapshots.

    Writers build a new mapping and swap it in; readers take the current
    snapshot and never see a half-applied change.
    """

    def __init__(self) -> None:
        self._snapshot: Mapping[str, tuple[Handler, ...]] = MappingProxyType({})

    def add(self, event_type: str, handler: Handler) -> None:
        handlers = dict(self._snapshot)
        handlers[event_type] = (*handlers.get(event_type, ()), handler)
        self._snapshot = MappingProxyType(handlers)

    def remove(self, event_type: str, handler: Handler) -> bool:
        current = self._snapshot.get(event_type, ())
        if handler not in current:
            return False
        handlers = dict(self._snapshot)
        remaining = tuple(h for h in current if h is not handler)
        if remaining:
            handlers[event_type] = remaining
        else:
            del handlers[event_type]
        self._snapshot = MappingProxyType(handlers)
        return True

    def handlers_for(self, event_type: str) -> tuple[Handler, ...]:
        return self._snapshot.get(event_type, ())

    def event_types(self) -> list[str]:
        return sorted(self._snapshot)


class EventBus:
    """Delivers published events to the handlers subscribed to their type.

    Each handler runs in its own task. ``wait()`` blocks until every
    in-flight handler has finished, which is what tests should use instead
    of sleeping.
    """

    def __init__(self, registry: HandlerRegistry | None = None) -> None:
        self._registry = registry or HandlerRegistry()
        self._tasks = TaskSet("event_bus")

    @property
    def registry(self) -> HandlerRegistry:
        return self._registry

    def subscribe(self, event_type: str, handler: Handler) -> None:
        """Register an async handler for an event type."""
        self._registry.add(event_type, handler)
        logger.info("handler_subscribed", event_type=event_type)

    def unsubscribe(self, event_type: str, handler: Handler) -> bool:
        """Remove a handler. Returns False if it was not registered."""
        return self._registry.remove(event_type, handler)

    def publish(self, event: Event) -> int:
        """Start every handler registered for the event's type.

        Returns:
            Number of handlers started.
        """
        handlers = self._registry.handlers_for(event.type)
        for handler in handlers:
            self._tasks.spawn(
                self._run_handler(handler, event),
                name=f"handler:{event.type}:{event.id}",
            )
        return len(handlers)

    async def _run_handler(self, handler: Handler, event: Event) -> None:
        try:
            await handler(event)
        except Exception as e:
            logger.error(
                "handler_failed",
                event_type=event.type,
                event_id=event.id,
                handler=getattr(handler, "__qualname__", repr(handler)),
                error=str(e),
                exc_info=True,
            )

    async def wait(self) -> None:
        """Wait for all in-flight handlers."""
        await self._tasks.wait()

    async def close(self) -> None:
        """Cancel in-flight handlers."""
        await self._tasks.cancel()


__all__ = ["EventBus", "Handler", "HandlerRegistry"]
