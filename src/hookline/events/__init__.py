"""Event log and in-process event bus."""

from .bus import EventBus, Handler, HandlerRegistry
from .log import EventLog

__all__ = ["EventBus", "EventLog", "Handler", "HandlerRegistry"]
