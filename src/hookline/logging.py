"""Logging setup for Hookline.

Every Hookline module logs snake_case event names with keyword fields
(``delivery_retry_scheduled``, ``attempt=2``). structlog renders them, and
the standard library loggers used by the storage layer are routed through
the same root handler, so one process produces one stream of records.

Delivery workers bind ``delivery_id`` and ``webhook_id`` into contextvars
for the duration of an attempt; anything logged inside the attempt carries
both without passing them around.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from structlog.typing import Processor

    from hookline.config import Settings

# Libraries that log every request or query at INFO/DEBUG
_CHATTY_LIBRARIES = ("httpx", "httpcore", "aiosqlite")

_configured = False


def _record_enrichers() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _renderers(format: str) -> list[Processor]:
    if format.lower() == "json":
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [structlog.dev.ConsoleRenderer(colors=True)]


def configure_logging(
    level: str = "INFO",
    format: str = "json",
) -> None:
    """Route Hookline's log records to stdout.

    Args:
        level: Root level name. Unknown names mean INFO.
        format: "json" renders one object per line; anything else renders
            coloured key=value lines for a terminal.

    HTTP client and SQLite driver loggers stay at WARNING unless ``level``
    is DEBUG, otherwise each webhook POST would add its own INFO line.

    Example:
        ```python
        configure_logging(level="DEBUG", format="text")
        get_logger(__name__).info("retry_sweeper_started", interval_seconds=5)
        ```
    """
    global _configured

    root_level = getattr(logging, level.upper(), None)
    if not isinstance(root_level, int):
        root_level = logging.INFO

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=root_level)
    # basicConfig is a no-op once handlers exist
    logging.getLogger().setLevel(root_level)

    library_level = root_level if root_level <= logging.DEBUG else logging.WARNING
    for name in _CHATTY_LIBRARIES:
        logging.getLogger(name).setLevel(library_level)

    structlog.configure(
        processors=[*_record_enrichers(), *_renderers(format)],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _configured = True


def configure_from_settings(settings: Settings) -> None:
    configure_logging(level=settings.log_level, format=settings.log_format)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Logger for a Hookline module; applies the default setup on first call."""
    if not _configured:
        configure_logging()

    return structlog.get_logger(name)  # type: ignore[no-any-return]


def bind_context(**kwargs: object) -> None:
    """Attach fields to every record logged from the current task.

    Values live in contextvars, so concurrent delivery attempts each keep
    their own ``delivery_id``.
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


logger = get_logger("hookline")
