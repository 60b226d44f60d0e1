"""Retry utilities for storage operations.

Retries transactions that failed for transient reasons: a locked SQLite
database, a dropped connection, a serialization failure, or losing the
race to create a stream's counter row. Each retry re-runs the whole
transaction, so nothing from the failed attempt is ever committed.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import DBAPIError, OperationalError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

logger = logging.getLogger(__name__)


class StreamCounterConflict(Exception):
    """Another writer created the same stream counter row first."""

    def __init__(self, stream_id: str) -> None:
        self.stream_id = stream_id
        super().__init__(f"counter row for stream {stream_id!r} created concurrently")


def is_transient(exc: BaseException) -> bool:
    """Whether a storage exception is worth retrying."""
    if isinstance(exc, StreamCounterConflict):
        return True
    if isinstance(exc, OperationalError):
        return True
    if isinstance(exc, DBAPIError):
        return bool(exc.connection_invalidated)
    return False


def _log_retry(retry_state: RetryCallState) -> None:
    """Log retry attempts with context."""
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Retrying storage transaction (attempt %d): %s",
        retry_state.attempt_number,
        exc,
    )


def storage_retrying(attempts: int = 5) -> AsyncRetrying:
    """Build an AsyncRetrying controller for a storage transaction.

    Usage:
        ```python
        async for attempt in storage_retrying(5):
            with attempt:
                async with session_factory.begin() as session:
                    ...
        ```
    """
    return AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=0.05, max=2.0) + wait_random(0, 0.05),
        retry=retry_if_exception(is_transient),
        before_sleep=_log_retry,
        reraise=True,
    )


__all__ = ["StreamCounterConflict", "is_transient", "storage_retrying"]
