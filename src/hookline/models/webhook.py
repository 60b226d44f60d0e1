"""Webhook models for outbound event notifications.

Provides endpoint registration, the wire payload, and delivery tracking
for reliable at-least-once delivery of events.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, HttpUrl

from .base import generate_id, utc_now
from .event import Event

DEFAULT_MAX_RETRIES = 3
DEFAULT_TIMEOUT_SECONDS = 30.0
RESPONSE_MAX_CHARS = 1000

# Delivery status
DeliveryStatus = Literal["pending", "success", "failed"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"success", "failed"})


def truncate(text: str | None, max_chars: int = RESPONSE_MAX_CHARS) -> str | None:
    """Truncate a response body for storage, keeping at most max_chars."""
    if not text:
        return None
    return text[:max_chars]


class WebhookEndpoint(BaseModel):
    """A registered webhook endpoint.

    Attributes:
        id: Unique identifier for this webhook.
        name: Display name.
        url: HTTP(S) endpoint receiving events.
        secret: Shared secret for HMAC-SHA256 signatures (optional).
        event_types: Event types this webhook subscribes to.
        enabled: Whether this webhook is active.
        max_retries: Maximum delivery attempts; values <= 0 mean the default.
        timeout_seconds: Per-attempt timeout; values <= 0 mean the default.
        description: Optional human-readable description.
        created_at: When the webhook was registered.
        updated_at: When the webhook was last modified.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("whk"))
    name: str = Field(min_length=1, description="Display name")
    url: HttpUrl = Field(description="Endpoint to receive events")
    secret: str | None = Field(default=None, description="Shared secret for signatures")
    event_types: list[str] = Field(
        default_factory=list,
        description="Event types to subscribe to",
    )
    enabled: bool = Field(default=True, description="Whether webhook is active")
    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, description="Maximum attempts")
    timeout_seconds: float = Field(
        default=DEFAULT_TIMEOUT_SECONDS, description="Per-attempt timeout in seconds"
    )
    description: str | None = Field(default=None, description="Human-readable description")
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def subscribes_to(self, event_type: str) -> bool:
        """Check if this webhook is enabled and subscribed to the given event type."""
        return self.enabled and event_type in self.event_types

    def effective_max_retries(self, default: int = DEFAULT_MAX_RETRIES) -> int:
        """Attempt limit, falling back to default when unset or non-positive."""
        return self.max_retries if self.max_retries > 0 else default

    def effective_timeout(self, default: float = DEFAULT_TIMEOUT_SECONDS) -> float:
        """Attempt timeout, falling back to default when unset or non-positive."""
        return self.timeout_seconds if self.timeout_seconds > 0 else default

    @property
    def has_secret(self) -> bool:
        return bool(self.secret)


class WebhookPayload(BaseModel):
    """JSON body POSTed to webhook endpoints."""

    model_config = ConfigDict(extra="forbid")

    event_id: str
    event_type: str
    stream_id: str
    source: str
    data: dict[str, Any]
    timestamp: datetime
    sequence_number: int

    @classmethod
    def from_event(cls, event: Event) -> "WebhookPayload":
        """Build the wire payload for an event."""
        return cls(
            event_id=event.id,
            event_type=event.type,
            stream_id=event.stream_id,
            source=event.source,
            data=event.data,
            timestamp=event.timestamp,
            sequence_number=event.sequence_number,
        )

    def to_bytes(self) -> bytes:
        """Serialize to the exact bytes that are signed and transmitted."""
        return self.model_dump_json().encode("utf-8")


class WebhookDelivery(BaseModel):
    """Tracked attempt-series of sending one event to one webhook.

    Status moves from ``pending`` to ``success`` or ``failed``; both are
    terminal. ``next_retry`` is set only while the delivery is pending and
    attempts remain.

    Attributes:
        id: Unique identifier for this delivery.
        webhook_id: ID of the webhook endpoint.
        event_id: ID of the event being delivered.
        status: pending, success or failed.
        attempt_count: Attempts made so far.
        last_attempt: When the most recent attempt started.
        next_retry: When the sweeper may retry (pending only).
        response: Last response body (truncated).
        response_code: Last HTTP status received, if any.
        error_message: Last error, if any.
        claim_token: Token of the worker currently attempting this delivery.
        claimed_until: When the current claim lapses.
        created_at: When the delivery was created.
        updated_at: When the delivery was last persisted.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("dlv"))
    webhook_id: str = Field(description="ID of the webhook endpoint")
    event_id: str = Field(description="ID of the event being delivered")
    status: DeliveryStatus = Field(default="pending", description="Delivery status")
    attempt_count: int = Field(default=0, ge=0, description="Attempts made so far")
    last_attempt: datetime | None = Field(default=None)
    next_retry: datetime | None = Field(default=None)
    response: str | None = Field(default=None, description="Response body (truncated)")
    response_code: int | None = Field(default=None, description="HTTP response status")
    error_message: str | None = Field(default=None)
    claim_token: str | None = Field(default=None)
    claimed_until: datetime | None = Field(default=None)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def _ensure_pending(self) -> None:
        if self.is_terminal:
            raise ValueError(f"Delivery {self.id} is already {self.status}")

    def begin_attempt(self, at: datetime | None = None) -> "WebhookDelivery":
        """Count a new attempt."""
        self._ensure_pending()
        self.attempt_count += 1
        self.last_attempt = at or utc_now()
        return self

    def mark_success(
        self,
        response_code: int,
        response_body: str | None = None,
        max_chars: int = RESPONSE_MAX_CHARS,
    ) -> "WebhookDelivery":
        """Mark delivery as successful."""
        self._ensure_pending()
        self.status = "success"
        self.response_code = response_code
        self.response = truncate(response_body, max_chars)
        self.error_message = None
        self.next_retry = None
        return self

    def mark_failed(
        self,
        error: str,
        response_code: int | None = None,
        response_body: str | None = None,
        max_chars: int = RESPONSE_MAX_CHARS,
    ) -> "WebhookDelivery":
        """Mark delivery as failed (no more retries)."""
        self._ensure_pending()
        self.status = "failed"
        self.error_message = error
        self.response_code = response_code
        self.response = truncate(response_body, max_chars)
        self.next_retry = None
        return self

    def mark_retrying(
        self,
        next_retry: datetime,
        error: str,
        response_code: int | None = None,
        response_body: str | None = None,
        max_chars: int = RESPONSE_MAX_CHARS,
    ) -> "WebhookDelivery":
        """Keep delivery pending and schedule the next attempt."""
        self._ensure_pending()
        self.error_message = error
        self.response_code = response_code
        self.response = truncate(response_body, max_chars)
        self.next_retry = next_retry
        return self


class DeliveryStats(BaseModel):
    """Delivery counts by status and the resulting success rate."""

    model_config = ConfigDict(extra="forbid")

    total_deliveries: int = Field(default=0, ge=0)
    successful_deliveries: int = Field(default=0, ge=0)
    failed_deliveries: int = Field(default=0, ge=0)
    pending_deliveries: int = Field(default=0, ge=0)
    success_rate: float = Field(default=0.0, ge=0.0, le=100.0, description="Percentage")

    @classmethod
    def from_counts(cls, counts: dict[str, int]) -> "DeliveryStats":
        """Build stats from a status -> count mapping."""
        successful = counts.get("success", 0)
        failed = counts.get("failed", 0)
        pending = counts.get("pending", 0)
        total = successful + failed + pending
        rate = successful / total * 100 if total else 0.0
        return cls(
            total_deliveries=total,
            successful_deliveries=successful,
            failed_deliveries=failed,
            pending_deliveries=pending,
            success_rate=rate,
        )


__all__ = [
    "DEFAULT_MAX_RETRIES",
    "DEFAULT_TIMEOUT_SECONDS",
    "DeliveryStats",
    "DeliveryStatus",
    "RESPONSE_MAX_CHARS",
    "TERMINAL_STATUSES",
    "WebhookDelivery",
    "WebhookEndpoint",
    "WebhookPayload",
    "truncate",
]
