"""Data models for Hookline.

Event Log:
    - Event: Immutable, sequenced member of a stream

Webhooks:
    - WebhookEndpoint: Registered receiver and its subscriptions
    - WebhookDelivery: Delivery state for one (endpoint, event) pair
    - WebhookPayload: JSON body sent to endpoints
    - DeliveryStats: Counts by status and success rate
"""

from .base import generate_id, utc_now
from .event import Event
from .webhook import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_TIMEOUT_SECONDS,
    RESPONSE_MAX_CHARS,
    TERMINAL_STATUSES,
    DeliveryStats,
    DeliveryStatus,
    WebhookDelivery,
    WebhookEndpoint,
    WebhookPayload,
    truncate,
)

__all__ = [
    # Helpers
    "generate_id",
    "utc_now",
    "truncate",
    # Event log
    "Event",
    # Webhooks
    "DEFAULT_MAX_RETRIES",
    "DEFAULT_TIMEOUT_SECONDS",
    "RESPONSE_MAX_CHARS",
    "TERMINAL_STATUSES",
    "DeliveryStats",
    "DeliveryStatus",
    "WebhookDelivery",
    "WebhookEndpoint",
    "WebhookPayload",
]
