"""Hookline: ordered event streams with reliable webhooks.

An append-only event log with dense per-stream sequence numbers, an
in-process event bus, and at-least-once webhook delivery with HMAC
signatures and exponential backoff.

Quick Start:
    from hookline.models import WebhookEndpoint
    from hookline.service import HooklineService

    async with HooklineService.create() as hookline:
        await hookline.register_webhook(
            WebhookEndpoint(
                name="billing",
                url="https://billing.example.com/hooks",
                event_types=["order.paid"],
            )
        )
        event = await hookline.publish("order-42", "order.paid", "shop", {"total": 10})
        print(event.sequence_number)

Components:
    - EventLog: Durable per-stream ordered events
    - EventBus: In-process handlers per event type
    - DeliveryEngine: Signed webhook POSTs with retry scheduling
    - RetrySweeper: Background re-attempts of due deliveries
"""

__version__ = "0.1.0"

# Configuration
from .config import Settings, settings

# Exceptions
from .exceptions import (
    ConfigurationError,
    DeliveryError,
    HooklineError,
    NotFoundError,
    PersistenceError,
    RejectedError,
    TransportError,
    ValidationError,
)

# Logging
from .logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    logger,
    unbind_context,
)

# Models
from .models import (
    DeliveryStats,
    Event,
    WebhookDelivery,
    WebhookEndpoint,
    WebhookPayload,
)

__all__ = [
    # Version
    "__version__",
    # Configuration
    "Settings",
    "settings",
    # Exceptions
    "HooklineError",
    "ValidationError",
    "NotFoundError",
    "PersistenceError",
    "DeliveryError",
    "TransportError",
    "RejectedError",
    "ConfigurationError",
    # Logging
    "configure_logging",
    "get_logger",
    "logger",
    "bind_context",
    "clear_context",
    "unbind_context",
    # Models
    "Event",
    "WebhookEndpoint",
    "WebhookPayload",
    "WebhookDelivery",
    "DeliveryStats",
]
