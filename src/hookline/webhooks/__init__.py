"""Webhook delivery system for Hookline.

Provides HMAC-signed webhook delivery with exponential backoff retry.

Example:
    ```python
    from hookline.webhooks import DeliveryEngine, RetrySweeper

    engine = DeliveryEngine(storage)
    await engine.dispatch_event(event)

    sweeper = RetrySweeper(storage, engine)
    await sweeper.retry_due()
    ```
"""

from .delivery import DeliveryEngine, backoff
from .signing import compute_signature, verify_signature
from .subscriptions import SubscriptionIndex
from .sweeper import RetrySweeper

__all__ = [
    "DeliveryEngine",
    "RetrySweeper",
    "SubscriptionIndex",
    "backoff",
    "compute_signature",
    "verify_signature",
]
