"""HMAC-SHA256 signatures for webhook payloads."""

from __future__ import annotations

import hashlib
import hmac

SIGNATURE_PREFIX = "sha256="


def compute_signature(payload: bytes | str, secret: str) -> str:
    """Compute the HMAC-SHA256 signature of a webhook body.

    Args:
        payload: The exact body bytes sent on the wire. A str is UTF-8 encoded.
        secret: Shared secret of the endpoint.

    Returns:
        Signature in the form ``sha256=<hex digest>``.
    """
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(payload: bytes | str, secret: str, signature: str) -> bool:
    """Verify a webhook signature in constant time.

    Receivers should call this with the raw request body, before parsing it.
    """
    expected = compute_signature(payload, secret)
    return hmac.compare_digest(expected, signature)


__all__ = ["SIGNATURE_PREFIX", "compute_signature", "verify_signature"]
