"""Shared helpers for Hookline models."""

from __future__ import annotations

from datetime import UTC, datetime
from uuid import uuid4


def generate_id(prefix: str) -> str:
    """Generate a unique ID with the given prefix.

    Examples:
        generate_id("evt") -> "evt_3f2b9c0d7e4a4b1c9d8e7f6a5b4c3d2e"
        generate_id("dlv") -> "dlv_0a1b2c3d4e5f60718293a4b5c6d7e8f9"
    """
    return f"{prefix}_{uuid4().hex}"


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)
