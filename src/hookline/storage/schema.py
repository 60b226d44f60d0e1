"""Table definitions for Hookline storage.

Uses SQLAlchemy Core tables. Models are converted to and from plain row
mappings by the storage mixins.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.types import TypeDecorator


class UTCDateTime(TypeDecorator[datetime]):
    """DateTime column that always round-trips timezone-aware UTC values.

    SQLite has no timezone support, so values are stored as naive UTC and
    re-tagged with UTC when loaded.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("naive datetimes are not accepted; use UTC-aware values")
        value = value.astimezone(UTC)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


metadata = MetaData()

events_table = Table(
    "events",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("type", String(255), nullable=False),
    Column("stream_id", String(255), nullable=False),
    Column("source", String(255), nullable=False),
    Column("data", JSON, nullable=False),
    Column("timestamp", UTCDateTime(timezone=True), nullable=False),
    Column("sequence_number", Integer, nullable=False),
    UniqueConstraint("stream_id", "sequence_number", name="uq_events_stream_sequence"),
    Index("ix_events_type", "type"),
    Index("ix_events_timestamp", "timestamp"),
)

# One row per stream; last_sequence is bumped atomically inside the append
# transaction so the counter and the event commit or roll back together.
stream_counters_table = Table(
    "stream_counters",
    metadata,
    Column("stream_id", String(255), primary_key=True),
    Column("last_sequence", Integer, nullable=False),
    Column("updated_at", UTCDateTime(timezone=True), nullable=False),
    Index("ix_stream_counters_updated_at", "updated_at"),
)

webhook_endpoints_table = Table(
    "webhook_endpoints",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("name", String(255), nullable=False),
    Column("url", Text, nullable=False),
    Column("secret", Text, nullable=True),
    Column("event_types", JSON, nullable=False),
    Column("enabled", Boolean, nullable=False, default=True),
    Column("max_retries", Integer, nullable=False),
    Column("timeout_seconds", Float, nullable=False),
    Column("description", Text, nullable=True),
    Column("created_at", UTCDateTime(timezone=True), nullable=False),
    Column("updated_at", UTCDateTime(timezone=True), nullable=False),
    Index("ix_webhook_endpoints_enabled", "enabled"),
)

webhook_deliveries_table = Table(
    "webhook_deliveries",
    metadata,
    Column("id", String(64), primary_key=True),
    Column(
        "webhook_id",
        String(64),
        ForeignKey("webhook_endpoints.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("event_id", String(64), ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
    Column("status", String(16), nullable=False),
    Column("attempt_count", Integer, nullable=False, default=0),
    Column("last_attempt", UTCDateTime(timezone=True), nullable=True),
    Column("next_retry", UTCDateTime(timezone=True), nullable=True),
    Column("response", Text, nullable=True),
    Column("response_code", Integer, nullable=True),
    Column("error_message", Text, nullable=True),
    Column("claim_token", String(64), nullable=True),
    Column("claimed_until", UTCDateTime(timezone=True), nullable=True),
    Column("created_at", UTCDateTime(timezone=True), nullable=False),
    Column("updated_at", UTCDateTime(timezone=True), nullable=False),
    Index("ix_webhook_deliveries_webhook_id", "webhook_id"),
    Index("ix_webhook_deliveries_event_id", "event_id"),
    Index("ix_webhook_deliveries_status_next_retry", "status", "next_retry"),
)


__all__ = [
    "UTCDateTime",
    "events_table",
    "metadata",
    "stream_counters_table",
    "webhook_deliveries_table",
    "webhook_endpoints_table",
]
