"""Event model.

An event is an immutable fact appended to a stream. Its sequence number is
its 1-based position within that stream and is assigned by the event log.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .base import generate_id, utc_now


class Event(BaseModel):
    """An event appended to a stream.

    Attributes:
        id: Unique identifier for this event.
        type: Free-form category (e.g. "user.created").
        stream_id: Groups events that are totally ordered relative to each other.
        source: Name of the producer.
        data: Arbitrary JSON-compatible payload.
        timestamp: When the event was appended (UTC).
        sequence_number: Position within the stream, starting at 1.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(default_factory=lambda: generate_id("evt"))
    type: str = Field(min_length=1, description="Event type")
    stream_id: str = Field(min_length=1, description="Stream the event belongs to")
    source: str = Field(min_length=1, description="Producer name")
    data: dict[str, Any] = Field(default_factory=dict, description="Event payload")
    timestamp: datetime = Field(default_factory=utc_now, description="Append time")
    sequence_number: int = Field(ge=1, description="1-based position within the stream")


__all__ = ["Event"]
