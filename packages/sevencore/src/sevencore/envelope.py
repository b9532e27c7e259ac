"""
Event Envelope

Standard wrapper for everything SEVEN T publishes on Redis Streams:
inbound WhatsApp messages and domain events (orders, leads, campaigns).
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sevencore.clock import utcnow


@dataclass
class EventEnvelope:
    """
    Attributes:
        event_id: Unique identifier for this event instance
        event_type: Type of event
        tenant_id: Owning user (tenant) id
        occurred_at: When the event occurred (UTC)
        version: Event contract version
        payload: Event-specific data
        correlation_id: Optional correlation ID for tracing
        metadata: Additional metadata (stream message id, source, etc.)
    """

    event_id: UUID
    event_type: str
    tenant_id: UUID
    occurred_at: datetime
    payload: dict[str, Any]
    version: int = 1
    correlation_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        event_type: str,
        tenant_id: UUID,
        payload: dict[str, Any],
        correlation_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> "EventEnvelope":
        """Create a new envelope with auto-generated event_id and timestamp."""
        return cls(
            event_id=uuid4(),
            event_type=event_type,
            tenant_id=tenant_id,
            occurred_at=utcnow(),
            payload=payload,
            correlation_id=correlation_id,
            metadata=metadata or {},
        )

    @classmethod
    def from_stream_message(cls, msg_id: str, data: dict[str, str]) -> "EventEnvelope":
        """Parse a Redis Stream message into an envelope."""
        payload = json.loads(data.get("payload", "{}"))
        metadata = json.loads(data.get("metadata", "{}"))
        metadata["stream_msg_id"] = msg_id

        return cls(
            event_id=UUID(data["event_id"]),
            event_type=data["event_type"],
            tenant_id=UUID(data["tenant_id"]),
            occurred_at=(
                datetime.fromisoformat(data["occurred_at"])
                if data.get("occurred_at")
                else utcnow()
            ),
            version=int(data.get("version", "1")),
            payload=payload,
            correlation_id=data.get("correlation_id") or None,
            metadata=metadata,
        )

    def to_stream_data(self) -> dict[str, str]:
        """Convert to dictionary suitable for Redis Stream (all string values)."""
        return {
            "event_id": str(self.event_id),
            "event_type": self.event_type,
            "tenant_id": str(self.tenant_id),
            "occurred_at": self.occurred_at.isoformat(),
            "version": str(self.version),
            "payload": json.dumps(self.payload, default=str),
            "correlation_id": self.correlation_id or "",
            "metadata": json.dumps(self.metadata, default=str),
        }
