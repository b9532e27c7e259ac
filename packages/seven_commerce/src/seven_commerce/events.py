"""
Domain Events

Commerce and campaign events published to the `seven:events` Redis stream
for automations (delivery notifications, CRM sync, reporting).
"""

import logging
from enum import Enum
from uuid import UUID

import redis
from pydantic import BaseModel

from sevencore.envelope import EventEnvelope
from sevencore.redis import get_redis_client, publish_to_stream

logger = logging.getLogger(__name__)

EVENTS_STREAM = "seven:events"
EVENTS_STREAM_MAX_LEN = 100000


class DomainEventType(str, Enum):
    ORDER_CREATED = "order_created"
    ORDER_VALIDATED = "order_validated"
    LEAD_DETECTED = "lead_detected"
    CAMPAIGN_FINISHED = "campaign_finished"

    def __str__(self) -> str:
        return self.value


class DomainEventPublisher:
    """
    Publishes domain events as EventEnvelopes.

    Publishing happens after the business transaction commits, so a Redis
    outage is logged and reported as None instead of undoing the write.
    """

    def __init__(
        self,
        redis_client: redis.Redis | None = None,
        stream_name: str = EVENTS_STREAM,
    ):
        self._redis = redis_client
        self.stream_name = stream_name

    @property
    def redis(self) -> redis.Redis:
        if self._redis is None:
            self._redis = get_redis_client()
        return self._redis

    def publish(
        self,
        event_type: DomainEventType,
        tenant_id: UUID,
        payload: BaseModel,
        correlation_id: str | None = None,
    ) -> str | None:
        """Publish an event. Returns the stream message id, or None on failure."""
        envelope = EventEnvelope.create(
            event_type=str(event_type),
            tenant_id=tenant_id,
            payload=payload.model_dump(mode="json"),
            correlation_id=correlation_id,
            metadata={"source": "seven_commerce"},
        )
        return self.publish_envelope(envelope)

    def publish_envelope(self, envelope: EventEnvelope) -> str | None:
        try:
            msg_id = publish_to_stream(
                self.redis,
                self.stream_name,
                envelope.to_stream_data(),
                max_len=EVENTS_STREAM_MAX_LEN,
            )
        except redis.RedisError as e:
            logger.error(
                f"Failed to publish {envelope.event_type}: {e}",
                extra={"event_id": str(envelope.event_id), "tenant_id": str(envelope.tenant_id)},
                exc_info=True,
            )
            return None

        logger.info(
            f"Published {envelope.event_type}",
            extra={"event_id": str(envelope.event_id), "msg_id": msg_id},
        )
        return msg_id


class InMemoryEventPublisher(DomainEventPublisher):
    """Keeps envelopes in memory. Used by tests and dry runs."""

    def __init__(self):
        super().__init__(redis_client=None)
        self.published: list[EventEnvelope] = []

    def publish_envelope(self, envelope: EventEnvelope) -> str | None:
        self.published.append(envelope)
        return f"{len(self.published)}-0"

    def of_type(self, event_type: DomainEventType) -> list[EventEnvelope]:
        return [e for e in self.published if e.event_type == str(event_type)]
