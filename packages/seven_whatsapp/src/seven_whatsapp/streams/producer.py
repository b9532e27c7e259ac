"""
WhatsApp Stream Producer

Publishes inbound WhatsApp events to Redis Streams.
"""

import logging
from dataclasses import asdict
from uuid import UUID

import redis

from sevencore.envelope import EventEnvelope
from sevencore.redis import publish_to_stream
from seven_whatsapp.contracts.event_types import WhatsAppEventType
from seven_whatsapp.contracts.payloads import ConnectionUpdatePayload, InboundMessagePayload
from seven_whatsapp.streams.groups import DLQ_STREAM, INBOUND_STREAM, stream_max_len

logger = logging.getLogger(__name__)


class WhatsAppStreamProducer:
    """
    Publishes WhatsApp events to Redis Streams.

    `max_len` overrides the per-stream retention from `groups.STREAMS`.
    """

    def __init__(self, redis_client: redis.Redis, max_len: int | None = None):
        self.redis = redis_client
        self.max_len = max_len

    def publish_inbound(
        self,
        tenant_id: UUID,
        payload: InboundMessagePayload,
        correlation_id: str | None = None,
    ) -> str:
        """
        Publish an inbound message event.

        Called by the webhook when a message is received from WhatsApp.

        Returns:
            Stream message ID
        """
        envelope = EventEnvelope.create(
            event_type=WhatsAppEventType.INBOUND_RECEIVED.value,
            tenant_id=tenant_id,
            payload=payload.model_dump(mode="json"),
            correlation_id=correlation_id or payload.message_id,
            metadata={"source": "whatsapp-webhook"},
        )
        return self._publish(INBOUND_STREAM, envelope)

    def publish_connection_update(self, tenant_id: UUID, payload: ConnectionUpdatePayload) -> str:
        envelope = EventEnvelope.create(
            event_type=WhatsAppEventType.CONNECTION_UPDATED.value,
            tenant_id=tenant_id,
            payload=payload.model_dump(mode="json"),
            metadata={"source": "whatsapp-webhook"},
        )
        return self._publish(INBOUND_STREAM, envelope)

    def publish_to_dlq(
        self,
        original_envelope: EventEnvelope,
        error: str,
        retry_count: int,
    ) -> str:
        """
        Publish a failed message to the dead letter queue.

        Returns:
            Stream message ID
        """
        dlq_envelope = EventEnvelope.create(
            event_type=WhatsAppEventType.DLQ_ENTRY.value,
            tenant_id=original_envelope.tenant_id,
            payload={
                "original_event": asdict(original_envelope),
                "error": error,
                "retry_count": retry_count,
            },
            correlation_id=original_envelope.correlation_id,
        )
        return self._publish(DLQ_STREAM, dlq_envelope)

    def _publish(self, stream_name: str, envelope: EventEnvelope) -> str:
        max_len = self.max_len or stream_max_len(stream_name)
        msg_id = publish_to_stream(self.redis, stream_name, envelope.to_stream_data(), max_len=max_len)

        logger.debug(
            f"Published to {stream_name}",
            extra={
                "stream": stream_name,
                "event_type": envelope.event_type,
                "event_id": str(envelope.event_id),
                "msg_id": msg_id,
            },
        )
        return msg_id
