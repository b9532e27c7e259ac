"""
Consumer-group reader for the WhatsApp streams.

New entries come from XREADGROUP. Entries a crashed or failing worker left
unacknowledged are taken over with XCLAIM once they have been idle long
enough; the delivery count travels with them so the worker can give up and
dead-letter after repeated failures.
"""

import json
import logging
from dataclasses import dataclass

import redis

from sevencore.envelope import EventEnvelope
from seven_whatsapp.streams.groups import WHATSAPP_GROUP

logger = logging.getLogger(__name__)

StreamMessage = tuple[str, EventEnvelope]


@dataclass
class PendingEntry:
    message_id: str
    consumer: str
    idle_ms: int
    deliveries: int


class WhatsAppStreamConsumer:
    def __init__(self, redis_client: redis.Redis, consumer_name: str, group_name: str = WHATSAPP_GROUP):
        self.redis = redis_client
        self.consumer_name = consumer_name
        self.group_name = group_name

    def _decode(self, stream_name: str, entries) -> list[StreamMessage]:
        decoded = []
        for msg_id, fields in entries:
            try:
                decoded.append((msg_id, EventEnvelope.from_stream_message(msg_id, fields)))
            except (KeyError, ValueError, json.JSONDecodeError) as e:
                # Malformed entries would be redelivered forever
                logger.error(f"Dropping malformed entry {msg_id} on {stream_name}: {e}")
                self.ack(stream_name, msg_id)
        return decoded

    def read_messages(self, stream_name: str, count: int = 10, block_ms: int = 5000) -> list[StreamMessage]:
        """Entries never delivered to this group, waiting up to `block_ms`."""
        try:
            response = self.redis.xreadgroup(
                self.group_name,
                self.consumer_name,
                {stream_name: ">"},
                count=count,
                block=block_ms,
            )
        except redis.ResponseError as e:
            if "NOGROUP" in str(e):
                logger.error(f"Group {self.group_name} missing on {stream_name}, run ensure_whatsapp_streams")
            raise

        messages: list[StreamMessage] = []
        for _name, entries in response or []:
            messages.extend(self._decode(stream_name, entries))
        return messages

    def ack(self, stream_name: str, message_id: str) -> int:
        return self.redis.xack(stream_name, self.group_name, message_id)

    def get_pending(self, stream_name: str, min_idle_ms: int = 60000, count: int = 100) -> list[PendingEntry]:
        """Unacknowledged entries idle for at least `min_idle_ms`."""
        try:
            summary = self.redis.xpending(stream_name, self.group_name)
            if not summary or not summary.get("pending"):
                return []
            rows = self.redis.xpending_range(stream_name, self.group_name, min="-", max="+", count=count)
        except redis.ResponseError as e:
            logger.warning(f"XPENDING failed on {stream_name}: {e}")
            return []

        stale = [
            PendingEntry(
                message_id=row["message_id"],
                consumer=row["consumer"],
                idle_ms=row["time_since_delivered"],
                deliveries=row["times_delivered"],
            )
            for row in rows
        ]
        return [entry for entry in stale if entry.idle_ms >= min_idle_ms]

    def claim_messages(self, stream_name: str, message_ids: list[str], min_idle_ms: int = 60000) -> list[StreamMessage]:
        """Take ownership of pending entries. Entries trimmed from the stream are skipped."""
        if not message_ids:
            return []
        try:
            claimed = self.redis.xclaim(stream_name, self.group_name, self.consumer_name, min_idle_ms, message_ids)
        except redis.ResponseError as e:
            logger.error(f"XCLAIM failed on {stream_name}: {e}")
            return []
        return self._decode(stream_name, [(msg_id, fields) for msg_id, fields in claimed if fields])

    def reclaim_pending(
        self,
        stream_name: str,
        min_idle_ms: int = 60000,
        count: int = 100,
    ) -> list[tuple[str, EventEnvelope, int]]:
        """
        Claim stale entries for this consumer.

        Returns:
            (message_id, envelope, delivery_count) for each claimed entry
        """
        pending = self.get_pending(stream_name, min_idle_ms, count)
        if not pending:
            return []

        deliveries = {entry.message_id: entry.deliveries for entry in pending}
        claimed = self.claim_messages(stream_name, list(deliveries), min_idle_ms)
        return [(msg_id, envelope, deliveries.get(msg_id, 1)) for msg_id, envelope in claimed]
