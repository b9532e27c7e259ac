"""
WhatsApp Redis Streams

Producer and consumer for WhatsApp events via Redis Streams.
"""

from seven_whatsapp.streams.consumer import WhatsAppStreamConsumer
from seven_whatsapp.streams.groups import (
    DLQ_STREAM,
    INBOUND_STREAM,
    WHATSAPP_GROUP,
    STREAMS,
    StreamSpec,
    describe_streams,
    ensure_whatsapp_streams,
    get_pending_count,
    get_stream_info,
)
from seven_whatsapp.streams.producer import WhatsAppStreamProducer

__all__ = [
    "DLQ_STREAM",
    "INBOUND_STREAM",
    "WHATSAPP_GROUP",
    "STREAMS",
    "StreamSpec",
    "WhatsAppStreamConsumer",
    "WhatsAppStreamProducer",
    "describe_streams",
    "ensure_whatsapp_streams",
    "get_pending_count",
    "get_stream_info",
]
