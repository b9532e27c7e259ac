"""
Stream layout for the WhatsApp pipeline.

    seven:whatsapp:inbound   webhook -> worker (messages, connection updates)
    seven:whatsapp:dlq       entries the worker gave up on

Both streams are read by the `seven-whatsapp` consumer group.
"""

import logging
from dataclasses import dataclass
from typing import Any

import redis

from sevencore.redis import ensure_stream_group

logger = logging.getLogger(__name__)

INBOUND_STREAM = "seven:whatsapp:inbound"
DLQ_STREAM = "seven:whatsapp:dlq"

WHATSAPP_GROUP = "seven-whatsapp"


@dataclass(frozen=True)
class StreamSpec:
    name: str
    max_len: int
    start_id: str = "0"


STREAMS = (
    StreamSpec(INBOUND_STREAM, max_len=100_000),
    # Kept short: DLQ entries are inspected by hand and replayed
    StreamSpec(DLQ_STREAM, max_len=10_000),
)


def stream_max_len(stream_name: str) -> int:
    for spec in STREAMS:
        if spec.name == stream_name:
            return spec.max_len
    return 100_000


def ensure_whatsapp_streams(client: redis.Redis) -> None:
    """Create the WhatsApp streams and their consumer group if missing."""
    for spec in STREAMS:
        if ensure_stream_group(client, spec.name, WHATSAPP_GROUP, spec.start_id):
            logger.info(f"Initialized stream {spec.name}")


def get_pending_count(client: redis.Redis, stream_name: str, group_name: str = WHATSAPP_GROUP) -> int:
    try:
        summary = client.xpending(stream_name, group_name)
    except redis.ResponseError:
        return 0
    return summary.get("pending", 0) if summary else 0


def get_stream_info(client: redis.Redis, stream_name: str) -> dict[str, Any]:
    """Length, consumer groups and pending count of one stream."""
    try:
        info = client.xinfo_stream(stream_name)
        groups = client.xinfo_groups(stream_name)
    except redis.ResponseError:
        return {"stream": stream_name, "exists": False, "length": 0, "groups": [], "pending": 0}

    return {
        "stream": stream_name,
        "exists": True,
        "length": info.get("length", 0),
        "last_entry_id": (info.get("last-entry") or [None])[0],
        "groups": [g.get("name") for g in groups],
        "pending": get_pending_count(client, stream_name),
    }


def describe_streams(client: redis.Redis) -> list[dict[str, Any]]:
    return [get_stream_info(client, spec.name) for spec in STREAMS]
