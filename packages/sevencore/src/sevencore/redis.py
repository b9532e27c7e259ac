"""
Redis access shared by the webhook, the worker and the domain event publisher.

The client is created on first use so importing a module never opens a
connection.
"""

import functools
import logging
from typing import Any

import redis

from sevencore.settings import get_settings

logger = logging.getLogger(__name__)

DEFAULT_STREAM_MAX_LEN = 100_000


@functools.lru_cache()
def get_redis_client() -> redis.Redis:
    settings = get_settings()
    # socket_timeout must stay above the XREADGROUP block time
    return redis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
        socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
        health_check_interval=30,
    )


def ensure_stream_group(client: redis.Redis, stream_name: str, group_name: str, start_id: str = "0") -> bool:
    """
    Create `group_name` on `stream_name`, creating the stream too.

    Returns:
        True if the group was created, False if it already existed
    """
    try:
        client.xgroup_create(stream_name, group_name, id=start_id, mkstream=True)
    except redis.ResponseError as e:
        if "BUSYGROUP" not in str(e):
            raise
        return False
    logger.info(f"Created consumer group {group_name} on {stream_name}")
    return True


def to_stream_fields(data: dict[str, Any]) -> dict[str, str]:
    """Stream entries are flat string maps. None becomes an empty string."""
    return {key: "" if value is None else value if isinstance(value, str) else str(value) for key, value in data.items()}


def publish_to_stream(
    client: redis.Redis,
    stream_name: str,
    data: dict[str, Any],
    max_len: int | None = DEFAULT_STREAM_MAX_LEN,
) -> str:
    """XADD `data` to `stream_name`, trimming approximately to `max_len` entries."""
    fields = to_stream_fields(data)
    if max_len:
        return client.xadd(stream_name, fields, maxlen=max_len, approximate=True)
    return client.xadd(stream_name, fields)
