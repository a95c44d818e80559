"""
Redis pub/sub for ingestion events, or a silent no-op when FF_USE_REDIS is off.

Events are JSON envelopes: {"type": ..., "data": ..., "sent_at": ISO-8601}.
Publishing never raises; a broken Redis only costs a warning in the log.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any

from .config import get_settings
from .flags import get_flags

logger = logging.getLogger(__name__)

DOCUMENTS_CHANNEL = "documents"

_redis_client = None


def encode_event(event_type: str, data: Any = None) -> str:
    return json.dumps(
        {"type": event_type, "data": data, "sent_at": datetime.now(timezone.utc).isoformat()},
        ensure_ascii=False,
    )


async def _get_redis():
    global _redis_client
    if _redis_client is None:
        import redis.asyncio as aioredis

        _redis_client = aioredis.from_url(
            get_settings().redis_url, decode_responses=True, socket_connect_timeout=5
        )
    return _redis_client


async def publish(channel: str, event_type: str, data: Any = None) -> None:
    if not get_flags().use_redis:
        return

    try:
        client = await _get_redis()
        await client.publish(channel, encode_event(event_type, data))
    except Exception as e:
        logger.warning("Redis publish of %s failed (channel=%s): %s", event_type, channel, e)


async def close_redis() -> None:
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("Redis connection closed")
