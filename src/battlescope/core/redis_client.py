"""
Redis connection factory.

One asyncio client is shared by the ruleset cache, the invalidation
publisher and the enrichment queue. Socket timeouts keep every Redis call
bounded; blocking queue reads use a server-side timeout shorter than the
socket timeout.
"""

from __future__ import annotations

from typing import Optional

import redis.asyncio as aioredis

from .config import get_settings

DEFAULT_SOCKET_TIMEOUT = 30.0
DEFAULT_CONNECT_TIMEOUT = 5.0


def create_redis_client(url: Optional[str] = None) -> aioredis.Redis:
    """
    Create an asyncio Redis client with string responses.

    Args:
        url: Redis URL. Defaults to the configured BATTLESCOPE_REDIS_URL.
    """
    return aioredis.from_url(
        url or get_settings().redis_url,
        decode_responses=True,
        socket_timeout=DEFAULT_SOCKET_TIMEOUT,
        socket_connect_timeout=DEFAULT_CONNECT_TIMEOUT,
        health_check_interval=30,
    )
