"""
HTTP client factory for upstream APIs (RedisQ, zKillboard, ESI).
"""

from __future__ import annotations

from typing import Optional

import httpx

from .config import get_settings


def create_http_client(
    read_timeout: Optional[float] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """
    Create an AsyncClient with bounded timeouts and the configured User-Agent.

    Args:
        read_timeout: Read timeout in seconds. Defaults to the configured
            upstream timeout, which must exceed the RedisQ long-poll wait.
        transport: Optional transport override (tests use httpx.MockTransport)
    """
    settings = get_settings()
    read = read_timeout if read_timeout is not None else settings.upstream_timeout_seconds
    # follow_redirects required: /listen.php redirects to /object.php
    return httpx.AsyncClient(
        timeout=httpx.Timeout(connect=10.0, read=read, write=10.0, pool=10.0),
        headers={
            "User-Agent": settings.user_agent,
            "Accept": "application/json",
        },
        follow_redirects=True,
        transport=transport,
    )
