"""
Shared wiring for long-running commands: store and Redis lifetimes.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from redis import asyncio as aioredis

from ..core.lifecycle import install_signal_handlers
from ..core.redis_client import create_redis_client
from ..services.killmail_store import SQLiteKillmailStore


@asynccontextmanager
async def open_store() -> AsyncIterator[SQLiteKillmailStore]:
    """Open (and migrate) the configured SQLite store."""
    store = SQLiteKillmailStore()
    await store.initialize()
    try:
        yield store
    finally:
        await store.close()


@asynccontextmanager
async def open_redis() -> AsyncIterator[aioredis.Redis]:
    redis = create_redis_client()
    try:
        yield redis
    finally:
        await redis.aclose()


def new_stop_event() -> asyncio.Event:
    """Create a stop event set by SIGINT/SIGTERM. Must run inside the event loop."""
    stop_event = asyncio.Event()
    install_signal_handlers(stop_event)
    return stop_event
