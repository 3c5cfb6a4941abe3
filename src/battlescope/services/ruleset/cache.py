"""
Ruleset read-through cache.

The active ruleset is cached in Redis under a TTL. Operators that change
the ruleset publish on the invalidation channel; every ingestion process
subscribed to that channel drops its cached copy and reloads from the
store, so all instances converge on the new ruleset within one round trip.

If Redis is unreachable the cache reads the store directly on every call.
Redis failures are logged as warnings and never reach the caller.
"""

from __future__ import annotations

import asyncio
import inspect
import json
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Optional, Protocol, Union

from redis.exceptions import RedisError

from ...core.formatters import get_utc_timestamp
from ...core.logging import get_logger
from ...models import Ruleset

if TYPE_CHECKING:
    import redis.asyncio as aioredis

    from ..killmail_store import KillmailStore

logger = get_logger(__name__)

RULESET_CACHE_KEY = "battlescope:ruleset:active"
RULESET_INVALIDATION_CHANNEL = "battlescope:ruleset:invalidate"

DEFAULT_TTL_SECONDS = 300
LISTENER_POLL_SECONDS = 1.0
LISTENER_RECONNECT_SECONDS = 5.0

# Connection refused and socket errors surface as OSError subclasses
CACHE_ERRORS = (RedisError, OSError)

RulesetListener = Callable[[Ruleset], Union[Awaitable[None], None]]


class RulesetCache(Protocol):
    """Capability interface injected into ingestion."""

    async def get(self) -> Ruleset: ...

    async def invalidate(self) -> None: ...

    async def close(self) -> None: ...


class RedisRulesetCache:
    """
    Redis-backed ruleset cache with pub/sub invalidation.

    Args:
        store: Durable store holding the active ruleset
        redis: Shared asyncio Redis client
        ttl_seconds: Lifetime of the cached copy
    """

    def __init__(
        self,
        store: KillmailStore,
        redis: aioredis.Redis,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
    ):
        self.store = store
        self.redis = redis
        self.ttl_seconds = ttl_seconds
        self._listeners: list[RulesetListener] = []
        self._pubsub: Optional[aioredis.client.PubSub] = None
        self._listener_task: Optional[asyncio.Task] = None

    async def get(self) -> Ruleset:
        """Return the active ruleset, preferring the cached copy."""
        try:
            cached = await self.redis.get(RULESET_CACHE_KEY)
        except CACHE_ERRORS as e:
            logger.warning("Ruleset cache unavailable, reading store directly: %s", e)
            return await self.store.get_active_ruleset()

        if cached:
            try:
                return Ruleset.from_dict(json.loads(cached))
            except (ValueError, TypeError) as e:
                logger.warning("Discarding unreadable cached ruleset: %s", e)

        logger.debug("Ruleset cache miss, loading from store")
        ruleset = await self.store.get_active_ruleset()

        try:
            await self.redis.set(
                RULESET_CACHE_KEY,
                json.dumps(ruleset.to_dict()),
                ex=self.ttl_seconds,
            )
        except CACHE_ERRORS as e:
            logger.warning("Could not populate ruleset cache: %s", e)

        return ruleset

    async def invalidate(self) -> None:
        try:
            await self.redis.delete(RULESET_CACHE_KEY)
            logger.info("Invalidated ruleset cache")
        except CACHE_ERRORS as e:
            logger.warning("Could not invalidate ruleset cache: %s", e)

    def subscribe(self, listener: RulesetListener) -> None:
        """
        Register a callback receiving the reloaded ruleset after each invalidation.

        Callbacks may be plain functions or coroutines.
        """
        self._listeners.append(listener)

    # -------------------------------------------------------------------------
    # Invalidation listener
    # -------------------------------------------------------------------------

    async def start_invalidation_listener(self) -> None:
        """Subscribe to the invalidation channel on a dedicated pub/sub connection."""
        if self._listener_task is not None:
            return

        self._pubsub = self.redis.pubsub()
        try:
            await self._pubsub.subscribe(RULESET_INVALIDATION_CHANNEL)
        except CACHE_ERRORS as e:
            # Falls back to TTL expiry until the listener reconnects
            logger.warning("Could not subscribe to ruleset invalidation: %s", e)
        else:
            logger.info("Subscribed to ruleset invalidation channel")

        self._listener_task = asyncio.create_task(
            self._listen(), name="ruleset-invalidation-listener"
        )

    async def _listen(self) -> None:
        assert self._pubsub is not None
        while True:
            try:
                if not self._pubsub.subscribed:
                    await self._pubsub.subscribe(RULESET_INVALIDATION_CHANNEL)
                message = await self._pubsub.get_message(
                    ignore_subscribe_messages=True,
                    timeout=LISTENER_POLL_SECONDS,
                )
            except CACHE_ERRORS as e:
                logger.warning("Ruleset invalidation listener error: %s", e)
                await asyncio.sleep(LISTENER_RECONNECT_SECONDS)
                continue

            if message is None or message.get("type") != "message":
                continue

            try:
                await self.handle_invalidation(message.get("data"))
            except Exception:
                logger.exception("Failed to reload ruleset after invalidation")

    async def handle_invalidation(self, message: Optional[str] = None) -> Ruleset:
        """
        Drop the cached ruleset, reload it and notify listeners.

        Returns:
            The freshly loaded ruleset
        """
        logger.info("Received ruleset invalidation (%s)", message)
        await self.invalidate()
        ruleset = await self.get()

        for listener in list(self._listeners):
            try:
                result = listener(ruleset)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Ruleset listener failed")

        return ruleset

    async def close(self) -> None:
        """Stop the listener and release the pub/sub connection."""
        if self._listener_task is not None:
            self._listener_task.cancel()
            try:
                await self._listener_task
            except asyncio.CancelledError:
                pass
            self._listener_task = None

        if self._pubsub is not None:
            try:
                await self._pubsub.aclose()
            except CACHE_ERRORS as e:
                logger.warning("Error closing ruleset pub/sub connection: %s", e)
            self._pubsub = None


class StoreRulesetCache:
    """
    Cache-less RulesetCache that always reads the store.

    Used when no Redis URL is reachable at startup and by tools that run
    once (backfill).
    """

    def __init__(self, store: KillmailStore):
        self.store = store

    async def get(self) -> Ruleset:
        return await self.store.get_active_ruleset()

    async def invalidate(self) -> None:
        return None

    async def close(self) -> None:
        return None


async def publish_ruleset_invalidation(redis: aioredis.Redis) -> int:
    """
    Tell every subscribed cache to reload the ruleset.

    Must be called after every ruleset write.

    Returns:
        Number of subscribers that received the message
    """
    count = await redis.publish(RULESET_INVALIDATION_CHANNEL, get_utc_timestamp())
    logger.info("Published ruleset invalidation to %d subscriber(s)", count)
    return count
