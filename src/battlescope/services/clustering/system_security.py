"""
Security status lookup for known-space systems.

Statuses come from ESI's universe system endpoint and are cached in Redis
for a day. Wormhole and Pochven systems are classified by id range and are
never looked up.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from typing import TYPE_CHECKING, Optional, Protocol

import httpx
from redis.exceptions import RedisError

from ...core.constants import ESI_SYSTEM_URL
from ...core.errors import UpstreamError
from ...core.http_client import create_http_client
from ...core.logging import get_logger
from ...core.retry import http_retry, raise_for_upstream_status
from .security import derive_space_type

if TYPE_CHECKING:
    import redis.asyncio as aioredis

logger = get_logger(__name__)

SYSTEM_SECURITY_KEY_PREFIX = "battlescope:system:security:"
SYSTEM_SECURITY_TTL_SECONDS = 24 * 60 * 60
MAX_CONCURRENT_LOOKUPS = 8

CACHE_ERRORS = (RedisError, OSError)


class SecurityStatusLookup(Protocol):
    """Capability interface injected into the clusterer."""

    async def get_security_statuses(self, system_ids: Iterable[int]) -> dict[int, float]: ...


@http_retry()
async def fetch_system_security(client: httpx.AsyncClient, system_id: int) -> float:
    """
    Fetch the raw security status of a system from ESI.

    Raises:
        UpstreamError: For a non-2xx response or a body without security_status
    """
    response = await client.get(ESI_SYSTEM_URL.format(system_id=system_id))
    raise_for_upstream_status(response, "ESI")
    data = response.json()
    status = data.get("security_status") if isinstance(data, dict) else None
    if not isinstance(status, (int, float)):
        raise UpstreamError(f"ESI system {system_id} has no security_status")
    return float(status)


class SystemSecurityResolver:
    """
    Resolves system ids to security status.

    Args:
        redis: Optional shared Redis client used as a cross-process cache
        client: Shared HTTP client; one is created (and owned) if omitted
    """

    def __init__(
        self,
        redis: Optional[aioredis.Redis] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.redis = redis
        self._client = client or create_http_client()
        self._owns_client = client is None
        self._known: dict[int, float] = {}
        self._semaphore = asyncio.Semaphore(MAX_CONCURRENT_LOOKUPS)

    async def get_security_status(self, system_id: int) -> Optional[float]:
        """
        Return the security status of a known-space system.

        Returns:
            The status, or None for wormhole/Pochven systems and failed lookups
        """
        if derive_space_type(system_id) != "kspace":
            return None
        if system_id in self._known:
            return self._known[system_id]

        key = f"{SYSTEM_SECURITY_KEY_PREFIX}{system_id}"
        cached = await self._cache_get(key)
        if cached is not None:
            self._known[system_id] = cached
            return cached

        try:
            async with self._semaphore:
                status = await fetch_system_security(self._client, system_id)
        except (UpstreamError, httpx.HTTPError, ValueError) as e:
            logger.warning("Could not resolve security of system %d: %s", system_id, e)
            return None

        self._known[system_id] = status
        await self._cache_set(key, status)
        return status

    async def get_security_statuses(self, system_ids: Iterable[int]) -> dict[int, float]:
        """Resolve many systems concurrently, omitting any that did not resolve."""
        unique = sorted(set(system_ids))
        statuses = await asyncio.gather(*(self.get_security_status(s) for s in unique))
        return {
            system_id: status
            for system_id, status in zip(unique, statuses)
            if status is not None
        }

    async def _cache_get(self, key: str) -> Optional[float]:
        if self.redis is None:
            return None
        try:
            cached = await self.redis.get(key)
        except CACHE_ERRORS as e:
            logger.warning("System security cache read failed: %s", e)
            return None
        if cached is None:
            return None
        try:
            return float(cached)
        except ValueError:
            logger.warning("Discarding unreadable cached security for %s", key)
            return None

    async def _cache_set(self, key: str, status: float) -> None:
        if self.redis is None:
            return
        try:
            await self.redis.set(key, repr(status), ex=SYSTEM_SECURITY_TTL_SECONDS)
        except CACHE_ERRORS as e:
            logger.warning("System security cache write failed: %s", e)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
