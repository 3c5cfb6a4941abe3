"""
Health endpoint.

``GET /healthz`` runs every registered dependency check and reports
``ok`` when all pass, ``degraded`` (HTTP 503) otherwise.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, Optional

import httpx
from fastapi import FastAPI
from fastapi.responses import JSONResponse

from ..core.constants import REDISQ_URL
from ..core.logging import get_logger

if TYPE_CHECKING:
    from redis import asyncio as aioredis

    from .killmail_store import KillmailStore

logger = get_logger(__name__)

HealthCheck = Callable[[], Awaitable[Any]]

DEFAULT_CHECK_TIMEOUT_SECONDS = 2.0
# Shortest long-poll wait RedisQ accepts
UPSTREAM_CHECK_TTW_SECONDS = 1


# =============================================================================
# Check Builders
# =============================================================================


def database_check(store: KillmailStore) -> HealthCheck:
    async def check() -> None:
        await store.ping()

    return check


def cache_check(redis: aioredis.Redis) -> HealthCheck:
    async def check() -> None:
        await redis.ping()

    return check


def upstream_check(client: httpx.AsyncClient, url: str = REDISQ_URL) -> HealthCheck:
    """Check that the RedisQ feed answers. No queue id is sent, so no package is consumed."""

    async def check() -> None:
        response = await client.head(url, params={"ttw": UPSTREAM_CHECK_TTW_SECONDS})
        if response.is_error:
            raise RuntimeError(f"{url} returned HTTP {response.status_code}")

    return check


async def run_checks(
    checks: Mapping[str, HealthCheck],
    timeout: float = DEFAULT_CHECK_TIMEOUT_SECONDS,
) -> dict[str, Any]:
    """
    Run all checks concurrently.

    Returns:
        ``{"status": "ok"|"degraded", "checks": {name: {"status": ...}}}``
    """

    async def run_one(name: str, check: HealthCheck) -> tuple[str, dict[str, str]]:
        try:
            await asyncio.wait_for(check(), timeout=timeout)
        except Exception as e:
            logger.warning("Health check %s failed: %s", name, e)
            return name, {"status": "error", "error": str(e) or type(e).__name__}
        return name, {"status": "ok"}

    results = await asyncio.gather(*(run_one(name, check) for name, check in checks.items()))
    report = dict(results)
    healthy = all(result["status"] == "ok" for result in report.values())
    return {"status": "ok" if healthy else "degraded", "checks": report}


# =============================================================================
# Application
# =============================================================================


def create_health_app(
    checks: Mapping[str, HealthCheck],
    on_shutdown: Optional[Callable[[], Awaitable[None]]] = None,
    timeout: float = DEFAULT_CHECK_TIMEOUT_SECONDS,
) -> FastAPI:
    """
    Build the health application.

    Args:
        checks: Named dependency checks; each raises on failure
        on_shutdown: Awaited when the application stops (close clients here)
        timeout: Per-check timeout in seconds
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Health endpoint started (checks: %s)", ", ".join(checks) or "none")
        yield
        if on_shutdown is not None:
            await on_shutdown()
        logger.info("Health endpoint stopped")

    app = FastAPI(title="BattleScope health", lifespan=lifespan)

    @app.get("/healthz")
    async def healthz() -> JSONResponse:
        report = await run_checks(checks, timeout=timeout)
        status_code = 200 if report["status"] == "ok" else 503
        return JSONResponse(report, status_code=status_code)

    return app
