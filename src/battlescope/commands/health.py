"""
BattleScope Health Command
"""

from __future__ import annotations

import argparse

from ..core.config import get_settings


def cmd_health_serve(args: argparse.Namespace) -> dict:
    """Serve GET /healthz until interrupted."""
    import uvicorn

    from ..core.http_client import create_http_client
    from ..core.redis_client import create_redis_client
    from ..services.health import cache_check, create_health_app, database_check, upstream_check
    from ..services.killmail_store import SQLiteKillmailStore

    settings = get_settings()
    store = SQLiteKillmailStore()
    redis = create_redis_client()
    client = create_http_client(read_timeout=5.0)
    initialized = False

    async def database() -> None:
        nonlocal initialized
        if not initialized:
            await store.initialize()
            initialized = True
        await store.ping()

    checks = {"database": database, "cache": cache_check(redis)}
    if not args.no_upstream:
        checks["upstream"] = upstream_check(client, settings.redisq_url)

    async def shutdown() -> None:
        await client.aclose()
        await redis.aclose()
        if initialized:
            await store.close()

    app = create_health_app(checks, on_shutdown=shutdown)
    uvicorn.run(
        app,
        host=args.host or settings.health_host,
        port=args.port or settings.health_port,
        log_level=settings.log_level.lower(),
    )
    return {}


def register_parsers(subparsers: argparse._SubParsersAction) -> None:
    """Register health command parsers."""

    health_parser = subparsers.add_parser("health", help="Health endpoint")
    health_subparsers = health_parser.add_subparsers(
        dest="health_command",
        help="Health commands",
    )

    serve_parser = health_subparsers.add_parser("serve", help="Serve GET /healthz")
    serve_parser.add_argument("--host", help="Bind address (default: BATTLESCOPE_HEALTH_HOST)")
    serve_parser.add_argument("--port", type=int, help="Port (default: BATTLESCOPE_HEALTH_PORT)")
    serve_parser.add_argument(
        "--no-upstream",
        action="store_true",
        help="Skip the RedisQ feed check",
    )
    serve_parser.set_defaults(func=cmd_health_serve)
