"""
BattleScope Pipeline Commands

Long-running workers (ingest, enrich, cluster) and the historical backfill.
Workers run in the foreground until SIGINT/SIGTERM.
"""

from __future__ import annotations

import argparse
import asyncio
from datetime import date

from ..core.config import get_settings
from ..core.formatters import get_utc_timestamp
from ..core.http_client import create_http_client
from ..core.logging import get_logger
from .runtime import new_stop_event, open_redis, open_store

logger = get_logger(__name__)


# =============================================================================
# Ingestion
# =============================================================================


def cmd_ingest(args: argparse.Namespace) -> dict:
    """
    Stream killmails from RedisQ into the store.

    Runs as a foreground process. Use Ctrl+C to stop.
    """
    from ..services.enrichment import RedisEnrichmentQueue
    from ..services.ingest import IngestionService, RedisQSource
    from ..services.ruleset import RedisRulesetCache

    settings = get_settings()
    poll_interval_ms = args.poll_interval_ms or settings.ingest_poll_interval_ms

    async def run() -> dict:
        stop_event = new_stop_event()
        async with open_store() as store, open_redis() as redis:
            rulesets = RedisRulesetCache(store, redis, ttl_seconds=settings.ruleset_cache_ttl_seconds)
            await rulesets.start_invalidation_listener()
            source = RedisQSource(queue_id=args.queue_id)
            service = IngestionService(
                store,
                source,
                rulesets,
                enrichment_queue=None if args.no_enrich else RedisEnrichmentQueue(redis),
            )
            try:
                await service.run_forever(poll_interval_ms, stop_event)
            finally:
                await rulesets.close()
            return {
                "status": "stopped",
                "queue_id": source.queue_id,
                "stats": service.stats.to_dict(),
                "query_timestamp": get_utc_timestamp(),
            }

    return asyncio.run(run())


def cmd_backfill(args: argparse.Namespace) -> dict:
    """Ingest historical killmails for a date range."""
    from ..services.enrichment import RedisEnrichmentQueue
    from ..services.ingest import (
        EsiKillmailFetcher,
        IngestionService,
        ZKillboardHistoryClient,
        backfill,
    )
    from ..services.ruleset import RedisRulesetCache

    try:
        start = date.fromisoformat(args.start)
        end = date.fromisoformat(args.end) if args.end else start
    except ValueError as e:
        return {"error": "invalid_argument", "message": f"Invalid date: {e}"}

    if end < start:
        return {"error": "invalid_argument", "message": "--end is before --start"}

    settings = get_settings()

    async def run() -> dict:
        stop_event = new_stop_event()
        async with open_store() as store, open_redis() as redis, create_http_client() as client:
            rulesets = RedisRulesetCache(store, redis, ttl_seconds=settings.ruleset_cache_ttl_seconds)
            service = IngestionService(
                store,
                _NullSource(),
                rulesets,
                enrichment_queue=None if args.no_enrich else RedisEnrichmentQueue(redis),
            )
            history = ZKillboardHistoryClient(client=client)
            stats = await backfill(
                service,
                history,
                EsiKillmailFetcher(client=client),
                start,
                end,
                stop_event=stop_event,
            )
            return {
                "start": start.isoformat(),
                "end": end.isoformat(),
                "stats": stats.to_dict(),
                "query_timestamp": get_utc_timestamp(),
            }

    return asyncio.run(run())


class _NullSource:
    """Backfill admits events directly; the live feed is never pulled."""

    async def pull(self):
        return None

    async def aclose(self) -> None:
        return None


# =============================================================================
# Enrichment
# =============================================================================


def cmd_enrich_worker(args: argparse.Namespace) -> dict:
    """Consume the enrichment queue."""
    from ..services.enrichment import (
        EnrichmentService,
        EnrichmentWorker,
        RedisEnrichmentQueue,
        ZKillboardDetailSource,
    )

    settings = get_settings()
    concurrency = args.concurrency or settings.enrichment_concurrency

    async def run() -> dict:
        stop_event = new_stop_event()
        async with open_store() as store, open_redis() as redis, create_http_client() as client:
            queue = RedisEnrichmentQueue(redis)
            recovered = await queue.recover_inflight()
            service = EnrichmentService(
                store,
                ZKillboardDetailSource(client=client),
                throttle_ms=settings.enrichment_throttle_ms,
            )
            worker = EnrichmentWorker(queue, service, concurrency=concurrency)
            await worker.run_forever(stop_event)
            return {
                "status": "stopped",
                "recovered": recovered,
                "stats": worker.stats.to_dict(),
                "query_timestamp": get_utc_timestamp(),
            }

    return asyncio.run(run())


def cmd_enrich_requeue_failed(args: argparse.Namespace) -> dict:
    """Re-enqueue every failed enrichment and clear the dead-letter list."""
    from ..services.enrichment import RedisEnrichmentQueue, requeue_failed

    async def run() -> dict:
        async with open_store() as store, open_redis() as redis:
            queue = RedisEnrichmentQueue(redis)
            requeued = await requeue_failed(store, queue, limit=args.limit)
            cleared = await queue.clear_dead_letters()
            return {
                "requeued": requeued,
                "dead_letters_cleared": cleared,
                "queue_size": await queue.size(),
                "query_timestamp": get_utc_timestamp(),
            }

    return asyncio.run(run())


# =============================================================================
# Clustering
# =============================================================================


def cmd_cluster(args: argparse.Namespace) -> dict:
    """Group unprocessed killmails into battles."""
    from ..services.clustering import (
        ClustererService,
        ClusteringEngine,
        ClusteringParameters,
        SystemSecurityResolver,
    )

    settings = get_settings()
    params = ClusteringParameters(
        window_minutes=settings.cluster_window_minutes,
        gap_max_minutes=settings.cluster_gap_max_minutes,
        min_kills=settings.cluster_min_kills,
    )
    batch_size = args.batch_size or settings.cluster_batch_size

    async def run() -> dict:
        async with open_store() as store, open_redis() as redis, create_http_client() as client:
            service = ClustererService(
                store,
                ClusteringEngine(params),
                processing_delay_minutes=settings.cluster_processing_delay_minutes,
                security=SystemSecurityResolver(redis=redis, client=client),
            )
            if args.once:
                stats = await service.process_batch(batch_size)
                return {"stats": stats.to_dict(), "query_timestamp": get_utc_timestamp()}

            stop_event = new_stop_event()
            await service.run_forever(settings.cluster_interval_ms, batch_size, stop_event)
            return {"status": "stopped", "query_timestamp": get_utc_timestamp()}

    return asyncio.run(run())


# =============================================================================
# Parser Registration
# =============================================================================


def register_parsers(subparsers: argparse._SubParsersAction) -> None:
    """Register pipeline command parsers."""

    # ingest
    ingest_parser = subparsers.add_parser(
        "ingest",
        help="Stream killmails from RedisQ",
    )
    ingest_parser.add_argument(
        "--queue-id",
        help="RedisQ queue identifier (default: BATTLESCOPE_REDISQ_QUEUE_ID or random)",
    )
    ingest_parser.add_argument(
        "--poll-interval-ms",
        type=int,
        help="Delay after an empty poll or an error",
    )
    ingest_parser.add_argument(
        "--no-enrich",
        action="store_true",
        help="Do not enqueue enrichment jobs",
    )
    ingest_parser.set_defaults(func=cmd_ingest)

    # backfill
    backfill_parser = subparsers.add_parser(
        "backfill",
        help="Ingest historical killmails from zKillboard history",
    )
    backfill_parser.add_argument("--start", required=True, help="First day (YYYY-MM-DD)")
    backfill_parser.add_argument("--end", help="Last day, inclusive (default: --start)")
    backfill_parser.add_argument(
        "--no-enrich",
        action="store_true",
        help="Do not enqueue enrichment jobs",
    )
    backfill_parser.set_defaults(func=cmd_backfill)

    # enrich
    enrich_parser = subparsers.add_parser(
        "enrich",
        help="Killmail enrichment",
    )
    enrich_subparsers = enrich_parser.add_subparsers(
        dest="enrich_command",
        help="Enrichment commands",
    )

    worker_parser = enrich_subparsers.add_parser(
        "worker",
        help="Consume the enrichment queue",
    )
    worker_parser.add_argument(
        "--concurrency",
        type=int,
        help="Simultaneous fetches (default: BATTLESCOPE_ENRICHMENT_CONCURRENCY)",
    )
    worker_parser.set_defaults(func=cmd_enrich_worker)

    requeue_parser = enrich_subparsers.add_parser(
        "requeue-failed",
        help="Re-enqueue failed enrichments",
    )
    requeue_parser.add_argument(
        "--limit",
        type=int,
        default=1000,
        help="Maximum killmails to requeue (default: 1000)",
    )
    requeue_parser.set_defaults(func=cmd_enrich_requeue_failed)

    # cluster
    cluster_parser = subparsers.add_parser(
        "cluster",
        help="Group unprocessed killmails into battles",
    )
    cluster_parser.add_argument(
        "--once",
        action="store_true",
        help="Process a single batch and exit",
    )
    cluster_parser.add_argument(
        "--batch-size",
        type=int,
        help="Events per batch (default: BATTLESCOPE_CLUSTER_BATCH_SIZE)",
    )
    cluster_parser.set_defaults(func=cmd_cluster)
