"""
Killmail enrichment: detail fetch, state tracking and the job queue worker.
"""

from .queue import EnrichmentJob, RedisEnrichmentQueue
from .service import EnrichmentService
from .source import EnrichmentSource, ZKillboardDetailSource, fetch_esi_killmail
from .worker import EnrichmentWorker, WorkerStats, requeue_failed

__all__ = [
    "EnrichmentJob",
    "EnrichmentService",
    "EnrichmentSource",
    "EnrichmentWorker",
    "RedisEnrichmentQueue",
    "WorkerStats",
    "ZKillboardDetailSource",
    "fetch_esi_killmail",
    "requeue_failed",
]
