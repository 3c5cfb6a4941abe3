"""
Killmail ingestion: live RedisQ feed and historical backfill.
"""

from .backfill import (
    BackfillStats,
    EsiKillmailFetcher,
    ZKillboardHistoryClient,
    backfill,
)
from .service import IngestionResult, IngestionService, IngestStats
from .source import KillmailSource, RedisQSource, build_killmail_event

__all__ = [
    "BackfillStats",
    "EsiKillmailFetcher",
    "IngestStats",
    "IngestionResult",
    "IngestionService",
    "KillmailSource",
    "RedisQSource",
    "ZKillboardHistoryClient",
    "backfill",
    "build_killmail_event",
]
