"""
Clusterer batch service.

Pulls unprocessed killmails from the store, clusters them and persists the
resulting battles. Each battle is written in one transaction together with
the processed marks of its member killmails, so a crash mid-batch leaves
the remaining killmails unprocessed for the next run.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from ...core.formatters import format_datetime
from ...core.lifecycle import wait_for_stop
from ...core.logging import get_logger
from .engine import ClusteringEngine

if TYPE_CHECKING:
    from ..killmail_store import KillmailStore
    from .system_security import SecurityStatusLookup

logger = get_logger(__name__)


@dataclass
class ClustererStats:
    battles: int = 0
    processed_killmails: int = 0
    ignored: int = 0

    def to_dict(self) -> dict:
        return {
            "battles": self.battles,
            "processed_killmails": self.processed_killmails,
            "ignored": self.ignored,
        }


class ClustererService:
    """
    Batch driver around ClusteringEngine.

    Args:
        store: Killmail store
        engine: Configured clustering engine
        processing_delay_minutes: Only cluster killmails at least this old,
            giving late-arriving kills a chance to join their battle
        security: Optional security status lookup; without it known-space
            battles are classified as SecurityType.KSPACE
    """

    def __init__(
        self,
        store: KillmailStore,
        engine: ClusteringEngine,
        processing_delay_minutes: int = 30,
        security: Optional[SecurityStatusLookup] = None,
    ):
        self.store = store
        self.engine = engine
        self.processing_delay_minutes = processing_delay_minutes
        self.security = security

    async def process_batch(self, limit: int) -> ClustererStats:
        """
        Cluster one batch of unprocessed killmails.

        Args:
            limit: Maximum killmails to read

        Returns:
            Counts of battles created and killmails consumed
        """
        killmails = await self.store.fetch_unprocessed(limit, self.processing_delay_minutes)
        if not killmails:
            return ClustererStats()

        logger.info(
            "Processing %d killmails (%s to %s)",
            len(killmails),
            format_datetime(killmails[0].occurred_at),
            format_datetime(killmails[-1].occurred_at),
        )

        security_status = None
        if self.security is not None:
            security_status = await self.security.get_security_statuses(
                {killmail.system_id for killmail in killmails}
            )

        result = self.engine.cluster(killmails, security_status=security_status)

        for plan in result.battles:
            await self.store.create_battle(plan)
            logger.info(
                "Created battle %s in system %d: %d kills, %d participants",
                plan.battle.id,
                plan.battle.system_id,
                plan.battle.total_kills,
                len(plan.participants),
            )

        if result.ignored_killmail_ids:
            await self.store.mark_processed(result.ignored_killmail_ids, None)
            logger.info("Ignored %d killmails below threshold", len(result.ignored_killmail_ids))

        return ClustererStats(
            battles=len(result.battles),
            processed_killmails=len(killmails),
            ignored=len(result.ignored_killmail_ids),
        )

    async def run_forever(
        self,
        interval_ms: int,
        batch_size: int,
        stop_event: asyncio.Event,
    ) -> None:
        """
        Process batches until stop_event is set.

        Batch errors are logged and retried after the interval.
        """
        logger.info(
            "Clusterer started (interval=%dms, batch=%d, delay=%dmin)",
            interval_ms,
            batch_size,
            self.processing_delay_minutes,
        )
        while not stop_event.is_set():
            try:
                stats = await self.process_batch(batch_size)
                if stats.battles:
                    logger.info("Batch complete: %s", stats.to_dict())
            except Exception:
                logger.exception("Clusterer batch failed")

            if await wait_for_stop(stop_event, interval_ms / 1000):
                break

        logger.info("Clusterer stopped")
