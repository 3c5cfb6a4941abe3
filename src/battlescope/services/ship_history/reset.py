"""
Ship-history rebuild job.

Regenerates the pilot_ship_history table from succeeded enrichments. A full
reset truncates the table first; an incremental reset only replaces rows
for killmails that occurred at or after ``from_date``. Work proceeds in
killmail-id order, one batch at a time, so a failed run keeps the batches
it completed and can be resumed with an incremental reset.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from ...core.formatters import format_datetime
from ...core.logging import get_logger
from .processor import ShipHistoryProcessor

if TYPE_CHECKING:
    from ..killmail_store import KillmailStore

logger = get_logger(__name__)

DEFAULT_BATCH_SIZE = 1000


class ResetMode(str, Enum):
    FULL = "full"
    INCREMENTAL = "incremental"


@dataclass(frozen=True)
class ResetOptions:
    """
    Raises:
        ValueError: For an incremental reset without from_date, or a batch size below 1
    """

    mode: ResetMode = ResetMode.FULL
    from_date: Optional[datetime] = None
    batch_size: int = DEFAULT_BATCH_SIZE

    def __post_init__(self) -> None:
        object.__setattr__(self, "mode", ResetMode(self.mode))
        if self.mode is ResetMode.INCREMENTAL and self.from_date is None:
            raise ValueError("Incremental reset requires from_date")
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {self.batch_size}")


@dataclass(frozen=True)
class ResetProgress:
    processed: int
    total: int
    percentage: int


@dataclass
class ResetResult:
    success: bool
    processed: int
    records_created: int
    duration_ms: int
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "success": self.success,
            "processed": self.processed,
            "records_created": self.records_created,
            "duration_ms": self.duration_ms,
        }
        if self.error is not None:
            result["error"] = self.error
        return result


ProgressCallback = Callable[[ResetProgress], None]


class ShipHistoryResetService:
    """Rebuilds pilot ship history from stored enrichments."""

    def __init__(
        self,
        store: KillmailStore,
        processor: Optional[ShipHistoryProcessor] = None,
    ):
        self.store = store
        self.processor = processor or ShipHistoryProcessor()

    async def execute(
        self,
        options: ResetOptions,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ResetResult:
        """
        Run a reset job.

        Never raises for store or payload failures: the result carries
        ``success=False``, the partial counts and the error message.

        Args:
            options: Mode, optional from_date and batch size
            on_progress: Called after each batch

        Returns:
            ResetResult
        """
        started = time.monotonic()
        processed = 0
        records_created = 0

        def elapsed_ms() -> int:
            return int((time.monotonic() - started) * 1000)

        try:
            total = await self.store.count_succeeded_enrichments(options.from_date)
            logger.info(
                "Starting ship history reset (mode=%s, from=%s, total=%d)",
                options.mode.value,
                format_datetime(options.from_date) if options.from_date else "-",
                total,
            )

            if options.mode is ResetMode.FULL:
                deleted = await self.store.truncate_ship_history()
                logger.info("Truncated pilot ship history (%d rows)", deleted)
            else:
                assert options.from_date is not None
                deleted = await self.store.delete_ship_history_from(options.from_date)
                logger.info("Deleted %d ship history rows from %s", deleted, options.from_date)

            if total == 0:
                return ResetResult(
                    success=True, processed=0, records_created=0, duration_ms=elapsed_ms()
                )

            cursor: Optional[int] = None
            while True:
                enrichments = await self.store.list_succeeded_enrichments(
                    cursor, options.batch_size, options.from_date
                )
                if not enrichments:
                    break

                killmails = await self.store.find_killmails_by_ids(
                    [e.killmail_id for e in enrichments]
                )
                by_id = {e.killmail_id: e for e in enrichments}
                rows = self.processor.process_batch(killmails, by_id)

                if rows:
                    records_created += await self.store.insert_ship_history_batch(rows)

                processed += len(enrichments)
                cursor = enrichments[-1].killmail_id

                progress = ResetProgress(
                    processed=processed,
                    total=total,
                    percentage=round(processed / total * 100),
                )
                if on_progress is not None:
                    on_progress(progress)
                logger.debug(
                    "Reset progress: %d/%d (%d%%), %d rows",
                    processed,
                    total,
                    progress.percentage,
                    records_created,
                )

            duration_ms = elapsed_ms()
            logger.info(
                "Ship history reset complete: %d enrichments, %d rows in %dms",
                processed,
                records_created,
                duration_ms,
            )
            return ResetResult(
                success=True,
                processed=processed,
                records_created=records_created,
                duration_ms=duration_ms,
            )

        except Exception as e:
            logger.error(
                "Ship history reset failed after %d enrichments (%d rows): %s",
                processed,
                records_created,
                e,
                exc_info=True,
            )
            return ResetResult(
                success=False,
                processed=processed,
                records_created=records_created,
                duration_ms=elapsed_ms(),
                error=str(e),
            )

    async def get_stats(self) -> dict[str, int]:
        return {"record_count": await self.store.count_ship_history()}
