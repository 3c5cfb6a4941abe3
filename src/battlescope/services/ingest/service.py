"""
Ingestion loop: feed -> ruleset filter -> store -> enrichment queue.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Optional, Protocol

from ...core.errors import UpstreamError
from ...core.lifecycle import wait_for_stop
from ...core.logging import get_logger
from ..ruleset import evaluate_ruleset

if TYPE_CHECKING:
    from ...models import KillmailEvent, Ruleset
    from ..killmail_store import KillmailStore
    from ..ruleset import RulesetCache
    from .source import KillmailSource

logger = get_logger(__name__)


class IngestionResult(str, Enum):
    STORED = "stored"
    DUPLICATE = "duplicate"
    REJECTED = "rejected"
    EMPTY = "empty"


class EnrichmentEnqueuer(Protocol):
    async def enqueue(self, killmail_id: int) -> None: ...


@dataclass
class IngestStats:
    stored: int = 0
    duplicate: int = 0
    rejected: int = 0
    empty: int = 0
    errors: int = 0
    enqueue_failures: int = 0
    rejected_by_reason: dict[str, int] = field(default_factory=dict)

    def record(self, result: IngestionResult) -> None:
        setattr(self, result.value, getattr(self, result.value) + 1)

    def to_dict(self) -> dict:
        return {
            "stored": self.stored,
            "duplicate": self.duplicate,
            "rejected": self.rejected,
            "empty": self.empty,
            "errors": self.errors,
            "enqueue_failures": self.enqueue_failures,
            "rejected_by_reason": dict(self.rejected_by_reason),
        }


class IngestionService:
    """
    Admits killmails from a source into the store.

    Args:
        store: Killmail store
        source: Feed to pull events from
        rulesets: Cache serving the active ruleset
        enrichment_queue: Receives one job per stored killmail; optional
    """

    def __init__(
        self,
        store: KillmailStore,
        source: KillmailSource,
        rulesets: RulesetCache,
        enrichment_queue: Optional[EnrichmentEnqueuer] = None,
    ):
        self.store = store
        self.source = source
        self.rulesets = rulesets
        self.enrichment_queue = enrichment_queue
        self.stats = IngestStats()

        subscribe = getattr(rulesets, "subscribe", None)
        if subscribe is not None:
            subscribe(self._on_ruleset_changed)

    def _on_ruleset_changed(self, ruleset: Ruleset) -> None:
        logger.info(
            "Active ruleset changed (version=%d, min_pilots=%d, alliances=%d, corps=%d)",
            ruleset.version,
            ruleset.min_pilots,
            len(ruleset.tracked_alliance_ids),
            len(ruleset.tracked_corp_ids),
        )

    async def ingest_event(self, event: KillmailEvent) -> IngestionResult:
        """
        Admit a single event.

        Steps: skip if already stored, evaluate the active ruleset, insert,
        then enqueue enrichment. Rejected events are not persisted.

        Returns:
            STORED, DUPLICATE or REJECTED
        """
        if await self.store.killmail_exists(event.killmail_id):
            return self._finish(IngestionResult.DUPLICATE)

        ruleset = await self.rulesets.get()
        decision = evaluate_ruleset(event, ruleset)
        if not decision:
            reason = decision.reason.value if decision.reason else "unknown"
            self.stats.rejected_by_reason[reason] = self.stats.rejected_by_reason.get(reason, 0) + 1
            logger.debug("Rejected killmail %d (%s)", event.killmail_id, reason)
            return self._finish(IngestionResult.REJECTED)

        if not await self.store.insert_killmail(event):
            # Lost a race with a concurrent writer
            return self._finish(IngestionResult.DUPLICATE)

        logger.debug("Stored killmail %d (system %d)", event.killmail_id, event.system_id)

        if self.enrichment_queue is not None:
            try:
                await self.enrichment_queue.enqueue(event.killmail_id)
            except Exception as e:
                self.stats.enqueue_failures += 1
                logger.warning(
                    "Stored killmail %d but could not enqueue enrichment: %s",
                    event.killmail_id,
                    e,
                )

        return self._finish(IngestionResult.STORED)

    async def process_next(self) -> IngestionResult:
        """
        Pull one event from the source and ingest it.

        Returns:
            EMPTY if the source had nothing, else the ingest_event result
        """
        event = await self.source.pull()
        if event is None:
            return self._finish(IngestionResult.EMPTY)
        return await self.ingest_event(event)

    def _finish(self, result: IngestionResult) -> IngestionResult:
        self.stats.record(result)
        return result

    async def run_forever(self, poll_interval_ms: int, stop_event: asyncio.Event) -> None:
        """
        Pull and ingest until stop_event is set.

        Sleeps ``poll_interval_ms`` after an empty poll or an error (longer
        when the feed asks for it via Retry-After). Errors never end the loop.
        The source is closed on exit.
        """
        interval = poll_interval_ms / 1000
        logger.info("Ingestion started (poll interval=%dms)", poll_interval_ms)

        try:
            while not stop_event.is_set():
                delay = 0.0
                try:
                    result = await self.process_next()
                    if result is IngestionResult.EMPTY:
                        delay = interval
                except asyncio.CancelledError:
                    raise
                except UpstreamError as e:
                    self.stats.errors += 1
                    delay = max(interval, float(e.retry_after or 0))
                    logger.warning("Feed error, retrying in %.1fs: %s", delay, e)
                except Exception:
                    self.stats.errors += 1
                    delay = interval
                    logger.exception("Ingestion iteration failed")

                if delay and await wait_for_stop(stop_event, delay):
                    break
        finally:
            await self.source.aclose()
            logger.info("Ingestion stopped: %s", self.stats.to_dict())
