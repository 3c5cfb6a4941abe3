"""
Enrichment worker: consumes the job queue with bounded concurrency.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from ...core.lifecycle import wait_for_stop
from ...core.logging import get_logger
from .queue import EnrichmentJob

if TYPE_CHECKING:
    from ..killmail_store import KillmailStore
    from .service import EnrichmentService

logger = get_logger(__name__)

MAX_CONCURRENT_FETCHES = 5
RESERVE_TIMEOUT_SECONDS = 1.0
QUEUE_ERROR_BACKOFF_SECONDS = 5.0


class EnrichmentJobQueue(Protocol):
    async def enqueue(self, killmail_id: int) -> None: ...

    async def reserve(self, timeout: float = 1.0) -> EnrichmentJob | None: ...

    async def ack(self, job: EnrichmentJob) -> None: ...

    async def dead_letter(self, job: EnrichmentJob, error: str) -> None: ...


@dataclass
class WorkerStats:
    succeeded: int = 0
    failed: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"succeeded": self.succeeded, "failed": self.failed}


class EnrichmentWorker:
    """
    Runs EnrichmentService.process for queued jobs.

    At most ``concurrency`` jobs are processed at once. A job is acked when
    processing succeeds and dead-lettered when it raises.
    """

    def __init__(
        self,
        queue: EnrichmentJobQueue,
        service: EnrichmentService,
        concurrency: int = MAX_CONCURRENT_FETCHES,
    ):
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")
        self.queue = queue
        self.service = service
        self.concurrency = concurrency
        self.stats = WorkerStats()
        self._semaphore = asyncio.Semaphore(concurrency)
        self._tasks: set[asyncio.Task] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def handle_job(self, job: EnrichmentJob) -> bool:
        """
        Process one job and settle it on the queue.

        Returns:
            True if the killmail was enriched
        """
        try:
            await self.service.process(job.killmail_id)
        except Exception as e:
            self.stats.failed += 1
            await self.queue.dead_letter(job, str(e) or type(e).__name__)
            return False

        self.stats.succeeded += 1
        await self.queue.ack(job)
        return True

    async def _run_job(self, job: EnrichmentJob) -> None:
        try:
            await self.handle_job(job)
        except Exception:
            # Settling the job failed (queue unreachable); it stays on the processing list
            logger.exception("Could not settle enrichment job for killmail %d", job.killmail_id)
        finally:
            self._semaphore.release()

    async def run_forever(self, stop_event: asyncio.Event) -> None:
        """
        Reserve and process jobs until stop_event is set.

        In-flight jobs are awaited before returning.
        """
        logger.info("Enrichment worker started (concurrency=%d)", self.concurrency)
        try:
            while not stop_event.is_set():
                await self._semaphore.acquire()
                try:
                    job = await self.queue.reserve(timeout=RESERVE_TIMEOUT_SECONDS)
                except Exception as e:
                    self._semaphore.release()
                    logger.warning("Enrichment queue unavailable: %s", e)
                    if await wait_for_stop(stop_event, QUEUE_ERROR_BACKOFF_SECONDS):
                        break
                    continue

                if job is None:
                    self._semaphore.release()
                    continue

                task = asyncio.create_task(self._run_job(job))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)
        finally:
            if self._tasks:
                logger.info("Waiting for %d in-flight enrichment jobs", len(self._tasks))
                await asyncio.gather(*self._tasks, return_exceptions=True)
            logger.info("Enrichment worker stopped: %s", self.stats.to_dict())


async def requeue_failed(
    store: KillmailStore,
    queue: EnrichmentJobQueue,
    limit: int = 1000,
) -> int:
    """
    Enqueue a new job for every killmail whose enrichment is marked failed.

    Returns:
        Number of jobs enqueued
    """
    killmail_ids = await store.list_failed_enrichment_ids(limit)
    for killmail_id in killmail_ids:
        await queue.enqueue(killmail_id)
    logger.info("Requeued %d failed enrichments", len(killmail_ids))
    return len(killmail_ids)
