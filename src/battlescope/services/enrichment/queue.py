"""
Redis-backed enrichment job queue.

Jobs are JSON strings on a Redis list. ``reserve`` atomically moves a job
onto a processing list (BLMOVE), so a worker that dies mid-job leaves the
job recoverable with ``recover_inflight``. Failed jobs are parked on a
dead-letter list until requeued.

Keys:
    battlescope:enrichment:queue       pending jobs
    battlescope:enrichment:processing  reserved, not yet acknowledged
    battlescope:enrichment:dead        failed jobs with their error
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Optional

from redis import asyncio as aioredis

from ...core.formatters import format_datetime, get_utc_now
from ...core.logging import get_logger

logger = get_logger(__name__)

QUEUE_KEY = "battlescope:enrichment:queue"
PROCESSING_KEY = "battlescope:enrichment:processing"
DEAD_LETTER_KEY = "battlescope:enrichment:dead"


@dataclass(frozen=True)
class EnrichmentJob:
    killmail_id: int
    raw: str  # Exact list element, needed to remove it from the processing list


class RedisEnrichmentQueue:
    """
    Reliable FIFO of killmail ids awaiting enrichment.

    Args:
        redis: Async Redis client created with ``decode_responses=True``
        key_prefix: Overrides the ``battlescope:enrichment`` key prefix
    """

    def __init__(self, redis: aioredis.Redis, key_prefix: Optional[str] = None):
        self.redis = redis
        if key_prefix:
            self.queue_key = f"{key_prefix}:queue"
            self.processing_key = f"{key_prefix}:processing"
            self.dead_letter_key = f"{key_prefix}:dead"
        else:
            self.queue_key = QUEUE_KEY
            self.processing_key = PROCESSING_KEY
            self.dead_letter_key = DEAD_LETTER_KEY

    async def enqueue(self, killmail_id: int) -> None:
        job = {
            "killmail_id": killmail_id,
            "enqueued_at": format_datetime(get_utc_now()),
        }
        await self.redis.rpush(self.queue_key, json.dumps(job))
        logger.debug("Enqueued enrichment job for killmail %d", killmail_id)

    async def reserve(self, timeout: float = 1.0) -> Optional[EnrichmentJob]:
        """
        Block up to ``timeout`` seconds for the next job.

        Returns:
            EnrichmentJob, or None on timeout. Malformed entries are moved
            to the dead-letter list and None is returned.
        """
        raw = await self.redis.blmove(
            self.queue_key, self.processing_key, timeout, src="LEFT", dest="RIGHT"
        )
        if raw is None:
            return None

        try:
            killmail_id = int(json.loads(raw)["killmail_id"])
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Discarding malformed enrichment job %r: %s", raw, e)
            await self.redis.lrem(self.processing_key, 1, raw)
            await self.redis.rpush(
                self.dead_letter_key, json.dumps({"raw": raw, "error": f"Malformed job: {e}"})
            )
            return None

        return EnrichmentJob(killmail_id=killmail_id, raw=raw)

    async def ack(self, job: EnrichmentJob) -> None:
        await self.redis.lrem(self.processing_key, 1, job.raw)

    async def dead_letter(self, job: EnrichmentJob, error: str) -> None:
        entry = {
            "killmail_id": job.killmail_id,
            "error": error,
            "failed_at": format_datetime(get_utc_now()),
        }
        await self.redis.lrem(self.processing_key, 1, job.raw)
        await self.redis.rpush(self.dead_letter_key, json.dumps(entry))
        logger.warning("Killmail %d moved to enrichment dead-letter list: %s", job.killmail_id, error)

    async def recover_inflight(self) -> int:
        """
        Return jobs stranded on the processing list to the head of the queue.

        Only safe when no other worker is running against the same keys.

        Returns:
            Number of jobs recovered
        """
        recovered = 0
        while await self.redis.lmove(self.processing_key, self.queue_key, "RIGHT", "LEFT"):
            recovered += 1
        if recovered:
            logger.info("Recovered %d in-flight enrichment jobs", recovered)
        return recovered

    async def clear_dead_letters(self) -> int:
        """Drop every dead-letter entry, returning how many there were."""
        count = await self.dead_letter_size()
        await self.redis.delete(self.dead_letter_key)
        return count

    async def size(self) -> int:
        return await self.redis.llen(self.queue_key)

    async def dead_letter_size(self) -> int:
        return await self.redis.llen(self.dead_letter_key)

    async def ping(self) -> bool:
        return bool(await self.redis.ping())

    async def close(self) -> None:
        await self.redis.aclose()
