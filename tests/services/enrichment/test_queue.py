"""Tests for the Redis enrichment queue."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from battlescope.services.enrichment import EnrichmentJob, RedisEnrichmentQueue
from battlescope.services.enrichment.queue import DEAD_LETTER_KEY, PROCESSING_KEY, QUEUE_KEY


@pytest.fixture
def redis():
    client = MagicMock()
    for name in ("rpush", "blmove", "lrem", "lmove", "llen", "delete", "ping", "aclose"):
        setattr(client, name, AsyncMock())
    return client


class TestEnqueue:
    async def test_pushes_json_job(self, redis):
        await RedisEnrichmentQueue(redis).enqueue(1001)

        key, raw = redis.rpush.call_args[0]
        assert key == QUEUE_KEY
        job = json.loads(raw)
        assert job["killmail_id"] == 1001
        assert job["enqueued_at"].endswith("Z")

    async def test_key_prefix(self, redis):
        queue = RedisEnrichmentQueue(redis, key_prefix="test:enrich")
        await queue.enqueue(1)
        assert redis.rpush.call_args[0][0] == "test:enrich:queue"
        assert queue.dead_letter_key == "test:enrich:dead"


class TestReserve:
    async def test_moves_job_to_processing(self, redis):
        raw = json.dumps({"killmail_id": 1001})
        redis.blmove.return_value = raw

        job = await RedisEnrichmentQueue(redis).reserve(timeout=2.0)

        assert job == EnrichmentJob(killmail_id=1001, raw=raw)
        redis.blmove.assert_awaited_once_with(
            QUEUE_KEY, PROCESSING_KEY, 2.0, src="LEFT", dest="RIGHT"
        )

    async def test_timeout_returns_none(self, redis):
        redis.blmove.return_value = None
        assert await RedisEnrichmentQueue(redis).reserve() is None

    async def test_malformed_job_dead_lettered(self, redis):
        redis.blmove.return_value = "not json"

        assert await RedisEnrichmentQueue(redis).reserve() is None

        redis.lrem.assert_awaited_once_with(PROCESSING_KEY, 1, "not json")
        key, raw = redis.rpush.call_args[0]
        assert key == DEAD_LETTER_KEY
        assert json.loads(raw)["raw"] == "not json"


class TestSettle:
    async def test_ack_removes_from_processing(self, redis):
        job = EnrichmentJob(killmail_id=1, raw='{"killmail_id": 1}')
        await RedisEnrichmentQueue(redis).ack(job)
        redis.lrem.assert_awaited_once_with(PROCESSING_KEY, 1, job.raw)

    async def test_dead_letter_records_error(self, redis):
        job = EnrichmentJob(killmail_id=1, raw='{"killmail_id": 1}')

        await RedisEnrichmentQueue(redis).dead_letter(job, "HTTP 404")

        redis.lrem.assert_awaited_once_with(PROCESSING_KEY, 1, job.raw)
        key, raw = redis.rpush.call_args[0]
        entry = json.loads(raw)
        assert key == DEAD_LETTER_KEY
        assert (entry["killmail_id"], entry["error"]) == (1, "HTTP 404")

    async def test_recover_inflight(self, redis):
        redis.lmove.side_effect = ["a", "b", None]

        assert await RedisEnrichmentQueue(redis).recover_inflight() == 2
        redis.lmove.assert_awaited_with(PROCESSING_KEY, QUEUE_KEY, "RIGHT", "LEFT")

    async def test_clear_dead_letters(self, redis):
        redis.llen.return_value = 4
        assert await RedisEnrichmentQueue(redis).clear_dead_letters() == 4
        redis.delete.assert_awaited_once_with(DEAD_LETTER_KEY)
