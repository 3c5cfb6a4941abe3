"""Tests for the enrichment worker."""

from __future__ import annotations

import asyncio
import json

import pytest

from battlescope.services.enrichment import EnrichmentJob, EnrichmentWorker, requeue_failed


class MemoryQueue:
    """In-process stand-in for RedisEnrichmentQueue."""

    def __init__(self, killmail_ids=()):
        self.pending = [self._job(k) for k in killmail_ids]
        self.acked: list[int] = []
        self.dead: list[tuple[int, str]] = []
        self.enqueued: list[int] = []

    @staticmethod
    def _job(killmail_id: int) -> EnrichmentJob:
        return EnrichmentJob(killmail_id, json.dumps({"killmail_id": killmail_id}))

    async def enqueue(self, killmail_id: int) -> None:
        self.enqueued.append(killmail_id)

    async def reserve(self, timeout: float = 1.0):
        if self.pending:
            return self.pending.pop(0)
        await asyncio.sleep(0)
        return None

    async def ack(self, job: EnrichmentJob) -> None:
        self.acked.append(job.killmail_id)

    async def dead_letter(self, job: EnrichmentJob, error: str) -> None:
        self.dead.append((job.killmail_id, error))


class FakeService:
    def __init__(self, failing=(), delay: float = 0.0):
        self.failing = set(failing)
        self.delay = delay
        self.active = 0
        self.max_active = 0

    async def process(self, killmail_id: int) -> None:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
            if killmail_id in self.failing:
                raise RuntimeError(f"HTTP 404 for {killmail_id}")
        finally:
            self.active -= 1


async def run_until_drained(worker: EnrichmentWorker, queue: MemoryQueue, expected: int) -> None:
    stop_event = asyncio.Event()
    runner = asyncio.create_task(worker.run_forever(stop_event))
    while len(queue.acked) + len(queue.dead) < expected:
        await asyncio.sleep(0.01)
    stop_event.set()
    await asyncio.wait_for(runner, timeout=5)


class TestHandleJob:
    async def test_success_acks(self):
        queue = MemoryQueue()
        worker = EnrichmentWorker(queue, FakeService())

        assert await worker.handle_job(MemoryQueue._job(1))
        assert queue.acked == [1]
        assert worker.stats.succeeded == 1

    async def test_failure_dead_letters(self):
        queue = MemoryQueue()
        worker = EnrichmentWorker(queue, FakeService(failing={1}))

        assert not await worker.handle_job(MemoryQueue._job(1))
        assert queue.dead == [(1, "HTTP 404 for 1")]
        assert worker.stats.failed == 1


class TestRunForever:
    async def test_processes_all_jobs(self):
        queue = MemoryQueue(range(1, 11))
        worker = EnrichmentWorker(queue, FakeService(failing={3, 7}, delay=0.01), concurrency=3)

        await asyncio.wait_for(run_until_drained(worker, queue, 10), timeout=5)

        assert sorted(queue.acked) == [1, 2, 4, 5, 6, 8, 9, 10]
        assert sorted(k for k, _ in queue.dead) == [3, 7]
        assert worker.stats.to_dict() == {"succeeded": 8, "failed": 2}
        assert worker.in_flight == 0

    async def test_concurrency_is_bounded(self):
        queue = MemoryQueue(range(1, 9))
        service = FakeService(delay=0.02)
        worker = EnrichmentWorker(queue, service, concurrency=2)

        await asyncio.wait_for(run_until_drained(worker, queue, 8), timeout=5)

        assert service.max_active == 2

    async def test_stops_when_idle(self):
        stop_event = asyncio.Event()
        stop_event.set()
        await EnrichmentWorker(MemoryQueue(), FakeService()).run_forever(stop_event)

    def test_rejects_zero_concurrency(self):
        with pytest.raises(ValueError):
            EnrichmentWorker(MemoryQueue(), FakeService(), concurrency=0)


async def test_requeue_failed(store, event_factory):
    for killmail_id in (1, 2, 3):
        await store.insert_killmail(event_factory(killmail_id))
    await store.mark_enrichment_failed(1, "HTTP 404")
    await store.mark_enrichment_failed(3, "HTTP 502")
    queue = MemoryQueue()

    assert await requeue_failed(store, queue) == 2
    assert queue.enqueued == [1, 3]
