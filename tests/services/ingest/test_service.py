"""Tests for the ingestion loop."""

from __future__ import annotations

import asyncio

import pytest

from battlescope.core.errors import UpstreamError
from battlescope.models import RulesetUpdate
from battlescope.services.ingest import IngestionResult, IngestionService, IngestStats
from battlescope.services.ruleset import StoreRulesetCache


class ScriptedSource:
    """Returns scripted events/exceptions, then None forever."""

    def __init__(self, items=(), stop_event: asyncio.Event | None = None):
        self.items = list(items)
        self.stop_event = stop_event
        self.closed = False

    async def pull(self):
        if not self.items:
            if self.stop_event is not None:
                self.stop_event.set()
            return None
        item = self.items.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def aclose(self) -> None:
        self.closed = True


class RecordingQueue:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.enqueued: list[int] = []

    async def enqueue(self, killmail_id: int) -> None:
        if self.fail:
            raise ConnectionError("redis down")
        self.enqueued.append(killmail_id)


def make_service(store, source=None, queue=None) -> IngestionService:
    return IngestionService(store, source or ScriptedSource(), StoreRulesetCache(store), queue)


class TestIngestEvent:
    async def test_stores_and_enqueues(self, store, event_factory):
        queue = RecordingQueue()
        service = make_service(store, queue=queue)

        assert await service.ingest_event(event_factory(1)) is IngestionResult.STORED
        assert await store.killmail_exists(1)
        assert queue.enqueued == [1]

    async def test_duplicate_stored_once(self, store, event_factory):
        queue = RecordingQueue()
        service = make_service(store, queue=queue)

        await service.ingest_event(event_factory(1))
        result = await service.ingest_event(event_factory(1))

        assert result is IngestionResult.DUPLICATE
        assert queue.enqueued == [1]
        assert (await store.get_stats())["killmails"] == 1

    async def test_rejected_not_stored(self, store, event_factory):
        await store.update_active_ruleset(RulesetUpdate(min_pilots=5))
        queue = RecordingQueue()
        service = make_service(store, queue=queue)

        result = await service.ingest_event(event_factory(1))

        assert result is IngestionResult.REJECTED
        assert not await store.killmail_exists(1)
        assert queue.enqueued == []
        assert service.stats.rejected_by_reason == {"below_min_pilots": 1}

    async def test_ruleset_change_applies_to_next_event(self, store, event_factory):
        service = make_service(store)
        assert await service.ingest_event(event_factory(1)) is IngestionResult.STORED

        await store.update_active_ruleset(RulesetUpdate(min_pilots=5))

        assert await service.ingest_event(event_factory(2)) is IngestionResult.REJECTED

    async def test_enqueue_failure_keeps_stored_event(self, store, event_factory):
        service = make_service(store, queue=RecordingQueue(fail=True))

        assert await service.ingest_event(event_factory(1)) is IngestionResult.STORED
        assert await store.killmail_exists(1)
        assert service.stats.enqueue_failures == 1

    async def test_without_queue(self, store, event_factory):
        assert await make_service(store).ingest_event(event_factory(1)) is IngestionResult.STORED


class TestProcessNext:
    async def test_empty_source(self, store):
        service = make_service(store)
        assert await service.process_next() is IngestionResult.EMPTY
        assert service.stats.empty == 1

    async def test_pulls_one_event(self, store, event_factory):
        service = make_service(store, ScriptedSource([event_factory(1), event_factory(2)]))

        assert await service.process_next() is IngestionResult.STORED
        assert not await store.killmail_exists(2)


class TestRunForever:
    async def test_drains_source_and_closes_it(self, store, event_factory):
        stop_event = asyncio.Event()
        source = ScriptedSource([event_factory(1), event_factory(1), event_factory(2)], stop_event)
        service = make_service(store, source)

        await asyncio.wait_for(service.run_forever(10, stop_event), timeout=5)

        assert source.closed
        stats = service.stats.to_dict()
        assert (stats["stored"], stats["duplicate"], stats["empty"]) == (2, 1, 1)

    async def test_errors_do_not_end_loop(self, store, event_factory):
        stop_event = asyncio.Event()
        source = ScriptedSource(
            [
                UpstreamError("RedisQ returned HTTP 502", status_code=502),
                ValueError("bad"),
                event_factory(1),
            ],
            stop_event,
        )
        service = make_service(store, source)

        await asyncio.wait_for(service.run_forever(1, stop_event), timeout=5)

        assert service.stats.errors == 2
        assert await store.killmail_exists(1)

    async def test_retry_after_extends_delay(self, store, monkeypatch):
        stop_event = asyncio.Event()
        delays = []

        async def fake_wait(event, timeout):
            delays.append(timeout)
            event.set()
            return True

        monkeypatch.setattr("battlescope.services.ingest.service.wait_for_stop", fake_wait)
        source = ScriptedSource([UpstreamError("rate limited", status_code=429, retry_after=30)])

        await make_service(store, source).run_forever(1000, stop_event)

        assert delays == [30.0]

    async def test_already_stopped(self, store):
        stop_event = asyncio.Event()
        stop_event.set()
        source = ScriptedSource()

        await make_service(store, source).run_forever(10, stop_event)

        assert source.closed


def test_stats_record():
    stats = IngestStats()
    stats.record(IngestionResult.STORED)
    stats.record(IngestionResult.STORED)
    assert stats.stored == 2


@pytest.mark.parametrize("result", list(IngestionResult))
def test_every_result_has_counter(result):
    assert result.value in IngestStats().to_dict()
