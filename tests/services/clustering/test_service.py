"""Tests for the clusterer batch service."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import httpx

from battlescope.core.formatters import get_utc_now
from battlescope.core.http_client import create_http_client
from battlescope.models import SecurityType
from battlescope.services.clustering import (
    ClustererService,
    ClusteringEngine,
    ClusteringParameters,
    SystemSecurityResolver,
)

JITA = 30000142
LOWSEC_SYSTEM = 30002813


def make_service(store, **kwargs) -> ClustererService:
    engine = ClusteringEngine(ClusteringParameters(), id_factory=lambda: "battle-1")
    return ClustererService(store, engine, **kwargs)


class TestProcessBatch:
    async def test_creates_battle_and_marks_members(self, store, event_factory):
        for event in (event_factory(1, 0), event_factory(2, 3), event_factory(3, 90)):
            await store.insert_killmail(event)

        stats = await make_service(store).process_batch(100)

        assert stats.to_dict() == {"battles": 1, "processed_killmails": 3, "ignored": 1}
        battle = await store.get_battle("battle-1")
        assert battle is not None
        assert battle.total_kills == 2

        first = await store.get_killmail(1)
        lonely = await store.get_killmail(3)
        assert first.battle_id == "battle-1"
        assert lonely.processed_at is not None
        assert lonely.battle_id is None

        assert await store.fetch_unprocessed(100) == []

    async def test_empty_store(self, store):
        stats = await make_service(store).process_batch(100)
        assert stats.battles == 0
        assert stats.processed_killmails == 0

    async def test_processing_delay_holds_back_recent_kills(self, store, event_factory):
        now = get_utc_now()
        await store.insert_killmail(event_factory(1, occurred_at=now - timedelta(minutes=5)))
        await store.insert_killmail(event_factory(2, occurred_at=now - timedelta(minutes=4)))

        stats = await make_service(store, processing_delay_minutes=30).process_batch(100)

        assert stats.processed_killmails == 0
        assert len(await store.fetch_unprocessed(100)) == 2

    async def test_second_batch_does_not_reprocess(self, store, event_factory):
        await store.insert_killmail(event_factory(1, 0))
        await store.insert_killmail(event_factory(2, 1))
        service = make_service(store)

        await service.process_batch(100)
        stats = await service.process_batch(100)

        assert stats.processed_killmails == 0


class TestRunForever:
    async def test_batch_errors_do_not_stop_loop(self):
        store = MagicMock()
        store.fetch_unprocessed = AsyncMock(side_effect=[RuntimeError("db locked"), []])
        stop_event = asyncio.Event()
        service = make_service(store)

        calls = 0
        original = service.process_batch

        async def counting_batch(limit):
            nonlocal calls
            calls += 1
            try:
                return await original(limit)
            finally:
                if calls == 2:
                    stop_event.set()

        service.process_batch = counting_batch
        await asyncio.wait_for(service.run_forever(1, 10, stop_event), timeout=5)

        assert calls == 2


class FixedSecurity:
    def __init__(self, statuses: dict[int, float]):
        self.statuses = statuses
        self.requested: list[set[int]] = []

    async def get_security_statuses(self, system_ids):
        ids = set(system_ids)
        self.requested.append(ids)
        return {s: self.statuses[s] for s in ids if s in self.statuses}


class TestSecurityClassification:
    async def test_known_space_battle_gets_security_band(self, store, event_factory):
        await store.insert_killmail(event_factory(1, 0))
        await store.insert_killmail(event_factory(2, 2))
        security = FixedSecurity({JITA: 0.9459})

        await make_service(store, security=security).process_batch(100)

        battle = await store.get_battle("battle-1")
        assert battle.security_type == SecurityType.HIGHSEC
        assert security.requested == [{JITA}]

    async def test_resolver_against_esi(self, store, event_factory):
        await store.insert_killmail(event_factory(1, 0, system_id=LOWSEC_SYSTEM))
        await store.insert_killmail(event_factory(2, 2, system_id=LOWSEC_SYSTEM))
        client = create_http_client(
            transport=httpx.MockTransport(
                lambda request: httpx.Response(200, json={"security_status": 0.3})
            )
        )
        resolver = SystemSecurityResolver(client=client)

        await make_service(store, security=resolver).process_batch(100)
        await client.aclose()

        battle = await store.get_battle("battle-1")
        assert battle.security_type == SecurityType.LOWSEC

    async def test_unresolved_system_stays_kspace(self, store, event_factory):
        await store.insert_killmail(event_factory(1, 0))
        await store.insert_killmail(event_factory(2, 2))

        await make_service(store, security=FixedSecurity({})).process_batch(100)

        battle = await store.get_battle("battle-1")
        assert battle.security_type == SecurityType.KSPACE
