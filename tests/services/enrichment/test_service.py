"""Tests for the enrichment state machine."""

from __future__ import annotations

import pytest
import pytest_asyncio

from battlescope.core.errors import EnrichmentFetchError
from battlescope.models import EnrichmentFailed, EnrichmentStatus, EnrichmentSucceeded
from battlescope.services.enrichment import EnrichmentService


class FakeSource:
    def __init__(self, payload=None, error: Exception | None = None):
        self.payload = payload if payload is not None else {"zkb": {"hash": "abc"}}
        self.error = error
        self.calls: list[int] = []

    async def fetch_killmail(self, killmail_id: int) -> dict:
        self.calls.append(killmail_id)
        if self.error is not None:
            raise self.error
        return self.payload


@pytest_asyncio.fixture
async def stored(store, event_factory):
    await store.insert_killmail(event_factory(1001))
    return store


class TestProcess:
    async def test_success_stores_payload(self, stored):
        source = FakeSource(payload={"killmail": {"victim": {}}, "zkb": {"hash": "abc"}})

        await EnrichmentService(stored, source).process(1001)

        enrichment = await stored.get_enrichment(1001)
        assert isinstance(enrichment, EnrichmentSucceeded)
        assert enrichment.status is EnrichmentStatus.SUCCEEDED
        assert enrichment.payload["zkb"]["hash"] == "abc"
        assert source.calls == [1001]

    async def test_failure_marks_failed_and_reraises(self, stored):
        source = FakeSource(error=EnrichmentFetchError(1001, "zKillboard returned HTTP 404"))

        with pytest.raises(EnrichmentFetchError):
            await EnrichmentService(stored, source).process(1001)

        enrichment = await stored.get_enrichment(1001)
        assert isinstance(enrichment, EnrichmentFailed)
        assert enrichment.error == "zKillboard returned HTTP 404"

    async def test_error_without_message_records_type(self, stored):
        with pytest.raises(TimeoutError):
            await EnrichmentService(stored, FakeSource(error=TimeoutError())).process(1001)

        assert (await stored.get_enrichment(1001)).error == "TimeoutError"

    async def test_reprocessing_overwrites(self, stored):
        with pytest.raises(RuntimeError):
            await EnrichmentService(stored, FakeSource(error=RuntimeError("boom"))).process(1001)

        await EnrichmentService(stored, FakeSource(payload={"v": 2})).process(1001)

        enrichment = await stored.get_enrichment(1001)
        assert isinstance(enrichment, EnrichmentSucceeded)
        assert enrichment.payload == {"v": 2}

