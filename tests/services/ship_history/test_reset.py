"""Tests for the ship-history reset job."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from battlescope.core.formatters import get_utc_now
from battlescope.services.ship_history import (
    ResetMode,
    ResetOptions,
    ShipHistoryResetService,
)


@pytest_asyncio.fixture
async def enriched_store(store, event_factory, esi_killmail_factory):
    """Three enriched killmails, one hour apart, plus one that failed enrichment."""
    for index, killmail_id in enumerate((101, 102, 103)):
        await store.insert_killmail(event_factory(killmail_id, minutes=60 * index))
        await store.mark_enrichment_succeeded(
            killmail_id,
            {"killmail": esi_killmail_factory(killmail_id=killmail_id)},
            get_utc_now(),
        )
    await store.insert_killmail(event_factory(104, minutes=5))
    await store.mark_enrichment_failed(104, "HTTP 404")
    return store


class TestResetOptions:
    def test_incremental_requires_from_date(self):
        with pytest.raises(ValueError):
            ResetOptions(mode=ResetMode.INCREMENTAL)

    def test_mode_accepts_strings(self):
        assert ResetOptions(mode="full").mode is ResetMode.FULL

    def test_batch_size_must_be_positive(self):
        with pytest.raises(ValueError):
            ResetOptions(batch_size=0)


class TestExecute:
    async def test_full_reset(self, enriched_store):
        result = await ShipHistoryResetService(enriched_store).execute(ResetOptions())

        assert result.success
        assert result.processed == 3
        # Victim plus two attackers per killmail
        assert result.records_created == 9
        assert await enriched_store.count_ship_history() == 9

    async def test_full_reset_is_repeatable(self, enriched_store):
        service = ShipHistoryResetService(enriched_store)

        await service.execute(ResetOptions(batch_size=2))
        second = await service.execute(ResetOptions(batch_size=2))

        assert second.records_created == 9
        assert await enriched_store.count_ship_history() == 9

    async def test_progress_reported_per_batch(self, enriched_store):
        progress = []

        await ShipHistoryResetService(enriched_store).execute(
            ResetOptions(batch_size=2), on_progress=progress.append
        )

        assert [(p.processed, p.total, p.percentage) for p in progress] == [
            (2, 3, 67),
            (3, 3, 100),
        ]

    async def test_incremental_reset_only_touches_recent_rows(self, enriched_store):
        service = ShipHistoryResetService(enriched_store)
        await service.execute(ResetOptions())

        from_date = (await enriched_store.get_killmail(103)).occurred_at
        result = await service.execute(
            ResetOptions(mode=ResetMode.INCREMENTAL, from_date=from_date)
        )

        assert result.processed == 1
        assert result.records_created == 3
        assert await enriched_store.count_ship_history() == 9

    async def test_empty_store_truncates(self, store):
        result = await ShipHistoryResetService(store).execute(ResetOptions())
        assert result.success
        assert result.processed == 0

    async def test_store_failure_reported_not_raised(self):
        store = MagicMock()
        store.count_succeeded_enrichments = AsyncMock(return_value=10)
        store.truncate_ship_history = AsyncMock(return_value=0)
        store.list_succeeded_enrichments = AsyncMock(side_effect=RuntimeError("disk I/O error"))

        result = await ShipHistoryResetService(store).execute(ResetOptions())

        assert not result.success
        assert result.error == "disk I/O error"
        assert result.to_dict()["error"] == "disk I/O error"

    async def test_stats(self, enriched_store):
        service = ShipHistoryResetService(enriched_store)
        await service.execute(ResetOptions())
        assert await service.get_stats() == {"record_count": 9}

