"""
BattleScope Test Suite - Shared Fixtures and Configuration
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import pytest_asyncio

from battlescope.core.config import reset_settings
from battlescope.core.logging import reset_logging
from battlescope.models import KillmailEvent
from battlescope.services.killmail_store import SQLiteKillmailStore

BASE_TIME = datetime(2026, 3, 14, 18, 0, 0, tzinfo=timezone.utc)

# Real systems: Jita (highsec), a J-space system, a Pochven system
JITA = 30000142
WORMHOLE_SYSTEM = 31000005
POCHVEN_SYSTEM = 32000001


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path: Path, monkeypatch):
    """Point settings at a temporary instance root and reset cached singletons."""
    monkeypatch.setenv("BATTLESCOPE_INSTANCE_ROOT", str(tmp_path))
    monkeypatch.delenv("BATTLESCOPE_DATABASE_PATH", raising=False)
    reset_settings()
    yield
    reset_settings()
    reset_logging()


@pytest.fixture
def temp_db_path(tmp_path: Path) -> Path:
    return tmp_path / "test_battlescope.db"


@pytest_asyncio.fixture
async def store(temp_db_path: Path) -> AsyncGenerator[SQLiteKillmailStore, None]:
    """Create and initialize a test store."""
    store = SQLiteKillmailStore(db_path=temp_db_path)
    await store.initialize()
    yield store
    await store.close()


def make_event(
    killmail_id: int,
    minutes: float = 0,
    system_id: int = JITA,
    victim_alliance_id: int | None = None,
    victim_corp_id: int | None = 98000001,
    victim_character_id: int | None = None,
    attackers: list[tuple[int | None, int | None, int | None]] | None = None,
    isk_value: float | None = 10_000_000.0,
    occurred_at: datetime | None = None,
) -> KillmailEvent:
    """
    Build a KillmailEvent for tests.

    Args:
        killmail_id: Killmail id
        minutes: Offset from BASE_TIME
        attackers: (alliance_id, corp_id, character_id) per attacker row
    """
    attackers = attackers if attackers is not None else [(None, 98000002, 90000000 + killmail_id)]
    return KillmailEvent(
        killmail_id=killmail_id,
        system_id=system_id,
        occurred_at=occurred_at or BASE_TIME + timedelta(minutes=minutes),
        victim_alliance_id=victim_alliance_id,
        victim_corp_id=victim_corp_id,
        victim_character_id=(
            victim_character_id if victim_character_id is not None else 80000000 + killmail_id
        ),
        attacker_alliance_ids=[a[0] for a in attackers],
        attacker_corp_ids=[a[1] for a in attackers],
        attacker_character_ids=[a[2] for a in attackers],
        isk_value=isk_value,
        killmail_hash=f"hash{killmail_id}",
    )


@pytest.fixture
def event_factory():
    """Fixture exposing make_event."""
    return make_event


def esi_killmail(
    killmail_id: int = 1001,
    system_id: int = JITA,
    killmail_time: str = "2026-03-14T18:00:00Z",
    attackers: list[dict] | None = None,
) -> dict:
    """ESI-shaped killmail document."""
    return {
        "killmail_id": killmail_id,
        "killmail_time": killmail_time,
        "solar_system_id": system_id,
        "victim": {
            "character_id": 2112000001,
            "corporation_id": 98000001,
            "alliance_id": 99000001,
            "ship_type_id": 24690,
            "damage_taken": 5000,
        },
        "attackers": attackers
        if attackers is not None
        else [
            {
                "character_id": 2112000002,
                "corporation_id": 98000002,
                "alliance_id": 99000002,
                "ship_type_id": 17738,
                "final_blow": True,
            },
            {
                "character_id": 2112000003,
                "corporation_id": 98000002,
                "alliance_id": 99000002,
                "ship_type_id": 17740,
                "final_blow": False,
            },
        ],
    }


@pytest.fixture
def esi_killmail_factory():
    return esi_killmail
