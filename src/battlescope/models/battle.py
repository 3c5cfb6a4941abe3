"""
Battle models produced by the clustering engine.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class SecurityType(str, Enum):
    """Security classification of the system a battle happened in."""

    HIGHSEC = "highsec"
    LOWSEC = "lowsec"
    NULLSEC = "nullsec"
    WORMHOLE = "wormhole"
    POCHVEN = "pochven"
    # Known-space system whose security status was not supplied
    KSPACE = "kspace"


@dataclass(frozen=True)
class Battle:
    id: str
    system_id: int
    security_type: SecurityType
    start_time: datetime
    end_time: datetime
    total_kills: int
    total_isk_destroyed: float
    zkill_related_url: str
    created_at: Optional[datetime] = None

    @property
    def duration_seconds(self) -> int:
        return int((self.end_time - self.start_time).total_seconds())


@dataclass(frozen=True)
class BattleKillmail:
    """Membership row linking a killmail to its battle."""

    battle_id: str
    killmail_id: int
    zkb_url: str
    occurred_at: datetime
    victim_alliance_id: Optional[int]
    attacker_alliance_ids: tuple[Optional[int], ...]
    isk_value: Optional[float]


@dataclass(frozen=True)
class BattleParticipant:
    """One roster entry per (battle, character)."""

    battle_id: str
    character_id: int
    alliance_id: Optional[int]
    corp_id: Optional[int]
    ship_type_id: Optional[int]
    is_victim: bool


@dataclass(frozen=True)
class BattlePlan:
    """Everything needed to persist one battle atomically."""

    battle: Battle
    killmails: tuple[BattleKillmail, ...]
    participants: tuple[BattleParticipant, ...]

    @property
    def killmail_ids(self) -> tuple[int, ...]:
        return tuple(k.killmail_id for k in self.killmails)
