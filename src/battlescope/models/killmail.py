"""
Killmail event model.

A KillmailEvent is the minimal record ingested from the feed: where and
when a kill happened, who died and who was on the killing side. Attacker
identities are kept as parallel tuples, one entry per attacker row, so
that index ``i`` of each tuple describes the same attacker.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from ..core.formatters import get_utc_now

ZKILL_KILL_URL = "https://zkillboard.com/kill/{killmail_id}/"


def _as_tuple(values) -> tuple[Optional[int], ...]:
    return tuple(values) if values is not None else ()


@dataclass(frozen=True)
class KillmailEvent:
    """One recorded kill with its victim and attacker identities."""

    killmail_id: int
    system_id: int
    occurred_at: datetime
    victim_alliance_id: Optional[int] = None
    victim_corp_id: Optional[int] = None
    victim_character_id: Optional[int] = None
    attacker_alliance_ids: tuple[Optional[int], ...] = ()
    attacker_corp_ids: tuple[Optional[int], ...] = ()
    attacker_character_ids: tuple[Optional[int], ...] = ()
    isk_value: Optional[float] = None
    zkb_url: str = ""
    killmail_hash: Optional[str] = None
    fetched_at: datetime = field(default_factory=get_utc_now)
    processed_at: Optional[datetime] = None
    battle_id: Optional[str] = None

    def __post_init__(self) -> None:
        # Frozen dataclass: normalize list inputs through object.__setattr__
        for name in ("attacker_alliance_ids", "attacker_corp_ids", "attacker_character_ids"):
            object.__setattr__(self, name, _as_tuple(getattr(self, name)))

        lengths = {
            len(self.attacker_alliance_ids),
            len(self.attacker_corp_ids),
            len(self.attacker_character_ids),
        }
        if len(lengths) != 1:
            raise ValueError(
                f"Killmail {self.killmail_id}: attacker id lists must have the same length"
            )

        if not self.zkb_url:
            object.__setattr__(self, "zkb_url", ZKILL_KILL_URL.format(killmail_id=self.killmail_id))

    @property
    def attacker_count(self) -> int:
        return len(self.attacker_character_ids)

    @property
    def alliance_ids(self) -> frozenset[int]:
        """Every non-null alliance id on either side of the kill."""
        ids = {a for a in self.attacker_alliance_ids if a is not None}
        if self.victim_alliance_id is not None:
            ids.add(self.victim_alliance_id)
        return frozenset(ids)

    @property
    def corp_ids(self) -> frozenset[int]:
        """Every non-null corporation id on either side of the kill."""
        ids = {c for c in self.attacker_corp_ids if c is not None}
        if self.victim_corp_id is not None:
            ids.add(self.victim_corp_id)
        return frozenset(ids)

    @property
    def participant_count(self) -> int:
        """
        Number of distinct pilots involved.

        Counts the victim when it is a character plus each distinct attacker
        character. NPC-only kills still count as one participant.
        """
        pilots = {c for c in self.attacker_character_ids if c is not None}
        count = len(pilots)
        if self.victim_character_id is not None and self.victim_character_id not in pilots:
            count += 1
        return max(count, 1)
