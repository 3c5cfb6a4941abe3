"""
Pilot ship-history rows, derived from enriched killmails.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class PilotShipHistory:
    """One row per (killmail, character) with a resolvable ship type."""

    killmail_id: int
    character_id: int
    ship_type_id: int
    alliance_id: Optional[int]
    corp_id: Optional[int]
    system_id: int
    is_loss: bool
    ship_value: Optional[float]
    killmail_value: Optional[float]
    occurred_at: datetime
    zkb_url: str
