"""
Pilot ship-history extraction.

Turns an enriched killmail payload into one PilotShipHistory row per pilot:
the victim (a loss) and each distinct attacker. Payloads come in two
shapes: the zKillboard/ESI merge ``{"killmail": {...}, "zkb": {...}}`` and
a flat ESI killmail carrying its own ``zkb`` block.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Optional

from ...models import (
    EnrichmentSucceeded,
    KillmailEnrichment,
    KillmailEvent,
    PilotShipHistory,
)


@dataclass(frozen=True)
class ParsedKillmailPayload:
    victim: Mapping[str, Any]
    attackers: tuple[Mapping[str, Any], ...]
    zkb: Mapping[str, Any] = field(default_factory=dict)


def parse_enrichment_payload(payload: Any) -> Optional[ParsedKillmailPayload]:
    """
    Normalize an enrichment payload.

    Returns:
        ParsedKillmailPayload, or None if the payload has no victim block
    """
    if not isinstance(payload, Mapping):
        return None

    killmail = payload.get("killmail") or payload
    if not isinstance(killmail, Mapping) or not isinstance(killmail.get("victim"), Mapping):
        return None

    attackers = killmail.get("attackers") or []
    zkb = payload.get("zkb") or killmail.get("zkb") or {}

    return ParsedKillmailPayload(
        victim=killmail["victim"],
        attackers=tuple(a for a in attackers if isinstance(a, Mapping)),
        zkb=zkb if isinstance(zkb, Mapping) else {},
    )


def _positive_value(value: Any) -> Optional[float]:
    if isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0:
        return float(value)
    return None


class ShipHistoryProcessor:
    """Stateless extractor; safe to share between batches."""

    def process_killmail(
        self,
        event: KillmailEvent,
        enrichment: Optional[KillmailEnrichment],
    ) -> list[PilotShipHistory]:
        """
        Extract ship-history rows for one killmail.

        Pilots without a character id (NPCs, structures) or without a ship
        type are skipped. Attackers listed more than once yield one row.

        Args:
            event: Stored killmail event
            enrichment: Its enrichment record, if any

        Returns:
            Victim row (if any) followed by attacker rows
        """
        if not isinstance(enrichment, EnrichmentSucceeded):
            return []

        parsed = parse_enrichment_payload(enrichment.payload)
        if parsed is None:
            return []

        killmail_value = _positive_value(parsed.zkb.get("totalValue"))
        rows: list[PilotShipHistory] = []
        seen: set[int] = set()

        victim = parsed.victim
        victim_character = victim.get("character_id")
        victim_ship = victim.get("ship_type_id")
        if victim_character and victim_ship:
            ship_value = _positive_value(parsed.zkb.get("fittedValue")) or killmail_value
            rows.append(
                self._row(
                    event,
                    victim,
                    is_loss=True,
                    ship_value=ship_value,
                    killmail_value=killmail_value,
                )
            )
            seen.add(victim_character)

        for attacker in parsed.attackers:
            character_id = attacker.get("character_id")
            if not character_id or not attacker.get("ship_type_id"):
                continue
            if character_id in seen:
                continue
            seen.add(character_id)
            rows.append(
                self._row(
                    event,
                    attacker,
                    is_loss=False,
                    ship_value=None,
                    killmail_value=killmail_value,
                )
            )

        return rows

    def process_batch(
        self,
        events: Iterable[KillmailEvent],
        enrichments_by_id: Mapping[int, KillmailEnrichment],
    ) -> list[PilotShipHistory]:
        """Extract rows for many killmails, looking up each one's enrichment by id."""
        rows: list[PilotShipHistory] = []
        for event in events:
            rows.extend(self.process_killmail(event, enrichments_by_id.get(event.killmail_id)))
        return rows

    @staticmethod
    def _row(
        event: KillmailEvent,
        pilot: Mapping[str, Any],
        is_loss: bool,
        ship_value: Optional[float],
        killmail_value: Optional[float],
    ) -> PilotShipHistory:
        return PilotShipHistory(
            killmail_id=event.killmail_id,
            character_id=int(pilot["character_id"]),
            ship_type_id=int(pilot["ship_type_id"]),
            alliance_id=pilot.get("alliance_id") or None,
            corp_id=pilot.get("corporation_id") or None,
            system_id=event.system_id,
            is_loss=is_loss,
            ship_value=ship_value,
            killmail_value=killmail_value,
            occurred_at=event.occurred_at,
            zkb_url=event.zkb_url,
        )
