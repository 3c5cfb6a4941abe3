"""
Killmail Store Protocol Interface.

Defines the storage operations the ingestion, enrichment, clustering and
ship-history services depend on. SQLiteKillmailStore is the shipped
implementation; tests may substitute fakes that satisfy this protocol.
"""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import Sequence
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from ...models import (
    Battle,
    BattleKillmail,
    BattleParticipant,
    BattlePlan,
    EnrichmentSucceeded,
    KillmailEnrichment,
    KillmailEvent,
    PilotShipHistory,
    Ruleset,
    RulesetUpdate,
)


@runtime_checkable
class KillmailStore(Protocol):
    """
    Abstract interface for BattleScope storage.

    Design notes:
    - killmail_id is globally unique (assigned by CCP); the primary key on it
      is the only deduplication guard between concurrent ingesters
    - Enrichment transitions are idempotent overwrites
    - Ship history is derived data and may be truncated and rebuilt at will
    """

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @abstractmethod
    async def initialize(self) -> None:
        """Open the connection and apply pending migrations."""
        ...

    @abstractmethod
    async def close(self) -> None: ...

    @abstractmethod
    async def ping(self) -> None:
        """Raise if the store cannot answer a trivial query."""
        ...

    # -------------------------------------------------------------------------
    # Killmail Events
    # -------------------------------------------------------------------------

    @abstractmethod
    async def insert_killmail(self, event: KillmailEvent) -> bool:
        """
        Insert a killmail event (idempotent).

        Returns:
            True if a row was inserted, False if the id already existed.
        """
        ...

    @abstractmethod
    async def killmail_exists(self, killmail_id: int) -> bool: ...

    @abstractmethod
    async def get_killmail(self, killmail_id: int) -> KillmailEvent | None: ...

    @abstractmethod
    async def find_killmails_by_ids(self, killmail_ids: Sequence[int]) -> list[KillmailEvent]: ...

    @abstractmethod
    async def fetch_unprocessed(
        self, limit: int, processing_delay_minutes: int = 0
    ) -> list[KillmailEvent]:
        """
        Get events not yet consumed by clustering.

        Only events that occurred at least ``processing_delay_minutes`` ago
        are returned, ordered by occurrence time then id.
        """
        ...

    @abstractmethod
    async def mark_processed(self, killmail_ids: Sequence[int], battle_id: str | None) -> int: ...

    # -------------------------------------------------------------------------
    # Ruleset
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_active_ruleset(self) -> Ruleset:
        """Return the stored ruleset, or the default one if none exists."""
        ...

    @abstractmethod
    async def update_active_ruleset(self, update: RulesetUpdate) -> Ruleset:
        """Replace the active ruleset in place and bump its version."""
        ...

    # -------------------------------------------------------------------------
    # Enrichment
    # -------------------------------------------------------------------------

    @abstractmethod
    async def upsert_enrichment_pending(self, killmail_id: int) -> None: ...

    @abstractmethod
    async def mark_enrichment_processing(self, killmail_id: int) -> None: ...

    @abstractmethod
    async def mark_enrichment_succeeded(
        self, killmail_id: int, payload: dict[str, Any], fetched_at: datetime
    ) -> None: ...

    @abstractmethod
    async def mark_enrichment_failed(self, killmail_id: int, error: str) -> None: ...

    @abstractmethod
    async def get_enrichment(self, killmail_id: int) -> KillmailEnrichment | None: ...

    @abstractmethod
    async def list_failed_enrichment_ids(self, limit: int = 1000) -> list[int]: ...

    @abstractmethod
    async def count_succeeded_enrichments(self, from_date: datetime | None = None) -> int:
        """Count succeeded enrichments whose killmail occurred at or after from_date."""
        ...

    @abstractmethod
    async def list_succeeded_enrichments(
        self,
        after_killmail_id: int | None,
        limit: int,
        from_date: datetime | None = None,
    ) -> list[EnrichmentSucceeded]:
        """Cursor-paginate succeeded enrichments in ascending killmail id order."""
        ...

    # -------------------------------------------------------------------------
    # Battles
    # -------------------------------------------------------------------------

    @abstractmethod
    async def create_battle(self, plan: BattlePlan) -> None:
        """
        Persist a battle atomically.

        Inserts the battle, its killmail rows and participants, and marks the
        member killmails processed with the battle id in one transaction.
        """
        ...

    @abstractmethod
    async def get_battle(self, battle_id: str) -> Battle | None: ...

    @abstractmethod
    async def list_battle_killmails(self, battle_id: str) -> list[BattleKillmail]: ...

    @abstractmethod
    async def list_battle_participants(self, battle_id: str) -> list[BattleParticipant]: ...

    # -------------------------------------------------------------------------
    # Pilot Ship History
    # -------------------------------------------------------------------------

    @abstractmethod
    async def truncate_ship_history(self) -> int: ...

    @abstractmethod
    async def delete_ship_history_from(self, from_date: datetime) -> int:
        """Delete rows whose killmail occurred at or after from_date."""
        ...

    @abstractmethod
    async def insert_ship_history_batch(self, rows: Sequence[PilotShipHistory]) -> int:
        """Bulk insert (idempotent per killmail/character). Returns rows inserted."""
        ...

    @abstractmethod
    async def count_ship_history(self) -> int: ...

    # -------------------------------------------------------------------------
    # Statistics
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_stats(self) -> dict[str, int]: ...
