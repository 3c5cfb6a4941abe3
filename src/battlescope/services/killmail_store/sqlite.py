"""
SQLite Implementation of the BattleScope store.

Uses WAL mode so the ingester, enrichment worker and clusterer can run as
separate processes against the same database file.
"""

from __future__ import annotations

import json
from collections.abc import Iterator, Sequence
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Optional

import aiosqlite

from ...core.errors import StoreNotInitializedError
from ...core.formatters import from_epoch, get_utc_now, optional_from_epoch, to_epoch
from ...core.logging import get_logger
from ...models import (
    Battle,
    BattleKillmail,
    BattleParticipant,
    BattlePlan,
    EnrichmentStatus,
    EnrichmentSucceeded,
    KillmailEnrichment,
    KillmailEvent,
    PilotShipHistory,
    Ruleset,
    RulesetUpdate,
    SecurityType,
    build_enrichment,
)
from .migrations import MigrationRunner

logger = get_logger(__name__)

# Keep IN (...) lists under SQLite's historical 999-variable limit
_MAX_IN_PARAMS = 500

_KILLMAIL_COLUMNS = """
    killmail_id, system_id, occurred_at,
    victim_alliance_id, victim_corp_id, victim_character_id,
    attacker_alliance_ids, attacker_corp_ids, attacker_character_ids,
    isk_value, zkb_url, killmail_hash, fetched_at, processed_at, battle_id
"""


def _chunks(values: Sequence[int], size: int = _MAX_IN_PARAMS) -> Iterator[Sequence[int]]:
    for start in range(0, len(values), size):
        yield values[start : start + size]


def _placeholders(count: int) -> str:
    return ",".join("?" * count)


def _dump_ids(values: Sequence[Optional[int]]) -> str:
    return json.dumps(list(values))


def _load_ids(raw: Optional[str]) -> tuple[Optional[int], ...]:
    if not raw:
        return ()
    return tuple(json.loads(raw))


class SQLiteKillmailStore:
    """
    SQLite implementation of KillmailStore.

    Connection configuration:
        PRAGMA journal_mode=WAL
        PRAGMA busy_timeout=5000
        PRAGMA synchronous=NORMAL
        PRAGMA foreign_keys=ON
    """

    def __init__(self, db_path: Path | str | None = None):
        """
        Initialize the store.

        Args:
            db_path: Path to database file. Defaults to the configured database path.
        """
        if db_path is None:
            from ...core.config import get_settings

            db_path = get_settings().db_path

        self.db_path = Path(db_path)
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """
        Initialize database, running migrations if needed.

        Must be called before any other operations.
        """
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._db = await aiosqlite.connect(self.db_path)

        await self._db.execute("PRAGMA journal_mode=WAL")
        await self._db.execute("PRAGMA busy_timeout=5000")
        await self._db.execute("PRAGMA synchronous=NORMAL")
        await self._db.execute("PRAGMA foreign_keys=ON")

        runner = MigrationRunner(self._db)
        await runner.run_migrations()

        self._db.row_factory = aiosqlite.Row

        logger.info("Store initialized: %s", self.db_path)

    async def close(self) -> None:
        """Close the store and release resources."""
        if self._db:
            await self._db.close()
            self._db = None
            logger.info("Store closed")

    @property
    def db(self) -> aiosqlite.Connection:
        """Get the database connection, raising if not initialized."""
        if self._db is None:
            raise StoreNotInitializedError()
        return self._db

    async def ping(self) -> None:
        cursor = await self.db.execute("SELECT 1")
        await cursor.fetchone()

    # -------------------------------------------------------------------------
    # Killmail Events
    # -------------------------------------------------------------------------

    async def insert_killmail(self, event: KillmailEvent) -> bool:
        """Insert a killmail event. Returns False if the id was already stored."""
        cursor = await self.db.execute(
            f"""
            INSERT OR IGNORE INTO killmail_events ({_KILLMAIL_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                event.killmail_id,
                event.system_id,
                to_epoch(event.occurred_at),
                event.victim_alliance_id,
                event.victim_corp_id,
                event.victim_character_id,
                _dump_ids(event.attacker_alliance_ids),
                _dump_ids(event.attacker_corp_ids),
                _dump_ids(event.attacker_character_ids),
                event.isk_value,
                event.zkb_url,
                event.killmail_hash,
                to_epoch(event.fetched_at),
                to_epoch(event.processed_at) if event.processed_at else None,
                event.battle_id,
            ),
        )
        await self.db.commit()
        return cursor.rowcount > 0

    async def killmail_exists(self, killmail_id: int) -> bool:
        cursor = await self.db.execute(
            "SELECT 1 FROM killmail_events WHERE killmail_id = ?",
            (killmail_id,),
        )
        return await cursor.fetchone() is not None

    async def get_killmail(self, killmail_id: int) -> KillmailEvent | None:
        cursor = await self.db.execute(
            f"SELECT {_KILLMAIL_COLUMNS} FROM killmail_events WHERE killmail_id = ?",
            (killmail_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_killmail(row)

    async def find_killmails_by_ids(self, killmail_ids: Sequence[int]) -> list[KillmailEvent]:
        events: list[KillmailEvent] = []
        for chunk in _chunks(list(killmail_ids)):
            cursor = await self.db.execute(
                f"""
                SELECT {_KILLMAIL_COLUMNS} FROM killmail_events
                WHERE killmail_id IN ({_placeholders(len(chunk))})
                ORDER BY killmail_id
                """,
                tuple(chunk),
            )
            events.extend(self._row_to_killmail(row) for row in await cursor.fetchall())
        return events

    async def fetch_unprocessed(
        self, limit: int, processing_delay_minutes: int = 0
    ) -> list[KillmailEvent]:
        cutoff = get_utc_now() - timedelta(minutes=processing_delay_minutes)
        cursor = await self.db.execute(
            f"""
            SELECT {_KILLMAIL_COLUMNS} FROM killmail_events
            WHERE processed_at IS NULL AND occurred_at <= ?
            ORDER BY occurred_at, killmail_id
            LIMIT ?
            """,
            (to_epoch(cutoff), limit),
        )
        return [self._row_to_killmail(row) for row in await cursor.fetchall()]

    async def mark_processed(self, killmail_ids: Sequence[int], battle_id: str | None) -> int:
        if not killmail_ids:
            return 0
        now = to_epoch(get_utc_now())
        updated = 0
        for chunk in _chunks(list(killmail_ids)):
            cursor = await self.db.execute(
                f"""
                UPDATE killmail_events
                SET processed_at = ?, battle_id = COALESCE(battle_id, ?)
                WHERE killmail_id IN ({_placeholders(len(chunk))})
                """,
                (now, battle_id, *chunk),
            )
            updated += cursor.rowcount
        await self.db.commit()
        return updated

    def _row_to_killmail(self, row: aiosqlite.Row) -> KillmailEvent:
        return KillmailEvent(
            killmail_id=row["killmail_id"],
            system_id=row["system_id"],
            occurred_at=from_epoch(row["occurred_at"]),
            victim_alliance_id=row["victim_alliance_id"],
            victim_corp_id=row["victim_corp_id"],
            victim_character_id=row["victim_character_id"],
            attacker_alliance_ids=_load_ids(row["attacker_alliance_ids"]),
            attacker_corp_ids=_load_ids(row["attacker_corp_ids"]),
            attacker_character_ids=_load_ids(row["attacker_character_ids"]),
            isk_value=row["isk_value"],
            zkb_url=row["zkb_url"],
            killmail_hash=row["killmail_hash"],
            fetched_at=from_epoch(row["fetched_at"]),
            processed_at=optional_from_epoch(row["processed_at"]),
            battle_id=row["battle_id"],
        )

    # -------------------------------------------------------------------------
    # Ruleset
    # -------------------------------------------------------------------------

    async def get_active_ruleset(self) -> Ruleset:
        cursor = await self.db.execute(
            """
            SELECT min_pilots, tracked_alliance_ids, tracked_corp_ids, ignore_unlisted,
                   updated_by, version, created_at, updated_at
            FROM rulesets WHERE id = 1
            """
        )
        row = await cursor.fetchone()
        if row is None:
            return Ruleset.default()
        return Ruleset(
            min_pilots=row["min_pilots"],
            tracked_alliance_ids=frozenset(json.loads(row["tracked_alliance_ids"])),
            tracked_corp_ids=frozenset(json.loads(row["tracked_corp_ids"])),
            ignore_unlisted=bool(row["ignore_unlisted"]),
            updated_by=row["updated_by"],
            version=row["version"],
            created_at=from_epoch(row["created_at"]),
            updated_at=from_epoch(row["updated_at"]),
        )

    async def update_active_ruleset(self, update: RulesetUpdate) -> Ruleset:
        now = to_epoch(get_utc_now())
        await self.db.execute(
            """
            INSERT INTO rulesets (
                id, min_pilots, tracked_alliance_ids, tracked_corp_ids,
                ignore_unlisted, updated_by, version, created_at, updated_at
            ) VALUES (1, ?, ?, ?, ?, ?, 1, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                min_pilots = excluded.min_pilots,
                tracked_alliance_ids = excluded.tracked_alliance_ids,
                tracked_corp_ids = excluded.tracked_corp_ids,
                ignore_unlisted = excluded.ignore_unlisted,
                updated_by = excluded.updated_by,
                version = rulesets.version + 1,
                updated_at = excluded.updated_at
            """,
            (
                update.min_pilots,
                json.dumps(sorted(update.tracked_alliance_ids)),
                json.dumps(sorted(update.tracked_corp_ids)),
                int(update.ignore_unlisted),
                update.updated_by,
                now,
                now,
            ),
        )
        await self.db.commit()
        ruleset = await self.get_active_ruleset()
        logger.info("Ruleset updated to version %d", ruleset.version)
        return ruleset

    # -------------------------------------------------------------------------
    # Enrichment
    # -------------------------------------------------------------------------

    async def _write_enrichment(
        self,
        killmail_id: int,
        status: EnrichmentStatus,
        payload: Optional[dict[str, Any]] = None,
        error: Optional[str] = None,
        fetched_at: Optional[datetime] = None,
    ) -> None:
        now = to_epoch(get_utc_now())
        await self.db.execute(
            """
            INSERT INTO killmail_enrichments (
                killmail_id, status, payload, error, fetched_at, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(killmail_id) DO UPDATE SET
                status = excluded.status,
                payload = excluded.payload,
                error = excluded.error,
                fetched_at = excluded.fetched_at,
                updated_at = excluded.updated_at
            """,
            (
                killmail_id,
                status.value,
                json.dumps(payload) if payload is not None else None,
                error,
                to_epoch(fetched_at) if fetched_at else None,
                now,
                now,
            ),
        )
        await self.db.commit()

    async def upsert_enrichment_pending(self, killmail_id: int) -> None:
        await self._write_enrichment(killmail_id, EnrichmentStatus.PENDING)

    async def mark_enrichment_processing(self, killmail_id: int) -> None:
        await self._write_enrichment(killmail_id, EnrichmentStatus.PROCESSING)

    async def mark_enrichment_succeeded(
        self, killmail_id: int, payload: dict[str, Any], fetched_at: datetime
    ) -> None:
        await self._write_enrichment(
            killmail_id, EnrichmentStatus.SUCCEEDED, payload=payload, fetched_at=fetched_at
        )

    async def mark_enrichment_failed(self, killmail_id: int, error: str) -> None:
        await self._write_enrichment(killmail_id, EnrichmentStatus.FAILED, error=error)

    async def get_enrichment(self, killmail_id: int) -> KillmailEnrichment | None:
        cursor = await self.db.execute(
            """
            SELECT killmail_id, status, payload, error, fetched_at, created_at, updated_at
            FROM killmail_enrichments WHERE killmail_id = ?
            """,
            (killmail_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_enrichment(row)

    async def list_failed_enrichment_ids(self, limit: int = 1000) -> list[int]:
        cursor = await self.db.execute(
            """
            SELECT killmail_id FROM killmail_enrichments
            WHERE status = 'failed'
            ORDER BY killmail_id
            LIMIT ?
            """,
            (limit,),
        )
        return [row["killmail_id"] for row in await cursor.fetchall()]

    async def count_succeeded_enrichments(self, from_date: datetime | None = None) -> int:
        query = """
            SELECT COUNT(*) FROM killmail_enrichments en
            JOIN killmail_events ev ON ev.killmail_id = en.killmail_id
            WHERE en.status = 'succeeded'
        """
        params: list[Any] = []
        if from_date is not None:
            query += " AND ev.occurred_at >= ?"
            params.append(to_epoch(from_date))
        cursor = await self.db.execute(query, params)
        row = await cursor.fetchone()
        return row[0] if row else 0

    async def list_succeeded_enrichments(
        self,
        after_killmail_id: int | None,
        limit: int,
        from_date: datetime | None = None,
    ) -> list[EnrichmentSucceeded]:
        query = """
            SELECT en.killmail_id, en.status, en.payload, en.error, en.fetched_at,
                   en.created_at, en.updated_at
            FROM killmail_enrichments en
            JOIN killmail_events ev ON ev.killmail_id = en.killmail_id
            WHERE en.status = 'succeeded'
        """
        params: list[Any] = []
        if after_killmail_id is not None:
            query += " AND en.killmail_id > ?"
            params.append(after_killmail_id)
        if from_date is not None:
            query += " AND ev.occurred_at >= ?"
            params.append(to_epoch(from_date))
        query += " ORDER BY en.killmail_id LIMIT ?"
        params.append(limit)

        cursor = await self.db.execute(query, params)
        results: list[EnrichmentSucceeded] = []
        for row in await cursor.fetchall():
            enrichment = self._row_to_enrichment(row)
            if isinstance(enrichment, EnrichmentSucceeded):
                results.append(enrichment)
        return results

    def _row_to_enrichment(self, row: aiosqlite.Row) -> KillmailEnrichment:
        return build_enrichment(
            killmail_id=row["killmail_id"],
            status=row["status"],
            created_at=from_epoch(row["created_at"]),
            updated_at=from_epoch(row["updated_at"]),
            payload=json.loads(row["payload"]) if row["payload"] is not None else None,
            error=row["error"],
            fetched_at=optional_from_epoch(row["fetched_at"]),
        )

    # -------------------------------------------------------------------------
    # Battles
    # -------------------------------------------------------------------------

    async def create_battle(self, plan: BattlePlan) -> None:
        battle = plan.battle
        now = to_epoch(get_utc_now())
        try:
            await self.db.execute(
                """
                INSERT INTO battles (
                    id, system_id, security_type, start_time, end_time,
                    total_kills, total_isk_destroyed, zkill_related_url, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    battle.id,
                    battle.system_id,
                    battle.security_type.value,
                    to_epoch(battle.start_time),
                    to_epoch(battle.end_time),
                    battle.total_kills,
                    battle.total_isk_destroyed,
                    battle.zkill_related_url,
                    now,
                ),
            )
            await self.db.executemany(
                """
                INSERT OR IGNORE INTO battle_killmails (
                    battle_id, killmail_id, zkb_url, occurred_at,
                    victim_alliance_id, attacker_alliance_ids, isk_value
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        k.battle_id,
                        k.killmail_id,
                        k.zkb_url,
                        to_epoch(k.occurred_at),
                        k.victim_alliance_id,
                        _dump_ids(k.attacker_alliance_ids),
                        k.isk_value,
                    )
                    for k in plan.killmails
                ],
            )
            await self.db.executemany(
                """
                INSERT OR IGNORE INTO battle_participants (
                    battle_id, character_id, alliance_id, corp_id, ship_type_id, is_victim
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        p.battle_id,
                        p.character_id,
                        p.alliance_id,
                        p.corp_id,
                        p.ship_type_id,
                        int(p.is_victim),
                    )
                    for p in plan.participants
                ],
            )
            await self.db.executemany(
                """
                UPDATE killmail_events
                SET processed_at = ?, battle_id = ?
                WHERE killmail_id = ? AND battle_id IS NULL
                """,
                [(now, battle.id, killmail_id) for killmail_id in plan.killmail_ids],
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

    async def get_battle(self, battle_id: str) -> Battle | None:
        cursor = await self.db.execute(
            """
            SELECT id, system_id, security_type, start_time, end_time, total_kills,
                   total_isk_destroyed, zkill_related_url, created_at
            FROM battles WHERE id = ?
            """,
            (battle_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return Battle(
            id=row["id"],
            system_id=row["system_id"],
            security_type=SecurityType(row["security_type"]),
            start_time=from_epoch(row["start_time"]),
            end_time=from_epoch(row["end_time"]),
            total_kills=row["total_kills"],
            total_isk_destroyed=row["total_isk_destroyed"],
            zkill_related_url=row["zkill_related_url"],
            created_at=from_epoch(row["created_at"]),
        )

    async def list_battle_killmails(self, battle_id: str) -> list[BattleKillmail]:
        cursor = await self.db.execute(
            """
            SELECT battle_id, killmail_id, zkb_url, occurred_at,
                   victim_alliance_id, attacker_alliance_ids, isk_value
            FROM battle_killmails WHERE battle_id = ?
            ORDER BY occurred_at, killmail_id
            """,
            (battle_id,),
        )
        return [
            BattleKillmail(
                battle_id=row["battle_id"],
                killmail_id=row["killmail_id"],
                zkb_url=row["zkb_url"],
                occurred_at=from_epoch(row["occurred_at"]),
                victim_alliance_id=row["victim_alliance_id"],
                attacker_alliance_ids=_load_ids(row["attacker_alliance_ids"]),
                isk_value=row["isk_value"],
            )
            for row in await cursor.fetchall()
        ]

    async def list_battle_participants(self, battle_id: str) -> list[BattleParticipant]:
        cursor = await self.db.execute(
            """
            SELECT battle_id, character_id, alliance_id, corp_id, ship_type_id, is_victim
            FROM battle_participants WHERE battle_id = ?
            ORDER BY character_id
            """,
            (battle_id,),
        )
        return [
            BattleParticipant(
                battle_id=row["battle_id"],
                character_id=row["character_id"],
                alliance_id=row["alliance_id"],
                corp_id=row["corp_id"],
                ship_type_id=row["ship_type_id"],
                is_victim=bool(row["is_victim"]),
            )
            for row in await cursor.fetchall()
        ]

    # -------------------------------------------------------------------------
    # Pilot Ship History
    # -------------------------------------------------------------------------

    async def truncate_ship_history(self) -> int:
        cursor = await self.db.execute("DELETE FROM pilot_ship_history")
        await self.db.commit()
        return cursor.rowcount

    async def delete_ship_history_from(self, from_date: datetime) -> int:
        cursor = await self.db.execute(
            "DELETE FROM pilot_ship_history WHERE occurred_at >= ?",
            (to_epoch(from_date),),
        )
        await self.db.commit()
        return cursor.rowcount

    async def insert_ship_history_batch(self, rows: Sequence[PilotShipHistory]) -> int:
        if not rows:
            return 0
        cursor = await self.db.executemany(
            """
            INSERT OR IGNORE INTO pilot_ship_history (
                killmail_id, character_id, ship_type_id, alliance_id, corp_id,
                system_id, is_loss, ship_value, killmail_value, occurred_at, zkb_url
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    r.killmail_id,
                    r.character_id,
                    r.ship_type_id,
                    r.alliance_id,
                    r.corp_id,
                    r.system_id,
                    int(r.is_loss),
                    r.ship_value,
                    r.killmail_value,
                    to_epoch(r.occurred_at),
                    r.zkb_url,
                )
                for r in rows
            ],
        )
        await self.db.commit()
        return cursor.rowcount

    async def count_ship_history(self) -> int:
        cursor = await self.db.execute("SELECT COUNT(*) FROM pilot_ship_history")
        row = await cursor.fetchone()
        return row[0] if row else 0

    # -------------------------------------------------------------------------
    # Statistics
    # -------------------------------------------------------------------------

    async def get_stats(self) -> dict[str, int]:
        """Row counts for the CLI status output."""
        stats: dict[str, int] = {}
        queries = {
            "killmails": "SELECT COUNT(*) FROM killmail_events",
            "unprocessed_killmails": (
                "SELECT COUNT(*) FROM killmail_events WHERE processed_at IS NULL"
            ),
            "battles": "SELECT COUNT(*) FROM battles",
            "ship_history_rows": "SELECT COUNT(*) FROM pilot_ship_history",
        }
        for key, query in queries.items():
            cursor = await self.db.execute(query)
            row = await cursor.fetchone()
            stats[key] = row[0] if row else 0

        cursor = await self.db.execute(
            "SELECT status, COUNT(*) FROM killmail_enrichments GROUP BY status"
        )
        for status in EnrichmentStatus:
            stats[f"enrichments_{status.value}"] = 0
        for row in await cursor.fetchall():
            stats[f"enrichments_{row[0]}"] = row[1]
        return stats
