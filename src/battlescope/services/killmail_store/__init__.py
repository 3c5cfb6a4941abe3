"""
Killmail Store - Persistent Storage for BattleScope.

Holds killmail events, the active ruleset, enrichment state, battles and
the derived pilot ship-history table.

Usage:
    from battlescope.services.killmail_store import SQLiteKillmailStore

    store = SQLiteKillmailStore()
    await store.initialize()

    stored = await store.insert_killmail(event)
    batch = await store.fetch_unprocessed(limit=500, processing_delay_minutes=30)
"""

from .migrations import Migration, MigrationError, MigrationRunner, discover_migrations
from .protocol import KillmailStore
from .sqlite import SQLiteKillmailStore

__all__ = [
    "KillmailStore",
    "Migration",
    "MigrationError",
    "MigrationRunner",
    "SQLiteKillmailStore",
    "discover_migrations",
]
