"""
Schema migrations for the killmail store.

Every ``NNN_description.sql`` file in the migrations directory is one
schema version. ``SQLiteKillmailStore.initialize`` brings the database up
to the newest version before serving any query.
"""

from __future__ import annotations

import re
import time
from pathlib import Path
from typing import TYPE_CHECKING, NamedTuple

from ...core.errors import BattlescopeError
from ...core.logging import get_logger

if TYPE_CHECKING:
    import aiosqlite

logger = get_logger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"

_FILENAME_RE = re.compile(r"^(\d+)_(\w+)\.sql$")


class MigrationError(BattlescopeError):
    """The migrations directory is inconsistent."""


class Migration(NamedTuple):
    version: int
    description: str
    path: Path


def discover_migrations(migrations_dir: Path = MIGRATIONS_DIR) -> list[Migration]:
    """
    List the migrations in a directory, ordered by version.

    Files not matching ``NNN_description.sql`` are logged and ignored.

    Raises:
        MigrationError: If two files claim the same version
    """
    found: dict[int, Migration] = {}
    for path in sorted(migrations_dir.glob("*.sql")):
        match = _FILENAME_RE.match(path.name)
        if match is None:
            logger.warning("Ignoring migration with unexpected name: %s", path.name)
            continue
        version = int(match.group(1))
        if version in found:
            raise MigrationError(
                f"Migrations {found[version].path.name} and {path.name} share version {version}"
            )
        found[version] = Migration(version, match.group(2).replace("_", " "), path)
    return [found[v] for v in sorted(found)]


class MigrationRunner:
    """Brings a connection's schema up to the newest migration."""

    def __init__(self, db: aiosqlite.Connection, migrations_dir: Path = MIGRATIONS_DIR):
        self.db = db
        self.migrations_dir = migrations_dir

    async def get_current_version(self) -> int:
        """Highest applied version, 0 for a fresh database."""
        await self._ensure_version_table()
        async with self.db.execute("SELECT MAX(version) FROM schema_migrations") as cursor:
            row = await cursor.fetchone()
        return row[0] or 0

    async def pending(self) -> list[Migration]:
        current = await self.get_current_version()
        return [m for m in discover_migrations(self.migrations_dir) if m.version > current]

    async def run_migrations(self) -> int:
        """
        Apply every pending migration in version order.

        Returns:
            Number of migrations applied
        """
        pending = await self.pending()
        for migration in pending:
            logger.info("Applying schema version %03d (%s)", migration.version, migration.description)
            await self.db.executescript(migration.path.read_text(encoding="utf-8"))
            await self.db.execute(
                "INSERT INTO schema_migrations (version, applied_at, description) VALUES (?, ?, ?)",
                (migration.version, int(time.time()), migration.description),
            )
            await self.db.commit()

        if pending:
            logger.info("Schema now at version %03d", pending[-1].version)
        return len(pending)

    async def _ensure_version_table(self) -> None:
        await self.db.execute(
            "CREATE TABLE IF NOT EXISTS schema_migrations ("
            " version INTEGER PRIMARY KEY,"
            " applied_at INTEGER NOT NULL,"
            " description TEXT)"
        )
        await self.db.commit()
