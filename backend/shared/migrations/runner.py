"""Migration runner for the relay schema (sessions, events, gift configs)."""

from __future__ import annotations

import logging
from pathlib import Path

import asyncpg

logger = logging.getLogger(__name__)

VERSIONS_DIR = Path(__file__).resolve().parent / "versions"

# Arbitrary constant shared by every relay process applying migrations
_ADVISORY_LOCK_KEY = 0x7417_0C0D


class MigrationRunner:
    """Apply ``versions/NNN_description.sql`` files exactly once.

    Applied versions are tracked in ``schema_migrations``.  The whole run is
    guarded by a PostgreSQL advisory lock so two relay instances starting at
    the same time do not race on the same migration.
    """

    TRACKING_TABLE = "schema_migrations"

    def __init__(self, pool: asyncpg.Pool, migrations_dir: Path | None = None) -> None:
        self.pool = pool
        self.migrations_dir = migrations_dir or VERSIONS_DIR

    def discover(self) -> list[Path]:
        """Return migration files ordered by their numeric prefix."""
        return sorted(self.migrations_dir.glob("*.sql"))

    async def run_pending(self) -> list[str]:
        """Apply every migration not yet recorded. Returns the applied versions."""
        sql_files = self.discover()
        if not sql_files:
            logger.info("No migration files found in %s", self.migrations_dir)
            return []

        newly_applied: list[str] = []
        async with self.pool.acquire() as conn:
            await conn.execute("SELECT pg_advisory_lock($1)", _ADVISORY_LOCK_KEY)
            try:
                await conn.execute(
                    f"""
                    CREATE TABLE IF NOT EXISTS {self.TRACKING_TABLE} (
                        version    TEXT PRIMARY KEY,
                        name       TEXT NOT NULL,
                        applied_at TIMESTAMPTZ DEFAULT NOW()
                    )
                    """
                )
                rows = await conn.fetch(f"SELECT version FROM {self.TRACKING_TABLE}")  # noqa: S608
                applied = {row["version"] for row in rows}

                for sql_path in sql_files:
                    version = sql_path.stem
                    if version in applied:
                        logger.debug("Migration %s already applied, skipping", version)
                        continue
                    await self._apply_one(conn, version, sql_path)
                    newly_applied.append(version)
            finally:
                await conn.execute("SELECT pg_advisory_unlock($1)", _ADVISORY_LOCK_KEY)

        if newly_applied:
            logger.info(
                "Applied %d migration(s): %s", len(newly_applied), ", ".join(newly_applied)
            )
        else:
            logger.info("Database is up to date, no pending migrations")
        return newly_applied

    async def _apply_one(self, conn: asyncpg.Connection, version: str, sql_path: Path) -> None:
        logger.info("Applying migration: %s", version)
        sql = sql_path.read_text(encoding="utf-8")
        async with conn.transaction():
            await conn.execute(sql)
            await conn.execute(
                f"INSERT INTO {self.TRACKING_TABLE} (version, name) VALUES ($1, $2)",
                version,
                sql_path.name,
            )
