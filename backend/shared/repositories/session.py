"""Repository for tiktok_sessions table."""

from __future__ import annotations

import logging

import asyncpg

from shared.models.session import STALE_STATUSES, STATUS_PENDING, LiveSession

logger = logging.getLogger(__name__)

_SELECT_COLS = "id, username, status, created_at"


class SessionRepository:
    """Pure SQL operations for tiktok_sessions."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    async def get_session(self, session_id: int) -> LiveSession | None:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_SELECT_COLS} FROM tiktok_sessions WHERE id = $1",
                session_id,
            )
            if not row:
                return None
            return LiveSession(**dict(row))

    async def get_latest_pending(self) -> LiveSession | None:
        """Most recently created session still waiting for a connection."""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {_SELECT_COLS}
                FROM tiktok_sessions
                WHERE status = $1
                ORDER BY created_at DESC
                LIMIT 1
                """,
                STATUS_PENDING,
            )
            if not row:
                return None
            return LiveSession(**dict(row))

    async def exists(self, session_id: int) -> bool:
        async with self.pool.acquire() as conn:
            found = await conn.fetchval(
                "SELECT EXISTS(SELECT 1 FROM tiktok_sessions WHERE id = $1)",
                session_id,
            )
            return bool(found)

    async def update_status(self, session_id: int, status: str) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(
                "UPDATE tiktok_sessions SET status = $1 WHERE id = $2",
                status,
                session_id,
            )

    async def delete_stale(self, max_age_seconds: float, keep_session_id: int | None = None) -> int:
        """Delete old finished/abandoned sessions together with their events.

        Events go first so the foreign key never sees an orphan.  The session
        bound to the live connection (``keep_session_id``) is never touched.
        Returns the number of deleted sessions.
        """
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                stale_ids = await conn.fetch(
                    """
                    SELECT id FROM tiktok_sessions
                    WHERE status = ANY($1::text[])
                      AND created_at < NOW() - make_interval(secs => $2)
                      AND ($3::bigint IS NULL OR id <> $3)
                    """,
                    list(STALE_STATUSES),
                    float(max_age_seconds),
                    keep_session_id,
                )
                ids = [row["id"] for row in stale_ids]
                if not ids:
                    return 0
                await conn.execute(
                    "DELETE FROM tiktok_events WHERE session_id = ANY($1::bigint[])", ids
                )
                await conn.execute(
                    "DELETE FROM tiktok_sessions WHERE id = ANY($1::bigint[])", ids
                )
        return len(ids)
