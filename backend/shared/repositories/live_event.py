"""Repository for tiktok_events table."""

from __future__ import annotations

import json
import logging

import asyncpg

from shared.models.live_event import LiveEvent

logger = logging.getLogger(__name__)

_SELECT_COLS = (
    "id, session_id, event_type, username, like_count, gift_name, gift_value, "
    "profile_pic, raw_event, created_at"
)


def _row_to_event(row: asyncpg.Record) -> LiveEvent:
    d = dict(row)
    raw = d.get("raw_event")
    if isinstance(raw, str):
        d["raw_event"] = json.loads(raw)
    elif raw is None:
        d["raw_event"] = {}
    return LiveEvent(**d)


class LiveEventRepository:
    """Append-only writes and bulk deletes for tiktok_events."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    async def insert_event(
        self,
        session_id: int,
        event_type: str,
        username: str,
        raw_event: dict,
        *,
        like_count: int | None = None,
        gift_name: str | None = None,
        gift_value: int | None = None,
        profile_pic: str | None = None,
    ) -> int:
        """Insert one event row. Returns the new row id."""
        async with self.pool.acquire() as conn:
            event_id = await conn.fetchval(
                """
                INSERT INTO tiktok_events
                    (session_id, event_type, username, like_count, gift_name,
                     gift_value, profile_pic, raw_event)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8::jsonb)
                RETURNING id
                """,
                session_id,
                event_type,
                username,
                like_count,
                gift_name,
                gift_value,
                profile_pic,
                json.dumps(raw_event, default=str),
            )
            return int(event_id)

    async def list_by_session(self, session_id: int, limit: int = 50) -> list[LiveEvent]:
        """Newest events first."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"SELECT {_SELECT_COLS} FROM tiktok_events "
                "WHERE session_id = $1 ORDER BY id DESC LIMIT $2",
                session_id,
                limit,
            )
            return [_row_to_event(r) for r in rows]

    async def delete_by_session(self, session_id: int) -> int:
        """Delete every event of a session. Returns the number of rows removed."""
        async with self.pool.acquire() as conn:
            status = await conn.execute(
                "DELETE FROM tiktok_events WHERE session_id = $1", session_id
            )
        # asyncpg returns the command tag, e.g. "DELETE 12"
        try:
            return int(status.split()[-1])
        except (ValueError, IndexError, AttributeError):
            return 0
