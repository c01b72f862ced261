"""Repository for gift_target_configs joined with gift_catalog."""

from __future__ import annotations

import json
import logging

import asyncpg

from shared.cache import AsyncTTLCache, cached
from shared.models.gift import GiftTarget, GiftTargetConfig

logger = logging.getLogger(__name__)

# Reloaded on every activation; the stale tier covers DB outages at connect time
_target_cache = AsyncTTLCache(maxsize=32, ttl=600)


def _names_from_row(row: asyncpg.Record) -> tuple[str, ...]:
    localized = row["localized_names"]
    if isinstance(localized, str):
        localized = json.loads(localized)
    names = [row["name"], *(localized or {}).values()]
    seen: dict[str, None] = {}
    for name in names:
        if name and name.strip():
            seen.setdefault(name.strip(), None)
    return tuple(seen)


class GiftConfigRepository:
    """Read-only lookups of the per-broadcaster target gift set."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    @cached(
        cache=_target_cache,
        key_func=lambda self, username: f"gift_targets:{username.lower()}",
    )
    async def get_target_config(self, username: str) -> GiftTargetConfig | None:
        """Target gifts configured for ``username``, or None when none are set."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT c.gift_id, c.name, COALESCE(c.localized_names, '{}') AS localized_names,
                       c.diamond_value
                FROM gift_target_configs t
                JOIN gift_catalog c ON c.gift_id = t.gift_id
                WHERE LOWER(t.username) = LOWER($1)
                ORDER BY t.id
                """,
                username,
            )
        if not rows:
            return None
        targets = tuple(
            GiftTarget(
                gift_id=int(row["gift_id"]),
                names=_names_from_row(row),
                diamond_value=row["diamond_value"],
            )
            for row in rows
        )
        return GiftTargetConfig(username=username, targets=targets)

    async def reload_target_config(self, username: str) -> GiftTargetConfig | None:
        """Bypass the fresh cache tier; used when a session becomes active."""
        return await GiftConfigRepository.get_target_config.refresh(self, username)  # type: ignore[attr-defined]
