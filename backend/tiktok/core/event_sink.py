"""Persist gift and battle records into tiktok_events."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from shared.repositories.live_event import LiveEventRepository
from shared.repositories.session import SessionRepository

from ..components.battle import BATTLE_KINDS

LOGGER = logging.getLogger("EventSink")

# tiktok_events.event_type values; target gifts are stored as "heartme"
GIFT_KIND = "gift"
TARGET_GIFT_KIND = "heartme"
GIFT_KINDS = frozenset({GIFT_KIND, TARGET_GIFT_KIND})

BATTLE_EVENT_TYPE = "battle"
BATTLE_USERNAME = "battle_system"


def _gift_value(payload: dict[str, Any]) -> int:
    """Diamond value when the feed reports one, else the repeat count."""
    diamonds = payload.get("diamondCount")
    if diamonds:
        return int(diamonds)
    return int(payload.get("repeatCount") or 1)


class EventSink:
    def __init__(self, sessions: SessionRepository, events: LiveEventRepository) -> None:
        self.sessions = sessions
        self.events = events

    async def record(self, kind: str, payload: dict[str, Any], session_id: int) -> bool:
        """Write one record for ``session_id``. Returns False when nothing was stored."""
        try:
            if not await self.sessions.exists(session_id):
                LOGGER.warning(f"Session {session_id} no longer exists, dropping {kind} record")
                return False

            raw_event = {
                "type": kind,
                **payload,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }

            if kind in BATTLE_KINDS:
                await self.events.insert_event(
                    session_id,
                    BATTLE_EVENT_TYPE,
                    BATTLE_USERNAME,
                    raw_event,
                    gift_name=kind,
                )
            elif kind in GIFT_KINDS:
                await self.events.insert_event(
                    session_id,
                    kind,
                    str(payload.get("sender") or "unknown"),
                    raw_event,
                    gift_name=payload.get("giftName"),
                    gift_value=_gift_value(payload),
                    profile_pic=payload.get("profilePictureUrl"),
                )
            else:
                await self.events.insert_event(
                    session_id,
                    kind,
                    str(payload.get("sender") or BATTLE_USERNAME),
                    raw_event,
                )

            LOGGER.debug(f"Recorded {kind} for session {session_id}")
            return True

        except Exception as e:
            LOGGER.error(
                f"Failed to record {kind} for session {session_id}: {type(e).__name__}: {e}"
            )
            return False
