"""Data model for tiktok_events table."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class LiveEvent:
    """Append-only event row written while a session is active."""

    id: int
    session_id: int
    event_type: str  # 'battle' | 'gift' | 'heartme'
    username: str
    like_count: int | None = None
    gift_name: str | None = None
    gift_value: int | None = None
    profile_pic: str | None = None
    raw_event: dict = field(default_factory=dict)
    created_at: datetime | None = None
