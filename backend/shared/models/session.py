"""Data model for tiktok_sessions table."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

STATUS_PENDING = "pending"
STATUS_CONNECTING = "connecting"
STATUS_CONNECTED = "connected"
STATUS_DISCONNECTED = "disconnected"
STATUS_ERROR = "error"

SESSION_STATUSES = (
    STATUS_PENDING,
    STATUS_CONNECTING,
    STATUS_CONNECTED,
    STATUS_DISCONNECTED,
    STATUS_ERROR,
)

# Written by external actors to request a teardown of the active session
TERMINAL_STATUSES = frozenset({STATUS_DISCONNECTED, STATUS_ERROR})

# Statuses eligible for periodic cleanup once a session is old enough
STALE_STATUSES = (STATUS_DISCONNECTED, STATUS_PENDING, STATUS_ERROR)


@dataclass
class LiveSession:
    """A single 'watch this broadcaster' request."""

    id: int
    username: str
    status: str  # one of SESSION_STATUSES
    created_at: datetime | None = None
