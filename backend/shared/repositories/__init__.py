"""Shared repository layer for the TikTok relay services."""

from .gift_config import GiftConfigRepository
from .live_event import LiveEventRepository
from .session import SessionRepository

__all__ = [
    "GiftConfigRepository",
    "LiveEventRepository",
    "SessionRepository",
]
