"""Shared data models for the TikTok relay services."""

from .gift import GiftTarget, GiftTargetConfig
from .live_event import LiveEvent
from .session import LiveSession

__all__ = [
    "GiftTarget",
    "GiftTargetConfig",
    "LiveEvent",
    "LiveSession",
]
