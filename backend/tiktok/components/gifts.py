"""Target gift classification.

A gift is a target when its numeric id is configured for the broadcaster, or
when its display name contains one of the configured names (case-insensitive
substring match, so "HEART ME x5" still counts as "Heart Me").
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from shared.models.gift import GiftTarget, GiftTargetConfig

from .feed import GiftReceived

HEARTME_GIFT_ID = 5281

DEFAULT_TARGET_CONFIG = GiftTargetConfig(
    username="",
    targets=(GiftTarget(gift_id=HEARTME_GIFT_ID, names=("Heart Me", "Coração pra mim")),),
)

MatchedBy = Literal["id", "name"]


@dataclass(frozen=True)
class GiftMatch:
    is_target: bool
    matched_by: MatchedBy | None = None


NO_MATCH = GiftMatch(is_target=False)


def classify(gift: GiftReceived, config: GiftTargetConfig | None) -> GiftMatch:
    """Decide whether ``gift`` is a target; id wins over name when both match."""
    effective = config if config else DEFAULT_TARGET_CONFIG

    if gift.gift_id is not None and gift.gift_id in effective.gift_ids:
        return GiftMatch(is_target=True, matched_by="id")

    gift_name = gift.gift_name.casefold()
    if gift_name and any(name.casefold() in gift_name for name in effective.names):
        return GiftMatch(is_target=True, matched_by="name")

    return NO_MATCH
