"""Data models for gift_catalog and gift_target_configs tables."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class GiftTarget:
    """One configured target gift: numeric id plus its localized display names."""

    gift_id: int
    names: tuple[str, ...] = ()
    diamond_value: int | None = None


@dataclass(frozen=True)
class GiftTargetConfig:
    """Target gift set for one broadcaster, loaded when its session activates."""

    username: str
    targets: tuple[GiftTarget, ...] = field(default_factory=tuple)

    @property
    def gift_ids(self) -> frozenset[int]:
        return frozenset(t.gift_id for t in self.targets)

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(name for t in self.targets for name in t.names if name.strip())

    def __bool__(self) -> bool:
        return bool(self.targets)
