"""Decode raw TikTokLive events into the relay's internal event variants.

TikTokLive payloads are protobuf-backed objects whose optional fields differ
between library releases, so all attribute probing happens here, once.  The
battle engine and the gift handler only ever see the frozen dataclasses below.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Union

LOGGER = logging.getLogger("FeedDecoder")

_MISSING = object()


def _field(obj: Any, *names: str, default: Any = None) -> Any:
    """First non-empty value among ``names``, read as attribute or mapping key.

    Protobuf messages report unset strings as ``""``, so those are skipped too.
    """
    if obj is None:
        return default
    for name in names:
        if isinstance(obj, Mapping):
            value = obj.get(name, _MISSING)
        else:
            value = getattr(obj, name, _MISSING)
        if value is _MISSING or value is None or (isinstance(value, str) and not value):
            continue
        return value
    return default


def _as_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class GiftReceived:
    gift_id: int | None
    gift_name: str
    repeat_count: int
    diamond_count: int | None
    sender: str
    profile_picture_url: str | None
    streaking: bool = False


@dataclass(frozen=True)
class BattleParticipant:
    user_id: str
    nickname: str


@dataclass(frozen=True)
class BattleStarted:
    participants: tuple[BattleParticipant, ...]
    battle_id: str | None = None


@dataclass(frozen=True)
class ScoreUpdated:
    score_a: int
    score_b: int


@dataclass(frozen=True)
class BattleResult:
    host_won: bool


FeedEvent = Union[GiftReceived, BattleStarted, ScoreUpdated, BattleResult]


def _avatar_url(user: Any) -> str | None:
    direct = _field(user, "profile_picture_url", "avatar_url")
    if direct:
        return str(direct)
    thumb = _field(user, "avatar_thumb", "profile_picture")
    urls = _field(thumb, "m_urls", "url_list", "urls", default=())
    for url in urls or ():
        if url:
            return str(url)
    return None


def decode_gift(event: Any) -> GiftReceived:
    """Gift events always decode; missing fields get neutral defaults."""
    gift = _field(event, "gift")
    user = _field(event, "user")

    gift_id = _field(gift, "id", default=_field(event, "gift_id"))
    diamonds = _field(gift, "diamond_count", default=_field(event, "diamond_count"))

    return GiftReceived(
        gift_id=_as_int(gift_id) if gift_id is not None else None,
        gift_name=str(_field(gift, "name", default=_field(event, "gift_name", default=""))),
        repeat_count=max(1, _as_int(_field(event, "repeat_count"), 1)),
        diamond_count=_as_int(diamonds) if diamonds is not None else None,
        sender=str(_field(user, "unique_id", "display_id", "nickname", default="unknown")),
        profile_picture_url=_avatar_url(user),
        streaking=bool(_field(event, "streaking", default=False)),
    )


def _participant(entry: Any) -> BattleParticipant | None:
    """``BattleUserInfoWrapper`` -> ``.value`` (``BattleUserInfo``) -> ``.user``."""
    info = _field(_field(entry, "value"), "user")
    nickname = _field(info, "nick_name", default="")
    if not str(nickname).strip():
        return None
    user_id = _field(info, "user_id", default=_field(entry, "key", default=""))
    return BattleParticipant(user_id=str(user_id), nickname=str(nickname))


def decode_battle_start(event: Any) -> BattleStarted:
    """Participants in feed order; entries without a nickname are dropped."""
    entries: Iterable[Any] = _field(event, "anchors_info", default=()) or ()

    participants = tuple(p for p in (_participant(e) for e in entries) if p is not None)
    battle_id = _field(event, "battle_id")
    return BattleStarted(
        participants=participants,
        battle_id=str(battle_id) if battle_id else None,
    )


def decode_score(event: Any) -> ScoreUpdated:
    """``armies`` maps anchor id -> ``BattleUserArmies``; the first two are A and B."""
    armies = _field(event, "armies", default={})
    entries = list(armies.values()) if isinstance(armies, Mapping) else list(armies or ())

    score_a = _field(entries[0], "hostscore") if entries else None
    score_b = _field(entries[1], "hostscore") if len(entries) > 1 else None
    return ScoreUpdated(score_a=max(0, _as_int(score_a)), score_b=max(0, _as_int(score_b)))


def decode_result(event: Any) -> BattleResult | None:
    """``LinkMicMethodEvent`` carries many link-mic messages; only those with a verdict count."""
    win = _field(event, "win")
    if win is None:
        LOGGER.debug(f"Ignoring link-mic method message without a result: {type(event).__name__}")
        return None
    return BattleResult(host_won=bool(win))
