"""Decoding raw TikTokLive event objects."""
from __future__ import annotations

from types import SimpleNamespace

from TikTokLive.events import LinkMicArmiesEvent, LinkMicBattleEvent, LinkMicMethodEvent
from TikTokLiveProto.v3.webcast.model.live.match import BattleBaseUserInfo, BattleUserInfo
from TikTokLiveProto.v3.webcast.model.message.battle import (
    BattleUserArmies,
    BattleUserInfoWrapper,
)

from tiktok.components.feed import (
    BattleResult,
    decode_battle_start,
    decode_gift,
    decode_result,
    decode_score,
)


def gift_event(**overrides):
    fields = {
        "gift": SimpleNamespace(id=5281, name="Heart Me", diamond_count=1),
        "user": SimpleNamespace(
            unique_id="viewer_1",
            nickname="Viewer",
            avatar_thumb=SimpleNamespace(m_urls=["", "https://cdn/avatar.webp"]),
        ),
        "repeat_count": 3,
        "streaking": False,
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


class TestDecodeGift:
    def test_full_event(self) -> None:
        gift = decode_gift(gift_event())

        assert gift.gift_id == 5281
        assert gift.gift_name == "Heart Me"
        assert gift.repeat_count == 3
        assert gift.diamond_count == 1
        assert gift.sender == "viewer_1"
        assert gift.profile_picture_url == "https://cdn/avatar.webp"
        assert gift.streaking is False

    def test_empty_unique_id_falls_back_to_nickname(self) -> None:
        event = gift_event(user=SimpleNamespace(unique_id="", nickname="Viewer"))
        assert decode_gift(event).sender == "Viewer"

    def test_missing_fields_get_defaults(self) -> None:
        gift = decode_gift(SimpleNamespace())

        assert gift.gift_id is None
        assert gift.gift_name == ""
        assert gift.repeat_count == 1
        assert gift.sender == "unknown"
        assert gift.profile_picture_url is None

    def test_mapping_payload(self) -> None:
        gift = decode_gift({"gift": {"id": "12", "name": "Rose"}, "repeat_count": 0})

        assert gift.gift_id == 12
        assert gift.repeat_count == 1

    def test_streaking_flag(self) -> None:
        assert decode_gift(gift_event(streaking=True)).streaking is True


def anchor(user_id: int, nick_name: str) -> BattleUserInfoWrapper:
    return BattleUserInfoWrapper(
        key=user_id,
        value=BattleUserInfo(user=BattleBaseUserInfo(user_id=user_id, nick_name=nick_name)),
    )


class TestDecodeBattleStart:
    def test_anchors_in_feed_order(self) -> None:
        event = LinkMicBattleEvent(
            battle_id=77,
            anchors_info=[anchor(1, "HostX"), anchor(2, "OppY")],
        )
        started = decode_battle_start(event)

        assert [p.nickname for p in started.participants] == ["HostX", "OppY"]
        assert started.participants[0].user_id == "1"
        assert started.battle_id == "77"

    def test_anchors_without_nickname_are_dropped(self) -> None:
        event = LinkMicBattleEvent(
            anchors_info=[
                anchor(1, ""),
                BattleUserInfoWrapper(key=3, value=BattleUserInfo()),
                anchor(2, "OppY"),
            ]
        )
        started = decode_battle_start(event)

        assert [p.nickname for p in started.participants] == ["OppY"]

    def test_no_anchors(self) -> None:
        started = decode_battle_start(LinkMicBattleEvent())

        assert started.participants == ()
        assert started.battle_id is None


class TestDecodeScore:
    def test_host_scores_in_army_order(self) -> None:
        event = LinkMicArmiesEvent(
            armies={1: BattleUserArmies(hostscore=10), 2: BattleUserArmies(hostscore=4)}
        )
        score = decode_score(event)

        assert (score.score_a, score.score_b) == (10, 4)

    def test_single_army_leaves_b_at_zero(self) -> None:
        score = decode_score(LinkMicArmiesEvent(armies={1: BattleUserArmies(hostscore=5)}))

        assert (score.score_a, score.score_b) == (5, 0)

    def test_no_armies(self) -> None:
        score = decode_score(LinkMicArmiesEvent())

        assert (score.score_a, score.score_b) == (0, 0)


class TestDecodeResult:
    def test_host_won(self) -> None:
        assert decode_result(LinkMicMethodEvent(win=True)) == BattleResult(host_won=True)

    def test_host_lost(self) -> None:
        assert decode_result(LinkMicMethodEvent(win=False)) == BattleResult(host_won=False)

    def test_payload_without_verdict_is_ignored(self) -> None:
        assert decode_result({"message_type": 3}) is None
