"""EventSink: row mapping for battle and gift records."""
from __future__ import annotations

import pytest

from tiktok.core.event_sink import EventSink


@pytest.fixture()
def event_sink(session_repo, event_repo) -> EventSink:
    return EventSink(session_repo, event_repo)


class TestBattleRecords:
    @pytest.mark.asyncio
    async def test_battle_kind_row(self, event_sink, event_repo) -> None:
        ok = await event_sink.record("round_end", {"scoreA": 10, "scoreB": 4}, session_id=7)

        assert ok is True
        args, kwargs = event_repo.insert_event.call_args
        session_id, event_type, username, raw_event = args
        assert (session_id, event_type, username) == (7, "battle", "battle_system")
        assert kwargs == {"gift_name": "round_end"}
        assert raw_event["type"] == "round_end"
        assert raw_event["scoreA"] == 10
        assert "timestamp" in raw_event


class TestGiftRecords:
    @pytest.mark.asyncio
    async def test_heartme_row(self, event_sink, event_repo) -> None:
        payload = {
            "sender": "viewer_1",
            "giftId": 5281,
            "giftName": "Heart Me",
            "repeatCount": 3,
            "diamondCount": None,
            "profilePictureUrl": "https://cdn/a.webp",
            "matchedBy": "id",
        }
        assert await event_sink.record("heartme", payload, session_id=7)

        args, kwargs = event_repo.insert_event.call_args
        assert args[1:3] == ("heartme", "viewer_1")
        assert kwargs == {
            "gift_name": "Heart Me",
            "gift_value": 3,
            "profile_pic": "https://cdn/a.webp",
        }
        assert args[3]["matchedBy"] == "id"

    @pytest.mark.asyncio
    async def test_gift_value_prefers_diamonds(self, event_sink, event_repo) -> None:
        payload = {"sender": "v", "giftName": "Lion", "repeatCount": 2, "diamondCount": 29999}
        await event_sink.record("gift", payload, session_id=7)

        assert event_repo.insert_event.call_args.kwargs["gift_value"] == 29999


class TestFailures:
    @pytest.mark.asyncio
    async def test_missing_session_is_skipped(self, event_sink, session_repo, event_repo) -> None:
        session_repo.exists.return_value = False

        assert await event_sink.record("battle_start", {}, session_id=99) is False
        event_repo.insert_event.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_store_error_returns_false(self, event_sink, event_repo) -> None:
        event_repo.insert_event.side_effect = ConnectionError("db gone")

        assert await event_sink.record("battle_score", {"scoreA": 1}, session_id=7) is False
