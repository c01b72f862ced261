"""Health server endpoints."""
from __future__ import annotations

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from aiohttp.test_utils import make_mocked_request

from shared.models.live_event import LiveEvent
from tiktok.core.health_server import HealthCheckServer


def body(response) -> dict:
    return json.loads(response.text)


class TestHealthCheckServer:
    @pytest.mark.asyncio
    async def test_health_ready_with_database(self) -> None:
        db = MagicMock()
        db.check_health = AsyncMock(return_value=True)
        server = HealthCheckServer(db=db)

        response = await server.handle_health(make_mocked_request("GET", "/health"))

        assert response.status == 200
        assert body(response) == {"status": "healthy", "ready": True}

    @pytest.mark.asyncio
    async def test_health_starting_without_database(self) -> None:
        server = HealthCheckServer()

        response = await server.handle_health(make_mocked_request("GET", "/health"))

        assert response.status == 200
        assert body(response)["ready"] is False

    @pytest.mark.asyncio
    async def test_status_includes_snapshot(self) -> None:
        manager = MagicMock()
        manager.snapshot.return_value = {
            "active": True,
            "session": {"id": 1, "username": "host"},
            "gift_targets": [5281],
            "battle": {"phase": "idle", "hearts_a": 5, "hearts_b": 5},
        }
        server = HealthCheckServer(manager=manager)

        response = await server.handle_status(make_mocked_request("GET", "/status"))

        data = body(response)
        assert data["service"] == "tiktok-relay"
        assert data["session"]["username"] == "host"
        assert data["battle"]["hearts_a"] == 5
        assert "uptime_seconds" in data

    @pytest.mark.asyncio
    async def test_ping(self) -> None:
        response = await HealthCheckServer().handle_ping(make_mocked_request("GET", "/ping"))

        assert response.text == "pong"

    def test_routes(self) -> None:
        server = HealthCheckServer(port=0)
        paths = {route.resource.canonical for route in server.app.router.routes()}

        assert {"/", "/health", "/status", "/ping", "/events"} <= paths


class TestEventsEndpoint:
    @pytest.mark.asyncio
    async def test_no_active_session(self) -> None:
        manager = MagicMock()
        manager.active_session_id = None
        server = HealthCheckServer(manager=manager, events=MagicMock())

        response = await server.handle_events(make_mocked_request("GET", "/events"))

        assert body(response) == {"session_id": None, "events": []}

    @pytest.mark.asyncio
    async def test_lists_active_session_events(self) -> None:
        manager = MagicMock()
        manager.active_session_id = 7
        events = MagicMock()
        events.list_by_session = AsyncMock(
            return_value=[
                LiveEvent(
                    id=1,
                    session_id=7,
                    event_type="battle",
                    username="battle_system",
                    gift_name="round_end",
                    raw_event={"type": "round_end"},
                    created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
                )
            ]
        )
        server = HealthCheckServer(manager=manager, events=events)

        response = await server.handle_events(make_mocked_request("GET", "/events?limit=500"))

        events.list_by_session.assert_awaited_once_with(7, 200)
        data = body(response)
        assert data["session_id"] == 7
        assert data["events"][0]["gift_name"] == "round_end"
        assert data["events"][0]["created_at"].startswith("2026-01-01")
