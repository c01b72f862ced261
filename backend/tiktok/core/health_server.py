"""HTTP health check server"""

import asyncio
import functools
import json
import logging
import time
from dataclasses import asdict
from typing import TYPE_CHECKING, Any

from aiohttp import web

if TYPE_CHECKING:
    from shared.database import DatabaseManager
    from shared.repositories.live_event import LiveEventRepository

    from .session_manager import SessionManager

logger = logging.getLogger("Relay.Health")


class HealthCheckServer:
    """HTTP health check server"""

    def __init__(
        self,
        manager: "SessionManager | None" = None,
        db: "DatabaseManager | None" = None,
        events: "LiveEventRepository | None" = None,
        host: str = "0.0.0.0",
        port: int = 4345,
    ):
        self.manager: Any = manager
        self.db: Any = db
        self.events: Any = events
        self.host = host
        self.port = port
        self.app = web.Application()
        self.runner: web.AppRunner | None = None
        self._start_time: float = time.time()
        self._heartbeat_task: asyncio.Task | None = None
        self._setup_routes()

    def _setup_routes(self) -> None:
        """Configure HTTP routes"""
        self.app.router.add_get("/", self.handle_root)
        self.app.router.add_get("/health", self.handle_health)
        self.app.router.add_get("/status", self.handle_status)
        self.app.router.add_get("/ping", self.handle_ping)
        self.app.router.add_get("/events", self.handle_events)

    async def handle_root(self, request: web.Request) -> web.Response:
        """Root endpoint - minimal service info"""
        return web.json_response({"service": "tiktok-relay", "status": "running"})

    async def handle_health(self, request: web.Request) -> web.Response:
        """Liveness: always 200, ``ready`` reflects the database pool"""
        ready = False
        if self.db is not None:
            ready = await self.db.check_health()
        return web.json_response(
            {"status": "healthy" if ready else "starting", "ready": ready},
        )

    async def handle_status(self, request: web.Request) -> web.Response:
        """Active session and battle state"""
        snapshot = self.manager.snapshot() if self.manager else {"active": False}
        return web.json_response(
            {
                "service": "tiktok-relay",
                "uptime_seconds": int(time.time() - self._start_time),
                **snapshot,
            }
        )

    async def handle_ping(self, request: web.Request) -> web.Response:
        """Ping endpoint"""
        return web.Response(text="pong")

    async def handle_events(self, request: web.Request) -> web.Response:
        """Latest stored events of the active session, newest first"""
        session_id = self.manager.active_session_id if self.manager else None
        if session_id is None or self.events is None:
            return web.json_response({"session_id": None, "events": []})

        try:
            limit = int(request.query.get("limit", "50"))
        except ValueError:
            limit = 50
        limit = max(1, min(limit, 200))

        events = await self.events.list_by_session(session_id, limit)
        return web.json_response(
            {"session_id": session_id, "events": [asdict(e) for e in events]},
            dumps=functools.partial(json.dumps, default=str),
        )

    async def _heartbeat(self) -> None:
        """Periodic heartbeat: log uptime and the active session"""
        while True:
            await asyncio.sleep(300)
            uptime = int(time.time() - self._start_time)
            session_id = self.manager.active_session_id if self.manager else None
            logger.info(f"Heartbeat: uptime={uptime}s, active_session={session_id}")

    async def start(self) -> None:
        """Start health check server"""
        try:
            self.runner = web.AppRunner(self.app)
            await self.runner.setup()

            site = web.TCPSite(self.runner, self.host, self.port)
            await site.start()

            self._heartbeat_task = asyncio.create_task(self._heartbeat())

            logger.info(f"Health server started on {self.host}:{self.port}")
            logger.info(f"  GET http://{self.host}:{self.port}/health - Health check")
            logger.info(f"  GET http://{self.host}:{self.port}/status - Session and battle state")

        except Exception as e:
            logger.exception(f"Failed to start health server: {e}")
            raise

    async def stop(self) -> None:
        """Stop health check server"""
        if self._heartbeat_task:
            self._heartbeat_task.cancel()
        if self.runner:
            try:
                await self.runner.cleanup()
                logger.info("Health server stopped")
            except Exception as e:
                logger.exception(f"Error stopping health server: {e}")
