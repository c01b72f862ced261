"""TikTok battle relay entry point.

Run from the ``backend`` directory::

    python -m tiktok.main
"""

import asyncio
import contextlib
import logging
import sys

from shared.database import DatabaseManager, PoolConfig
from shared.migrations.runner import MigrationRunner
from shared.repositories import GiftConfigRepository, LiveEventRepository, SessionRepository
from tiktok.core import (
    EventSink,
    HealthCheckServer,
    SessionManager,
    make_client_factory,
    pg_listen,
    setup_logging,
    validate_env_vars,
)
from tiktok.core.config import TikTokRelaySettings

LOGGER: logging.Logger = logging.getLogger("Relay")

SESSION_INSERT_CHANNEL = "tiktok_session_insert"
SESSION_UPDATE_CHANNEL = "tiktok_session_update"


async def run(settings: TikTokRelaySettings) -> None:
    db = DatabaseManager(settings.database_url, PoolConfig.for_service("tiktok"))
    await db.connect()

    tasks: list[asyncio.Task] = []
    manager: SessionManager | None = None
    health = None
    try:
        await MigrationRunner(db.pool).run_pending()

        sessions = SessionRepository(db.pool)
        events = LiveEventRepository(db.pool)
        manager = SessionManager(
            sessions,
            events,
            GiftConfigRepository(db.pool),
            EventSink(sessions, events),
            client_factory=make_client_factory(settings.sign_api_key),
            round_timeout=settings.round_timeout_seconds,
            max_hearts=settings.max_hearts,
            stale_session_seconds=settings.stale_session_seconds,
        )

        health = HealthCheckServer(
            manager=manager, db=db, events=events, port=settings.health_port
        )
        await health.start()

        # The insert listener adopts the newest pending session every time it
        # (re)connects, which also covers startup
        tasks = [
            asyncio.create_task(
                pg_listen(
                    db.pool,
                    SESSION_INSERT_CHANNEL,
                    manager.handle_session_insert,
                    on_listen=manager.adopt_pending_session,
                ),
                name="listen-session-insert",
            ),
            asyncio.create_task(
                pg_listen(db.pool, SESSION_UPDATE_CHANNEL, manager.handle_session_update),
                name="listen-session-update",
            ),
            asyncio.create_task(
                manager.cleanup_loop(settings.cleanup_interval_seconds),
                name="session-cleanup",
            ),
        ]
        LOGGER.info("TikTok relay running, waiting for sessions...")
        await asyncio.gather(*tasks)
    finally:
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if manager is not None:
            await manager.teardown()
        if health is not None:
            await health.stop()
        await db.disconnect()


def main() -> None:
    try:
        settings = validate_env_vars()
    except ValueError:
        sys.exit(1)

    setup_logging(settings.log_level)

    try:
        asyncio.run(run(settings))
    except KeyboardInterrupt:
        LOGGER.warning("Shutting down due to KeyboardInterrupt...")


if __name__ == "__main__":
    main()
