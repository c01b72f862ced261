"""PostgreSQL LISTEN/NOTIFY loop for session change notifications."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import asyncpg

LOGGER = logging.getLogger("PgListener")

NotifyHandler = Callable[[asyncpg.Connection, int, str, str], Awaitable[None]]


async def _release_quietly(pool: asyncpg.Pool, connection: asyncpg.Connection) -> None:
    try:
        await pool.release(connection)
    except Exception as e:
        LOGGER.debug(f"Release failed ({type(e).__name__}), terminating LISTEN connection")
        connection.terminate()


async def pg_listen(
    pool: asyncpg.Pool,
    channel: str,
    handler: NotifyHandler,
    *,
    on_listen: Callable[[], Awaitable[Any]] | None = None,
    keepalive_interval: int = 30,
    reconnect_delay: int = 10,
) -> None:
    """Hold a LISTEN on *channel* until cancelled, reconnecting after errors.

    Args:
        pool: asyncpg pool; one connection stays checked out while listening.
        channel: NOTIFY channel name, e.g. ``tiktok_session_insert``.
        handler: ``(connection, pid, channel, payload)`` coroutine.
        on_listen: Awaited each time the LISTEN becomes active.  Notifications
            sent while the connection was down are lost, so this is where the
            caller re-reads whatever state it would otherwise have missed.
        keepalive_interval: Seconds between keepalive pings.  Shorter than
            Supavisor's client heartbeat so the proxy keeps the session.
        reconnect_delay: Seconds to wait before reconnecting after an error.
    """
    while True:
        connection: asyncpg.Connection | None = None
        try:
            connection = await pool.acquire()
            await connection.add_listener(channel, handler)
            LOGGER.info(f"PostgreSQL LISTEN active on '{channel}' channel")

            if on_listen is not None:
                try:
                    await on_listen()
                except Exception as e:
                    LOGGER.exception(f"Resync after LISTEN '{channel}' failed: {e}")

            while True:
                await asyncio.sleep(keepalive_interval)
                await connection.execute("SELECT 1")

        except asyncio.CancelledError:
            LOGGER.info(f"PostgreSQL LISTEN '{channel}' shutting down...")
            break
        except Exception as e:
            LOGGER.error(f"Error in pg_listen('{channel}'): {type(e).__name__}: {e}")
            LOGGER.warning(f"Reconnecting LISTEN '{channel}' in {reconnect_delay}s...")
        finally:
            if connection is not None:
                try:
                    await connection.remove_listener(channel, handler)
                except Exception:
                    LOGGER.debug(f"remove_listener on '{channel}' failed, connection is gone")
                await _release_quietly(pool, connection)

        try:
            await asyncio.sleep(reconnect_delay)
        except asyncio.CancelledError:
            break
