"""Session lifecycle: at most one live TikTok connection per process.

Activation and teardown are serialized by one lock, so switching targets
always finishes tearing the old session down before the new one is marked
``connecting``.  Feed handlers are closures over the ``EngineContext`` they
were registered for and do nothing once that context is no longer current.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from TikTokLive.events import (
    DisconnectEvent,
    GiftEvent,
    LinkMicArmiesEvent,
    LinkMicBattleEvent,
    LinkMicMethodEvent,
    LiveEndEvent,
)

from shared.models.gift import GiftTargetConfig
from shared.models.session import (
    STATUS_CONNECTED,
    STATUS_CONNECTING,
    STATUS_DISCONNECTED,
    STATUS_ERROR,
    STATUS_PENDING,
    TERMINAL_STATUSES,
)
from shared.repositories.gift_config import GiftConfigRepository
from shared.repositories.live_event import LiveEventRepository
from shared.repositories.session import SessionRepository

from ..components.battle import BattleEngine
from ..components.feed import (
    GiftReceived,
    decode_battle_start,
    decode_gift,
    decode_result,
    decode_score,
)
from ..components.gifts import DEFAULT_TARGET_CONFIG, classify
from .event_sink import GIFT_KIND, TARGET_GIFT_KIND, EventSink

LOGGER = logging.getLogger("SessionManager")

RecordFn = Callable[[str, dict[str, Any]], Awaitable[bool]]


def normalize_handle(handle: str) -> str:
    """``" @someone "`` -> ``"someone"``."""
    return (handle or "").strip().lstrip("@").strip()


@dataclass
class EngineContext:
    """Everything bound to the one active session."""

    session_id: int
    username: str
    client: Any
    feed_task: asyncio.Future | None = None
    gift_config: GiftTargetConfig | None = None
    battle: BattleEngine | None = None
    record: RecordFn | None = None
    connected_at: float = field(default_factory=time.time)
    gifts_received: int = 0
    target_gifts: int = 0


class SessionManager:
    def __init__(
        self,
        sessions: SessionRepository,
        events: LiveEventRepository,
        gift_configs: GiftConfigRepository,
        sink: EventSink,
        *,
        client_factory: Callable[[str], Any],
        round_timeout: float = 15.0,
        max_hearts: int = 5,
        stale_session_seconds: float = 30.0,
    ) -> None:
        self.sessions = sessions
        self.events = events
        self.gift_configs = gift_configs
        self.sink = sink
        self.client_factory = client_factory
        self.round_timeout = round_timeout
        self.max_hearts = max_hearts
        self.stale_session_seconds = stale_session_seconds

        self.context: EngineContext | None = None
        self._lock = asyncio.Lock()
        self._background: set[asyncio.Task] = set()

    @property
    def active_session_id(self) -> int | None:
        return self.context.session_id if self.context else None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def activate(self, target_handle: str, session_id: int) -> bool:
        """Connect to ``target_handle`` for ``session_id``, replacing any active session."""
        username = normalize_handle(target_handle)

        async with self._lock:
            if self.context is not None and self.context.session_id == session_id:
                LOGGER.debug(f"Session {session_id} is already active")
                return True

            await self._teardown_locked(STATUS_DISCONNECTED)

            if not username:
                LOGGER.warning(f"Session {session_id} has no target username")
                await self._set_status(session_id, STATUS_ERROR)
                return False

            LOGGER.info(f"Connecting to @{username} (session {session_id})...")
            await self._set_status(session_id, STATUS_CONNECTING)

            client = None
            try:
                client = self.client_factory(username)
                feed_task = await client.start()
            except Exception as e:
                LOGGER.error(f"Failed to connect to @{username}: {type(e).__name__}: {e}")
                await self._set_status(session_id, STATUS_ERROR)
                if client is not None:
                    await self._disconnect_quietly(client)
                return False

            context = EngineContext(
                session_id=session_id, username=username, client=client, feed_task=feed_task
            )
            context.record = self._recorder(context)
            self.context = context

            await self._set_status(session_id, STATUS_CONNECTED)
            context.gift_config = await self._load_gift_config(username)
            context.battle = BattleEngine(
                context.record,
                round_timeout=self.round_timeout,
                max_hearts=self.max_hearts,
            )
            self._register_handlers(context)

            if isinstance(feed_task, asyncio.Future):
                feed_task.add_done_callback(lambda task: self._on_feed_done(context, task))

            LOGGER.info(f"Connected to @{username} (session {session_id})")
            return True

    async def teardown(
        self, session_id: int | None = None, final_status: str | None = STATUS_DISCONNECTED
    ) -> bool:
        """Tear down the active session.

        With ``session_id`` set, only that session is torn down.  A
        ``final_status`` of None leaves the row's status untouched, for when
        the caller (or an external writer) already set it.
        """
        async with self._lock:
            context = self.context
            if context is None:
                return False
            if session_id is not None and context.session_id != session_id:
                LOGGER.debug(
                    f"Teardown for session {session_id} skipped, active is {context.session_id}"
                )
                return False
            await self._teardown_locked(final_status)
            return True

    async def _teardown_locked(self, final_status: str | None) -> None:
        context = self.context
        if context is None:
            return

        # Cleared first: in-flight handlers and the recorder check this pointer
        self.context = None
        LOGGER.info(f"Tearing down session {context.session_id} (@{context.username})")

        try:
            context.client.remove_all_listeners()
        except Exception as e:
            LOGGER.debug(f"remove_all_listeners failed: {type(e).__name__}: {e}")
        if context.battle is not None:
            context.battle.close()

        await self._disconnect_quietly(context.client)
        if context.feed_task is not None and not context.feed_task.done():
            context.feed_task.cancel()

        try:
            deleted = await self.events.delete_by_session(context.session_id)
            LOGGER.info(f"Deleted {deleted} event(s) of session {context.session_id}")
        except Exception as e:
            LOGGER.error(
                f"Failed to delete events of session {context.session_id}: "
                f"{type(e).__name__}: {e}"
            )

        if final_status is not None:
            await self._set_status(context.session_id, final_status)

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    async def handle_session_insert(self, connection, pid, channel, payload) -> None:
        """NOTIFY ``tiktok_session_insert``: a new session row was created."""
        try:
            LOGGER.info(f"[NOTIFY] Received session insert on '{channel}': {payload}")
            data = json.loads(payload)
            if data.get("status") != STATUS_PENDING:
                LOGGER.debug(f"[NOTIFY] Ignoring non-pending session {data.get('id')}")
                return
            await self.activate(data.get("username") or "", int(data["id"]))
        except Exception as e:
            LOGGER.exception(f"[NOTIFY] Error handling session insert: {e}")

    async def handle_session_update(self, connection, pid, channel, payload) -> None:
        """NOTIFY ``tiktok_session_update``: honour an external terminal status write."""
        try:
            data = json.loads(payload)
            session_id = int(data["id"])
            status = data.get("status")
            if status not in TERMINAL_STATUSES or session_id != self.active_session_id:
                return
            LOGGER.info(f"[NOTIFY] Session {session_id} set to '{status}', disconnecting")
            await self.teardown(session_id, final_status=None)
        except Exception as e:
            LOGGER.exception(f"[NOTIFY] Error handling session update: {e}")

    async def adopt_pending_session(self) -> bool:
        """Activate the newest pending session, if any. Run at start and after LISTEN reconnects."""
        try:
            session = await self.sessions.get_latest_pending()
        except Exception as e:
            LOGGER.error(f"Failed to look up pending sessions: {type(e).__name__}: {e}")
            return False

        if session is None:
            LOGGER.info("No pending session to adopt")
            return False

        active_id = self.active_session_id
        if active_id is not None and session.id <= active_id:
            LOGGER.info(
                f"Pending session {session.id} is older than active session {active_id}, not adopting"
            )
            return False

        LOGGER.info(f"Adopting pending session {session.id} for @{session.username}")
        return await self.activate(session.username, session.id)

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    async def cleanup_stale_sessions(self) -> int:
        deleted = await self.sessions.delete_stale(
            self.stale_session_seconds, keep_session_id=self.active_session_id
        )
        if deleted:
            LOGGER.info(f"Cleaned up {deleted} stale session(s)")
        return deleted

    async def cleanup_loop(self, interval: float = 30.0) -> None:
        LOGGER.info(f"Stale session cleanup every {interval:g}s")
        while True:
            try:
                await asyncio.sleep(interval)
                await self.cleanup_stale_sessions()
            except asyncio.CancelledError:
                LOGGER.info("Session cleanup shutting down...")
                break
            except Exception as e:
                LOGGER.error(f"Error in session cleanup: {type(e).__name__}: {e}")

    def snapshot(self) -> dict[str, Any]:
        context = self.context
        if context is None:
            return {"active": False, "session": None, "gift_targets": [], "battle": None}

        config = context.gift_config or DEFAULT_TARGET_CONFIG
        battle: dict[str, Any] | None = None
        if context.battle is not None:
            battle = {
                **context.battle.state.to_dict(),
                "games_completed": context.battle.games_completed,
                "last_winner": context.battle.last_winner,
            }
        return {
            "active": True,
            "session": {
                "id": context.session_id,
                "username": context.username,
                "connected_seconds": int(time.time() - context.connected_at),
                "gifts_received": context.gifts_received,
                "target_gifts": context.target_gifts,
            },
            "gift_targets": sorted(config.gift_ids),
            "battle": battle,
        }

    # ------------------------------------------------------------------
    # Feed handlers
    # ------------------------------------------------------------------

    def _register_handlers(self, context: EngineContext) -> None:
        client = context.client
        battle = context.battle
        if battle is None:
            LOGGER.error(f"Session {context.session_id} has no battle engine, handlers not registered")
            return

        async def on_result(event: LinkMicMethodEvent) -> None:
            result = decode_result(event)
            if result is not None:
                await battle.apply_result(result)

        bindings = [
            (GiftEvent, "gift", lambda e: self._handle_gift(context, decode_gift(e))),
            (LinkMicBattleEvent, "battle start", lambda e: battle.start_round(decode_battle_start(e))),
            (LinkMicArmiesEvent, "battle score", lambda e: battle.update_score(decode_score(e))),
            (LinkMicMethodEvent, "battle result", on_result),
            (LiveEndEvent, "stream end", lambda e: self._end_session(context, "stream ended")),
            (DisconnectEvent, "disconnect", lambda e: self._end_session(context, "disconnected")),
        ]
        for event_cls, label, handle in bindings:
            client.add_listener(event_cls, self._bind(context, label, handle))

    def _bind(self, context: EngineContext, label: str, handle: Callable[[Any], Awaitable[Any]]):
        async def handler(event: Any) -> None:
            if self.context is not context:
                return
            try:
                await handle(event)
            except Exception as e:
                LOGGER.exception(f"Error handling {label} event: {e}")

        return handler

    async def _handle_gift(self, context: EngineContext, gift: GiftReceived) -> None:
        if gift.streaking:
            # Streakable gifts repeat while the combo runs; the final event carries the count
            return

        match = classify(gift, context.gift_config)
        context.gifts_received += 1
        if match.is_target:
            context.target_gifts += 1
            kind = TARGET_GIFT_KIND
            LOGGER.info(
                f"Target gift '{gift.gift_name}' from {gift.sender} ({gift.repeat_count}x, by {match.matched_by})"
            )
        else:
            kind = GIFT_KIND
            LOGGER.debug(f"Gift '{gift.gift_name}' from {gift.sender} ({gift.repeat_count}x)")

        if context.record is None:
            LOGGER.warning(f"Session {context.session_id} has no recorder, dropping gift")
            return
        await context.record(
            kind,
            {
                "sender": gift.sender,
                "giftId": gift.gift_id,
                "giftName": gift.gift_name,
                "repeatCount": gift.repeat_count,
                "diamondCount": gift.diamond_count,
                "profilePictureUrl": gift.profile_picture_url,
                "matchedBy": match.matched_by,
            },
        )

    async def _end_session(self, context: EngineContext, reason: str) -> None:
        LOGGER.info(f"@{context.username} {reason}, ending session {context.session_id}")
        await self.teardown(context.session_id, final_status=STATUS_DISCONNECTED)

    def _on_feed_done(self, context: EngineContext, task: asyncio.Future) -> None:
        if self.context is not context:
            return
        if task.cancelled():
            reason = "feed task cancelled"
        elif task.exception() is not None:
            exc = task.exception()
            reason = f"feed failed: {type(exc).__name__}: {exc}"
        else:
            reason = "feed closed"
        LOGGER.warning(f"Session {context.session_id}: {reason}")

        background = asyncio.create_task(
            self.teardown(context.session_id, final_status=STATUS_DISCONNECTED)
        )
        self._background.add(background)
        background.add_done_callback(self._background.discard)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _recorder(self, context: EngineContext) -> RecordFn:
        async def record(kind: str, payload: dict[str, Any]) -> bool:
            if self.context is not context:
                LOGGER.debug(f"Dropping {kind} from superseded session {context.session_id}")
                return False
            return await self.sink.record(kind, payload, context.session_id)

        return record

    async def _load_gift_config(self, username: str) -> GiftTargetConfig | None:
        try:
            config = await self.gift_configs.reload_target_config(username)
        except Exception as e:
            LOGGER.error(
                f"Failed to load gift targets for @{username}, using defaults: "
                f"{type(e).__name__}: {e}"
            )
            return None
        if config:
            LOGGER.info(f"Loaded {len(config.targets)} target gift(s) for @{username}")
        else:
            LOGGER.info(f"No target gifts configured for @{username}, using defaults")
        return config

    async def _set_status(self, session_id: int, status: str) -> None:
        try:
            await self.sessions.update_status(session_id, status)
        except Exception as e:
            LOGGER.error(
                f"Failed to set session {session_id} to '{status}': {type(e).__name__}: {e}"
            )

    async def _disconnect_quietly(self, client: Any) -> None:
        try:
            await client.disconnect()
        except Exception as e:
            LOGGER.warning(f"Error disconnecting TikTok client: {type(e).__name__}: {e}")
