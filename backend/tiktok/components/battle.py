"""Battle round state machine: round lifecycle, hearts and game end.

Phases::

    idle ──battle-start──▶ round_active ──result / score timeout──▶ round_resolving
      ▲                                                                  │
      └───────────── reset (game over: a side reached 0 hearts) ◀────────┘

A round resolves exactly once.  Two paths can resolve it: an explicit
``LinkMicMethodEvent`` verdict, or the score-comparison fallback that fires
once no score update has arrived for ``round_timeout`` seconds.  Whichever
path runs first sets ``round_processed`` and the other becomes a no-op.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from .feed import BattleParticipant, BattleResult, BattleStarted, ScoreUpdated

LOGGER = logging.getLogger("BattleEngine")

# Event kinds written through the event sink
BATTLE_START = "battle_start"
BATTLE_SCORE = "battle_score"
BATTLE_RESULT = "battle_result"
ROUND_END = "round_end"
GAME_END = "game_end"
BATTLE_KINDS = frozenset({BATTLE_START, BATTLE_SCORE, BATTLE_RESULT, ROUND_END, GAME_END})

PHASE_IDLE = "idle"
PHASE_ROUND_ACTIVE = "round_active"
PHASE_ROUND_RESOLVING = "round_resolving"

SIDE_A = "participantA"  # host, always first
SIDE_B = "participantB"  # opponent

RecordFn = Callable[[str, dict[str, Any]], Awaitable[Any]]


@dataclass
class BattleState:
    hearts_a: int
    hearts_b: int
    participant_a: BattleParticipant | None = None
    participant_b: BattleParticipant | None = None
    score_a: int = 0
    score_b: int = 0
    round_started: bool = False
    round_processed: bool = False
    last_update_at: float = 0.0
    round_id: int = 0

    @property
    def phase(self) -> str:
        if not self.round_started:
            return PHASE_IDLE
        return PHASE_ROUND_RESOLVING if self.round_processed else PHASE_ROUND_ACTIVE

    @property
    def game_over(self) -> bool:
        return self.hearts_a == 0 or self.hearts_b == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "phase": self.phase,
            "round_id": self.round_id,
            "participant_a": self.participant_a.nickname if self.participant_a else None,
            "participant_b": self.participant_b.nickname if self.participant_b else None,
            "hearts_a": self.hearts_a,
            "hearts_b": self.hearts_b,
            "score_a": self.score_a,
            "score_b": self.score_b,
        }


class BattleEngine:
    """Applies decoded battle events to one session's ``BattleState``.

    Every transition mutates state synchronously and only then awaits the
    ``record`` callback, so concurrently scheduled handlers never observe a
    half-applied transition.  Recording is best effort: failures are logged
    and the in-memory state stays authoritative.
    """

    def __init__(
        self,
        record: RecordFn,
        *,
        round_timeout: float = 15.0,
        max_hearts: int = 5,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._record = record
        self.round_timeout = round_timeout
        self.max_hearts = max_hearts
        self._clock = clock
        # Never reset, so a watchdog from an earlier game cannot match a later round
        self._round_seq = 0
        self._watchdogs: dict[int, asyncio.Task] = {}
        self.games_completed = 0
        self.last_winner: str | None = None
        self.state = self._fresh_state()

    def _fresh_state(self) -> BattleState:
        return BattleState(hearts_a=self.max_hearts, hearts_b=self.max_hearts)

    def reset(self) -> None:
        self.state = self._fresh_state()
        LOGGER.info("Battle state reset")

    def close(self) -> None:
        """Cancel every pending round watchdog."""
        for task in self._watchdogs.values():
            if not task.done():
                task.cancel()
        self._watchdogs.clear()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def start_round(self, event: BattleStarted) -> bool:
        usable = [p for p in event.participants if p.nickname.strip()][:2]
        if len(usable) < 2:
            LOGGER.debug(f"Battle start with {len(usable)} usable participant(s), ignoring")
            return False

        self._round_seq += 1
        state = self.state
        state.participant_a, state.participant_b = usable
        state.round_started = True
        state.round_processed = False
        state.score_a = 0
        state.score_b = 0
        state.last_update_at = self._clock()
        state.round_id = self._round_seq

        LOGGER.info(
            f"Round {state.round_id} started: {usable[0].nickname} vs {usable[1].nickname}"
        )
        await self._emit(
            [
                (
                    BATTLE_START,
                    {
                        "participantA": usable[0].nickname,
                        "participantB": usable[1].nickname,
                        "battleId": event.battle_id,
                        "round": state.round_id,
                    },
                )
            ]
        )
        return True

    async def update_score(self, event: ScoreUpdated) -> bool:
        state = self.state
        if not state.round_started:
            return False

        state.score_a = event.score_a
        state.score_b = event.score_b
        state.last_update_at = self._clock()
        self._arm_watchdog(state.round_id)

        LOGGER.info(f"Score: {state.score_a} vs {state.score_b}")
        await self._emit(
            [
                (
                    BATTLE_SCORE,
                    {"scoreA": state.score_a, "scoreB": state.score_b, "round": state.round_id},
                )
            ]
        )
        return True

    async def apply_result(self, event: BattleResult) -> bool:
        """Explicit verdict from the feed. A no-op once the round is processed."""
        state = self.state
        if state.round_processed:
            LOGGER.debug("Battle result for an already processed round, ignoring")
            return False

        winner = SIDE_A if event.host_won else SIDE_B
        self._deduct(SIDE_B if event.host_won else SIDE_A)
        state.round_processed = True

        LOGGER.info(f"Battle result: {winner} won (hearts {state.hearts_a}-{state.hearts_b})")
        records = [
            (
                BATTLE_RESULT,
                {
                    "winner": winner,
                    "heartsA": state.hearts_a,
                    "heartsB": state.hearts_b,
                    "round": state.round_id,
                },
            )
        ]
        records.extend(self._finish_game_if_over())
        await self._emit(records)
        return True

    async def resolve_by_score(self, round_id: int | None = None) -> bool:
        """Score-comparison fallback. The strictly lower side loses a heart."""
        state = self.state
        if round_id is not None and state.round_id != round_id:
            return False
        if not state.round_started or state.round_processed:
            return False

        state.round_processed = True
        if state.score_a > state.score_b:
            self._deduct(SIDE_B)
            LOGGER.info(f"Opponent lost a heart (score {state.score_a} vs {state.score_b})")
        elif state.score_b > state.score_a:
            self._deduct(SIDE_A)
            LOGGER.info(f"Host lost a heart (score {state.score_a} vs {state.score_b})")
        else:
            LOGGER.info(f"Round tied (score {state.score_a} vs {state.score_b})")

        records = [
            (
                ROUND_END,
                {
                    "scoreA": state.score_a,
                    "scoreB": state.score_b,
                    "heartsA": state.hearts_a,
                    "heartsB": state.hearts_b,
                    "round": state.round_id,
                },
            )
        ]
        records.extend(self._finish_game_if_over())
        await self._emit(records)
        return True

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _deduct(self, side: str) -> None:
        if side == SIDE_A:
            self.state.hearts_a = max(0, self.state.hearts_a - 1)
        else:
            self.state.hearts_b = max(0, self.state.hearts_b - 1)

    def _finish_game_if_over(self) -> list[tuple[str, dict[str, Any]]]:
        """On game over, build the game_end record and reset before returning."""
        state = self.state
        if not state.game_over:
            return []

        winner = SIDE_B if state.hearts_a == 0 else SIDE_A
        winner_participant = state.participant_b if winner == SIDE_B else state.participant_a
        payload = {
            "winner": winner,
            "winnerName": winner_participant.nickname if winner_participant else None,
            "finalHeartsA": state.hearts_a,
            "finalHeartsB": state.hearts_b,
        }
        self.games_completed += 1
        self.last_winner = winner
        LOGGER.info(f"Game over: {winner} wins ({state.hearts_a}-{state.hearts_b})")
        self.reset()
        return [(GAME_END, payload)]

    def _arm_watchdog(self, round_id: int) -> None:
        # Earlier rounds keep their watchdog; the round_id guard makes it inert
        task = self._watchdogs.get(round_id)
        if task is not None and not task.done():
            return
        task = asyncio.create_task(self._watch_round(round_id), name=f"battle-round-{round_id}")
        self._watchdogs[round_id] = task
        task.add_done_callback(lambda t, rid=round_id: self._forget_watchdog(rid, t))

    def _forget_watchdog(self, round_id: int, task: asyncio.Task) -> None:
        if self._watchdogs.get(round_id) is task:
            del self._watchdogs[round_id]

    async def _watch_round(self, round_id: int) -> None:
        # Re-read state after every sleep: updates move last_update_at forward
        while True:
            state = self.state
            if state.round_id != round_id or not state.round_started or state.round_processed:
                return
            remaining = state.last_update_at + self.round_timeout - self._clock()
            if remaining <= 0:
                break
            await asyncio.sleep(remaining)
        await self.resolve_by_score(round_id)

    async def _emit(self, records: list[tuple[str, dict[str, Any]]]) -> None:
        for kind, payload in records:
            try:
                await self._record(kind, payload)
            except Exception as e:
                LOGGER.error(f"Failed to record {kind}: {type(e).__name__}: {e}")
