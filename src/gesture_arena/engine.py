"""Authoritative two-fighter match simulation.

The engine owns the match state and is the only thing that mutates it.
Three sources drive it: the round clock, attached AI controllers and
external ``set_fighter_action`` calls (usually gesture input). All of them
go through one re-entrant lock, so no two mutations ever interleave, and
subscribers are notified over an ``EventBus`` once each mutation is done.

Lifecycle::

    IDLE --start--> RUNNING <--pause--> PAUSED
    RUNNING --last round / knockout--> ENDED --start--> RUNNING
    any --reset--> IDLE
    any --dispose--> DISPOSED
"""

from __future__ import annotations

import logging
import random
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from gesture_arena import combat
from gesture_arena.clock import Scheduler, ThreadingScheduler
from gesture_arena.config import MatchConfig
from gesture_arena.events import Callback, EventBus, EventKind, MatchEvent
from gesture_arena.gestures import BLOCK, IDLE, is_attack, is_symbol

logger = logging.getLogger("gesture_arena.engine")

MAX_HEALTH = 100
TICK_SECONDS = 1.0


class MatchPhase(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    ENDED = "ended"
    DISPOSED = "disposed"


class EngineDisposedError(RuntimeError):
    """The engine was disposed and can no longer be driven."""


@dataclass(frozen=True)
class Fighter:
    """Snapshot of one fighter."""
    id: str
    name: str
    health: int
    score: int
    action: str
    is_blocking: bool
    combo_count: int
    last_action_timestamp: Optional[float]


@dataclass(frozen=True)
class MatchState:
    """Snapshot of the whole match, safe to hand to any thread."""
    fighters: tuple[Fighter, Fighter]
    current_round: int
    total_rounds: int
    round_duration_seconds: int
    time_remaining_seconds: int
    is_running: bool
    is_paused: bool
    winner: Optional[str]
    phase: MatchPhase


@dataclass
class _Corner:
    """Mutable fighter record, private to the engine."""
    id: str
    name: str
    health: int = MAX_HEALTH
    score: int = 0
    action: str = IDLE
    is_blocking: bool = False
    combo_count: int = 0
    last_action_timestamp: Optional[float] = None

    def snapshot(self) -> Fighter:
        return Fighter(
            id=self.id,
            name=self.name,
            health=self.health,
            score=self.score,
            action=self.action,
            is_blocking=self.is_blocking,
            combo_count=self.combo_count,
            last_action_timestamp=self.last_action_timestamp,
        )


def _symbol_value(symbol) -> str:
    if isinstance(symbol, Enum):
        return str(symbol.value)
    return str(symbol)


class MatchEngine:
    """Round clock, hit resolution and scoring for one match at a time.

    Args:
        config: Match rules. Defaults to 3 rounds of 180 seconds.
        scheduler: Time source for the round clock and debounce. Pass a
            ``VirtualClock`` for deterministic runs.
        rng: Random source for block and damage rolls.
        bus: Event bus to publish on; a private one is created if omitted.
    """

    def __init__(
        self,
        config: Optional[MatchConfig] = None,
        scheduler: Optional[Scheduler] = None,
        rng: Optional[random.Random] = None,
        bus: Optional[EventBus] = None,
    ):
        self.config = config or MatchConfig()
        self.config.validate()
        self.scheduler = scheduler or ThreadingScheduler()
        self.rng = rng or random.Random()
        self.bus = bus or EventBus()

        self._lock = threading.RLock()
        self._controllers: list = []
        self._tick_handle = None
        self._tick_due: Optional[float] = None
        self._tick_remaining: Optional[float] = None
        self._clock_generation = 0
        self._disposed = False
        self._init_state()

    def _init_state(self):
        self._fighters = [
            _Corner(id=fid, name=name)
            for fid, name in zip(self.config.fighter_ids, self.config.fighter_names)
        ]
        self._current_round = 1
        self._time_remaining = self.config.round_duration_seconds
        self._is_running = False
        self._is_paused = False
        self._winner: Optional[str] = None
        self._ended = False

    @property
    def lock(self) -> threading.RLock:
        """The mutation lock. Hold it to read-then-act atomically."""
        return self._lock

    @property
    def phase(self) -> MatchPhase:
        with self._lock:
            return self._phase()

    def _phase(self) -> MatchPhase:
        if self._disposed:
            return MatchPhase.DISPOSED
        if self._is_running:
            return MatchPhase.PAUSED if self._is_paused else MatchPhase.RUNNING
        if self._ended:
            return MatchPhase.ENDED
        return MatchPhase.IDLE

    @property
    def is_active(self) -> bool:
        """Running and not paused: the only phase where time and hits count."""
        with self._lock:
            return self._is_running and not self._is_paused

    def get_state(self) -> MatchState:
        with self._lock:
            return MatchState(
                fighters=(self._fighters[0].snapshot(), self._fighters[1].snapshot()),
                current_round=self._current_round,
                total_rounds=self.config.total_rounds,
                round_duration_seconds=self.config.round_duration_seconds,
                time_remaining_seconds=self._time_remaining,
                is_running=self._is_running,
                is_paused=self._is_paused,
                winner=self._winner,
                phase=self._phase(),
            )

    def get_fighter(self, index: int) -> Optional[Fighter]:
        """Snapshot of one fighter, or None for an unknown index."""
        with self._lock:
            if not self._valid_index(index):
                return None
            return self._fighters[index].snapshot()

    def on(self, kind: EventKind, callback: Callback) -> Callback:
        self._check_alive()
        return self.bus.subscribe(kind, callback)

    def off(self, kind: EventKind, callback: Callback):
        self.bus.unsubscribe(kind, callback)

    def _emit(self, kind: EventKind, **data):
        self.bus.publish(MatchEvent(kind=kind, data=data, timestamp=self.scheduler.now()))

    def attach_controller(self, controller):
        """Attach an autonomous controller (e.g. ``AIOpponentController``).

        Controllers are started and stopped with the match clock.
        """
        with self._lock:
            self._check_alive()
            if controller in self._controllers:
                return
            self._controllers.append(controller)
            if self._is_running and not self._is_paused:
                controller.start()

    def detach_controller(self, controller):
        with self._lock:
            if controller in self._controllers:
                self._controllers.remove(controller)
                controller.stop()

    def _start_controllers(self):
        for controller in self._controllers:
            controller.start()

    def _stop_controllers(self):
        for controller in self._controllers:
            controller.stop()

    def start(self):
        """Start a fresh match. No-op while one is running or paused."""
        with self._lock:
            self._check_alive()
            if self._is_running:
                return

            for fighter in self._fighters:
                fighter.health = MAX_HEALTH
                fighter.score = 0
                fighter.combo_count = 0
                fighter.action = IDLE
                fighter.is_blocking = False
                fighter.last_action_timestamp = None
            self._current_round = 1
            self._time_remaining = self.config.round_duration_seconds
            self._winner = None
            self._ended = False
            self._is_running = True
            self._is_paused = False

            logger.info(
                "Match started: %d round(s) of %ds",
                self.config.total_rounds, self.config.round_duration_seconds,
            )
            self._emit(
                EventKind.MATCH_START,
                total_rounds=self.config.total_rounds,
                round_duration_seconds=self.config.round_duration_seconds,
            )
            self._schedule_tick(TICK_SECONDS)
            self._start_controllers()

    def pause(self) -> bool:
        """Toggle pause. Returns the new paused flag (False when not running).

        The interrupted second is kept: on resume the next tick fires after
        whatever was left of it.
        """
        with self._lock:
            self._check_alive()
            if not self._is_running:
                return False

            self._is_paused = not self._is_paused
            if self._is_paused:
                remaining = TICK_SECONDS
                if self._tick_due is not None:
                    remaining = max(0.0, self._tick_due - self.scheduler.now())
                self._cancel_tick()
                self._tick_remaining = remaining
                self._stop_controllers()
                logger.info("Match paused (%ds left in round %d)", self._time_remaining, self._current_round)
            else:
                delay = self._tick_remaining if self._tick_remaining is not None else TICK_SECONDS
                self._tick_remaining = None
                self._schedule_tick(delay)
                self._start_controllers()
                logger.info("Match resumed")
            return self._is_paused

    def reset(self):
        """Stop everything and return to the initial state."""
        with self._lock:
            self._check_alive()
            self._cancel_tick()
            self._stop_controllers()
            self._init_state()
            logger.info("Match reset")
            self._emit(EventKind.MATCH_END, winner=None, reset=True)

    def dispose(self):
        """Stop all scheduled activity and drop subscribers. Terminal.

        Callbacks already in flight on other threads find the engine
        disposed once they get the lock and do nothing.
        """
        with self._lock:
            if self._disposed:
                return
            self._cancel_tick()
            self._stop_controllers()
            self._controllers.clear()
            self._is_running = False
            self._is_paused = False
            self._disposed = True
            self.bus.clear()
            logger.info("Match engine disposed")

    def _check_alive(self):
        if self._disposed:
            raise EngineDisposedError("match engine has been disposed")

    def _schedule_tick(self, delay: float, final_bell: bool = False):
        self._cancel_tick()
        generation = self._clock_generation
        handler = self._on_final_bell if final_bell else self._on_tick
        self._tick_due = self.scheduler.now() + delay
        self._tick_handle = self.scheduler.call_later(delay, lambda: handler(generation))

    def _cancel_tick(self):
        # Bumping the generation also voids a tick that already fired but
        # is still waiting for the lock.
        self._clock_generation += 1
        if self._tick_handle is not None:
            self._tick_handle.cancel()
        self._tick_handle = None
        self._tick_due = None
        self._tick_remaining = None

    def _clock_live(self, generation: int) -> bool:
        if generation != self._clock_generation:
            return False
        return not self._disposed and self._is_running and not self._is_paused

    def _on_tick(self, generation: int):
        with self._lock:
            if not self._clock_live(generation):
                return

            self._tick_handle = None
            self._time_remaining = max(0, self._time_remaining - 1)
            if self._time_remaining == 0 and self._current_round >= self.config.total_rounds:
                # Actions due at this same instant still land before the
                # match is decided on points; a knockout among them voids
                # the bell.
                self._schedule_tick(0.0, final_bell=True)
                return
            if self._time_remaining == 0:
                self._end_round()

            if self._is_running:
                self._schedule_tick(TICK_SECONDS)

    def _on_final_bell(self, generation: int):
        with self._lock:
            if not self._clock_live(generation):
                return
            self._tick_handle = None
            self._end_round()

    def _end_round(self):
        finished = self._current_round
        logger.info("Round %d over", finished)
        self._emit(EventKind.ROUND_END, round=finished)

        if self._current_round < self.config.total_rounds:
            self._current_round += 1
            self._time_remaining = self.config.round_duration_seconds
            self._emit(EventKind.ROUND_START, round=self._current_round)
        else:
            self._end_match(knockout=False)

    def _end_match(self, knockout: bool):
        self._cancel_tick()
        self._stop_controllers()
        self._is_running = False
        self._is_paused = False
        self._ended = True

        first, second = self._fighters
        if first.score > second.score:
            winner = first.name
        elif second.score > first.score:
            winner = second.name
        else:
            winner = self.config.draw_label
        self._winner = winner

        logger.info(
            "Match over (%s): %s, scores %d:%d",
            "knockout" if knockout else "decision", winner, first.score, second.score,
        )
        self._emit(EventKind.MATCH_END, winner=winner, knockout=knockout)

    @staticmethod
    def _valid_index(index) -> bool:
        return isinstance(index, int) and not isinstance(index, bool) and 0 <= index < 2

    def set_fighter_action(self, index: int, symbol) -> bool:
        """Set a fighter's current action; attacks are resolved immediately.

        Silently ignored (returns False) for an unknown fighter index or
        symbol, on a disposed engine, or when the fighter acted less than
        the debounce interval ago. Attacks only land while the match is
        running and not paused.
        """
        with self._lock:
            if self._disposed or not self._valid_index(index):
                return False
            action = _symbol_value(symbol)
            if not is_symbol(action):
                logger.debug("Fighter %d: unknown action %r ignored", index, symbol)
                return False

            fighter = self._fighters[index]
            now = self.scheduler.now()
            last = fighter.last_action_timestamp
            if last is not None and now - last < self.config.action_debounce_seconds:
                logger.debug("Fighter %d action %s debounced", index, symbol)
                return False

            fighter.action = action
            fighter.is_blocking = action == BLOCK
            fighter.last_action_timestamp = now

            if is_attack(action) and self._is_running and not self._is_paused:
                self._resolve_hit(index, action)
            return True

    def _resolve_hit(self, attacker_index: int, attack_type: str):
        attacker = self._fighters[attacker_index]
        defender = self._fighters[1 - attacker_index]

        if defender.is_blocking and combat.roll_block(attack_type, self.rng):
            logger.debug("%s blocked %s", defender.id, attack_type)
            self._emit(EventKind.BLOCK_SUCCESS, blocker=defender.id, attack_type=attack_type)
            return

        damage = combat.roll_damage(attack_type, self.rng)
        defender.health = max(0, defender.health - damage)

        attacker.combo_count += 1
        score_gain = combat.combo_score(attacker.combo_count)
        attacker.score += score_gain

        logger.debug(
            "%s landed %s on %s for %d (health %d, combo %d)",
            attacker.id, attack_type, defender.id, damage, defender.health, attacker.combo_count,
        )
        self._emit(
            EventKind.HIT_LANDED,
            attacker=attacker.id,
            defender=defender.id,
            attack_type=attack_type,
            damage=damage,
            score_gain=score_gain,
            combo_count=attacker.combo_count,
        )
        self._emit(EventKind.PLAYER_DAMAGED, player=defender.id, damage=damage, new_health=defender.health)
        self._emit(EventKind.SCORE_UPDATE, player=attacker.id, new_score=attacker.score)

        if defender.health <= 0:
            self._end_match(knockout=True)
