"""Autonomous opponent.

The controller plays one fighter through the same ``set_fighter_action``
entry point a gesture input uses. Each decision is independent: it looks
at the opponent's current action and nothing else.
"""

from __future__ import annotations

import logging
import random
from typing import Optional

from gesture_arena.config import AIConfig
from gesture_arena.gestures import BLOCK, IDLE, is_attack

logger = logging.getLogger("gesture_arena.ai")

AI_ACTIONS = ("jab", "cross", "hook", "uppercut", "block")


class AIOpponentController:
    """Randomized decision loop for one fighter (index 1 by default).

    Every ``min_interval``..``max_interval`` seconds: if the opponent is
    attacking (any action but idle or block) the AI guards with
    ``block_probability``; otherwise it picks uniformly from jab, cross,
    hook, uppercut and block. A landed attack is followed, with
    ``revert_probability``, by a return to idle ``revert_delay`` seconds
    later.

    The engine starts and stops the loop with the match clock once the
    controller is attached:

        ai = AIOpponentController(engine, rng=random.Random(7)).attach()
        engine.start()
    """

    def __init__(
        self,
        engine,
        config: Optional[AIConfig] = None,
        rng: Optional[random.Random] = None,
        fighter_index: int = 1,
        opponent_index: Optional[int] = None,
    ):
        if fighter_index not in (0, 1):
            raise ValueError(f"fighter_index must be 0 or 1, got {fighter_index}")

        self.engine = engine
        self.config = config or AIConfig()
        self.config.validate()
        self.rng = rng or random.Random()
        self.fighter_index = fighter_index
        self.opponent_index = 1 - fighter_index if opponent_index is None else opponent_index

        self._running = False
        self._generation = 0
        self._decision_handle = None
        self._revert_handles: dict[int, object] = {}
        self._next_revert_id = 0
        self.decisions = 0

    @property
    def scheduler(self):
        return self.engine.scheduler

    @property
    def is_running(self) -> bool:
        return self._running

    def attach(self) -> AIOpponentController:
        """Attach to the engine so the match lifecycle drives this loop."""
        self.engine.attach_controller(self)
        return self

    def detach(self):
        self.engine.detach_controller(self)

    def start(self):
        with self.engine.lock:
            if self._running:
                return
            self._running = True
            self._schedule_decision()
            logger.debug("AI for fighter %d started", self.fighter_index)

    def stop(self):
        """Cancel the pending decision and any pending revert."""
        with self.engine.lock:
            self._running = False
            self._generation += 1
            if self._decision_handle is not None:
                self._decision_handle.cancel()
                self._decision_handle = None
            for handle in self._revert_handles.values():
                handle.cancel()
            self._revert_handles.clear()

    def next_interval(self) -> float:
        """Delay before the next decision, uniform in [min, max)."""
        low, high = self.config.min_interval, self.config.max_interval
        return low + self.rng.random() * (high - low)

    def _schedule_decision(self):
        generation = self._generation
        self._decision_handle = self.scheduler.call_later(
            self.next_interval(), lambda: self._on_decision(generation)
        )

    def _on_decision(self, generation: int):
        with self.engine.lock:
            if generation != self._generation or not self._running:
                return
            self._decision_handle = None
            if not self.engine.is_active:
                # The engine restarts the loop when the match (re)starts
                self._running = False
                return

            self.decide()

            # A knockout during decide() stops this controller
            if self._running and self.engine.is_active:
                self._schedule_decision()

    def decide(self) -> Optional[str]:
        """Take one decision now. Returns the action issued, or None if the
        engine rejected it (debounce)."""
        with self.engine.lock:
            self.decisions += 1
            opponent = self.engine.get_fighter(self.opponent_index)

            if opponent is not None and opponent.action not in (IDLE, BLOCK):
                if self.rng.random() < self.config.block_probability:
                    accepted = self.engine.set_fighter_action(self.fighter_index, BLOCK)
                    return BLOCK if accepted else None

            action = self.rng.choice(AI_ACTIONS)
            if not self.engine.set_fighter_action(self.fighter_index, action):
                return None

            if is_attack(action) and self._running:
                if self.rng.random() < self.config.revert_probability:
                    self._schedule_revert()
            return action

    def _schedule_revert(self):
        generation = self._generation
        revert_id = self._next_revert_id
        self._next_revert_id += 1
        self._revert_handles[revert_id] = self.scheduler.call_later(
            self.config.revert_delay, lambda: self._on_revert(generation, revert_id)
        )

    def _on_revert(self, generation: int, revert_id: int):
        with self.engine.lock:
            self._revert_handles.pop(revert_id, None)
            if generation != self._generation or not self._running:
                return
            if self.engine.is_active:
                self.engine.set_fighter_action(self.fighter_index, IDLE)
