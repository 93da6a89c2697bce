"""Gesture-to-action bindings: forward classifier output to a fighter.

Bindings can be loaded from YAML:

    min_confidence: 0.6
    bindings:
      index_up: jab
      middle_up: cross
      open_palm: block
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional

import yaml

from gesture_arena.classifier import GestureResult
from gesture_arena.gestures import BoxingGesture, FingerGesture

logger = logging.getLogger("gesture_arena.controls")

FINGER_BINDINGS = {
    FingerGesture.INDEX_UP.value: BoxingGesture.JAB.value,
    FingerGesture.MIDDLE_UP.value: BoxingGesture.CROSS.value,
    FingerGesture.RING_UP.value: BoxingGesture.HOOK.value,
    FingerGesture.PINKY_UP.value: BoxingGesture.UPPERCUT.value,
    FingerGesture.OPEN_PALM.value: BoxingGesture.BLOCK.value,
    FingerGesture.FIST.value: BoxingGesture.IDLE.value,
    FingerGesture.THUMB_UP.value: BoxingGesture.IDLE.value,
    FingerGesture.IDLE.value: BoxingGesture.IDLE.value,
}

BOXING_BINDINGS = {g.value: g.value for g in BoxingGesture}

ACTIONS = frozenset(BOXING_BINDINGS.values())

DEFAULT_BINDINGS = {"finger": FINGER_BINDINGS, "boxing": BOXING_BINDINGS}


class GestureController:
    """Drives one fighter from a stream of ``GestureResult`` lists.

    Only the most confident hand of each batch counts, and only if its
    confidence exceeds ``min_confidence``. Symbols without a binding are
    dropped, and every binding must target a boxing action. The engine
    still applies its own debounce.
    """

    def __init__(
        self,
        engine,
        fighter_index: int = 0,
        bindings: Optional[dict[str, str]] = None,
        min_confidence: float = 0.5,
    ):
        self.engine = engine
        self.fighter_index = fighter_index
        self.bindings = dict(BOXING_BINDINGS if bindings is None else bindings)
        unknown = sorted(a for a in self.bindings.values() if a not in ACTIONS)
        if unknown:
            raise ValueError(f"bindings target unknown actions: {unknown}")
        self.min_confidence = min_confidence
        self.forwarded = 0

    @classmethod
    def for_profile(cls, engine, profile: str, fighter_index: int = 0, min_confidence: float = 0.5):
        """Controller with the default bindings of a classifier profile."""
        try:
            bindings = DEFAULT_BINDINGS[profile]
        except KeyError:
            raise ValueError(f"no default bindings for profile {profile!r}") from None
        return cls(engine, fighter_index, bindings, min_confidence)

    def resolve(self, gesture: str) -> Optional[str]:
        """Fighter action bound to a gesture symbol, or None."""
        return self.bindings.get(str(gesture))

    def feed(self, results: Iterable[GestureResult]) -> Optional[str]:
        """Forward the best result of one frame.

        Returns:
            The action passed to the engine and accepted, else None.
        """
        best = max(results, key=lambda r: r.confidence, default=None)
        if best is None or best.confidence <= self.min_confidence:
            return None

        action = self.resolve(best.gesture)
        if action is None:
            logger.debug("No binding for gesture %s", best.gesture)
            return None

        if not self.engine.set_fighter_action(self.fighter_index, action):
            return None

        self.forwarded += 1
        return action

    @classmethod
    def from_yaml(cls, path: str | Path, engine, fighter_index: int = 0) -> GestureController:
        """Load bindings and threshold from a YAML file."""
        with open(path) as f:
            config = yaml.safe_load(f) or {}

        bindings = config.get("bindings")
        if bindings is not None:
            bindings = {str(k): str(v) for k, v in bindings.items()}
        return cls(
            engine,
            fighter_index=fighter_index,
            bindings=bindings,
            min_confidence=config.get("min_confidence", 0.5),
        )

    def to_yaml(self, path: str | Path):
        with open(path, "w") as f:
            yaml.dump(
                {"min_confidence": self.min_confidence, "bindings": self.bindings},
                f,
                default_flow_style=False,
                sort_keys=False,
            )
