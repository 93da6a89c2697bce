"""Shared fixtures: synthetic hands, scripted randomness, a virtual clock."""

import random

import numpy as np
import pytest

from gesture_arena.clock import VirtualClock
from gesture_arena.landmarks import FINGER_JOINTS, MIDDLE_MCP

WRIST_XY = (0.5, 0.8)


def make_hand(extended=(False,) * 5, middle_base=None):
    """Build a (21, 3) hand with the given fingers raised.

    Raised fingers point straight up from their base joint (ratio ~1.7),
    folded ones curl sideways at wrist height (ratio ~0.2).
    """
    lm = np.zeros((21, 3), dtype=np.float32)
    lm[0] = [WRIST_XY[0], WRIST_XY[1], 0.0]

    for i, ((base, tip), up) in enumerate(zip(FINGER_JOINTS, extended)):
        x = 0.3 + i * 0.1
        lm[base] = [x, 0.6, 0.0]
        if up:
            lm[tip] = [x, 0.3, 0.0]
        else:
            lm[tip] = [x + 0.2, 0.75, 0.0]
        # intermediate joints halfway, for a plausible skeleton
        for joint in range(base + 1, tip):
            lm[joint] = (lm[base] + lm[tip]) / 2

    if middle_base is not None:
        lm[MIDDLE_MCP] = [middle_base[0], middle_base[1], 0.0]

    return lm


def fingers(*names):
    order = ("thumb", "index", "middle", "ring", "pinky")
    return tuple(name in names for name in order)


class ScriptedRandom(random.Random):
    """Random source that replays fixed ``random()`` and ``choice()`` values.

    Falls back to 0.5 / the seeded generator once the script runs out.
    """

    def __init__(self, values=(), choices=()):
        super().__init__(0)
        self._values = list(values)
        self._choices = list(choices)

    def random(self):
        if self._values:
            return self._values.pop(0)
        return 0.5

    def choice(self, seq):
        if self._choices:
            return self._choices.pop(0)
        return super().choice(seq)


@pytest.fixture
def clock():
    return VirtualClock()
