"""Attack tables and the dice behind hit resolution."""

from __future__ import annotations

import math
import random

# Chance that a guard absorbs the attack
BLOCK_CHANCES = {
    "jab": 0.6,
    "cross": 0.5,
    "hook": 0.4,
    "uppercut": 0.3,
}
DEFAULT_BLOCK_CHANCE = 0.5

BASE_DAMAGE = {
    "jab": 8,
    "cross": 12,
    "hook": 15,
    "uppercut": 20,
}
DEFAULT_BASE_DAMAGE = 10

DAMAGE_SPREAD = (0.8, 1.2)

COMBO_SCORE_STEP = 10
COMBO_SCORE_CAP = 50


def block_chance(attack_type: str) -> float:
    return BLOCK_CHANCES.get(str(attack_type), DEFAULT_BLOCK_CHANCE)


def base_damage(attack_type: str) -> int:
    return BASE_DAMAGE.get(str(attack_type), DEFAULT_BASE_DAMAGE)


def damage_bounds(attack_type: str) -> tuple[int, int]:
    """Inclusive range a single hit of this type can deal."""
    base = base_damage(attack_type)
    low, high = DAMAGE_SPREAD
    return math.floor(base * low), math.floor(base * high)


def roll_block(attack_type: str, rng: random.Random) -> bool:
    """True if a guarding defender stops the attack."""
    return rng.random() < block_chance(attack_type)


def roll_damage(attack_type: str, rng: random.Random) -> int:
    """Base damage scaled by a uniform factor in [0.8, 1.2), floored."""
    low, high = DAMAGE_SPREAD
    factor = low + rng.random() * (high - low)
    return math.floor(base_damage(attack_type) * factor)


def combo_score(combo_count: int) -> int:
    """Score for the ``combo_count``-th consecutive hit."""
    return min(combo_count * COMBO_SCORE_STEP, COMBO_SCORE_CAP)
