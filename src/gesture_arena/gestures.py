"""Gesture alphabets and the geometric rules that map landmarks onto them.

Two deployment profiles share the same finger-extension test:

- ``finger``: one symbol per raised finger plus fist / open palm.
- ``boxing``: punches and guard, read from the four non-thumb fingers and
  the direction of the hand.

Both alphabets are closed and contain ``idle``.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Optional

import numpy as np

from gesture_arena.landmarks import FINGER_JOINTS, FINGER_NAMES, MIDDLE_MCP, WRIST

EXTENSION_THRESHOLD = 0.7

MIN_CONFIDENCE = 0.1
MAX_CONFIDENCE = 1.0


class FingerGesture(str, Enum):
    THUMB_UP = "thumb_up"
    INDEX_UP = "index_up"
    MIDDLE_UP = "middle_up"
    RING_UP = "ring_up"
    PINKY_UP = "pinky_up"
    FIST = "fist"
    OPEN_PALM = "open_palm"
    IDLE = "idle"

    def __str__(self) -> str:
        return self.value


class BoxingGesture(str, Enum):
    JAB = "jab"
    CROSS = "cross"
    HOOK = "hook"
    UPPERCUT = "uppercut"
    BLOCK = "block"
    IDLE = "idle"

    def __str__(self) -> str:
        return self.value


IDLE = "idle"
BLOCK = BoxingGesture.BLOCK.value
ATTACKS = frozenset({"jab", "cross", "hook", "uppercut"})
SYMBOLS = frozenset(g.value for g in FingerGesture) | frozenset(g.value for g in BoxingGesture)

_FINGER_SYMBOLS = {
    "thumb": FingerGesture.THUMB_UP,
    "index": FingerGesture.INDEX_UP,
    "middle": FingerGesture.MIDDLE_UP,
    "ring": FingerGesture.RING_UP,
    "pinky": FingerGesture.PINKY_UP,
}


def is_attack(symbol: str) -> bool:
    return str(symbol) in ATTACKS


def is_symbol(symbol) -> bool:
    """True for any symbol of the finger or boxing alphabet."""
    return str(symbol) in SYMBOLS


def clamp_confidence(value: float) -> float:
    """Clamp a confidence into [0.1, 1.0]; NaN collapses to the floor."""
    if not math.isfinite(value):
        return MIN_CONFIDENCE
    return float(min(MAX_CONFIDENCE, max(MIN_CONFIDENCE, value)))


def extension_ratio(wrist: np.ndarray, base: np.ndarray, tip: np.ndarray) -> float:
    """Vertical wrist-to-tip offset relative to the planar base-to-tip length.

    Returns 0.0 for a degenerate (zero length or non-finite) finger.
    """
    length = math.hypot(float(tip[0] - base[0]), float(tip[1] - base[1]))
    if not math.isfinite(length) or length == 0.0:
        return 0.0
    ratio = abs(float(tip[1] - wrist[1])) / length
    return ratio if math.isfinite(ratio) else 0.0


def finger_extension(
    landmarks: np.ndarray, threshold: float = EXTENSION_THRESHOLD
) -> tuple[bool, ...]:
    """Extension vector for (thumb, index, middle, ring, pinky)."""
    wrist = landmarks[WRIST]
    return tuple(
        extension_ratio(wrist, landmarks[base], landmarks[tip]) > threshold
        for base, tip in FINGER_JOINTS
    )


class ClassificationProfile:
    """Maps an extension vector (and the hand pose) onto one alphabet."""

    name: str = "base"
    alphabet: type[Enum] = FingerGesture

    def classify(self, landmarks: np.ndarray, extended: tuple[bool, ...]) -> str:
        raise NotImplementedError

    def confidence(self, extended: tuple[bool, ...], gesture: str) -> float:
        raise NotImplementedError

    @property
    def symbols(self) -> list[str]:
        return [member.value for member in self.alphabet]


class FingerProfile(ClassificationProfile):
    """One symbol per raised finger, fist for none, open palm for three or more.

    Two raised fingers are ambiguous and read as idle, unless
    ``priority_finger`` is one of them.
    """

    name = "finger"
    alphabet = FingerGesture

    def __init__(self, priority_finger: Optional[str] = None):
        if priority_finger is not None and priority_finger not in FINGER_NAMES:
            raise ValueError(f"unknown finger: {priority_finger!r}")
        self.priority_finger = priority_finger

    def classify(self, landmarks: np.ndarray, extended: tuple[bool, ...]) -> str:
        count = sum(extended)

        if count >= 3:
            return FingerGesture.OPEN_PALM
        if count == 0:
            return FingerGesture.FIST
        if count == 1:
            return _FINGER_SYMBOLS[FINGER_NAMES[extended.index(True)]]

        if self.priority_finger is not None:
            if extended[FINGER_NAMES.index(self.priority_finger)]:
                return _FINGER_SYMBOLS[self.priority_finger]

        return FingerGesture.IDLE

    def confidence(self, extended: tuple[bool, ...], gesture: str) -> float:
        gesture = str(gesture)
        count = sum(extended)

        for finger, symbol in _FINGER_SYMBOLS.items():
            if gesture != symbol.value:
                continue
            bit = extended[FINGER_NAMES.index(finger)]
            if bit and count == 1:
                return clamp_confidence(0.9)
            return clamp_confidence(0.3 if bit else 0.2)

        if gesture == FingerGesture.FIST.value:
            return clamp_confidence(0.95 if count == 0 else 0.2)

        if gesture == FingerGesture.OPEN_PALM.value:
            if count >= 4:
                return clamp_confidence(0.85)
            return clamp_confidence(0.3 if count == 3 else 0.2)

        return clamp_confidence(0.1)


class BoxingProfile(ClassificationProfile):
    """Punches and guard from the four non-thumb fingers.

    A closed hand is a punch whose type depends on the wrist → middle MCP
    direction: mostly vertical reads as an uppercut, mostly sideways as a
    hook, anything else as a cross. A lone index finger is a jab and an
    opened hand is a block.
    """

    name = "boxing"
    alphabet = BoxingGesture

    def __init__(self, direction_threshold: float = 0.3):
        self.direction_threshold = direction_threshold

    def hand_direction(self, landmarks: np.ndarray) -> tuple[float, float]:
        """(horizontal, vertical) offset from wrist to middle finger base."""
        delta = landmarks[MIDDLE_MCP] - landmarks[WRIST]
        return float(delta[0]), float(delta[1])

    def classify(self, landmarks: np.ndarray, extended: tuple[bool, ...]) -> str:
        fingers = extended[1:]
        count = sum(fingers)

        if count == 0:
            horizontal, vertical = self.hand_direction(landmarks)
            if vertical > self.direction_threshold:
                return BoxingGesture.UPPERCUT
            if abs(horizontal) > self.direction_threshold:
                return BoxingGesture.HOOK
            return BoxingGesture.CROSS

        if count == 1 and fingers[0]:
            return BoxingGesture.JAB
        if count >= 2:
            return BoxingGesture.BLOCK

        return BoxingGesture.IDLE

    def confidence(self, extended: tuple[bool, ...], gesture: str) -> float:
        gesture = str(gesture)
        fingers = extended[1:]
        count = sum(fingers)

        if gesture == BoxingGesture.JAB.value:
            if fingers[0] and count == 1:
                return clamp_confidence(0.9)
            return clamp_confidence(0.3 if fingers[0] else 0.2)

        if gesture in (
            BoxingGesture.CROSS.value,
            BoxingGesture.HOOK.value,
            BoxingGesture.UPPERCUT.value,
        ):
            return clamp_confidence(0.95 if count == 0 else 0.2)

        if gesture == BoxingGesture.BLOCK.value:
            if count == len(fingers):
                return clamp_confidence(0.85)
            return clamp_confidence(0.3 if count >= 2 else 0.2)

        return clamp_confidence(0.1)


PROFILES: dict[str, type[ClassificationProfile]] = {
    FingerProfile.name: FingerProfile,
    BoxingProfile.name: BoxingProfile,
}


def make_profile(name: str, **options) -> ClassificationProfile:
    """Build a classification profile by name ("finger" or "boxing")."""
    try:
        profile_cls = PROFILES[name]
    except KeyError:
        raise ValueError(
            f"unknown profile {name!r}, expected one of {sorted(PROFILES)}"
        ) from None
    return profile_cls(**options)
