"""Hand landmark sets: validation of the 21-point classifier input."""

from __future__ import annotations

from typing import Any

import numpy as np

# MediaPipe hand landmark indices
WRIST = 0
THUMB_CMC, THUMB_MCP, THUMB_IP, THUMB_TIP = 1, 2, 3, 4
INDEX_MCP, INDEX_PIP, INDEX_DIP, INDEX_TIP = 5, 6, 7, 8
MIDDLE_MCP, MIDDLE_PIP, MIDDLE_DIP, MIDDLE_TIP = 9, 10, 11, 12
RING_MCP, RING_PIP, RING_DIP, RING_TIP = 13, 14, 15, 16
PINKY_MCP, PINKY_PIP, PINKY_DIP, PINKY_TIP = 17, 18, 19, 20

NUM_LANDMARKS = 21
LANDMARK_DIM = 3  # x, y, z

FINGER_NAMES = ("thumb", "index", "middle", "ring", "pinky")

# (base joint, tip) per finger, in FINGER_NAMES order
FINGER_JOINTS = (
    (THUMB_MCP, THUMB_TIP),
    (INDEX_MCP, INDEX_TIP),
    (MIDDLE_MCP, MIDDLE_TIP),
    (RING_MCP, RING_TIP),
    (PINKY_MCP, PINKY_TIP),
)


class InvalidLandmarksError(ValueError):
    """Raised when a landmark set is not 21 numeric (x, y, z) points."""


def as_landmark_set(landmarks: Any) -> np.ndarray:
    """Validate and freeze a landmark set.

    Accepts a numpy array or any nested sequence of 21 (x, y, z) points,
    e.g. the ``[[lm.x, lm.y, lm.z], ...]`` lists a detector produces.

    Returns:
        Read-only float32 array, shape (21, 3). The input is never aliased.

    Raises:
        InvalidLandmarksError: wrong shape, ragged rows or non-numeric data.
    """
    try:
        array = np.array(landmarks, dtype=np.float32)
    except (TypeError, ValueError) as e:
        raise InvalidLandmarksError(f"landmarks are not numeric: {e}") from e

    if array.shape != (NUM_LANDMARKS, LANDMARK_DIM):
        raise InvalidLandmarksError(
            f"expected shape ({NUM_LANDMARKS}, {LANDMARK_DIM}), got {array.shape}"
        )

    array.flags.writeable = False
    return array
