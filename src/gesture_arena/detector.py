"""Camera-side landmark source backed by MediaPipe Hands.

Only ``GestureClassifier.initialize`` needs this module; everything else
works on landmark arrays and runs without MediaPipe installed.
"""

import numpy as np

try:
    import mediapipe as mp
except ImportError:
    mp = None

from gesture_arena.landmarks import LANDMARK_DIM, NUM_LANDMARKS


def _hand_to_array(hand_landmarks) -> np.ndarray:
    points = [(p.x, p.y, p.z) for p in hand_landmarks.landmark]
    return np.asarray(points, dtype=np.float32).reshape(NUM_LANDMARKS, LANDMARK_DIM)


class HandDetector:
    """Video-mode hand tracker producing one (21, 3) array per visible hand.

    Coordinates stay in image space (x and y in [0, 1], y growing
    downwards), which is what the extension and direction rules in
    ``gestures`` expect. Nothing is re-centred on the wrist.

    Raises:
        ImportError: when the ``vision`` extra (mediapipe) is missing.
            The classifier treats this as "gesture input unavailable".
    """

    def __init__(
        self,
        max_hands: int = 2,
        model_complexity: int = 1,
        min_detection_confidence: float = 0.5,
        min_tracking_confidence: float = 0.5,
    ):
        if mp is None:
            raise ImportError(
                "hand tracking needs mediapipe: pip install gesture-arena[vision]"
            )

        self.max_hands = max_hands
        self._tracker = mp.solutions.hands.Hands(
            static_image_mode=False,
            max_num_hands=max_hands,
            model_complexity=model_complexity,
            min_detection_confidence=min_detection_confidence,
            min_tracking_confidence=min_tracking_confidence,
        )

    def detect(self, frame_rgb: np.ndarray) -> list[np.ndarray]:
        """Landmarks of every hand in an RGB uint8 frame; [] when none."""
        found = self._tracker.process(frame_rgb).multi_hand_landmarks
        return [_hand_to_array(hand) for hand in found or ()]

    def close(self):
        self._tracker.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
