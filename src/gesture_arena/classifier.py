"""Rule-based gesture classification with a per-stream rate limiter."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, Optional

import numpy as np

from gesture_arena.gestures import (
    EXTENSION_THRESHOLD,
    ClassificationProfile,
    FingerProfile,
    finger_extension,
    make_profile,
)
from gesture_arena.landmarks import as_landmark_set

logger = logging.getLogger("gesture_arena.classifier")


class ClassifierStatus(Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    DISABLED = "disabled"


class ClassifierInitError(RuntimeError):
    """The underlying hand detector could not be created."""


@dataclass
class GestureResult:
    """One classified hand from an accepted frame."""
    gesture: str
    confidence: float
    landmarks: np.ndarray  # read-only, shape (21, 3)
    hand_index: int = 0
    timestamp: float = 0.0


def _default_detector_factory():
    from gesture_arena.detector import HandDetector

    return HandDetector()


class GestureClassifier:
    """Classifies hand landmarks into a closed gesture alphabet.

    ``classify`` and ``confidence`` are pure functions of their input and can
    be used without initialization. ``process_frame`` runs the hand detector
    first and therefore needs a successful ``initialize()``.

    At most one frame per ``process_interval`` seconds is accepted; frames
    arriving sooner return an empty list. If the detector cannot be created
    the classifier is disabled for good and every frame returns an empty
    list, so a render loop driving it never blocks or raises.
    """

    def __init__(
        self,
        profile: Optional[ClassificationProfile] = None,
        detector_factory: Optional[Callable[[], Any]] = None,
        process_interval: float = 0.1,
        extension_threshold: float = EXTENSION_THRESHOLD,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.profile = profile or FingerProfile()
        self.process_interval = process_interval
        self.extension_threshold = extension_threshold

        self._detector_factory = detector_factory or _default_detector_factory
        self._detector = None
        self._clock = clock
        self._status = ClassifierStatus.UNINITIALIZED
        self._last_accepted: Optional[float] = None
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config, **kwargs) -> GestureClassifier:
        """Build from a ``ClassifierConfig``; kwargs override (factory, clock)."""
        options = {}
        if config.priority_finger and config.profile == "finger":
            options["priority_finger"] = config.priority_finger
        return cls(
            profile=make_profile(config.profile, **options),
            process_interval=config.process_interval,
            extension_threshold=config.extension_threshold,
            **kwargs,
        )

    @property
    def status(self) -> ClassifierStatus:
        return self._status

    @property
    def is_ready(self) -> bool:
        return self._status == ClassifierStatus.READY

    def initialize(self) -> ClassifierStatus:
        """Create the hand detector.

        Returns READY on success and DISABLED when no detector backend is
        installed. Any other construction failure disables the classifier
        and is raised once as ClassifierInitError; later calls just return
        DISABLED.
        """
        with self._lock:
            if self._status != ClassifierStatus.UNINITIALIZED:
                return self._status

            try:
                self._detector = self._detector_factory()
            except ImportError as e:
                self._status = ClassifierStatus.DISABLED
                logger.warning("Hand detector not available, gesture input disabled: %s", e)
                return self._status
            except Exception as e:
                self._status = ClassifierStatus.DISABLED
                logger.error("Failed to initialize hand detector: %s", e)
                raise ClassifierInitError(str(e)) from e

            self._status = ClassifierStatus.READY
            logger.info("Gesture classifier initialized (profile=%s)", self.profile.name)
            return self._status

    def extension(self, landmarks) -> tuple[bool, ...]:
        """Extension vector (thumb, index, middle, ring, pinky)."""
        lm = as_landmark_set(landmarks)
        return finger_extension(lm, self.extension_threshold)

    def classify(self, landmarks) -> str:
        """Classify one hand.

        Raises:
            InvalidLandmarksError: if landmarks are not 21 (x, y, z) points.
        """
        lm = as_landmark_set(landmarks)
        return self.profile.classify(lm, finger_extension(lm, self.extension_threshold))

    def confidence(self, landmarks, gesture: str) -> float:
        """How well the hand matches the canonical pattern of ``gesture``."""
        lm = as_landmark_set(landmarks)
        return self.profile.confidence(
            finger_extension(lm, self.extension_threshold), gesture
        )

    def process_frame(self, frame_rgb: np.ndarray) -> list[GestureResult]:
        """Detect and classify all hands in a frame (rate limited)."""
        if self._status != ClassifierStatus.READY:
            return []

        now = self._clock()
        if not self._accept(now):
            return []

        try:
            hands = self._detector.detect(frame_rgb)
            return self._classify_hands(hands, now)
        except Exception as e:
            logger.warning("Failed to process frame: %s", e)
            return []

    def process_landmarks(self, hands: Iterable) -> list[GestureResult]:
        """Classify already-extracted hands (rate limited like frames)."""
        if self._status == ClassifierStatus.DISABLED:
            return []

        now = self._clock()
        if not self._accept(now):
            return []

        try:
            return self._classify_hands(hands, now)
        except Exception as e:
            logger.warning("Failed to classify landmarks: %s", e)
            return []

    def _accept(self, now: float) -> bool:
        with self._lock:
            last = self._last_accepted
            if last is not None and now - last < self.process_interval:
                return False
            self._last_accepted = now
            return True

    def _classify_hands(self, hands: Iterable, now: float) -> list[GestureResult]:
        results = []
        for i, raw in enumerate(hands):
            lm = as_landmark_set(raw)
            extended = finger_extension(lm, self.extension_threshold)
            gesture = self.profile.classify(lm, extended)
            results.append(GestureResult(
                gesture=str(gesture),
                confidence=self.profile.confidence(extended, gesture),
                landmarks=lm,
                hand_index=i,
                timestamp=now,
            ))
        logger.debug("Classified %d hand(s): %s", len(results), [r.gesture for r in results])
        return results

    def dispose(self):
        """Release the detector. A disabled classifier stays disabled."""
        with self._lock:
            if self._detector is not None:
                try:
                    self._detector.close()
                except Exception as e:
                    logger.warning("Error closing hand detector: %s", e)
                self._detector = None
            if self._status == ClassifierStatus.READY:
                self._status = ClassifierStatus.UNINITIALIZED
            self._last_accepted = None

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.dispose()
