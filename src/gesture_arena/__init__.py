"""GestureArena - Gesture-driven two-fighter match engine."""

__version__ = "0.1.0"

from gesture_arena.landmarks import InvalidLandmarksError, as_landmark_set
from gesture_arena.gestures import BoxingGesture, FingerGesture, BoxingProfile, FingerProfile, make_profile
from gesture_arena.classifier import GestureClassifier, GestureResult, ClassifierStatus, ClassifierInitError
from gesture_arena.events import EventBus, EventKind, MatchEvent
from gesture_arena.clock import ThreadingScheduler, VirtualClock
from gesture_arena.config import ArenaConfig, MatchConfig, ClassifierConfig, AIConfig, ConfigError
from gesture_arena.engine import MatchEngine, MatchState, Fighter, MatchPhase, EngineDisposedError
from gesture_arena.ai import AIOpponentController
from gesture_arena.controls import GestureController
