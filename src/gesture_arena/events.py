"""Match event bus.

Subscribers register per event kind and are called synchronously, in
registration order, with a ``MatchEvent``:

    bus = EventBus()

    @bus.subscribe(EventKind.HIT_LANDED)
    def on_hit(event):
        print(event.data["damage"])

    bus.publish(MatchEvent(EventKind.HIT_LANDED, {"damage": 9}))
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger("gesture_arena.events")


class EventKind(str, Enum):
    MATCH_START = "match_start"
    MATCH_END = "match_end"
    ROUND_START = "round_start"
    ROUND_END = "round_end"
    HIT_LANDED = "hit_landed"
    BLOCK_SUCCESS = "block_success"
    PLAYER_DAMAGED = "player_damaged"
    SCORE_UPDATE = "score_update"


@dataclass
class MatchEvent:
    """Event delivered to subscribers."""
    kind: EventKind
    data: dict = field(default_factory=dict)
    timestamp: float = 0.0


Callback = Callable[[MatchEvent], None]


class EventBus:
    """Publish/subscribe keyed by ``EventKind``.

    A subscriber that raises is logged and skipped; the remaining
    subscribers still receive the event.
    """

    def __init__(self):
        self._subscribers: dict[EventKind, list[Callback]] = {}
        self._lock = threading.Lock()

    def subscribe(self, kind: EventKind, callback: Optional[Callback] = None):
        """Register ``callback`` for ``kind``. Usable as a decorator."""
        kind = EventKind(kind)

        def register(fn: Callback) -> Callback:
            with self._lock:
                self._subscribers.setdefault(kind, []).append(fn)
            return fn

        if callback is None:
            return register
        return register(callback)

    def unsubscribe(self, kind: EventKind, callback: Callback):
        """Remove the first registration of ``callback``; unknown ones are ignored."""
        with self._lock:
            callbacks = self._subscribers.get(EventKind(kind))
            if callbacks and callback in callbacks:
                callbacks.remove(callback)

    def publish(self, event: MatchEvent):
        with self._lock:
            callbacks = list(self._subscribers.get(event.kind, ()))

        for callback in callbacks:
            try:
                callback(event)
            except Exception as e:
                logger.error("Subscriber %r failed on %s: %s", callback, event.kind.value, e)

    def subscriber_count(self, kind: Optional[EventKind] = None) -> int:
        with self._lock:
            if kind is not None:
                return len(self._subscribers.get(EventKind(kind), ()))
            return sum(len(cbs) for cbs in self._subscribers.values())

    def clear(self):
        """Drop every subscription."""
        with self._lock:
            self._subscribers.clear()
