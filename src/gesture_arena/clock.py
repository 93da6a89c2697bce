"""Schedulers for the round clock and the AI loop.

Everything time-driven in the arena goes through a ``Scheduler``:

- ``ThreadingScheduler`` runs callbacks on ``threading.Timer`` threads
  against ``time.monotonic()``.
- ``VirtualClock`` only moves when told to, which makes match timing
  fully deterministic in tests and headless simulations:

      clock = VirtualClock()
      engine = MatchEngine(scheduler=clock)
      engine.start()
      clock.advance(180)  # one full round
"""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from typing import Callable, Optional, Protocol

logger = logging.getLogger("gesture_arena.clock")


class Cancellable(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Source of time and one-shot delayed callbacks (seconds)."""

    def now(self) -> float: ...

    def call_later(self, delay: float, callback: Callable[[], None]) -> Cancellable: ...


class ScheduledCall:
    """Handle for a callback queued on a ``VirtualClock``."""

    __slots__ = ("due", "callback", "cancelled")

    def __init__(self, due: float, callback: Callable[[], None]):
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class VirtualClock:
    """Manually advanced clock.

    Callbacks run on the caller's thread inside ``advance``, in due-time
    order (ties in scheduling order), with ``now()`` set to their due time.
    Callbacks may schedule further callbacks; those run in the same
    ``advance`` if they fall due before it ends. Exceptions propagate.
    """

    def __init__(self, start: float = 0.0):
        self._now = start
        self._queue: list[tuple[float, int, ScheduledCall]] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledCall:
        call = ScheduledCall(self._now + max(0.0, delay), callback)
        heapq.heappush(self._queue, (call.due, next(self._seq), call))
        return call

    def advance(self, seconds: float) -> int:
        """Move time forward, running everything that falls due.

        Returns:
            Number of callbacks run.
        """
        if seconds < 0:
            raise ValueError("cannot move a clock backwards")
        return self.advance_to(self._now + seconds)

    def advance_to(self, target: float) -> int:
        ran = 0
        while self._queue and self._queue[0][0] <= target:
            due, _seq, call = heapq.heappop(self._queue)
            if call.cancelled:
                continue
            self._now = max(self._now, due)
            call.callback()
            ran += 1
        self._now = max(self._now, target)
        return ran

    @property
    def pending(self) -> int:
        """Callbacks queued and not cancelled."""
        return sum(1 for _, _, call in self._queue if not call.cancelled)


class _TimerHandle:
    def __init__(self, timer: threading.Timer):
        self._timer = timer

    def cancel(self):
        self._timer.cancel()


class ThreadingScheduler:
    """Wall-clock scheduler backed by daemon ``threading.Timer`` threads.

    Callback errors are logged, not raised, since nothing would catch them
    on a timer thread.
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self._clock = clock or time.monotonic

    def now(self) -> float:
        return self._clock()

    def call_later(self, delay: float, callback: Callable[[], None]) -> _TimerHandle:
        def run():
            try:
                callback()
            except Exception as e:
                logger.error("Scheduled callback %r failed: %s", callback, e)

        timer = threading.Timer(max(0.0, delay), run)
        timer.daemon = True
        timer.start()
        return _TimerHandle(timer)
