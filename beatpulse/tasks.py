"""Cooperative "run after duration" continuations driven by the render tick."""

import heapq
import itertools
from typing import Any, Callable, List, Tuple

from .logging_config import get_logger

logger = get_logger(__name__)


class TaskHandle:
    """Handle to a scheduled continuation."""

    __slots__ = ("due", "callback", "args", "cancelled", "done")

    def __init__(self, due: float, callback: Callable[..., Any], args: Tuple):
        self.due = due
        self.callback = callback
        self.args = args
        self.cancelled = False
        self.done = False

    @property
    def pending(self) -> bool:
        return not (self.cancelled or self.done)

    def cancel(self):
        """Prevent the continuation from running. Safe to call repeatedly."""
        self.cancelled = True


class TaskQueue:
    """Single-threaded queue of delayed callbacks.

    Nothing runs on its own: run_due() is called once per tick and executes
    every continuation whose due time has been reached. Tasks scheduled while
    run_due() is executing wait for a later tick, so a task that reschedules
    itself with a zero delay runs once per tick rather than spinning.
    """

    def __init__(self, now: float = 0.0):
        self.now = now
        self._heap: List[Tuple[float, int, TaskHandle]] = []
        self._counter = itertools.count()

    def advance(self, now: float):
        """Move the clock forward without running anything (never backwards)."""
        self.now = max(self.now, now)

    def call_later(self, delay: float, callback: Callable[..., Any], *args) -> TaskHandle:
        """Schedule callback(*args) to run delay seconds after the current time."""
        handle = TaskHandle(self.now + max(0.0, delay), callback, args)
        heapq.heappush(self._heap, (handle.due, next(self._counter), handle))
        return handle

    def run_due(self, now: float) -> int:
        """Advance the clock to now and run due continuations.

        Returns:
            Number of callbacks executed.
        """
        self.now = max(self.now, now)
        batch_limit = next(self._counter)
        deferred = []
        ran = 0
        while self._heap and self._heap[0][0] <= self.now:
            item = heapq.heappop(self._heap)
            handle = item[2]
            if handle.cancelled:
                continue
            if item[1] > batch_limit:
                deferred.append(item)
                continue
            handle.done = True
            handle.callback(*handle.args)
            ran += 1
        for item in deferred:
            heapq.heappush(self._heap, item)
        return ran

    def cancel_all(self):
        """Cancel every pending continuation."""
        for _, _, handle in self._heap:
            handle.cancel()
        self._heap.clear()

    @property
    def pending(self) -> int:
        return sum(1 for _, _, handle in self._heap if handle.pending)
