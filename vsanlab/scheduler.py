"""
Scheduler abstraction for step-wise workflows.

Resync, evacuation, upgrade and rebalancing are expressed as step functions
that mutate state and re-schedule themselves after a simulated delay. The
control plane only ever talks to ``call_later``; what drives the clock is
pluggable:

- ManualScheduler: virtual clock, advanced explicitly (tests, step-by-step
  driving).
- ThreadedScheduler: background daemon thread sleeping real delays (HTTP
  service).
"""

import heapq
import itertools
import logging
import threading
import time
from typing import Any, Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)

_Entry = Tuple[float, int, Callable[..., Any], tuple]


class Scheduler:
    """Ordered queue of delayed callbacks (ties run in scheduling order)."""

    def __init__(self):
        self._queue: List[_Entry] = []
        self._seq = itertools.count()
        self._runner: Callable[[Callable[..., Any], tuple], Any] = lambda fn, args: fn(*args)

    def bind_runner(self, runner: Callable[[Callable[..., Any], tuple], Any]) -> None:
        """Route every callback through ``runner`` (e.g. to hold the owner's lock)."""
        self._runner = runner

    def now(self) -> float:
        raise NotImplementedError

    def call_later(self, delay: float, callback: Callable[..., Any], *args) -> None:
        due = self.now() + max(0.0, float(delay))
        heapq.heappush(self._queue, (due, next(self._seq), callback, args))

    def pending(self) -> int:
        return len(self._queue)

    def clear(self) -> None:
        """Drop every pending callback."""
        self._queue.clear()

    def _run_entry(self, entry: _Entry) -> None:
        _, _, callback, args = entry
        self._runner(callback, args)


class ManualScheduler(Scheduler):
    """Virtual-clock scheduler. Nothing runs until the clock is advanced."""

    def __init__(self, start: float = 0.0):
        super().__init__()
        self._now = start

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> int:
        """
        Move the clock forward, running every callback that becomes due.

        Callbacks scheduled while advancing run too if they fall inside the
        window. Returns the number of callbacks executed.
        """
        deadline = self._now + seconds
        executed = 0
        while self._queue and self._queue[0][0] <= deadline:
            entry = heapq.heappop(self._queue)
            self._now = max(self._now, entry[0])
            self._run_entry(entry)
            executed += 1
        self._now = deadline
        return executed

    def step(self) -> bool:
        """Jump to and run the next due callback. Returns False when idle."""
        if not self._queue:
            return False
        entry = heapq.heappop(self._queue)
        self._now = max(self._now, entry[0])
        self._run_entry(entry)
        return True

    def run_until_idle(self, max_callbacks: int = 10000) -> int:
        executed = 0
        while self.step():
            executed += 1
            if executed >= max_callbacks:
                raise RuntimeError(f"Scheduler did not go idle after {max_callbacks} callbacks")
        return executed


class ThreadedScheduler(Scheduler):
    """
    Real-time scheduler.
    Runs due callbacks in a background thread.
    """

    def __init__(self, poll_interval_seconds: float = 0.5):
        super().__init__()
        self.poll_interval = poll_interval_seconds
        self._cond = threading.Condition()
        self.running = False
        self.worker_thread: Optional[threading.Thread] = None

    def now(self) -> float:
        return time.monotonic()

    def call_later(self, delay: float, callback: Callable[..., Any], *args) -> None:
        with self._cond:
            super().call_later(delay, callback, *args)
            self._cond.notify()

    def clear(self) -> None:
        with self._cond:
            super().clear()

    def start(self):
        """Start the scheduler thread"""
        if self.running:
            logger.warning("Scheduler already running")
            return

        self.running = True
        self.worker_thread = threading.Thread(target=self._loop, daemon=True)
        self.worker_thread.start()
        logger.info("Workflow scheduler started")

    def stop(self):
        """Stop the scheduler thread"""
        if not self.running:
            return

        with self._cond:
            self.running = False
            self._cond.notify()

        if self.worker_thread and self.worker_thread.is_alive():
            self.worker_thread.join(timeout=5)

        logger.info("Workflow scheduler stopped")

    def _loop(self):
        """Main loop (runs in background thread)"""
        while self.running:
            entry = None
            with self._cond:
                if not self._queue:
                    self._cond.wait(timeout=self.poll_interval)
                    continue
                wait = self._queue[0][0] - self.now()
                if wait > 0:
                    self._cond.wait(timeout=min(wait, self.poll_interval))
                    continue
                entry = heapq.heappop(self._queue)

            try:
                self._run_entry(entry)
            except Exception as e:
                logger.error(f"Scheduled step failed: {e}", exc_info=True)
