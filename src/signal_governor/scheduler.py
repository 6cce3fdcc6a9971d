"""Keyed, cancellable delayed tasks driven by a single polling loop.

Tasks live in a heap ordered by due time. Each task has a key; scheduling
an existing key replaces it and cancelling is idempotent (a stale heap
entry is skipped when popped). ``run_pending()`` executes every due task
in due order on the calling thread, which makes the scheduler fully
deterministic under a fake clock. ``start()`` runs the same loop on one
background thread.

Usage::

    scheduler = TaskScheduler()
    scheduler.schedule("escalation:alert-1", 300, fire)
    scheduler.every("decision-cycle", 30, run_cycle)
    scheduler.start(poll_interval=1.0)
    ...
    scheduler.cancel("escalation:alert-1")
    scheduler.stop()
"""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from collections.abc import Callable
from typing import NamedTuple

logger = logging.getLogger(__name__)


class _Task(NamedTuple):
    due: float
    seq: int
    key: str
    callback: Callable[[], None]
    interval: float | None


class TaskScheduler:
    """Heap-backed scheduler keyed by task name.

    Thread-safe via a lock on the heap and the live-task map. Callbacks
    run outside the lock so they may schedule or cancel other tasks.
    """

    def __init__(self, _clock: Callable[[], float] | None = None) -> None:
        self._clock = _clock or time.monotonic
        self._lock = threading.Lock()
        self._heap: list[tuple[float, int, str]] = []
        self._live: dict[str, _Task] = {}
        self._seq = itertools.count()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def now(self) -> float:
        return self._clock()

    def schedule(
        self,
        key: str,
        delay_seconds: float,
        callback: Callable[[], None],
    ) -> None:
        """Run *callback* once after *delay_seconds*, replacing any task with *key*."""
        self._push(key, delay_seconds, callback, None)

    def every(
        self,
        key: str,
        interval_seconds: float,
        callback: Callable[[], None],
    ) -> None:
        """Run *callback* every *interval_seconds*, first run one interval from now."""
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._push(key, interval_seconds, callback, interval_seconds)

    def cancel(self, key: str) -> bool:
        """Cancel a task. Returns False if no such task was pending."""
        with self._lock:
            return self._live.pop(key, None) is not None

    def is_scheduled(self, key: str) -> bool:
        with self._lock:
            return key in self._live

    def pending_keys(self) -> list[str]:
        with self._lock:
            return sorted(self._live)

    def next_due(self) -> float | None:
        """Due time of the earliest live task, or None."""
        with self._lock:
            self._discard_stale()
            return self._heap[0][0] if self._heap else None

    def run_pending(self) -> int:
        """Run every task whose due time has passed. Returns the number run."""
        ran = 0
        while True:
            task = self._pop_due()
            if task is None:
                return ran
            ran += 1
            try:
                task.callback()
            except Exception:
                logger.exception("Scheduled task %s failed", task.key)

    def start(self, poll_interval: float = 1.0) -> None:
        """Run ``run_pending()`` on a background thread until ``stop()``."""
        if self._thread is not None and self._thread.is_alive():
            logger.warning("Scheduler already running")
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._loop,
            args=(poll_interval,),
            name="signal-governor-scheduler",
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def clear(self) -> None:
        with self._lock:
            self._heap.clear()
            self._live.clear()

    # ------------------------------------------------------------------

    def _loop(self, poll_interval: float) -> None:
        while not self._stop_event.is_set():
            self.run_pending()
            self._stop_event.wait(poll_interval)

    def _push(
        self,
        key: str,
        delay: float,
        callback: Callable[[], None],
        interval: float | None,
    ) -> None:
        due = self._clock() + max(0.0, delay)
        with self._lock:
            task = _Task(due, next(self._seq), key, callback, interval)
            self._live[key] = task
            heapq.heappush(self._heap, (task.due, task.seq, key))

    def _pop_due(self) -> _Task | None:
        now = self._clock()
        with self._lock:
            self._discard_stale()
            if not self._heap or self._heap[0][0] > now:
                return None
            _, _, key = heapq.heappop(self._heap)
            task = self._live.pop(key)
            if task.interval is not None:
                # Re-arm from the current time so a slow run never stacks up
                nxt = task._replace(due=now + task.interval, seq=next(self._seq))
                self._live[key] = nxt
                heapq.heappush(self._heap, (nxt.due, nxt.seq, key))
            return task

    def _discard_stale(self) -> None:
        while self._heap:
            due, seq, key = self._heap[0]
            live = self._live.get(key)
            if live is not None and live.seq == seq:
                return
            heapq.heappop(self._heap)
