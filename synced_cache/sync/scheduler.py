"""
Synced Cache — Scheduling

Timers as explicit, cancellable tasks instead of ambient setInterval/setTimeout:
- Scheduler: clock + one-shot and repeating timers
- AsyncioScheduler: wall clock and the running event loop's timers
- ManualScheduler: logical clock advanced by hand, for deterministic tests
- TaskTracker: owns fire-and-forget coroutines so they can be awaited or cancelled
"""

import asyncio
import heapq
import itertools
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Coroutine
from typing import Any

logger = logging.getLogger(__name__)

Callback = Callable[[], None]


def wall_clock_ms() -> int:
    """Current wall-clock time in milliseconds."""
    return int(time.time() * 1000)


def _run_callback(callback: Callback) -> None:
    try:
        callback()
    except Exception as e:
        logger.error(f"Scheduled callback failed: {e}", extra={"error": str(e)}, exc_info=True)


class ScheduledTask(ABC):
    """Handle on a pending timer."""

    @abstractmethod
    def cancel(self) -> None:
        """Prevent any future firing. Idempotent."""

    @property
    @abstractmethod
    def cancelled(self) -> bool: ...


class Scheduler(ABC):
    """Clock and timer capability."""

    @abstractmethod
    def now(self) -> int:
        """Current wall-clock time in milliseconds (entry timestamps use this)."""

    @abstractmethod
    def call_later(self, delay_ms: int, callback: Callback) -> ScheduledTask:
        """Run `callback` once after `delay_ms` milliseconds."""

    def call_every(self, interval_ms: int, callback: Callback) -> ScheduledTask:
        """Run `callback` every `interval_ms` milliseconds until cancelled."""
        if interval_ms <= 0:
            raise ValueError("interval_ms must be positive")
        return _RepeatingTask(self, interval_ms, callback)


class _RepeatingTask(ScheduledTask):
    def __init__(self, scheduler: Scheduler, interval_ms: int, callback: Callback):
        self._scheduler = scheduler
        self._interval_ms = interval_ms
        self._callback = callback
        self._cancelled = False
        self._current = scheduler.call_later(interval_ms, self._fire)

    def _fire(self) -> None:
        if self._cancelled:
            return
        # Re-arm first so a slow or failing callback cannot stop the series
        self._current = self._scheduler.call_later(self._interval_ms, self._fire)
        _run_callback(self._callback)

    def cancel(self) -> None:
        self._cancelled = True
        self._current.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class _TimerHandleTask(ScheduledTask):
    def __init__(self, handle: asyncio.TimerHandle):
        self._handle = handle

    def cancel(self) -> None:
        self._handle.cancel()

    @property
    def cancelled(self) -> bool:
        return self._handle.cancelled()


class AsyncioScheduler(Scheduler):
    """Scheduler backed by the running asyncio event loop."""

    def __init__(self, clock: Callable[[], int] = wall_clock_ms):
        self._clock = clock

    def now(self) -> int:
        return self._clock()

    def call_later(self, delay_ms: int, callback: Callback) -> ScheduledTask:
        loop = asyncio.get_running_loop()
        return _TimerHandleTask(loop.call_later(max(delay_ms, 0) / 1000, _run_callback, callback))


class _ManualTask(ScheduledTask):
    def __init__(self, due: int, callback: Callback):
        self.due = due
        self.callback = callback
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class ManualScheduler(Scheduler):
    """
    Scheduler with a logical clock.

    Nothing fires until `advance()` moves time forward; timers then fire in due
    order, with `now()` reporting each timer's due time while it runs.
    """

    def __init__(self, start_ms: int = 1_700_000_000_000):
        self._now = start_ms
        self._queue: list[tuple[int, int, _ManualTask]] = []
        self._sequence = itertools.count()

    def now(self) -> int:
        return self._now

    def call_later(self, delay_ms: int, callback: Callback) -> ScheduledTask:
        task = _ManualTask(self._now + max(delay_ms, 0), callback)
        heapq.heappush(self._queue, (task.due, next(self._sequence), task))
        return task

    def advance(self, ms: int) -> int:
        """
        Move the clock forward by `ms`, firing every timer that falls due.

        Returns:
            Number of callbacks run
        """
        target = self._now + ms
        fired = 0
        while self._queue and self._queue[0][0] <= target:
            due, _, task = heapq.heappop(self._queue)
            if task.cancelled:
                continue
            self._now = due
            _run_callback(task.callback)
            fired += 1
        self._now = target
        return fired

    @property
    def pending(self) -> int:
        """Number of timers still armed."""
        return sum(1 for _, _, task in self._queue if not task.cancelled)


class TaskTracker:
    """Keeps references to background coroutines so they are not lost."""

    def __init__(self, name: str = "synced_cache"):
        self.name = name
        self._tasks: set[asyncio.Task[Any]] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                f"Background task '{task.get_name()}' failed: {error}",
                extra={"tracker": self.name, "task": task.get_name(), "error": str(error)},
                exc_info=error,
            )

    async def wait(self) -> None:
        """Wait until every tracked task, including ones spawned meanwhile, is done."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def cancel_all(self) -> int:
        """Cancel every tracked task; returns how many were cancelled."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        return len(tasks)

    def __len__(self) -> int:
        return len(self._tasks)
