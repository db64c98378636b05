"""
Synced Cache — Sync Coordinator

Reconciles the local store with the backend authority.

State machine: IDLE -> SYNCING -> {IDLE, RETRYING} -> ... -> IDLE

- Triggers: periodic tick, offline->online transition, manual request.
- While SYNCING, new triggers are dropped (not queued).
- While RETRYING, ticks are dropped; an online transition or a manual request
  runs the pending retry immediately, keeping the attempt count.
- Failures are retried after the policy's delay, at most `max_retries` times;
  then the coordinator returns to IDLE and reports a SyncExhaustedError.
  Local changes are never discarded: the next pass sends them again.
- Nothing is attempted while offline or after dispose().
"""

import asyncio
import logging
from collections.abc import Callable
from enum import Enum

from pydantic import ValidationError

from ..cache.entry import CacheEntry, Origin
from ..cache.store import LocalStore, SyncMarker
from ..errors import BackendError, ProtocolError, SyncedCacheError, SyncExhaustedError, is_retryable_error
from ..resilience.retry import RetryConfig
from .client import BackendClient
from .scheduler import ScheduledTask, Scheduler, TaskTracker

logger = logging.getLogger(__name__)

# Applies one backend update; returns True if it replaced the local version
UpdateApplier = Callable[[CacheEntry], bool]
ErrorReporter = Callable[[SyncedCacheError], None]


class SyncState(str, Enum):
    """Coordinator states."""

    IDLE = "idle"
    SYNCING = "syncing"
    RETRYING = "retrying"


class SyncTrigger(str, Enum):
    """Why a pass was started."""

    START = "start"
    TICK = "tick"
    ONLINE = "online"
    MANUAL = "manual"
    RETRY = "retry"


class SyncCoordinator:
    """Runs sync passes against the backend with bounded, scheduled retries."""

    def __init__(
        self,
        store: LocalStore,
        client: BackendClient,
        scheduler: Scheduler,
        apply_update: UpdateApplier,
        is_online: Callable[[], bool],
        retry: RetryConfig | None = None,
        sync_interval_ms: int = 30000,
        on_error: ErrorReporter | None = None,
    ):
        self._store = store
        self._client = client
        self._scheduler = scheduler
        self._apply_update = apply_update
        self._is_online = is_online
        self._retry = retry or RetryConfig()
        self.sync_interval_ms = sync_interval_ms
        self._on_error = on_error

        self.state = SyncState.IDLE
        self.last_error: SyncedCacheError | None = None

        # Mutual exclusion between passes of this coordinator
        self._in_progress = False
        self._attempt = 0
        self._current: asyncio.Task[bool] | None = None
        self._periodic: ScheduledTask | None = None
        self._retry_task: ScheduledTask | None = None
        self._tasks = TaskTracker("sync")
        self._disposed = False

        # Stats
        self.passes = 0
        self.failures = 0
        self.updates_applied = 0
        self.dropped_triggers = 0

    # ------------ Lifecycle ------------

    def start(self) -> None:
        """Arm the periodic timer and run the first pass right away."""
        if self._disposed or self._periodic is not None:
            return
        if self.sync_interval_ms > 0:
            self._periodic = self._scheduler.call_every(self.sync_interval_ms, self._on_tick)
            self.trigger(SyncTrigger.START)

    def dispose(self) -> None:
        """Cancel timers and in-flight passes. Idempotent."""
        if self._disposed:
            return
        self._disposed = True
        if self._periodic is not None:
            self._periodic.cancel()
            self._periodic = None
        self._cancel_retry()
        cancelled = self._tasks.cancel_all()
        self.state = SyncState.IDLE
        logger.debug("Sync coordinator disposed", extra={"cancelled_passes": cancelled})

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def is_degraded(self) -> bool:
        """True while the most recent pass (or retry series) has failed."""
        return self.last_error is not None

    # ------------ Triggers ------------

    def _on_tick(self) -> None:
        self.trigger(SyncTrigger.TICK)

    def on_connectivity_change(self, online: bool) -> None:
        if online:
            self.trigger(SyncTrigger.ONLINE)

    def trigger(self, reason: SyncTrigger = SyncTrigger.MANUAL) -> asyncio.Task[bool] | None:
        """
        Start a pass unless one cannot or need not run now.

        Returns:
            The pass task, or None if the trigger was dropped
        """
        if self._disposed:
            return None
        if not self._is_online():
            logger.debug("Sync skipped while offline", extra={"trigger": reason.value})
            return None
        if self._in_progress:
            self.dropped_triggers += 1
            logger.debug("Sync already in progress, trigger dropped", extra={"trigger": reason.value})
            return None

        if self.state == SyncState.RETRYING:
            if reason == SyncTrigger.TICK:
                self.dropped_triggers += 1
                logger.debug("Retry pending, tick dropped", extra={"attempt": self._attempt})
                return None
            self._cancel_retry()
        elif reason != SyncTrigger.RETRY:
            self._attempt = 0

        return self._begin(reason)

    async def sync_now(self) -> bool:
        """
        Run a pass now, or join the one already running.

        Returns:
            True if the pass succeeded
        """
        task = self._current if self._in_progress else self.trigger(SyncTrigger.MANUAL)
        if task is None:
            return False
        await asyncio.wait({task})
        return not task.cancelled() and task.exception() is None and task.result()

    def _begin(self, reason: SyncTrigger) -> asyncio.Task[bool]:
        self._in_progress = True
        self.state = SyncState.SYNCING
        task = self._tasks.spawn(self._run_pass(self._attempt, reason), name=f"sync-{reason.value}")
        self._current = task
        return task

    def _fire_retry(self) -> None:
        self._retry_task = None
        if self._disposed or self.state != SyncState.RETRYING:
            return
        if not self._is_online():
            # Queued changes go out on the next online transition or tick
            self.state = SyncState.IDLE
            self._attempt = 0
            logger.info("Offline when retry fell due; sync deferred")
            return
        self.trigger(SyncTrigger.RETRY)

    def _cancel_retry(self) -> None:
        if self._retry_task is not None:
            self._retry_task.cancel()
            self._retry_task = None

    # ------------ Pass ------------

    async def _run_pass(self, attempt: int, reason: SyncTrigger) -> bool:
        try:
            completed = await self._exchange()
        except BackendError as e:
            self._on_failure(attempt, e)
            return False
        finally:
            self._in_progress = False
            self._current = None
            if self.state == SyncState.SYNCING:
                self.state = SyncState.IDLE

        if completed:
            self._on_success(attempt, reason)
        return completed

    async def _exchange(self) -> bool:
        marker = self._store.read_last_sync()
        collected_at = self._scheduler.now()
        changes = [
            entry.to_wire()
            for entry in self._store.entries()
            if entry.timestamp > marker.watermark and entry.origin != Origin.BACKEND
        ]

        response = await self._client.sync(marker.last_sync, changes)
        if self._disposed:
            return False

        try:
            updates = [CacheEntry.from_wire(wire) for wire in response.updates]
        except ValidationError as e:
            raise ProtocolError(
                "Backend sent an invalid update",
                "/sync",
                {"validation_errors": e.errors(include_url=False)},
            ) from e

        applied = sum(1 for update in updates if self._apply_update(update))
        self.updates_applied += applied

        # Entries stamped in the millisecond of collection are resent next pass
        self._store.write_last_sync(SyncMarker(last_sync=response.timestamp, watermark=collected_at - 1))

        logger.info(
            f"Sync pass sent {len(changes)} change(s), applied {applied}/{len(updates)} update(s)",
            extra={
                "changes": len(changes),
                "updates": len(updates),
                "applied": applied,
                "server_ts": response.timestamp,
            },
        )
        return True

    def _on_success(self, attempt: int, reason: SyncTrigger) -> None:
        if attempt > 0:
            logger.info(f"Sync succeeded after {attempt} retries", extra={"attempt": attempt, "trigger": reason.value})
        self.passes += 1
        self._attempt = 0
        self.last_error = None
        self.state = SyncState.IDLE

    def _on_failure(self, attempt: int, error: BackendError) -> None:
        self.failures += 1
        self.last_error = error
        if self._disposed:
            return

        if self._retry.should_retry(attempt, error):
            delay = self._retry.delay_for(attempt)
            self._attempt = attempt + 1
            self.state = SyncState.RETRYING
            logger.warning(
                f"Sync attempt {attempt + 1} failed, retry {attempt + 1}/{self._retry.max_retries} in {delay}ms",
                extra={
                    "attempt": attempt + 1,
                    "max_retries": self._retry.max_retries,
                    "delay_ms": delay,
                    "error": str(error),
                    "error_type": type(error).__name__,
                },
            )
            self._retry_task = self._scheduler.call_later(delay, self._fire_retry)
            return

        self._attempt = 0
        self.state = SyncState.IDLE
        report: SyncedCacheError = SyncExhaustedError(attempt + 1, error) if is_retryable_error(error) else error
        self.last_error = report
        logger.error(
            report.message,
            extra={"attempts": attempt + 1, "error": str(error), "error_type": type(error).__name__},
        )
        if self._on_error is not None:
            self._on_error(report)

    # ------------ Introspection ------------

    def pending_changes(self) -> int:
        """Number of local entries the next pass would send."""
        watermark = self._store.read_last_sync().watermark
        return sum(1 for e in self._store.entries() if e.timestamp > watermark and e.origin != Origin.BACKEND)

    @property
    def in_flight(self) -> int:
        """Number of passes currently running."""
        return len(self._tasks)

    async def wait(self) -> None:
        """Wait for every in-flight pass to finish."""
        await self._tasks.wait()
