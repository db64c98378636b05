"""
Synced Cache — Sync Module

Backend reconciliation:
- client.py: JSON-over-HTTP client for the backend authority (httpx)
- coordinator.py: sync state machine with bounded, scheduled retries
- scheduler.py: clocks, cancellable timers and background task tracking
"""

from .client import BackendClient, SyncRequest, SyncResponse
from .coordinator import SyncCoordinator, SyncState, SyncTrigger
from .scheduler import AsyncioScheduler, ManualScheduler, ScheduledTask, Scheduler, TaskTracker, wall_clock_ms

__all__ = [
    # Backend client
    "BackendClient",
    "SyncRequest",
    "SyncResponse",
    # Coordinator
    "SyncCoordinator",
    "SyncState",
    "SyncTrigger",
    # Scheduling
    "Scheduler",
    "ScheduledTask",
    "AsyncioScheduler",
    "ManualScheduler",
    "TaskTracker",
    "wall_clock_ms",
]
