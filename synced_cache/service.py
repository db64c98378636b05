"""
Synced Cache — Public Cache API

SyncedCache composes the local store, subscription registry, broadcaster,
connectivity monitor and sync coordinator behind one façade:

    set / get / remove / clear / subscribe / keys / dispose

Local operations are synchronous and never fail because of the backend.
Backend pushes run in the background; their failures are logged and delivered
to `on_error` listeners.

Lifecycle:
    cache = SyncedCache(store, broadcaster, connectivity, client, scheduler)
    cache.start()          # wire channels, start periodic sync
    ...
    await cache.aclose()   # dispose() + close network resources

or `async with SyncedCache(...) as cache: ...`.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterator
from typing import Any, Self
from uuid import uuid4

from .cache.entry import CacheEntry, Origin, ttl_ms_to_seconds, ttl_seconds_to_ms
from .cache.store import LazyKeys, LocalStore
from .errors import BackendError, CacheDisposedError, StorageError, SyncedCacheError
from .replication.broadcaster import Broadcaster, BroadcastMessage
from .replication.connectivity import ConnectivityMonitor
from .replication.resolver import is_same_version, is_tie, resolve
from .replication.subscriptions import Listener, SubscriptionRegistry, Unsubscribe
from .resilience.retry import RetryConfig
from .sync.client import BackendClient
from .sync.coordinator import SyncCoordinator, SyncState
from .sync.scheduler import Scheduler, TaskTracker

logger = logging.getLogger(__name__)

ErrorListener = Callable[[SyncedCacheError], None]


class SyncedCache:
    """Client-resident cache replicated across contexts and synced with a backend."""

    def __init__(
        self,
        store: LocalStore,
        broadcaster: Broadcaster,
        connectivity: ConnectivityMonitor,
        client: BackendClient,
        scheduler: Scheduler,
        default_ttl: int = 3600,
        sync_interval_ms: int = 30000,
        retry: RetryConfig | None = None,
        context_id: str | None = None,
    ):
        """
        Initialize the cache. Nothing runs until start().

        Args:
            store: Local store adapter (owned; closed on aclose)
            broadcaster: Channel to sibling contexts (owned)
            connectivity: Online/offline monitor
            client: Backend client (owned)
            scheduler: Clock and timers
            default_ttl: TTL in seconds when set() gets none (0 = no expiry)
            sync_interval_ms: Periodic sync interval (0 = no periodic sync)
            retry: Retry policy for failed sync passes
            context_id: Name of this context in logs
        """
        self.context_id = context_id or uuid4().hex[:8]
        self.default_ttl = default_ttl
        self._store = store
        self._broadcaster = broadcaster
        self._connectivity = connectivity
        self._client = client
        self._scheduler = scheduler
        self._subscriptions = SubscriptionRegistry()
        self._error_listeners: list[ErrorListener] = []
        self._pushes = TaskTracker("push")
        self._remove_connectivity_listener: Unsubscribe | None = None
        self._started = False
        self._disposed = False

        self._store.on_error = self._on_storage_error
        self._coordinator = SyncCoordinator(
            store=store,
            client=client,
            scheduler=scheduler,
            apply_update=self._apply_backend_update,
            is_online=lambda: self._connectivity.is_online,
            retry=retry,
            sync_interval_ms=sync_interval_ms,
            on_error=self._emit_error,
        )

        # Stats
        self._hits = 0
        self._misses = 0
        self._sets = 0
        self._removes = 0
        self._clears = 0
        self._conflicts = 0
        self._remote_applied = 0
        self._storage_failures = 0

    # ------------ Lifecycle ------------

    def start(self) -> Self:
        """Connect to siblings and connectivity events, start periodic sync."""
        if self._disposed:
            raise CacheDisposedError("start")
        if self._started:
            return self
        self._started = True
        self._broadcaster.on_message(self._handle_message)
        self._remove_connectivity_listener = self._connectivity.add_listener(self._coordinator.on_connectivity_change)
        self._coordinator.start()
        logger.info(
            f"Synced cache '{self.context_id}' started",
            extra={"context_id": self.context_id, "prefix": self._store.prefix, "online": self.is_online},
        )
        return self

    def dispose(self) -> None:
        """
        Stop timers, disconnect the broadcaster, drop subscribers and
        connectivity listeners. Idempotent and safe mid-sync.
        """
        if self._disposed:
            return
        self._disposed = True
        self._coordinator.dispose()
        self._pushes.cancel_all()
        self._broadcaster.close()
        self._subscriptions.clear()
        if self._remove_connectivity_listener is not None:
            self._remove_connectivity_listener()
            self._remove_connectivity_listener = None
        self._error_listeners.clear()
        logger.info(f"Synced cache '{self.context_id}' disposed", extra={"context_id": self.context_id})

    async def aclose(self) -> None:
        """dispose(), then release network and storage resources."""
        self.dispose()
        await self._broadcaster.aclose()
        await self._client.aclose()
        self._store.medium.close()

    async def __aenter__(self) -> Self:
        return self.start()

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    @property
    def disposed(self) -> bool:
        return self._disposed

    def _ensure_active(self, operation: str) -> None:
        if self._disposed:
            raise CacheDisposedError(operation)

    # ------------ Public API ------------

    def get(self, key: str, default: Any = None) -> Any:
        """
        Return the live value for `key`.

        Missing, deleted and expired entries all read as `default`. Expired
        entries stay in storage.
        """
        entry = self._store.read(key)
        if entry is None or not entry.is_live(self._scheduler.now()):
            self._misses += 1
            return default
        self._hits += 1
        return entry.value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """
        Store `value` under `key` for `ttl` seconds (None = default TTL, 0 = no expiry).

        Writes locally, broadcasts to siblings and notifies subscribers before
        returning; the backend push runs in the background.
        """
        self._ensure_active("set")
        if not key:
            raise ValueError("key must be a non-empty string")

        ttl_seconds = self.default_ttl if ttl is None else ttl
        entry = CacheEntry(
            key=key,
            value=value,
            timestamp=self._scheduler.now(),
            ttl_ms=ttl_seconds_to_ms(ttl_seconds),
        )
        self._store.write(entry)
        self._sets += 1

        wire_ttl = ttl_ms_to_seconds(entry.ttl_ms)
        self._broadcaster.post_message(
            BroadcastMessage(type="set", key=key, value=value, ttl=wire_ttl, timestamp=entry.timestamp)
        )
        self._subscriptions.notify(key, self._peek(key))
        self._push("/set", lambda: self._client.push_set(key, value, wire_ttl, entry.timestamp))

    def remove(self, key: str) -> None:
        """Tombstone `key` at the current time (even if it was never seen here)."""
        self._ensure_active("remove")
        if not key:
            raise ValueError("key must be a non-empty string")
        timestamp = self._scheduler.now()
        self._store.write(self._tombstone_for(key, timestamp, Origin.LOCAL))
        self._removes += 1

        self._broadcaster.post_message(BroadcastMessage(type="remove", key=key, timestamp=timestamp))
        self._subscriptions.notify(key, None)
        self._push("/remove", lambda: self._client.push_remove(key, timestamp))

    def clear(self) -> None:
        """Tombstone every stored key with one shared timestamp and notify every subscriber."""
        self._ensure_active("clear")
        timestamp = self._scheduler.now()
        count = 0
        for key in list(self._store.enumerate_keys()):
            self._store.write(self._tombstone_for(key, timestamp, Origin.LOCAL))
            count += 1
        self._clears += 1
        logger.info(f"Cleared {count} entries", extra={"context_id": self.context_id, "count": count})

        self._broadcaster.post_message(BroadcastMessage(type="clear", timestamp=timestamp))
        self._subscriptions.notify_all(self._peek)
        self._push("/clear", lambda: self._client.push_clear(timestamp))

    def subscribe(self, key: str, listener: Listener) -> Unsubscribe:
        """Call `listener(value)` whenever `key` changes. Returns an idempotent unsubscribe."""
        self._ensure_active("subscribe")
        return self._subscriptions.subscribe(key, listener)

    def keys(self) -> LazyKeys:
        """Lazy, restartable sequence of non-deleted keys (TTL is not checked)."""
        return LazyKeys(self._live_keys)

    def _live_keys(self) -> Iterator[str]:
        for entry in self._store.entries():
            if not entry.deleted:
                yield entry.key

    def on_error(self, listener: ErrorListener) -> Unsubscribe:
        """Observe non-fatal errors (storage failures, push failures, exhausted syncs)."""
        self._error_listeners.append(listener)

        def remove() -> None:
            if listener in self._error_listeners:
                self._error_listeners.remove(listener)

        return remove

    async def sync_now(self) -> bool:
        """Run a sync pass now (or join the running one). True on success."""
        self._ensure_active("sync")
        return await self._coordinator.sync_now()

    async def flush(self) -> None:
        """
        Wait for in-flight pushes and sync passes, including any they start.

        Also yields to the event loop first so queued broadcast deliveries run.
        """
        await asyncio.sleep(0)
        while len(self._pushes) or self._coordinator.in_flight:
            await self._pushes.wait()
            await self._coordinator.wait()
            await asyncio.sleep(0)

    def purge_tombstones(self, older_than_ms: int) -> int:
        """
        Physically delete tombstones that are already synced and older than
        `older_than_ms`. Storage hygiene only.

        Returns:
            Number of entries deleted
        """
        now = self._scheduler.now()
        watermark = self._store.read_last_sync().watermark
        purged = 0
        for entry in list(self._store.entries()):
            if entry.deleted and entry.timestamp <= watermark and now - entry.timestamp > older_than_ms:
                if self._store.delete(entry.key):
                    purged += 1
        if purged:
            logger.info(f"Purged {purged} tombstone(s)", extra={"context_id": self.context_id, "purged": purged})
        return purged

    # ------------ State ------------

    @property
    def is_online(self) -> bool:
        return self._connectivity.is_online

    @property
    def sync_state(self) -> SyncState:
        return self._coordinator.state

    @property
    def is_degraded(self) -> bool:
        """True while backend sync is failing (for a "sync degraded" indicator)."""
        return self._coordinator.is_degraded

    def get_stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        total_reads = self._hits + self._misses
        hit_rate = (self._hits / total_reads * 100) if total_reads > 0 else 0.0
        return {
            "context_id": self.context_id,
            "prefix": self._store.prefix,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(hit_rate, 2),
            "sets": self._sets,
            "removes": self._removes,
            "clears": self._clears,
            "conflicts": self._conflicts,
            "remote_applied": self._remote_applied,
            "storage_failures": self._storage_failures,
            "memory_only_entries": self._store.pending_count,
            "subscribers": len(self._subscriptions),
            "sync_state": self._coordinator.state.value,
            "sync_passes": self._coordinator.passes,
            "sync_failures": self._coordinator.failures,
            "sync_degraded": self._coordinator.is_degraded,
            "online": self.is_online,
        }

    # ------------ Inbound changes ------------

    def _tombstone_for(self, key: str, timestamp: int, origin: Origin) -> CacheEntry:
        current = self._store.read(key)
        if current is None:
            return CacheEntry.deleted_marker(key, timestamp, origin)
        return current.tombstone(timestamp, origin)

    def _peek(self, key: str) -> Any:
        """Current live value without touching hit/miss stats."""
        entry = self._store.read(key)
        if entry is None or not entry.is_live(self._scheduler.now()):
            return None
        return entry.value

    def _apply_remote(self, incoming: CacheEntry) -> bool:
        """Resolve `incoming` against the stored version; write and notify if it wins."""
        local = self._store.read(incoming.key)
        if is_same_version(local, incoming):
            if incoming.origin == Origin.SIBLING:
                # Already written by a context sharing this medium
                self._subscriptions.notify(incoming.key, self._peek(incoming.key))
            return False

        if is_tie(local, incoming):
            self._conflicts += 1
        if resolve(local, incoming) is not incoming:
            return False

        self._store.write(incoming)
        self._remote_applied += 1
        self._subscriptions.notify(incoming.key, self._peek(incoming.key))
        return True

    def _handle_message(self, message: BroadcastMessage) -> None:
        if self._disposed:
            return

        if message.type == "clear":
            for key in list(self._store.enumerate_keys()):
                self._apply_remote(self._tombstone_for(key, message.timestamp, Origin.SIBLING))
            # Subscribers of keys this context never stored still hear about the clear
            for key in self._subscriptions.subscribed_keys:
                if self._store.read(key) is None:
                    self._subscriptions.notify(key, None)
            return

        if not message.key:
            return
        if message.type == "set":
            self._apply_remote(
                CacheEntry(
                    key=message.key,
                    value=message.value,
                    timestamp=message.timestamp,
                    ttl_ms=ttl_seconds_to_ms(message.ttl),
                    origin=Origin.SIBLING,
                )
            )
        else:
            self._apply_remote(self._tombstone_for(message.key, message.timestamp, Origin.SIBLING))

    def _apply_backend_update(self, update: CacheEntry) -> bool:
        if not self._apply_remote(update):
            return False
        self._broadcaster.post_message(
            BroadcastMessage(
                type="remove" if update.deleted else "set",
                key=update.key,
                value=None if update.deleted else update.value,
                ttl=ttl_ms_to_seconds(update.ttl_ms),
                timestamp=update.timestamp,
            )
        )
        return True

    # ------------ Backend pushes & errors ------------

    def _push(self, endpoint: str, request: Callable[[], Awaitable[None]]) -> None:
        """Fire-and-forget single-item backend call (skipped while offline or outside an event loop)."""
        if not self.is_online:
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(
                f"No running event loop, push to {endpoint} left to the next sync pass",
                extra={"context_id": self.context_id, "endpoint": endpoint},
            )
            return
        self._pushes.spawn(self._run_push(endpoint, request), name=f"push{endpoint}")

    async def _run_push(self, endpoint: str, request: Callable[[], Awaitable[None]]) -> None:
        try:
            await request()
        except BackendError as e:
            logger.warning(
                f"Backend push to {endpoint} failed; the next sync pass will carry the change",
                extra={"context_id": self.context_id, "endpoint": endpoint, "error": str(e)},
            )
            self._emit_error(e)

    def _on_storage_error(self, error: StorageError) -> None:
        self._storage_failures += 1
        self._emit_error(error)

    def _emit_error(self, error: SyncedCacheError) -> None:
        for listener in list(self._error_listeners):
            try:
                listener(error)
            except Exception as e:
                logger.error(
                    f"Error listener raised: {e}",
                    extra={"context_id": self.context_id, "error": str(e)},
                    exc_info=True,
                )
