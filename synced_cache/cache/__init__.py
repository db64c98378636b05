"""
Synced Cache — Cache Module

Local persistence for replicated cache entries.

- entry.py: CacheEntry, the unit of replication, and its wire shape
- interface.py: KeyValueStore, the synchronous medium capability
- backends/: medium implementations (memory in core, redis optional)
- store.py: LocalStore, the namespaced entry adapter over a medium

Usage:
    from synced_cache.cache import CacheEntry, LocalStore, MemoryKeyValueStore

    store = LocalStore(MemoryKeyValueStore(), prefix="app")
    store.write(CacheEntry(key="user", value={"id": 1}, timestamp=1700000000000))
"""

from .backends import MemoryKeyValueStore
from .entry import CacheEntry, Origin, WireEntry, ttl_ms_to_seconds, ttl_seconds_to_ms
from .interface import KeyValueStore
from .store import LazyKeys, LocalStore, SyncMarker

__all__ = [
    # Entries
    "CacheEntry",
    "Origin",
    "WireEntry",
    "ttl_ms_to_seconds",
    "ttl_seconds_to_ms",
    # Media
    "KeyValueStore",
    "MemoryKeyValueStore",
    # Adapter
    "LocalStore",
    "LazyKeys",
    "SyncMarker",
]
