"""
Synced Cache — Client-Resident Replicated Cache

Key-value cache shared by sibling contexts (tabs, micro-frontends, workers),
kept consistent by cross-context broadcast and last-write-wins resolution, and
reconciled in the background with a backend authority.
"""

__version__ = "1.0.0"

from .cache import CacheEntry, KeyValueStore, LocalStore, MemoryKeyValueStore, Origin
from .config import SyncedCacheConfig, get_config, load_config
from .errors import (
    BackendError,
    CacheDisposedError,
    ConfigurationError,
    ErrorKind,
    NetworkError,
    ProtocolError,
    ServerError,
    StorageError,
    SyncedCacheError,
    SyncExhaustedError,
)
from .factory import create_synced_cache
from .observability import setup_logging
from .replication import BroadcastHub, BroadcastMessage, ConnectivityMonitor
from .service import SyncedCache
from .sync import AsyncioScheduler, BackendClient, ManualScheduler, SyncState

__all__ = [
    "__version__",
    # Cache
    "SyncedCache",
    "create_synced_cache",
    "CacheEntry",
    "Origin",
    "LocalStore",
    "KeyValueStore",
    "MemoryKeyValueStore",
    # Collaborators
    "BroadcastHub",
    "BroadcastMessage",
    "ConnectivityMonitor",
    "BackendClient",
    "AsyncioScheduler",
    "ManualScheduler",
    "SyncState",
    # Configuration
    "SyncedCacheConfig",
    "load_config",
    "get_config",
    "setup_logging",
    # Errors
    "SyncedCacheError",
    "ErrorKind",
    "ConfigurationError",
    "StorageError",
    "BackendError",
    "NetworkError",
    "ServerError",
    "ProtocolError",
    "SyncExhaustedError",
    "CacheDisposedError",
]
