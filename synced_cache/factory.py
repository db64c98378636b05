"""
Synced Cache — Factory

Composition root: turns a SyncedCacheConfig into a wired SyncedCache.

Key points:
- No module-level cache instance: every call returns a new cache the caller owns
- Backends are selected by config (memory|redis storage, local|redis broadcast)
- The redis modules are imported lazily so memory/local setups never load them
- Any component can be overridden, which is how tests inject fakes

Examples:
    from synced_cache.factory import create_synced_cache

    # Uses env-configured backends (memory + in-process broadcast by default)
    cache = create_synced_cache()
    cache.start()

    # Two contexts in one process sharing storage and a broadcast channel
    from synced_cache import BroadcastHub, MemoryKeyValueStore, SyncedCacheConfig
    cfg = SyncedCacheConfig(sync_interval_ms=0)
    hub, medium = BroadcastHub(), MemoryKeyValueStore()
    a = create_synced_cache(cfg, hub=hub, medium=medium, context_id="a")
    b = create_synced_cache(cfg, hub=hub, medium=medium, context_id="b")

    # Redis toggle via env:
    #   SYNCED_CACHE_REDIS_URL=redis://localhost:6379/0 python app.py
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .cache.backends.memory import MemoryKeyValueStore
from .cache.interface import KeyValueStore
from .cache.store import LocalStore
from .config import BroadcastBackend, StorageBackend, SyncedCacheConfig, get_config
from .errors import ConfigurationError
from .replication.broadcaster import Broadcaster, BroadcastHub
from .replication.connectivity import ConnectivityMonitor
from .resilience.retry import RetryConfig
from .service import SyncedCache
from .sync.client import BackendClient
from .sync.scheduler import AsyncioScheduler, Scheduler

logger = logging.getLogger(__name__)

# Shared by every local broadcaster created without an explicit hub
_default_hub = BroadcastHub()


def _require_redis_url(config: SyncedCacheConfig, component: str) -> str:
    # Validate minimal requirements (the pydantic validator also enforces this)
    if not config.redis_url:
        raise ConfigurationError(
            f"SYNCED_CACHE_REDIS_URL must be set when the {component} backend is redis",
            details={"env": "SYNCED_CACHE_REDIS_URL", "component": component},
        )
    return config.redis_url


def _redis_import_error(component: str, e: Exception) -> ConfigurationError:
    logger.error(
        f"Redis {component} selected but the redis client is not installed",
        extra={"package": "redis>=5.0.1", "error": str(e)},
    )
    return ConfigurationError(
        f"Redis {component} selected but redis client is unavailable. Install with: pip install 'redis>=5.0.1'",
        details={"package": "redis>=5.0.1", "error": str(e), "component": component},
    )


def create_medium(config: SyncedCacheConfig) -> KeyValueStore:
    """
    Create the key-value medium selected by `config.storage`.

    Raises:
        ConfigurationError: If the backend is unknown or unavailable
    """
    if config.storage == StorageBackend.MEMORY:
        return MemoryKeyValueStore()

    if config.storage == StorageBackend.REDIS:
        redis_url = _require_redis_url(config, "storage")
        # Lazy import to avoid loading redis when the memory medium is used
        try:
            from .cache.backends.redis import RedisKeyValueStore
        except ImportError as e:
            raise _redis_import_error("storage", e) from e
        return RedisKeyValueStore(redis_url=redis_url, socket_timeout=config.redis_socket_timeout)

    raise ConfigurationError(
        f"Unknown storage backend: {config.storage}",
        details={"backend": str(config.storage), "supported": ["memory", "redis"]},
    )


def create_store(config: SyncedCacheConfig, medium: KeyValueStore | None = None) -> LocalStore:
    """Create the local store adapter over `medium` (or the configured one)."""
    return LocalStore(medium if medium is not None else create_medium(config), prefix=config.prefix)


def create_broadcaster(config: SyncedCacheConfig, hub: BroadcastHub | None = None) -> Broadcaster:
    """
    Create the broadcaster selected by `config.broadcast`.

    Local broadcasters join `hub`, or a process-wide default hub when none is given.

    Raises:
        ConfigurationError: If the backend is unknown or unavailable
    """
    if config.broadcast == BroadcastBackend.LOCAL:
        return (hub or _default_hub).join(config.channel)

    if config.broadcast == BroadcastBackend.REDIS:
        redis_url = _require_redis_url(config, "broadcast")
        try:
            from .replication.redis_broadcaster import RedisBroadcaster
        except ImportError as e:
            raise _redis_import_error("broadcast", e) from e
        return RedisBroadcaster(
            redis_url=redis_url,
            channel=config.channel,
            socket_timeout=config.redis_socket_timeout,
        )

    raise ConfigurationError(
        f"Unknown broadcast backend: {config.broadcast}",
        details={"backend": str(config.broadcast), "supported": ["local", "redis"]},
    )


def create_backend_client(
    config: SyncedCacheConfig,
    transport: httpx.AsyncBaseTransport | None = None,
) -> BackendClient:
    """Create the backend client for `config.backend_url`."""
    return BackendClient(base_url=config.backend_url, timeout=config.request_timeout, transport=transport)


def create_retry_config(config: SyncedCacheConfig) -> RetryConfig:
    """Build the sync retry policy from configuration."""
    return RetryConfig(
        max_retries=config.max_retries,
        base_delay_ms=config.retry_delay_ms,
        max_delay_ms=max(config.retry_delay_ms, 60000),
        exponential_base=config.retry_backoff,
    )


def create_synced_cache(
    config: SyncedCacheConfig | None = None,
    *,
    medium: KeyValueStore | None = None,
    hub: BroadcastHub | None = None,
    broadcaster: Broadcaster | None = None,
    connectivity: ConnectivityMonitor | None = None,
    client: BackendClient | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    scheduler: Scheduler | None = None,
    context_id: str | None = None,
) -> SyncedCache:
    """
    Compose a SyncedCache from configuration.

    The cache is returned unstarted; call `start()` (or use `async with`).

    Args:
        config: Cache configuration (uses the loaded env configuration if not provided)
        medium: Key-value medium to use instead of the configured one
        hub: Broadcast hub for local broadcasters
        broadcaster: Broadcaster to use instead of the configured one
        connectivity: Connectivity monitor (default: a new one, online)
        client: Backend client to use instead of the configured one
        transport: httpx transport for the configured backend client
        scheduler: Clock and timers (default: AsyncioScheduler)
        context_id: Name of the context in logs

    Returns:
        New SyncedCache owned by the caller

    Raises:
        ConfigurationError: If configuration is invalid or a backend unavailable
    """
    if config is None:
        config = get_config()

    settings: dict[str, Any] = {
        "storage": "custom" if medium is not None else config.storage,
        "broadcast": "custom" if broadcaster is not None else config.broadcast,
        "backend_url": config.backend_url,
        "sync_interval_ms": config.sync_interval_ms,
    }
    logger.info(
        f"Creating synced cache with storage '{settings['storage']}' and broadcast '{settings['broadcast']}'",
        extra=settings,
    )

    store = create_store(config, medium)
    try:
        cache = SyncedCache(
            store=store,
            broadcaster=broadcaster if broadcaster is not None else create_broadcaster(config, hub),
            connectivity=connectivity if connectivity is not None else ConnectivityMonitor(),
            client=client if client is not None else create_backend_client(config, transport),
            scheduler=scheduler if scheduler is not None else AsyncioScheduler(),
            default_ttl=config.default_ttl,
            sync_interval_ms=config.sync_interval_ms,
            retry=create_retry_config(config),
            context_id=context_id,
        )
    except ConfigurationError:
        store.medium.close()
        raise
    return cache
