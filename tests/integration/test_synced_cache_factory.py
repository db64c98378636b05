"""
Synced Cache — Factory Integration Tests

Tests composing caches from configuration: backend selection, overrides, the
env-configured default and the absence of any shared cache instance.
"""

from typing import Any

import pytest

from synced_cache.cache import LocalStore, MemoryKeyValueStore
from synced_cache.cache.backends.redis import RedisKeyValueStore
from synced_cache.config import SyncedCacheConfig
from synced_cache.factory import (
    create_backend_client,
    create_broadcaster,
    create_medium,
    create_retry_config,
    create_store,
    create_synced_cache,
)
from synced_cache.replication import BroadcastHub, LocalBroadcastChannel
from synced_cache.replication.redis_broadcaster import RedisBroadcaster
from synced_cache.sync import ManualScheduler

REDIS_CONFIG = {"redis_url": "redis://localhost:6379/15"}


class TestComponentFactories:
    """Test suite for the per-component factories."""

    def test_memory_medium_by_default(self) -> None:
        """Test the default storage is an in-process medium."""
        assert isinstance(create_medium(SyncedCacheConfig()), MemoryKeyValueStore)

    def test_redis_medium(self) -> None:
        """Test redis storage is selected by config (no connection is made)."""
        medium = create_medium(SyncedCacheConfig(storage="redis", **REDIS_CONFIG))
        assert isinstance(medium, RedisKeyValueStore)
        medium.close()

    def test_store_uses_prefix(self) -> None:
        """Test the store adapter gets the configured namespace."""
        medium = MemoryKeyValueStore()
        store = create_store(SyncedCacheConfig(prefix="orders"), medium)
        assert isinstance(store, LocalStore)
        assert store.prefix == "orders"
        assert store.medium is medium

    def test_local_broadcaster_joins_hub(self) -> None:
        """Test local broadcasters join the given hub under the configured channel."""
        hub = BroadcastHub()
        broadcaster = create_broadcaster(SyncedCacheConfig(channel="orders"), hub)
        assert isinstance(broadcaster, LocalBroadcastChannel)
        assert hub.member_count("orders") == 1
        broadcaster.close()

    async def test_redis_broadcaster(self) -> None:
        """Test redis broadcast is selected by config (no connection is made)."""
        broadcaster = create_broadcaster(SyncedCacheConfig(broadcast="redis", channel="orders", **REDIS_CONFIG))
        assert isinstance(broadcaster, RedisBroadcaster)
        assert broadcaster.channel == "orders"
        await broadcaster.aclose()

    async def test_backend_client(self) -> None:
        """Test the client targets the configured URL and timeout."""
        client = create_backend_client(SyncedCacheConfig(backend_url="https://api.test/cache/", request_timeout=2.5))
        assert client.base_url == "https://api.test/cache"
        assert client.timeout == 2.5
        await client.aclose()

    def test_retry_config(self) -> None:
        """Test retry settings are carried over."""
        retry = create_retry_config(SyncedCacheConfig(max_retries=5, retry_delay_ms=250, retry_backoff=2.0))
        assert retry.max_retries == 5
        assert retry.base_delay_ms == 250
        assert retry.exponential_base == 2.0
        assert retry.delay_for(2) == 1000


class TestCreateSyncedCache:
    """Test suite for create_synced_cache."""

    async def test_two_contexts_share_hub(self, scheduler: ManualScheduler, backend: Any) -> None:
        """Test composed contexts replicate through the given hub."""
        config = SyncedCacheConfig(sync_interval_ms=0, default_ttl=60)
        hub = BroadcastHub()
        a = create_synced_cache(config, hub=hub, transport=backend.transport, scheduler=scheduler, context_id="a")
        b = create_synced_cache(config, hub=hub, transport=backend.transport, scheduler=scheduler, context_id="b")
        assert a is not b

        async with a, b:
            seen: list[Any] = []
            b.subscribe("k", seen.append)
            a.set("k", "v")
            await a.flush()
            await b.flush()

            assert b.get("k") == "v"
            assert seen == ["v"]
            assert backend.value("k") == "v"
            assert a.default_ttl == 60

    async def test_defaults_to_env_config(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Any) -> None:
        """Test config=None loads SYNCED_CACHE_* settings."""
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("SYNCED_CACHE_REDIS_URL", raising=False)
        monkeypatch.setenv("SYNCED_CACHE_PREFIX", "from_env")
        monkeypatch.setenv("SYNCED_CACHE_SYNC_INTERVAL_MS", "0")

        cache = create_synced_cache(hub=BroadcastHub())
        assert cache.get_stats()["prefix"] == "from_env"
        await cache.aclose()

    async def test_medium_override(self, scheduler: ManualScheduler, backend: Any) -> None:
        """Test an explicit medium is used instead of the configured one."""
        medium = MemoryKeyValueStore()
        cache = create_synced_cache(
            SyncedCacheConfig(sync_interval_ms=0),
            medium=medium,
            hub=BroadcastHub(),
            transport=backend.transport,
            scheduler=scheduler,
        ).start()
        cache.set("k", 1)
        assert medium.get_item("shared_mfe_cache:entry:k") is not None
        await cache.aclose()
