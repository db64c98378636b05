"""
Synced Cache — Test Configuration and Shared Fixtures

Provides pytest configuration and shared fixtures for unit and integration tests:
- ManualScheduler for deterministic time
- FakeBackend: last-write-wins backend authority served through httpx.MockTransport
- BroadcastHub for in-process sibling contexts
- make_cache: builds started SyncedCache contexts and disposes them after the test
"""

import json
import os
from collections.abc import AsyncGenerator, Callable
from typing import Any

import httpx
import pytest
import pytest_asyncio

from synced_cache.cache import KeyValueStore, LocalStore, MemoryKeyValueStore
from synced_cache.config import reset_config
from synced_cache.replication import BroadcastHub, ConnectivityMonitor
from synced_cache.resilience import RetryConfig
from synced_cache.service import SyncedCache
from synced_cache.sync import BackendClient, ManualScheduler

# Set test environment
os.environ["SYNCED_CACHE_ENVIRONMENT"] = "test"
os.environ["SYNCED_CACHE_LOG_LEVEL"] = "DEBUG"

BACKEND_URL = "http://backend.test/api/cache"


@pytest.fixture
def test_redis_url() -> str:
    """Get Redis URL for testing (database 15 for isolation)."""
    return os.environ.get("TEST_REDIS_URL", "redis://localhost:6379/15")


class FakeBackend:
    """
    In-memory backend authority speaking the cache wire contract.

    - Keeps one wire entry per key, resolved last-write-wins (tombstone wins ties)
    - The sync `timestamp` is a revision counter; /sync returns entries changed
      after the caller's lastSync, minus the versions the caller just sent
    - `fail_status` / `fail_network` make every request fail until reset
    - `echo_changes` makes /sync return the caller's own changes as well
    """

    def __init__(self) -> None:
        self.entries: dict[str, dict[str, Any]] = {}
        self.revisions: dict[str, int] = {}
        self.revision = 0
        self.requests: list[tuple[str, dict[str, Any]]] = []
        self.fail_status: int | None = None
        self.fail_network = False
        self.sync_response: Any = None
        self.echo_changes = False
        self.transport = httpx.MockTransport(self.handle)

    def calls(self, endpoint: str) -> list[dict[str, Any]]:
        return [body for path, body in self.requests if path == endpoint]

    def put(self, key: str, value: Any, timestamp: int, ttl: float | None = None, deleted: bool = False) -> bool:
        current = self.entries.get(key)
        if current is not None:
            if timestamp < current["timestamp"]:
                return False
            if timestamp == current["timestamp"] and (current["deleted"] or not deleted):
                return False
        self.revision += 1
        self.entries[key] = {
            "key": key,
            "value": None if deleted else value,
            "ttl": ttl,
            "timestamp": timestamp,
            "deleted": deleted,
        }
        self.revisions[key] = self.revision
        return True

    def value(self, key: str) -> Any:
        entry = self.entries.get(key)
        if entry is None or entry["deleted"]:
            return None
        return entry["value"]

    def handle(self, request: httpx.Request) -> httpx.Response:
        endpoint = request.url.path.removeprefix("/api/cache")
        body = json.loads(request.content) if request.content else {}
        self.requests.append((endpoint, body))

        if self.fail_network:
            raise httpx.ConnectError("connection refused", request=request)
        if self.fail_status is not None:
            return httpx.Response(self.fail_status, json={"error": "failing on purpose"})

        if endpoint == "/sync":
            return self._sync(body)
        if endpoint == "/set":
            self.put(body["key"], body["value"], body["timestamp"], body.get("ttl"))
        elif endpoint == "/remove":
            self.put(body["key"], None, body["timestamp"], deleted=True)
        elif endpoint == "/clear":
            for key in list(self.entries):
                self.put(key, None, body["timestamp"], deleted=True)
        else:
            return httpx.Response(404)
        return httpx.Response(200, json={"ok": True})

    def _sync(self, body: dict[str, Any]) -> httpx.Response:
        if self.sync_response is not None:
            return httpx.Response(200, json=self.sync_response)

        sent = set()
        for change in body["changes"]:
            self.put(change["key"], change["value"], change["timestamp"], change.get("ttl"), change["deleted"])
            if not self.echo_changes:
                sent.add((change["key"], change["timestamp"], change["deleted"]))

        updates = [
            entry
            for key, entry in self.entries.items()
            if self.revisions[key] > body["lastSync"] and (key, entry["timestamp"], entry["deleted"]) not in sent
        ]
        return httpx.Response(200, json={"updates": updates, "timestamp": self.revision})


@pytest.fixture
def scheduler() -> ManualScheduler:
    """Logical clock starting at a fixed epoch."""
    return ManualScheduler(start_ms=1_700_000_000_000)


@pytest.fixture
def backend() -> FakeBackend:
    """Fresh fake backend authority."""
    return FakeBackend()


@pytest.fixture
def hub() -> BroadcastHub:
    """Broadcast namespace shared by the contexts of one test."""
    return BroadcastHub()


@pytest.fixture
def memory_store() -> LocalStore:
    """Local store over a fresh memory medium."""
    return LocalStore(MemoryKeyValueStore(), prefix="test")


@pytest_asyncio.fixture
async def make_cache(
    scheduler: ManualScheduler,
    backend: FakeBackend,
    hub: BroadcastHub,
) -> AsyncGenerator[Callable[..., SyncedCache], None]:
    """
    Factory for started cache contexts sharing the test's hub, clock and backend.

    All contexts are closed after the test.
    """
    created: list[SyncedCache] = []

    def factory(
        context_id: str = "a",
        medium: KeyValueStore | None = None,
        online: bool = True,
        sync_interval_ms: int = 0,
        max_retries: int = 3,
        retry_delay_ms: int = 5000,
        default_ttl: int = 3600,
        prefix: str = "test",
        connectivity: ConnectivityMonitor | None = None,
        channel: str = "test_channel",
    ) -> SyncedCache:
        cache = SyncedCache(
            store=LocalStore(medium if medium is not None else MemoryKeyValueStore(), prefix=prefix),
            broadcaster=hub.join(channel),
            connectivity=connectivity if connectivity is not None else ConnectivityMonitor(online=online),
            client=BackendClient(BACKEND_URL, timeout=1.0, transport=backend.transport),
            scheduler=scheduler,
            default_ttl=default_ttl,
            sync_interval_ms=sync_interval_ms,
            retry=RetryConfig(max_retries=max_retries, base_delay_ms=retry_delay_ms),
            context_id=context_id,
        )
        created.append(cache)
        return cache.start()

    yield factory

    for cache in created:
        await cache.aclose()


@pytest.fixture(autouse=True)
def reset_synced_cache_config() -> Any:
    """Reset memoized configuration after each test to prevent state leakage."""
    yield
    reset_config()
