"""
Synced Cache — Backend Client Tests

Tests the wire contract and the mapping of transport and status failures to
the error taxonomy, using httpx.MockTransport.
"""

import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from synced_cache.errors import BackendTimeoutError, NetworkError, ProtocolError, ServerError
from synced_cache.sync import BackendClient

BASE_URL = "http://backend.test/api/cache"
T0 = 1_700_000_000_000

Handler = Callable[[httpx.Request], httpx.Response]


def make_client(handler: Handler) -> BackendClient:
    return BackendClient(BASE_URL, timeout=1.5, transport=httpx.MockTransport(handler))


class TestBackendClient:
    """Test suite for BackendClient."""

    async def test_sync_request_and_response(self) -> None:
        """Test the /sync body shape and response parsing."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "updates": [{"key": "b", "value": 2, "ttl": 60, "timestamp": T0 + 5, "deleted": False}],
                    "timestamp": 99,
                },
            )

        client = make_client(handler)
        change = {"key": "a", "value": 1, "ttl": None, "timestamp": T0, "deleted": False}
        response = await client.sync(42, [change])
        await client.aclose()

        assert seen[0].method == "POST"
        assert seen[0].url == f"{BASE_URL}/sync"
        assert json.loads(seen[0].content) == {"lastSync": 42, "changes": [change]}
        assert response.timestamp == 99
        assert response.updates[0].key == "b"
        assert response.updates[0].ttl == 60

    @pytest.mark.parametrize(
        ("call", "endpoint", "body"),
        [
            (
                lambda c: c.push_set("k", {"x": 1}, 30, T0),
                "/set",
                {"key": "k", "value": {"x": 1}, "ttl": 30, "timestamp": T0},
            ),
            (lambda c: c.push_remove("k", T0), "/remove", {"key": "k", "timestamp": T0}),
            (lambda c: c.push_clear(T0), "/clear", {"timestamp": T0}),
        ],
    )
    async def test_single_item_pushes(self, call: Any, endpoint: str, body: dict[str, Any]) -> None:
        """Test /set, /remove and /clear request bodies."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"ok": True})

        client = make_client(handler)
        await call(client)
        await client.aclose()

        assert seen[0].url.path == f"/api/cache{endpoint}"
        assert json.loads(seen[0].content) == body

    async def test_connect_error_is_network_failure(self) -> None:
        """Test transport errors become NetworkError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = make_client(handler)
        with pytest.raises(NetworkError) as exc_info:
            await client.sync(0, [])
        await client.aclose()
        assert exc_info.value.endpoint == "/sync"

    async def test_timeout_is_reported(self) -> None:
        """Test timeouts become BackendTimeoutError with the configured timeout."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("too slow", request=request)

        client = make_client(handler)
        with pytest.raises(BackendTimeoutError) as exc_info:
            await client.push_set("k", 1, None, T0)
        await client.aclose()
        assert exc_info.value.timeout == 1.5

    @pytest.mark.parametrize("status", [400, 404, 500, 503])
    async def test_error_status_is_server_failure(self, status: int) -> None:
        """Test error statuses become ServerError carrying the status."""
        client = make_client(lambda request: httpx.Response(status))
        with pytest.raises(ServerError) as exc_info:
            await client.sync(0, [])
        await client.aclose()
        assert exc_info.value.status_code == status

    @pytest.mark.parametrize(
        "payload",
        [b"not json", b'{"updates": []}', b'{"updates": [{"value": 1}], "timestamp": 1}'],
    )
    async def test_malformed_sync_response_is_protocol_failure(self, payload: bytes) -> None:
        """Test responses breaking the contract become ProtocolError."""
        client = make_client(lambda request: httpx.Response(200, content=payload))
        with pytest.raises(ProtocolError) as exc_info:
            await client.sync(0, [])
        await client.aclose()
        assert exc_info.value.details["validation_errors"]

    async def test_base_url_trailing_slash(self) -> None:
        """Test a trailing slash on the base URL is ignored."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"updates": [], "timestamp": 1})

        client = BackendClient(BASE_URL + "/", transport=httpx.MockTransport(handler))
        await client.sync(0, [])
        await client.aclose()
        assert seen[0].url == f"{BASE_URL}/sync"
