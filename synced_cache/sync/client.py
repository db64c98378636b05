"""
Synced Cache — Backend Client

JSON-over-HTTP client for the backend authority:
- POST /sync   {lastSync, changes} -> {updates, timestamp}
- POST /set    {key, value, ttl, timestamp}
- POST /remove {key, timestamp}
- POST /clear  {timestamp}

Transport failures and timeouts become NetworkError, error statuses become
ServerError, and responses that break the contract become ProtocolError.
"""

import logging
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..cache.entry import WireEntry
from ..errors import BackendTimeoutError, NetworkError, ProtocolError, ServerError

logger = logging.getLogger(__name__)


class SyncRequest(BaseModel):
    """Body of POST /sync."""

    last_sync: int = Field(0, alias="lastSync", ge=0)
    changes: list[WireEntry] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


class SyncResponse(BaseModel):
    """Body returned by POST /sync."""

    updates: list[WireEntry] = Field(default_factory=list)
    timestamp: int


class BackendClient:
    """
    Client for the cache backend.

    One httpx.AsyncClient is kept for the client's lifetime; call `aclose()`
    when the owning cache is torn down.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        """
        Initialize backend client.

        Args:
            base_url: Backend base URL, e.g. https://example.com/api/cache
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
            headers: Extra headers sent with every request
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers=headers,
        )

    async def _post(self, endpoint: str, body: dict[str, Any]) -> httpx.Response:
        try:
            response = await self._client.post(endpoint, json=body)
        except httpx.TimeoutException as e:
            raise BackendTimeoutError(endpoint, self.timeout) from e
        except httpx.HTTPError as e:
            raise NetworkError(f"Backend request to {endpoint} failed: {e}", endpoint, {"error": str(e)}) from e

        if response.is_error:
            raise ServerError(endpoint, response.status_code, response.reason_phrase)
        return response

    async def sync(self, last_sync: int, changes: list[dict[str, Any]]) -> SyncResponse:
        """
        Exchange local changes for remote updates.

        Args:
            last_sync: Server timestamp returned by the previous successful pass
            changes: Local entries in wire shape

        Returns:
            Parsed SyncResponse

        Raises:
            NetworkError, ServerError, ProtocolError
        """
        request = SyncRequest(last_sync=last_sync, changes=[WireEntry.model_validate(c) for c in changes])
        response = await self._post("/sync", request.model_dump(by_alias=True))

        try:
            return SyncResponse.model_validate_json(response.content)
        except ValidationError as e:
            logger.error(
                "Backend /sync response does not match the wire contract",
                extra={"endpoint": "/sync", "errors": e.errors(include_url=False)},
            )
            raise ProtocolError(
                "Malformed /sync response from backend",
                "/sync",
                {"validation_errors": e.errors(include_url=False)},
            ) from e

    async def push_set(self, key: str, value: Any, ttl: float | None, timestamp: int) -> None:
        await self._post("/set", {"key": key, "value": value, "ttl": ttl, "timestamp": timestamp})

    async def push_remove(self, key: str, timestamp: int) -> None:
        await self._post("/remove", {"key": key, "timestamp": timestamp})

    async def push_clear(self, timestamp: int) -> None:
        await self._post("/clear", {"timestamp": timestamp})

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
        logger.debug("Backend client closed", extra={"base_url": self.base_url})
