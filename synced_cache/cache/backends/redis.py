"""
Synced Cache — Redis Key-Value Medium

Synchronous Redis medium for contexts that live in different processes or
hosts but share one storage area:
- Keys are stored as plain strings under the caller's fully-qualified key
- Enumeration uses SCAN with an escaped prefix pattern

Requires: redis>=5.0

Example:
    medium = RedisKeyValueStore(redis_url="redis://localhost:6379/0")
    medium.set_item("shared_mfe_cache:entry:greeting", '{"value": "hello"}')
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator

from redis import Redis

from ..interface import KeyValueStore

logger = logging.getLogger(__name__)

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


def _escape_glob(prefix: str) -> str:
    """Escape Redis MATCH glob characters in a literal prefix."""
    return _GLOB_SPECIAL.sub(r"\\\1", prefix)


class RedisKeyValueStore(KeyValueStore):
    """
    Redis-backed key-value medium.

    Notes:
    - Values are UTF-8 strings (decode_responses=True).
    - Connection errors propagate as redis exceptions; the local store adapter
      reports them as storage failures.
    """

    def __init__(
        self,
        redis_url: str,
        socket_timeout: int = 5,
        scan_count: int = 500,
    ) -> None:
        """
        Initialize Redis medium.

        Args:
            redis_url: Connection URL, e.g., redis://localhost:6379/0 or rediss:// for TLS
            socket_timeout: Socket timeout in seconds
            scan_count: SCAN batch size hint for enumeration
        """
        if not redis_url:
            raise ValueError("redis_url is required")

        self.scan_count = scan_count
        # Lazy connection; connects on first command
        self._client = Redis.from_url(
            url=redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
        )

    def get_item(self, key: str) -> str | None:
        return self._client.get(key)  # type: ignore[return-value]

    def set_item(self, key: str, value: str) -> None:
        self._client.set(key, value)

    def remove_item(self, key: str) -> None:
        self._client.delete(key)

    def iter_keys(self, prefix: str = "") -> Iterator[str]:
        # Materialized so callers can rewrite keys while iterating
        keys = list(self._client.scan_iter(match=f"{_escape_glob(prefix)}*", count=self.scan_count))
        return iter(keys)

    def close(self) -> None:
        try:
            self._client.close()
        except Exception as e:
            logger.warning(f"Error closing Redis medium: {e}", extra={"error": str(e)})
