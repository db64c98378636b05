"""
Synced Cache — Memory Key-Value Medium

In-process key-value medium. One instance can be shared by several cache
contexts to model a storage area shared across same-origin contexts.
"""

import logging
from collections.abc import Iterator

from ..interface import KeyValueStore

logger = logging.getLogger(__name__)


class MemoryKeyValueStore(KeyValueStore):
    """
    Dict-backed key-value medium.

    Features:
    - Optional quota on the number of stored keys (raises like a full browser store)
    - Snapshot enumeration, safe while entries are rewritten
    """

    def __init__(self, max_items: int | None = None):
        """
        Initialize the memory medium.

        Args:
            max_items: Maximum number of keys (None = unlimited)
        """
        self.max_items = max_items
        self._data: dict[str, str] = {}

    def get_item(self, key: str) -> str | None:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        if self.max_items is not None and key not in self._data and len(self._data) >= self.max_items:
            raise OSError(f"Storage quota exceeded ({self.max_items} items)")
        self._data[key] = value

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)

    def iter_keys(self, prefix: str = "") -> Iterator[str]:
        return iter([key for key in self._data if key.startswith(prefix)])

    def __len__(self) -> int:
        return len(self._data)

    def close(self) -> None:
        logger.debug("Memory key-value store closed", extra={"size": len(self._data)})
