"""
Synced Cache — Local Store Adapter

Synchronous adapter between cache entries and a namespaced key-value medium.

Layout inside the medium:
- "{prefix}:entry:{key}" -> JSON-serialized CacheEntry
- "{prefix}:meta:{name}" -> sync bookkeeping (never visible as a user key)

Medium failures never escape: they are logged, reported through `on_error` as
StorageError, and the affected entry is kept in an in-memory overlay until a
later write for that key succeeds.
"""

import logging
from collections.abc import Callable, Iterable, Iterator
from typing import NamedTuple

from pydantic import BaseModel, ValidationError

from ..errors import StorageError
from .entry import CacheEntry
from .interface import KeyValueStore

logger = logging.getLogger(__name__)

ErrorCallback = Callable[[StorageError], None]


class SyncMarker(NamedTuple):
    """Persisted result of the last successful sync pass."""

    last_sync: int
    watermark: int


class _SyncMarkerRecord(BaseModel):
    last_sync: int = 0
    watermark: int = 0


class LazyKeys(Iterable[str]):
    """Finite key sequence that re-reads the store every time it is iterated."""

    def __init__(self, factory: Callable[[], Iterator[str]]):
        self._factory = factory

    def __iter__(self) -> Iterator[str]:
        return self._factory()


class LocalStore:
    """Reads and writes CacheEntry records in a key-value medium."""

    LAST_SYNC = "last_sync"

    def __init__(
        self,
        medium: KeyValueStore,
        prefix: str = "shared_mfe_cache",
        on_error: ErrorCallback | None = None,
    ):
        self.medium = medium
        self.prefix = prefix
        self.on_error = on_error
        self._entry_prefix = f"{prefix}:entry:"
        self._meta_prefix = f"{prefix}:meta:"
        # Entries whose last write did not reach the medium
        self._overlay: dict[str, CacheEntry] = {}

    def _entry_key(self, key: str) -> str:
        return f"{self._entry_prefix}{key}"

    def _meta_key(self, name: str) -> str:
        return f"{self._meta_prefix}{name}"

    def _report(self, operation: str, key: str | None, cause: Exception) -> None:
        error = StorageError(operation, key, cause)
        logger.error(
            error.message,
            extra={"operation": operation, "key": key, "prefix": self.prefix, "error": str(cause)},
        )
        if self.on_error is not None:
            self.on_error(error)

    def _decode(self, key: str, raw: str) -> CacheEntry | None:
        try:
            return CacheEntry.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(
                f"Discarding unreadable cache record for key '{key}'",
                extra={"key": key, "prefix": self.prefix, "error": str(e)},
            )
            return None

    def read(self, key: str) -> CacheEntry | None:
        """Return the newest known entry for `key`, or None."""
        pending = self._overlay.get(key)
        try:
            raw = self.medium.get_item(self._entry_key(key))
        except Exception as e:
            self._report("read", key, e)
            return pending

        stored = self._decode(key, raw) if raw is not None else None
        if pending is None:
            return stored
        if stored is None or pending.timestamp >= stored.timestamp:
            return pending
        return stored

    def write(self, entry: CacheEntry) -> bool:
        """
        Persist an entry as a full replace.

        Returns:
            True if the medium accepted the write, False if the entry is held
            in memory only
        """
        try:
            self.medium.set_item(self._entry_key(entry.key), entry.model_dump_json())
        except Exception as e:
            self._overlay[entry.key] = entry
            self._report("write", entry.key, e)
            return False

        self._overlay.pop(entry.key, None)
        return True

    def delete(self, key: str) -> bool:
        """Physically remove an entry (storage hygiene only)."""
        self._overlay.pop(key, None)
        try:
            self.medium.remove_item(self._entry_key(key))
            return True
        except Exception as e:
            self._report("delete", key, e)
            return False

    def _iter_keys(self) -> Iterator[str]:
        seen: set[str] = set()
        try:
            stored = list(self.medium.iter_keys(self._entry_prefix))
        except Exception as e:
            self._report("enumerate", None, e)
            stored = []

        start = len(self._entry_prefix)
        for full_key in stored:
            key = full_key[start:]
            seen.add(key)
            yield key

        for key in list(self._overlay):
            if key not in seen:
                yield key

    def enumerate_keys(self) -> LazyKeys:
        """All stored keys, tombstones included. Restartable."""
        return LazyKeys(self._iter_keys)

    def entries(self) -> Iterator[CacheEntry]:
        """Iterate over every stored entry, tombstones included."""
        for key in self._iter_keys():
            entry = self.read(key)
            if entry is not None:
                yield entry

    def read_last_sync(self) -> SyncMarker:
        """Return the last successful sync marker (zeros if never synced)."""
        try:
            raw = self.medium.get_item(self._meta_key(self.LAST_SYNC))
        except Exception as e:
            self._report("read", self.LAST_SYNC, e)
            return SyncMarker(0, 0)

        if raw is None:
            return SyncMarker(0, 0)
        try:
            record = _SyncMarkerRecord.model_validate_json(raw)
        except ValidationError:
            logger.warning("Discarding unreadable sync marker", extra={"prefix": self.prefix})
            return SyncMarker(0, 0)
        return SyncMarker(record.last_sync, record.watermark)

    def write_last_sync(self, marker: SyncMarker) -> bool:
        """Persist the sync marker after a successful pass."""
        record = _SyncMarkerRecord(last_sync=marker.last_sync, watermark=marker.watermark)
        try:
            self.medium.set_item(self._meta_key(self.LAST_SYNC), record.model_dump_json())
            return True
        except Exception as e:
            self._report("write", self.LAST_SYNC, e)
            return False

    @property
    def pending_count(self) -> int:
        """Number of entries held in memory because the medium rejected them."""
        return len(self._overlay)
