"""
Synced Cache — Cache Entry

The unit of replication. One entry per key; every mutation (including deletes)
replaces the whole entry, and its `timestamp` is the only ordering signal.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Origin(str, Enum):
    """Where a version of an entry came from."""

    LOCAL = "local"
    SIBLING = "sibling"
    BACKEND = "backend"


class WireEntry(BaseModel):
    """Entry shape exchanged with the backend (`ttl` in seconds, None = no expiry)."""

    key: str
    value: Any = None
    ttl: float | None = None
    timestamp: int
    deleted: bool = False


class CacheEntry(BaseModel):
    """A versioned cache record, possibly a tombstone."""

    key: str = Field(..., min_length=1, description="Key, unique within the namespace")
    value: Any = Field(default=None, description="JSON-serializable payload (None for tombstones)")
    timestamp: int = Field(..., description="Wall-clock milliseconds of the last mutation")
    ttl_ms: int | None = Field(default=None, ge=0, description="Validity from timestamp (None = never expires)")
    deleted: bool = Field(default=False, description="Tombstone flag")
    origin: Origin = Field(default=Origin.LOCAL, description="Source of this version")

    model_config = ConfigDict(frozen=True)

    def is_expired(self, now: int) -> bool:
        """True once more than ttl_ms has elapsed since the entry was stamped."""
        if self.ttl_ms is None:
            return False
        return now - self.timestamp > self.ttl_ms

    def is_live(self, now: int) -> bool:
        """True if `get` should return this entry's value."""
        return not self.deleted and not self.is_expired(now)

    def tombstone(self, timestamp: int, origin: Origin = Origin.LOCAL) -> "CacheEntry":
        """Return a deleted version of this entry stamped at `timestamp`."""
        return CacheEntry(key=self.key, timestamp=timestamp, ttl_ms=self.ttl_ms, deleted=True, origin=origin)

    @classmethod
    def deleted_marker(cls, key: str, timestamp: int, origin: Origin = Origin.LOCAL) -> "CacheEntry":
        """Tombstone for a key that may have no stored version."""
        return cls(key=key, timestamp=timestamp, deleted=True, origin=origin)

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the backend wire shape."""
        return WireEntry(
            key=self.key,
            value=None if self.deleted else self.value,
            ttl=ttl_ms_to_seconds(self.ttl_ms),
            timestamp=self.timestamp,
            deleted=self.deleted,
        ).model_dump()

    @classmethod
    def from_wire(cls, wire: WireEntry, origin: Origin = Origin.BACKEND) -> "CacheEntry":
        """Build an entry from a backend update."""
        return cls(
            key=wire.key,
            value=None if wire.deleted else wire.value,
            timestamp=wire.timestamp,
            ttl_ms=ttl_seconds_to_ms(wire.ttl),
            deleted=wire.deleted,
            origin=origin,
        )


def ttl_seconds_to_ms(ttl: float | None) -> int | None:
    """Convert a TTL in seconds to milliseconds; None or <= 0 means no expiry."""
    if ttl is None or ttl <= 0:
        return None
    # A positive TTL never rounds down to 0, which the wire reads as no expiry
    return max(int(ttl * 1000), 1)


def ttl_ms_to_seconds(ttl_ms: int | None) -> float | None:
    """Convert a TTL in milliseconds back to seconds for the wire."""
    if ttl_ms is None:
        return None
    seconds = ttl_ms / 1000
    return int(seconds) if seconds.is_integer() else seconds
