"""
Synced Cache — Conflict Resolver

Last-write-wins by timestamp. Equal timestamps are broken deterministically so
that every context converges on the same winner regardless of arrival order:

1. a tombstone beats a live entry (a race must not undo a delete)
2. a backend-sourced entry beats a sibling- or locally-sourced one
3. otherwise the entry already stored is kept

A version identical to the stored one (same timestamp, tombstone flag and
value) is not a conflict: it is the stored write coming back.
"""

import logging

from ..cache.entry import CacheEntry, Origin

logger = logging.getLogger(__name__)


def incoming_wins(local: CacheEntry | None, incoming: CacheEntry) -> bool:
    """Return True if `incoming` should replace `local`."""
    if local is None:
        return True

    if incoming.timestamp != local.timestamp:
        return incoming.timestamp > local.timestamp

    if is_same_version(local, incoming):
        return False

    if incoming.deleted != local.deleted:
        return incoming.deleted

    if (incoming.origin == Origin.BACKEND) != (local.origin == Origin.BACKEND):
        return incoming.origin == Origin.BACKEND

    return False


def is_same_version(local: CacheEntry | None, incoming: CacheEntry) -> bool:
    """True if `incoming` carries exactly what is stored (an echo of a known write)."""
    return (
        local is not None
        and local.timestamp == incoming.timestamp
        and local.deleted == incoming.deleted
        and local.value == incoming.value
    )


def is_tie(local: CacheEntry | None, incoming: CacheEntry) -> bool:
    """True if two different versions carry the same timestamp (a conflict anomaly)."""
    return local is not None and local.timestamp == incoming.timestamp and not is_same_version(local, incoming)


def resolve(local: CacheEntry | None, incoming: CacheEntry) -> CacheEntry:
    """
    Pick the authoritative version of a key.

    Args:
        local: Currently stored version (None if the key is unknown)
        incoming: Version received from a sibling context or the backend

    Returns:
        The winning entry (one of the two arguments, unchanged)
    """
    if local is None or incoming_wins(local, incoming):
        winner = incoming
    else:
        winner = local

    if is_tie(local, incoming):
        logger.debug(
            f"Equal-timestamp conflict on key '{incoming.key}' resolved",
            extra={
                "key": incoming.key,
                "timestamp": incoming.timestamp,
                "winner_origin": winner.origin,
                "winner_deleted": winner.deleted,
            },
        )
    return winner
