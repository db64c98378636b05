"""
Synced Cache — Replication Module

Keeps sibling contexts consistent:
- resolver.py: last-write-wins conflict resolution
- subscriptions.py: per-key listener registry
- broadcaster.py: cross-context message channel (in-process hub)
- redis_broadcaster.py: cross-process channel over Redis pub/sub (lazy-loaded)
- connectivity.py: online/offline monitor
"""

from .broadcaster import (
    Broadcaster,
    BroadcastHub,
    BroadcastMessage,
    LocalBroadcastChannel,
    MessageHandler,
)
from .connectivity import ConnectivityMonitor
from .resolver import incoming_wins, is_same_version, is_tie, resolve
from .subscriptions import SubscriptionRegistry

__all__ = [
    # Conflict resolution
    "resolve",
    "incoming_wins",
    "is_tie",
    "is_same_version",
    # Subscriptions
    "SubscriptionRegistry",
    # Broadcast
    "Broadcaster",
    "BroadcastHub",
    "BroadcastMessage",
    "LocalBroadcastChannel",
    "MessageHandler",
    # Connectivity
    "ConnectivityMonitor",
]
