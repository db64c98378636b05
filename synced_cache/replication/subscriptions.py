"""
Synced Cache — Subscription Registry

Per-key listener sets. Listeners receive the key's current value (None when
absent, deleted or expired) after every local or remote mutation of that key.
"""

import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

Listener = Callable[[Any], None]
Unsubscribe = Callable[[], None]


class SubscriptionRegistry:
    """Observer registry keyed by cache key."""

    def __init__(self) -> None:
        self._listeners: dict[str, set[Listener]] = {}

    def subscribe(self, key: str, listener: Listener) -> Unsubscribe:
        """
        Register `listener` for `key`.

        Returns:
            Idempotent function removing the listener; safe to call while
            listeners are being notified
        """
        listeners = self._listeners.setdefault(key, set())
        listeners.add(listener)

        def unsubscribe() -> None:
            listeners.discard(listener)
            # A pruned set may have been replaced by a newer one for the same key
            if not listeners and self._listeners.get(key) is listeners:
                del self._listeners[key]

        return unsubscribe

    def notify(self, key: str, value: Any) -> int:
        """
        Call every listener of `key` with `value`.

        Returns:
            Number of listeners called
        """
        listeners = self._listeners.get(key)
        if not listeners:
            return 0

        # Snapshot so listeners may (un)subscribe during notification
        called = 0
        for listener in list(listeners):
            called += 1
            try:
                listener(value)
            except Exception as e:
                logger.error(
                    f"Subscriber for key '{key}' raised: {e}",
                    extra={"key": key, "error": str(e)},
                    exc_info=True,
                )
        return called

    def notify_all(self, value_for: Callable[[str], Any]) -> int:
        """Notify every subscribed key with its current value."""
        return sum(self.notify(key, value_for(key)) for key in list(self._listeners))

    def has_subscribers(self, key: str) -> bool:
        return key in self._listeners

    @property
    def subscribed_keys(self) -> list[str]:
        return list(self._listeners)

    def clear(self) -> None:
        """Drop every listener."""
        self._listeners.clear()

    def __len__(self) -> int:
        return sum(len(listeners) for listeners in self._listeners.values())
