"""
Synced Cache — Online/Offline Monitor

Tracks connectivity and tells listeners about transitions. The host feeds it
(`set_online`) from whatever signal it has: browser online/offline events, a
network manager, a health probe. Listeners only fire on real transitions.
"""

import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)

ConnectivityListener = Callable[[bool], None]


class ConnectivityMonitor:
    """Observable online/offline flag."""

    def __init__(self, online: bool = True):
        self._online = online
        self._listeners: list[ConnectivityListener] = []
        self.closed = False

    @property
    def is_online(self) -> bool:
        return self._online

    def add_listener(self, listener: ConnectivityListener) -> Callable[[], None]:
        """
        Register a transition listener.

        Returns:
            Idempotent function removing the listener
        """
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def set_online(self, online: bool) -> None:
        """Record the current connectivity; notifies listeners on change."""
        if online == self._online:
            return
        self._online = online
        logger.info(
            "Connectivity changed: %s",
            "online" if online else "offline",
            extra={"online": online},
        )
        if self.closed:
            return
        for listener in list(self._listeners):
            try:
                listener(online)
            except Exception as e:
                logger.error(
                    f"Connectivity listener raised: {e}",
                    extra={"online": online, "error": str(e)},
                    exc_info=True,
                )

    def go_online(self) -> None:
        self.set_online(True)

    def go_offline(self) -> None:
        self.set_online(False)

    def close(self) -> None:
        """Remove every listener. Idempotent."""
        self.closed = True
        self._listeners.clear()
