"""
Synced Cache — Cross-Context Broadcaster

Publish/subscribe channel reaching every other cache context that shares an
origin. Messages are never echoed to their sender and are delivered on the
event loop one at a time. Delivery is best-effort and unordered across
contexts; receivers rely only on entry timestamps.

Implementations:
- LocalBroadcastChannel: contexts inside one process, joined through a BroadcastHub
- RedisBroadcaster (redis_broadcaster.py): contexts in different processes
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any, Literal

from pydantic import BaseModel, model_validator

logger = logging.getLogger(__name__)


class BroadcastMessage(BaseModel):
    """Mutation event exchanged between sibling contexts (`ttl` in seconds)."""

    type: Literal["set", "remove", "clear"]
    key: str | None = None
    value: Any = None
    ttl: float | None = None
    timestamp: int

    @model_validator(mode="after")
    def require_key(self) -> BroadcastMessage:
        if self.type != "clear" and not self.key:
            raise ValueError(f"'{self.type}' messages require a key")
        return self


MessageHandler = Callable[[BroadcastMessage], None]


class Broadcaster(ABC):
    """Capability interface for cross-context messaging."""

    @abstractmethod
    def post_message(self, message: BroadcastMessage) -> None:
        """Send to every other context on the channel (never back to the sender)."""

    @abstractmethod
    def on_message(self, handler: MessageHandler) -> None:
        """Install the handler for inbound messages (replaces any previous one)."""

    @abstractmethod
    def close(self) -> None:
        """Disconnect from the channel. Idempotent."""

    async def aclose(self) -> None:
        """Disconnect and release async resources."""
        self.close()


def dispatch_message(handler: MessageHandler | None, message: BroadcastMessage, channel: str) -> None:
    if handler is None:
        return
    try:
        handler(message)
    except Exception as e:
        logger.error(
            f"Broadcast handler failed for '{message.type}' message: {e}",
            extra={"channel": channel, "type": message.type, "key": message.key, "error": str(e)},
            exc_info=True,
        )


class BroadcastHub:
    """
    In-process registry of named channels.

    Plays the part of the browser's same-origin BroadcastChannel namespace:
    every LocalBroadcastChannel joined under the same name hears every other.
    """

    def __init__(self) -> None:
        self._members: dict[str, list[LocalBroadcastChannel]] = {}

    def join(self, name: str) -> LocalBroadcastChannel:
        channel = LocalBroadcastChannel(self, name)
        self._members.setdefault(name, []).append(channel)
        return channel

    def _leave(self, channel: LocalBroadcastChannel) -> None:
        members = self._members.get(channel.name, [])
        if channel in members:
            members.remove(channel)
        if not members:
            self._members.pop(channel.name, None)

    def _deliver(self, sender: LocalBroadcastChannel, payload: str) -> int:
        receivers = [member for member in self._members.get(sender.name, []) if member is not sender]
        if not receivers:
            return 0

        try:
            loop: asyncio.AbstractEventLoop | None = asyncio.get_running_loop()
        except RuntimeError:
            # No task queue to defer to outside an event loop
            loop = None

        for member in receivers:
            if loop is None:
                member._receive(payload)
            else:
                loop.call_soon(member._receive, payload)
        return len(receivers)

    def member_count(self, name: str) -> int:
        return len(self._members.get(name, []))


class LocalBroadcastChannel(Broadcaster):
    """A context's handle on a BroadcastHub channel."""

    def __init__(self, hub: BroadcastHub, name: str):
        self.hub = hub
        self.name = name
        self.closed = False
        self._handler: MessageHandler | None = None

    def post_message(self, message: BroadcastMessage) -> None:
        if self.closed:
            logger.debug("Dropping message posted on closed channel", extra={"channel": self.name})
            return
        try:
            # Receivers get their own decoded copy, never the sender's objects
            payload = message.model_dump_json()
        except Exception as e:
            logger.warning(
                f"Cannot serialize broadcast message for key '{message.key}': {e}",
                extra={"channel": self.name, "key": message.key, "error": str(e)},
            )
            return
        self.hub._deliver(self, payload)

    def on_message(self, handler: MessageHandler) -> None:
        self._handler = handler

    def _receive(self, payload: str) -> None:
        if self.closed:
            return
        dispatch_message(self._handler, BroadcastMessage.model_validate_json(payload), self.name)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._handler = None
        self.hub._leave(self)

