"""
Synced Cache — Redis Broadcaster

Cross-context broadcaster over Redis pub/sub, for contexts that run in
different processes or hosts.

Requires: redis>=5.0.1 with asyncio support
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ValidationError
from redis.asyncio import Redis

from .broadcaster import Broadcaster, BroadcastMessage, MessageHandler, dispatch_message

logger = logging.getLogger(__name__)


class _Envelope(BaseModel):
    sender: str
    message: BroadcastMessage


class RedisBroadcaster(Broadcaster):
    """
    Broadcaster over Redis pub/sub.

    Every instance tags what it publishes with its own id and ignores those
    messages when Redis echoes them back. Publishing is fire-and-forget; the
    subscription loop reconnects after connection errors until closed.
    """

    RECONNECT_DELAY = 1.0

    def __init__(self, redis_url: str, channel: str = "mfe_cache_channel", socket_timeout: int = 5):
        if not redis_url:
            raise ValueError("redis_url is required")

        self.channel = channel
        self.instance_id = uuid4().hex
        self.closed = False
        self._handler: MessageHandler | None = None
        # Connect timeout only: the subscription read blocks until a message arrives
        self._client = Redis.from_url(url=redis_url, decode_responses=True, socket_connect_timeout=socket_timeout)
        self._listener: asyncio.Task[None] | None = None
        self._publishes: set[asyncio.Task[Any]] = set()

    def post_message(self, message: BroadcastMessage) -> None:
        if self.closed:
            return
        try:
            payload = _Envelope(sender=self.instance_id, message=message).model_dump_json()
        except Exception as e:
            logger.warning(
                f"Cannot serialize broadcast message for key '{message.key}': {e}",
                extra={"channel": self.channel, "key": message.key, "error": str(e)},
            )
            return

        task = asyncio.get_running_loop().create_task(self._client.publish(self.channel, payload))
        self._publishes.add(task)
        task.add_done_callback(self._on_published)

    def _on_published(self, task: asyncio.Task[Any]) -> None:
        self._publishes.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning(
                f"Failed to publish broadcast message: {error}",
                extra={"channel": self.channel, "error": str(error)},
            )

    def on_message(self, handler: MessageHandler) -> None:
        self._handler = handler
        if self._listener is None and not self.closed:
            self._listener = asyncio.get_running_loop().create_task(self._listen())

    async def _listen(self) -> None:
        while not self.closed:
            pubsub = self._client.pubsub()
            try:
                await pubsub.subscribe(self.channel)
                async for raw in pubsub.listen():
                    if raw.get("type") == "message":
                        self._receive(raw["data"])
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(
                    f"Broadcast subscription on '{self.channel}' failed: {e}",
                    extra={"channel": self.channel, "error": str(e)},
                )
                await asyncio.sleep(self.RECONNECT_DELAY)
            finally:
                await pubsub.aclose()

    def _receive(self, data: str) -> None:
        try:
            envelope = _Envelope.model_validate_json(data)
        except ValidationError as e:
            logger.warning(
                "Ignoring malformed broadcast message",
                extra={"channel": self.channel, "error": str(e)},
            )
            return
        if envelope.sender == self.instance_id:
            return
        dispatch_message(self._handler, envelope.message, self.channel)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._handler = None
        if self._listener is not None:
            self._listener.cancel()

    async def aclose(self) -> None:
        self.close()
        if self._listener is not None:
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            self._listener = None
        if self._publishes:
            await asyncio.gather(*self._publishes, return_exceptions=True)
        await self._client.aclose()
