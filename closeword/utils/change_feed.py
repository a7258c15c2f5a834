"""Change feed abstraction - Redis pub/sub or in-memory fallback.

Committed row changes are published to per-room channels and consumed by
the realtime fan-out. With Redis configured every API process sees every
change; without it the feed only spans the current process.
"""
import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

logger = logging.getLogger(__name__)


def room_channel(room_id) -> str:
    """Channel name carrying the changes of one room."""
    return f"room:{room_id}"


class Subscription:
    """A live subscription to one channel."""

    def __init__(self, channel: str):
        self.channel = channel

    async def get(self) -> dict:
        raise NotImplementedError

    def __aiter__(self):
        return self

    async def __anext__(self) -> dict:
        return await self.get()


class MemorySubscription(Subscription):
    def __init__(self, channel: str):
        super().__init__(channel)
        self.queue: asyncio.Queue = asyncio.Queue()

    async def get(self) -> dict:
        return await self.queue.get()


class RedisSubscription(Subscription):
    def __init__(self, channel: str, pubsub):
        super().__init__(channel)
        self.pubsub = pubsub

    async def get(self) -> dict:
        while True:
            message = await self.pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
            if message is None or message.get("type") != "message":
                continue
            try:
                return json.loads(message["data"])
            except (TypeError, ValueError) as e:
                logger.warning(f"Dropping malformed change on {self.channel}: {e}")


class ChangeFeed:
    """Abstraction for change notifications - uses Redis if available, else in-memory."""

    def __init__(self, redis_url: Optional[str] = None):
        self.backend = "memory"
        self._memory_channels: dict[str, set[MemorySubscription]] = {}
        self._redis = None
        self._outbox: Optional[asyncio.Queue] = None
        self._publisher_task: Optional[asyncio.Task] = None

        if redis_url:
            try:
                import redis
                import redis.asyncio as redis_async

                # Probe synchronously so a dead Redis falls back at startup
                redis.from_url(redis_url).ping()
                self._redis = redis_async.from_url(redis_url, decode_responses=True)
                self.backend = "redis"
                logger.info("Using Redis for the change feed")
            except Exception as e:
                logger.warning(f"Redis not available, using in-memory change feed: {e}")
        else:
            logger.info("Using in-memory change feed (Redis URL not provided)")

    def subscriber_count(self, channel: str) -> int:
        """Number of in-process subscriptions on a channel."""
        return len(self._memory_channels.get(channel, ()))

    def publish(self, channel: str, message: dict) -> None:
        """Publish a change without blocking.

        Safe to call from synchronous SQLAlchemy event hooks. Messages for
        one channel are delivered in publish order.
        """
        payload = json.dumps(message)

        if self.backend == "redis":
            self._enqueue_redis(channel, payload)
            return

        for subscription in list(self._memory_channels.get(channel, ())):
            subscription.queue.put_nowait(json.loads(payload))

    def _enqueue_redis(self, channel: str, payload: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.error(f"Cannot publish to {channel} outside an event loop")
            return

        if self._outbox is None:
            self._outbox = asyncio.Queue()
        if self._publisher_task is None or self._publisher_task.done():
            self._publisher_task = loop.create_task(self._drain_outbox())
        self._outbox.put_nowait((channel, payload))

    async def _drain_outbox(self) -> None:
        # Single publisher keeps per-channel ordering intact
        while True:
            channel, payload = await self._outbox.get()
            try:
                await self._redis.publish(channel, payload)
            except Exception as e:
                logger.error(f"Failed to publish change to {channel}: {e}")

    @asynccontextmanager
    async def subscribe(self, channel: str) -> AsyncIterator[Subscription]:
        """Subscribe to a channel for the lifetime of the context."""
        if self.backend == "redis":
            pubsub = self._redis.pubsub()
            await pubsub.subscribe(channel)
            logger.debug(f"Subscribed to {channel} via Redis")
            try:
                yield RedisSubscription(channel, pubsub)
            finally:
                try:
                    await pubsub.unsubscribe(channel)
                finally:
                    await pubsub.aclose()
                logger.debug(f"Unsubscribed from {channel} via Redis")
            return

        subscription = MemorySubscription(channel)
        self._memory_channels.setdefault(channel, set()).add(subscription)
        logger.debug(f"Subscribed to {channel} ({self.subscriber_count(channel)} local subscribers)")
        try:
            yield subscription
        finally:
            subscribers = self._memory_channels.get(channel)
            if subscribers is not None:
                subscribers.discard(subscription)
                if not subscribers:
                    self._memory_channels.pop(channel, None)
            logger.debug(f"Unsubscribed from {channel}")

    async def close(self) -> None:
        if self._publisher_task is not None:
            self._publisher_task.cancel()
            try:
                await self._publisher_task
            except asyncio.CancelledError:
                pass
            self._publisher_task = None
        if self._redis is not None:
            await self._redis.aclose()
