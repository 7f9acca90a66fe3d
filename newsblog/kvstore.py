import asyncio
import logging
import time
from typing import Awaitable, Callable, Protocol

import redis.asyncio as redis

from newsblog.config import Settings

logger = logging.getLogger(__name__)

MessageHandler = Callable[[str], Awaitable[None]]


class KeyValueStore(Protocol):
    """
    String key/value storage plus a publish/subscribe channel.

    Publishing is fire-and-forget: ``publish`` returns once the message has
    been handed to the transport and never waits for subscribers.  Delivery
    is at-most-once; there is no replay or acknowledgement.
    """

    async def connect(self) -> None: ...

    async def disconnect(self) -> None: ...

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, ttl: int | None = None) -> None: ...

    async def add(self, key: str, value: str) -> bool:
        """Set *key* only if it is absent; return whether it was set."""
        ...

    async def publish(self, channel: str, message: str) -> None: ...

    async def subscribe(self, channel: str, handler: MessageHandler) -> None: ...


async def _dispatch(channel: str, handler: MessageHandler, message: str) -> None:
    try:
        await handler(message)
    except Exception:
        logger.exception("Subscriber on %r failed to handle message", channel)


class MemoryKeyValueStore:
    """In-process store for development and tests (no Redis required)."""

    def __init__(self) -> None:
        self._data: dict[str, tuple[str, float | None]] = {}
        self._subscribers: dict[str, list[MessageHandler]] = {}
        self._pending: set[asyncio.Task] = set()

    async def connect(self) -> None:
        logger.info("Using in-memory key-value store")

    async def disconnect(self) -> None:
        await self.wait_idle()

    def _live(self, key: str) -> tuple[str, float | None] | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        expires_at = entry[1]
        if expires_at is not None and expires_at <= time.monotonic():
            del self._data[key]
            return None
        return entry

    async def get(self, key: str) -> str | None:
        entry = self._live(key)
        return entry[0] if entry else None

    async def set(self, key: str, value: str, ttl: int | None = None) -> None:
        expires_at = time.monotonic() + ttl if ttl else None
        self._data[key] = (value, expires_at)

    async def add(self, key: str, value: str) -> bool:
        # No await between the check and the write.
        if self._live(key):
            return False
        self._data[key] = (value, None)
        return True

    async def publish(self, channel: str, message: str) -> None:
        for handler in self._subscribers.get(channel, []):
            task = asyncio.create_task(_dispatch(channel, handler, message))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def subscribe(self, channel: str, handler: MessageHandler) -> None:
        self._subscribers.setdefault(channel, []).append(handler)

    async def wait_idle(self) -> None:
        """Wait until every message published so far has been handled."""
        while self._pending:
            await asyncio.gather(*list(self._pending))


class RedisKeyValueStore:
    """
    Redis-backed store.

    One pooled client serves get/set/publish; subscriptions share a single
    pub/sub connection drained by a background listener task that is
    started on the first ``subscribe`` call.
    """

    def __init__(self, url: str) -> None:
        self._url = url
        self._redis: redis.Redis | None = None
        self._pubsub = None
        self._handlers: dict[str, list[MessageHandler]] = {}
        self._listener: asyncio.Task | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        self._redis = redis.from_url(
            self._url,
            decode_responses=True,
            socket_connect_timeout=2,
        )
        await self._redis.ping()
        logger.info("Redis connected: %s", self._url)

    async def disconnect(self) -> None:
        if self._listener is not None:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            self._listener = None
        if self._pubsub is not None:
            await self._pubsub.aclose()
            self._pubsub = None
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    def _client(self) -> redis.Redis:
        if self._redis is None:
            raise RuntimeError("RedisKeyValueStore.connect() has not been called")
        return self._redis

    # ------------------------------------------------------------------
    # Key/value
    # ------------------------------------------------------------------

    async def get(self, key: str) -> str | None:
        return await self._client().get(key)

    async def set(self, key: str, value: str, ttl: int | None = None) -> None:
        await self._client().set(key, value, ex=ttl)

    async def add(self, key: str, value: str) -> bool:
        return bool(await self._client().set(key, value, nx=True))

    # ------------------------------------------------------------------
    # Pub/sub
    # ------------------------------------------------------------------

    async def publish(self, channel: str, message: str) -> None:
        await self._client().publish(channel, message)

    async def subscribe(self, channel: str, handler: MessageHandler) -> None:
        if self._pubsub is None:
            self._pubsub = self._client().pubsub(ignore_subscribe_messages=True)
        if channel not in self._handlers:
            await self._pubsub.subscribe(channel)
        self._handlers.setdefault(channel, []).append(handler)
        if self._listener is None:
            self._listener = asyncio.create_task(self._listen())
            self._listener.add_done_callback(self._listener_done)
        logger.info("Subscribed to %r", channel)

    async def _listen(self) -> None:
        async for message in self._pubsub.listen():
            if message.get("type") != "message":
                continue
            channel = message["channel"]
            for handler in self._handlers.get(channel, []):
                await _dispatch(channel, handler, message["data"])

    def _listener_done(self, task: asyncio.Task) -> None:
        if self._listener is task:
            self._listener = None
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Pub/sub listener stopped; subscriptions %s are inactive until the next subscribe",
                sorted(self._handlers),
                exc_info=exc,
            )


def create_kv_store(settings: Settings) -> KeyValueStore:
    """Return the store implementation selected by ``settings.KV_BACKEND``."""
    if settings.KV_BACKEND == "redis":
        return RedisKeyValueStore(settings.REDIS_URL)
    return MemoryKeyValueStore()
