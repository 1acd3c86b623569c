"""Row change feed.

Writes made through the table client publish one :class:`ChangeEvent` per
affected row. Subscribers pick the table, the event type and an optional
equality filter, and read matching events from their own queue.
"""
from __future__ import annotations

import asyncio
import contextlib
import enum
import inspect
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel

from voiceup.core.logging import log
from voiceup.core.redis import get_async_redis

class EventType(str, enum.Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    ALL = "*"

class ChangeEvent(BaseModel):
    table: str
    type: EventType
    record: dict[str, Any]
    old_record: Optional[dict[str, Any]] = None

    @property
    def row(self) -> dict[str, Any]:
        # deletes only carry the old row
        return self.old_record if self.type is EventType.DELETE else self.record

_CLOSED = object()

class Subscription:
    """Single-consumer stream of matching change events."""

    def __init__(self, broker: "RealtimeBroker", table: str, event: EventType, eq: tuple[str, Any] | None) -> None:
        self._broker = broker
        self.table = table
        self.event = event
        self.eq = eq
        self._queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def matches(self, change: ChangeEvent) -> bool:
        if change.table != self.table:
            return False
        if self.event is not EventType.ALL and change.type is not self.event:
            return False
        if self.eq is not None:
            column, value = self.eq
            return str(change.row.get(column)) == str(value)
        return True

    def deliver(self, change: ChangeEvent) -> None:
        if not self.closed:
            self._queue.put_nowait(change)

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> ChangeEvent:
        if self.closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._broker.unsubscribe(self)
        self._queue.put_nowait(_CLOSED)

class RealtimeBroker:
    """In-process fan-out of change events."""

    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []

    def subscribe(self, table: str, event: EventType | str = EventType.ALL, eq: tuple[str, Any] | None = None) -> Subscription:
        sub = Subscription(self, table, EventType(event), eq)
        self._subscriptions.append(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with contextlib.suppress(ValueError):
            self._subscriptions.remove(sub)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    async def publish(self, change: ChangeEvent) -> None:
        self.dispatch(change)

    def dispatch(self, change: ChangeEvent) -> None:
        for sub in list(self._subscriptions):
            if sub.matches(change):
                sub.deliver(change)

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        for sub in list(self._subscriptions):
            sub.close()

class RedisRealtimeBroker(RealtimeBroker):
    """Shares the feed between processes over a Redis pub/sub channel.

    Local publishes go to Redis only; every process, the publisher included,
    dispatches what it reads back from the channel.
    """

    def __init__(self, url: str | None = None, channel: str = "voiceup:realtime") -> None:
        super().__init__()
        self.channel = channel
        self._redis = get_async_redis(url)
        self._pubsub = None
        self._listener: asyncio.Task | None = None

    async def start(self) -> None:
        self._pubsub = self._redis.pubsub()
        await self._pubsub.subscribe(self.channel)
        self._listener = asyncio.create_task(self._listen())

    async def publish(self, change: ChangeEvent) -> None:
        await self._redis.publish(self.channel, change.model_dump_json())

    async def _listen(self) -> None:
        async for raw in self._pubsub.listen():
            if raw.get("type") != "message":
                continue
            try:
                change = ChangeEvent.model_validate_json(raw["data"])
            except ValueError:
                log.warning("dropping malformed realtime payload on %s", self.channel)
                continue
            self.dispatch(change)

    async def stop(self) -> None:
        await super().stop()
        if self._listener is not None:
            self._listener.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._listener
        if self._pubsub is not None:
            await self._pubsub.unsubscribe(self.channel)
            await self._pubsub.aclose()
        await self._redis.aclose()

class SubscriptionHandle:
    """A subscription whose events are pushed to a callback by a task."""

    def __init__(self, subscription, task: asyncio.Task) -> None:
        self.subscription = subscription
        self.task = task

    async def close(self) -> None:
        self.subscription.close()
        self.task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self.task

def forward(subscription, callback: Callable[[Any], Awaitable[None] | None]) -> SubscriptionHandle:
    """Invoke ``callback`` for each item of ``subscription`` in arrival order.

    A failing callback is logged and the next item is still delivered. The
    subscription is closed once the task ends.
    """

    async def pump() -> None:
        try:
            async for item in subscription:
                try:
                    result = callback(item)
                    if inspect.isawaitable(result):
                        await result
                except Exception:
                    log.exception("subscriber callback failed")
        finally:
            subscription.close()

    return SubscriptionHandle(subscription, asyncio.create_task(pump()))
