"""
Change feed for tracking rows.

Delivers {event, table, new} row images scoped by table and a
column-equality filter. Redis pub/sub carries them across processes;
the in-memory feed serves a single process and the test suite.
Channel format: {prefix}:{table}:{column}=eq.{value}
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Tuple

from pydantic import BaseModel, ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError

from tracking_backend.app.core.exceptions import SubscriptionError
from tracking_backend.app.core.redis_client import ping_redis
from tracking_backend.app.models.enums import ChangeEventType

logger = logging.getLogger("tracking.realtime")

# Columns each table can be filtered on; publishers fan out one channel per column
FILTERABLE_COLUMNS: Dict[str, Tuple[str, ...]] = {
    "priest_bookings": ("id",),
    "priest_locations": ("booking_id",),
}


class ChangeEvent(BaseModel):
    """Row change notification."""
    event: ChangeEventType
    table: str
    new: Dict[str, Any]


def channel_name(prefix: str, table: str, column: str, value: Any) -> str:
    return f"{prefix}:{table}:{column}=eq.{value}"


def channels_for(prefix: str, event: ChangeEvent) -> List[str]:
    """Every filtered channel that should receive this event."""
    channels = []
    for column in FILTERABLE_COLUMNS.get(event.table, ()):
        value = event.new.get(column)
        if value is not None:
            channels.append(channel_name(prefix, event.table, column, value))
    return channels


class ChangeFeed:
    """
    Interface for the store's push notifications.

    listen() is an async context manager yielding an async iterator of
    ChangeEvent; leaving the context releases the channel. Transport
    failures surface as SubscriptionError from the iterator.
    """

    def __init__(self, prefix: str = "realtime"):
        self.prefix = prefix

    def channel(self, table: str, column: str, value: Any) -> str:
        return channel_name(self.prefix, table, column, value)

    async def publish(self, event: ChangeEvent) -> int:
        raise NotImplementedError

    def listen(self, channel: str):
        raise NotImplementedError

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


class _FeedFailure:
    def __init__(self, error: SubscriptionError):
        self.error = error


class InMemoryChangeFeed(ChangeFeed):
    """
    In-process pub/sub.

    Events are round-tripped through JSON so subscribers see the same
    shapes a Redis subscriber would.
    """

    def __init__(self, prefix: str = "realtime"):
        super().__init__(prefix)
        self._subscribers: Dict[str, List[asyncio.Queue]] = {}

    async def publish(self, event: ChangeEvent) -> int:
        payload = event.model_dump_json()
        delivered = 0
        for channel in channels_for(self.prefix, event):
            for queue in list(self._subscribers.get(channel, [])):
                queue.put_nowait(ChangeEvent.model_validate_json(payload))
                delivered += 1
        logger.debug("Published %s on %s (delivered=%d)", event.event.value, event.table, delivered)
        return delivered

    def subscriber_count(self, channel: str) -> int:
        return len(self._subscribers.get(channel, []))

    def fail(self, channel: str, message: str = "Realtime connection lost") -> None:
        """Break every listener on ``channel`` as a dropped transport would."""
        for queue in list(self._subscribers.get(channel, [])):
            queue.put_nowait(_FeedFailure(SubscriptionError(message, channel=channel)))

    @asynccontextmanager
    async def listen(self, channel: str) -> AsyncIterator[AsyncIterator[ChangeEvent]]:
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.setdefault(channel, []).append(queue)
        try:
            yield self._iterate(queue)
        finally:
            subscribers = self._subscribers.get(channel, [])
            if queue in subscribers:
                subscribers.remove(queue)
            if not subscribers:
                self._subscribers.pop(channel, None)

    async def _iterate(self, queue: asyncio.Queue) -> AsyncIterator[ChangeEvent]:
        while True:
            item = await queue.get()
            if isinstance(item, _FeedFailure):
                raise item.error
            yield item


class RedisChangeFeed(ChangeFeed):
    """Redis pub/sub change feed."""

    def __init__(self, client: Redis, prefix: str = "realtime"):
        super().__init__(prefix)
        self._client = client

    async def publish(self, event: ChangeEvent) -> int:
        payload = event.model_dump_json()
        delivered = 0
        for channel in channels_for(self.prefix, event):
            try:
                delivered += await self._client.publish(channel, payload)
            except RedisError as e:
                raise SubscriptionError(f"Failed to publish change: {e}", channel=channel) from e
        return delivered

    @asynccontextmanager
    async def listen(self, channel: str) -> AsyncIterator[AsyncIterator[ChangeEvent]]:
        pubsub = self._client.pubsub()
        try:
            await pubsub.subscribe(channel)
        except RedisError as e:
            await pubsub.aclose()
            raise SubscriptionError(f"Failed to subscribe: {e}", channel=channel) from e
        logger.info("Subscribed to %s", channel)

        try:
            yield self._iterate(pubsub, channel)
        finally:
            try:
                await pubsub.unsubscribe(channel)
            except RedisError as e:
                logger.warning("Unsubscribe from %s failed: %s", channel, e)
            await pubsub.aclose()
            logger.info("Unsubscribed from %s", channel)

    async def _iterate(self, pubsub, channel: str) -> AsyncIterator[ChangeEvent]:
        try:
            async for message in pubsub.listen():
                if message["type"] != "message":
                    continue
                try:
                    yield ChangeEvent.model_validate_json(message["data"])
                except ValidationError as e:
                    logger.warning("Dropping malformed change on %s: %s", channel, e)
        except RedisError as e:
            raise SubscriptionError(f"Realtime connection lost: {e}", channel=channel) from e

    async def ping(self) -> bool:
        return await ping_redis(self._client)

    async def close(self) -> None:
        await self._client.aclose()
