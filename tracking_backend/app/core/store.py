"""
Tracking store handle.

Bundles the session factory and the change feed. Built once at process
start and injected into every tracking service.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict

from fastapi import Request
from sqlalchemy.ext.asyncio import async_sessionmaker

from tracking_backend.app.core.config import settings
from tracking_backend.app.core.exceptions import SubscriptionError
from tracking_backend.app.core.redis_client import create_redis_client
from tracking_backend.app.models.enums import ChangeEventType
from tracking_backend.app.services.change_feed import (
    ChangeEvent, ChangeFeed, InMemoryChangeFeed, RedisChangeFeed
)

logger = logging.getLogger("tracking.store")


def row_image(row) -> Dict[str, Any]:
    """Column name -> value for an ORM row."""
    return {column.key: getattr(row, column.key) for column in row.__table__.columns}


class TrackingStore:
    def __init__(self, session_factory: async_sessionmaker, feed: ChangeFeed):
        self.session_factory = session_factory
        self.feed = feed

    @asynccontextmanager
    async def session(self):
        async with self.session_factory() as session:
            yield session

    async def notify(self, event_type: ChangeEventType, row) -> None:
        """
        Emit a change for a committed row.

        The write has already committed, so a failed notification is
        logged and not raised.
        """
        event = ChangeEvent(event=event_type, table=row.__tablename__, new=row_image(row))
        try:
            await self.feed.publish(event)
        except SubscriptionError as e:
            logger.warning(
                "Change notification failed",
                extra={"table": event.table, "event": event_type.value, "error": e.message}
            )

    async def close(self) -> None:
        await self.feed.close()


def get_store(request: Request) -> TrackingStore:
    """FastAPI dependency returning the store built in the lifespan."""
    return request.app.state.store


def build_change_feed() -> ChangeFeed:
    """Change feed selected by settings.change_feed_backend."""
    if settings.change_feed_backend == "memory":
        return InMemoryChangeFeed(settings.change_feed_channel_prefix)
    return RedisChangeFeed(create_redis_client(), settings.change_feed_channel_prefix)
