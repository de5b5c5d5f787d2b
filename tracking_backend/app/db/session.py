"""
Database session configuration.

This module handles database engine creation and session management
using SQLAlchemy with async support for PostgreSQL.
"""

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from tracking_backend.app.core.config import settings

# Create declarative base for models
Base = declarative_base()


def build_engine(database_url: str = None, **kwargs):
    """Create the async engine; pool sizing only applies to server databases."""
    url = database_url or settings.database_url
    options = {"echo": settings.db_echo, "future": True}
    if not url.startswith("sqlite"):
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
        )
    options.update(kwargs)
    return create_async_engine(url, **options)


def build_session_factory(bind) -> async_sessionmaker:
    """Async session factory; sessions keep loaded attributes after commit."""
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )
