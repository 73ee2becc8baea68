"""Async database engine creation and transaction scope."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy.exc import ArgumentError, NoSuchModuleError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from ..core.logging import get_logger
from .exceptions import StorageConfigurationError

logger = get_logger(__name__)


def create_engine(database_url: str, echo: bool = False, **kwargs: Any) -> AsyncEngine:
    """Create an async SQLAlchemy engine.

    In-memory SQLite databases share one connection through ``StaticPool``
    so that every checkout sees the same database.

    Args:
        database_url: SQLAlchemy async URL (e.g. ``sqlite+aiosqlite:///app.db``)
        echo: Log emitted SQL
        **kwargs: Passed through to ``create_async_engine``

    Raises:
        StorageConfigurationError: If the URL is invalid or its driver is missing
    """
    if not database_url:
        raise StorageConfigurationError("Database URL is required")

    if database_url.startswith("sqlite") and (
        ":memory:" in database_url or database_url.rstrip("/").endswith("sqlite+aiosqlite:")
    ):
        kwargs.setdefault("poolclass", StaticPool)
        kwargs.setdefault("connect_args", {"check_same_thread": False})

    try:
        engine = create_async_engine(database_url, echo=echo, **kwargs)
    except (ArgumentError, NoSuchModuleError) as e:
        raise StorageConfigurationError(f"Invalid database URL: {e}", e) from e

    logger.info("Database engine created", dialect=engine.dialect.name)
    return engine


@asynccontextmanager
async def transaction(engine: AsyncEngine) -> AsyncIterator[AsyncConnection]:
    """Open a connection inside a transaction.

    Commits when the block exits normally; any exception rolls the whole
    transaction back and propagates.
    """
    async with engine.begin() as conn:
        yield conn
