"""Async database engine and session configuration."""

from typing import Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from brickdeals.config import settings
from brickdeals.models.base import Base


def create_engine_for(database_url: Optional[str] = None, echo: Optional[bool] = None) -> AsyncEngine:
    """Create an async engine for the given URL (settings.DATABASE_URL by default)."""
    url = database_url or settings.DATABASE_URL

    # SQLite doesn't support pool_size / max_overflow / pool_pre_ping
    engine_kwargs: dict = {"echo": settings.DATABASE_ECHO if echo is None else echo}
    if not url.startswith("sqlite"):
        engine_kwargs.update(pool_size=5, max_overflow=5, pool_pre_ping=True)

    return create_async_engine(url, **engine_kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_models(engine: AsyncEngine) -> None:
    """Create missing tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
