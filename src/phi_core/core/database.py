"""Database connection and session management."""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from phi_core.models import Base


def to_async_url(database_url: str) -> str:
    """Select the async driver for a database URL."""
    if database_url.startswith("sqlite://"):
        return database_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return database_url


def create_engine_from_settings(settings: Optional[Any] = None) -> AsyncEngine:
    """Create the async engine for the configured database."""
    if settings is None:
        from phi_core.config import (  # pylint: disable=import-outside-toplevel
            get_settings,
        )

        settings = get_settings()

    url = to_async_url(settings.database_url)
    options: Dict[str, Any] = {"echo": settings.debug}
    if "sqlite" not in url:
        # SQLite doesn't support these pool settings
        options.update(
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_pre_ping=True,
            pool_recycle=3600,
        )
    return create_async_engine(url, **options)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Create the session factory bound to ``engine``."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )


@asynccontextmanager
async def get_async_db(
    session_factory: async_sessionmaker,
) -> AsyncGenerator[AsyncSession, None]:
    """Open a session; commit on success, roll back on error."""
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_async_db(engine: AsyncEngine) -> None:
    """Initialize database with tables asynchronously."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_async_db(engine: AsyncEngine) -> None:
    """Drop all database tables asynchronously (use with caution)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
