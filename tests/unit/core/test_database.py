"""Tests for database session helpers."""

import pytest
import structlog
from sqlalchemy import func, select

from phi_core.config import Settings
from phi_core.core.database import (
    create_engine_from_settings,
    get_async_db,
    to_async_url,
)
from phi_core.models.relationships import LawFirmClient
from phi_core.utils.logging import render_processor

TEST_ENCRYPTION_KEY = "0123456789abcdef" * 4


@pytest.mark.parametrize(
    "url,expected",
    [
        ("sqlite:///./phi.db", "sqlite+aiosqlite:///./phi.db"),
        ("postgresql://u:p@db/phi", "postgresql+asyncpg://u:p@db/phi"),
        ("postgresql+asyncpg://u:p@db/phi", "postgresql+asyncpg://u:p@db/phi"),
    ],
)
def test_to_async_url(url, expected):
    """Plain URLs get the async driver; explicit drivers are kept."""
    assert to_async_url(url) == expected


async def _client_count(session_factory):
    async with session_factory() as session:
        result = await session.execute(select(func.count(LawFirmClient.id)))
        return result.scalar_one()


@pytest.mark.asyncio
async def test_get_async_db_commits(session_factory):
    """Work is committed when the block exits cleanly."""
    async with get_async_db(session_factory) as session:
        session.add(LawFirmClient(law_firm_id=1, client_id=2))

    assert await _client_count(session_factory) == 1


@pytest.mark.asyncio
async def test_get_async_db_rolls_back(session_factory):
    """Work is discarded and the error re-raised on failure."""
    with pytest.raises(RuntimeError):
        async with get_async_db(session_factory) as session:
            session.add(LawFirmClient(law_firm_id=1, client_id=2))
            await session.flush()
            raise RuntimeError("boom")

    assert await _client_count(session_factory) == 0


def test_render_processor():
    """JSON in production, console renderer otherwise."""
    assert isinstance(render_processor("json"), structlog.processors.JSONRenderer)
    assert isinstance(render_processor("console"), structlog.dev.ConsoleRenderer)


@pytest.mark.asyncio
async def test_engine_for_postgres_uses_pool_settings():
    """Postgres engines get asyncpg and the configured pool size."""
    engine = create_engine_from_settings(
        Settings(
            encryption_key=TEST_ENCRYPTION_KEY,
            database_url="postgresql://u:p@db/phi",
            database_pool_size=7,
        )
    )
    try:
        assert engine.url.drivername == "postgresql+asyncpg"
        assert engine.pool.size() == 7
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_engine_for_sqlite_from_environment(monkeypatch):
    """Loaded settings are used when none are passed."""
    monkeypatch.setenv("DATABASE_URL", "sqlite://")
    monkeypatch.setenv("DEBUG", "true")

    engine = create_engine_from_settings()
    try:
        assert engine.url.drivername == "sqlite+aiosqlite"
        assert engine.echo is True
        async with engine.connect() as conn:
            result = await conn.exec_driver_sql("SELECT 1")
            assert result.scalar_one() == 1
    finally:
        await engine.dispose()
