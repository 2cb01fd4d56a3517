"""Shared fixtures for persistence integration tests.

These tests require a running PostgreSQL database. They are skipped
automatically when the database is not reachable.
"""

from __future__ import annotations

import asyncio

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from dublinbikes.core.config import get_settings
from dublinbikes.persistence.models import StationDocument

TEST_DATABASE_URL = get_settings().database_url


def _check_db_available() -> bool:
    """Check if the database accepts connections."""

    async def _try_connect() -> bool:
        engine = create_async_engine(TEST_DATABASE_URL, connect_args={"timeout": 2})
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception:
            return False
        finally:
            await engine.dispose()

    return asyncio.run(_try_connect())


# Cache the result to avoid repeated connection attempts
_DB_AVAILABLE: bool | None = None


def is_db_available() -> bool:
    """Check database availability (cached)."""
    global _DB_AVAILABLE
    if _DB_AVAILABLE is None:
        _DB_AVAILABLE = _check_db_available()
    return _DB_AVAILABLE


def pytest_collection_modifyitems(config, items):
    """Skip integration tests if database is not available."""
    integration = [item for item in items if "integration" in item.keywords]
    if not integration or is_db_available():
        return

    skip_no_db = pytest.mark.skip(
        reason="Database not available - skipping integration test"
    )
    for item in integration:
        item.add_marker(skip_no_db)


@pytest_asyncio.fixture
async def db_session():
    """Provide a session over an empty ``station_documents`` table."""
    if not is_db_available():
        pytest.skip("Database not available")

    engine = create_async_engine(TEST_DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(StationDocument.__table__.create, checkfirst=True)
        await conn.execute(text("TRUNCATE TABLE station_documents"))

    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.rollback()
            async with engine.begin() as conn:
                await conn.execute(text("TRUNCATE TABLE station_documents"))
    await engine.dispose()
