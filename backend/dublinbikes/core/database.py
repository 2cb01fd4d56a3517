from __future__ import annotations

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from dublinbikes.core.config import get_settings


class Base(DeclarativeBase):
    """Declarative base class for SQLAlchemy models."""


def _build_engine() -> AsyncEngine:
    """Create an async SQLAlchemy engine for the station document store."""
    settings = get_settings()
    return create_async_engine(
        settings.database_url,
        echo=settings.database_echo,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_timeout=settings.database_timeout_seconds,
        connect_args={"timeout": settings.database_timeout_seconds},
    )


engine: AsyncEngine = _build_engine()
"""Shared async engine instance. Connections are opened lazily."""

AsyncSessionFactory = async_sessionmaker(
    engine,
    expire_on_commit=False,
)
