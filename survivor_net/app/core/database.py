"""
Database layer — async PostgreSQL via SQLAlchemy 2.0 + asyncpg.

Backs the durable mirror of participants, check-ins and danger zones.
The in-memory registry stays the source of truth; nothing here is
touched unless ``MIRROR_ENABLED`` is set.

Provides:
    • Lazily created async engine and session factory
    • Base model for ORM entities
    • Table creation / disposal helpers

Usage:
    from survivor_net.app.core.database import get_session_factory

    async with get_session_factory()() as session:
        await session.merge(row)
        await session.commit()
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from survivor_net.app.core.config import settings

logger = logging.getLogger(__name__)

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


# ── ORM Base ──
class Base(DeclarativeBase):
    """Declarative base for all ORM models."""
    pass


# ── Engine ──
def get_engine(url: Optional[str] = None) -> AsyncEngine:
    """Create the async engine on first use."""
    global _engine
    if _engine is None:
        url = url or settings.DATABASE_URL
        kwargs = {"echo": settings.DATABASE_ECHO, "future": True}
        if not url.startswith("sqlite"):
            kwargs["pool_size"] = settings.DATABASE_POOL_SIZE
            kwargs["max_overflow"] = settings.DATABASE_MAX_OVERFLOW
        _engine = create_async_engine(url, **kwargs)
        logger.info("Database engine created: %s", url.split("@")[-1])
    return _engine


# ── Session Factory ──
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _session_factory


# ── Lifecycle ──
async def init_db() -> None:
    """Create all tables if missing (use migrations in production)."""
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialised")


async def close_db() -> None:
    """Dispose engine connections."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        logger.info("Database connections closed")
    _engine = None
    _session_factory = None
