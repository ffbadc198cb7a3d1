"""
Database Configuration and Session Management
============================================

This module provides the async database engine, session factory, and table
creation for the P2P key/value store. The engine targets SQLite through the
aiosqlite driver by default so the store lives on local disk.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
)

from config import Config
from models import Base

logger = logging.getLogger(__name__)


def create_store_engine(database_url: Optional[str] = None, echo: Optional[bool] = None) -> AsyncEngine:
    """Create the async engine backing the key/value store"""
    url = database_url or Config.DATABASE_URL
    return create_async_engine(
        url,
        echo=Config.DATABASE_ECHO if echo is None else echo,
        pool_pre_ping=True,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Session factory for the store engine"""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )


@asynccontextmanager
async def async_managed_session(session_factory: async_sessionmaker):
    """Async context manager for database sessions"""
    session = session_factory()
    try:
        yield session
        await session.commit()
    except Exception as e:
        logger.error(f"Database session error: {e}")
        await session.rollback()
        raise
    finally:
        await session.close()


async def create_tables(engine: AsyncEngine) -> None:
    """Create all database tables if they don't exist"""
    logger.info("🏗️ Creating P2P store tables (if they don't exist)...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("✅ P2P store tables ready")
