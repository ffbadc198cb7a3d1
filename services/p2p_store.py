"""
P2P Key-Value Store Adapters
Durable key/value load and save for the serialized order and trade collections.
No business logic lives here; values are opaque strings.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from database import async_managed_session, create_session_factory, create_store_engine, create_tables
from models import KeyValueEntry

logger = logging.getLogger(__name__)


class KeyValueStoreError(Exception):
    """Base exception for key/value store operations"""
    pass


class KeyValueStore(ABC):
    """Async key/value storage boundary"""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None when the key was never written"""

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Store value under key, replacing any previous value"""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove key; returns whether it existed"""

    async def close(self) -> None:
        """Release underlying resources"""
        return None


class InMemoryKeyValueStore(KeyValueStore):
    """Process-local store for tests and I/O-free use"""

    def __init__(self):
        self._data: Dict[str, str] = {}
        self.stats = {"gets": 0, "sets": 0, "deletes": 0}

    async def get(self, key: str) -> Optional[str]:
        self.stats["gets"] += 1
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise KeyValueStoreError(f"Store values must be strings, got {type(value).__name__}")
        self._data[key] = value
        self.stats["sets"] += 1

    async def delete(self, key: str) -> bool:
        if key in self._data:
            del self._data[key]
            self.stats["deletes"] += 1
            return True
        return False


class SQLAlchemyKeyValueStore(KeyValueStore):
    """
    Durable store backed by a single SQLAlchemy table.

    Defaults to a local SQLite file through aiosqlite. Database failures are
    wrapped in KeyValueStoreError so callers handle one exception type.
    """

    def __init__(self, engine: AsyncEngine, session_factory: Optional[async_sessionmaker] = None):
        self.engine = engine
        self.session_factory = session_factory or create_session_factory(engine)

    @classmethod
    async def open(cls, database_url: Optional[str] = None) -> "SQLAlchemyKeyValueStore":
        """Create the engine, ensure the table exists and return a ready store"""
        engine = create_store_engine(database_url)
        await create_tables(engine)
        logger.info(f"🗄️ KV_STORE_OPENED: {engine.url.render_as_string(hide_password=True)}")
        return cls(engine)

    async def get(self, key: str) -> Optional[str]:
        try:
            async with async_managed_session(self.session_factory) as session:
                result = await session.execute(
                    select(KeyValueEntry.value).where(KeyValueEntry.key == key)
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise KeyValueStoreError(f"Failed to read key {key}: {e}") from e

    async def set(self, key: str, value: str) -> None:
        try:
            async with async_managed_session(self.session_factory) as session:
                entry = await session.get(KeyValueEntry, key)
                if entry is None:
                    session.add(KeyValueEntry(key=key, value=value))
                else:
                    entry.value = value
        except SQLAlchemyError as e:
            raise KeyValueStoreError(f"Failed to write key {key}: {e}") from e

    async def delete(self, key: str) -> bool:
        try:
            async with async_managed_session(self.session_factory) as session:
                entry = await session.get(KeyValueEntry, key)
                if entry is None:
                    return False
                await session.delete(entry)
                return True
        except SQLAlchemyError as e:
            raise KeyValueStoreError(f"Failed to delete key {key}: {e}") from e

    async def close(self) -> None:
        await self.engine.dispose()
