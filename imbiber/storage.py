"""
Persistent key-value storage.

Small async string store used for cache entries, per-user notification history
and badge counters. Backed by the ``kv_store`` table.
"""

import logging
from abc import ABC, abstractmethod
from typing import Iterable, Optional

from sqlalchemy import delete, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from imbiber.models import KeyValueItem

logger = logging.getLogger(__name__)


class KeyValueStorage(ABC):
    """Async string key-value store."""

    @abstractmethod
    async def get_item(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    async def set_item(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    async def remove_item(self, key: str) -> None:
        pass

    @abstractmethod
    async def get_all_keys(self) -> list[str]:
        pass

    @abstractmethod
    async def multi_remove(self, keys: Iterable[str]) -> None:
        pass


class SqlKeyValueStorage(KeyValueStorage):
    """KeyValueStorage on top of the application database."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_item(self, key: str) -> Optional[str]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(KeyValueItem.value).where(KeyValueItem.key == key)
            )
            return result.scalar_one_or_none()

    async def set_item(self, key: str, value: str) -> None:
        stmt = (
            sqlite_insert(KeyValueItem)
            .values(key=key, value=value)
            .on_conflict_do_update(index_elements=["key"], set_={"value": value})
        )
        async with self._session_factory() as session:
            await session.execute(stmt)
            await session.commit()

    async def remove_item(self, key: str) -> None:
        async with self._session_factory() as session:
            await session.execute(delete(KeyValueItem).where(KeyValueItem.key == key))
            await session.commit()

    async def get_all_keys(self) -> list[str]:
        async with self._session_factory() as session:
            result = await session.execute(select(KeyValueItem.key))
            return list(result.scalars().all())

    async def multi_remove(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        if not keys:
            return
        async with self._session_factory() as session:
            await session.execute(delete(KeyValueItem).where(KeyValueItem.key.in_(keys)))
            await session.commit()
        logger.debug(f"Removed {len(keys)} storage keys")
