"""Shared pytest fixtures and helpers for Book Imbiber tests."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, Optional

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from imbiber.books import Book
from imbiber.catalog.base import BaseCatalog
from imbiber.config import RuntimeConfig, set_runtime_config
from imbiber.db import init_db
from imbiber.storage import KeyValueStorage, SqlKeyValueStorage

# 2026-06-01T00:00:00Z
START_MS = int(datetime(2026, 6, 1, tzinfo=timezone.utc).timestamp() * 1000)
MINUTE_MS = 60 * 1000


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = START_MS):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class MemoryStorage(KeyValueStorage):
    """Dict-backed storage; ``fail`` makes every call raise."""

    def __init__(self):
        self.data: dict[str, str] = {}
        self.fail = False

    def _check(self) -> None:
        if self.fail:
            raise RuntimeError("storage unavailable")

    async def get_item(self, key: str) -> Optional[str]:
        self._check()
        return self.data.get(key)

    async def set_item(self, key: str, value: str) -> None:
        self._check()
        self.data[key] = value

    async def remove_item(self, key: str) -> None:
        self._check()
        self.data.pop(key, None)

    async def get_all_keys(self) -> list[str]:
        self._check()
        return list(self.data)

    async def multi_remove(self, keys: Iterable[str]) -> None:
        self._check()
        for key in keys:
            self.data.pop(key, None)


class FakeCatalog(BaseCatalog):
    """Catalog answering author searches from a dict; exceptions are raised."""

    def __init__(self, by_author: Optional[dict] = None, by_query: Optional[list[Book]] = None):
        self.by_author = by_author or {}
        self.by_query = by_query or []
        self.author_calls: list[str] = []
        self.query_calls: list[str] = []

    async def search_by_query(self, query, max_results=10, locale=None):
        self.query_calls.append(query)
        return list(self.by_query)[:max_results]

    async def search_by_author(self, author_name, max_results=10):
        self.author_calls.append(author_name)
        result = self.by_author.get(author_name, [])
        if isinstance(result, Exception):
            raise result
        return list(result)[:max_results]

    async def search_by_identifier(self, identifier):
        return None


class RecordingNotifier:
    """Stands in for BarkNotifier and remembers every release push."""

    def __init__(self):
        self.sent: list[tuple[str, list[str]]] = []

    async def notify_release(self, author, books) -> bool:
        self.sent.append((author, [book.title for book in books]))
        return True


def volume(
    volume_id: str,
    title: str,
    authors: Optional[list[str]] = None,
    published_date: str = "2026-03-01",
    **info,
) -> dict:
    """A Google Books volumes item."""
    volume_info = {"title": title, "publishedDate": published_date, **info}
    if authors is not None:
        volume_info["authors"] = authors
    return {"id": volume_id, "volumeInfo": volume_info}


@pytest.fixture(autouse=True)
def runtime_config():
    """Default runtime config without inter-batch pauses."""
    config = RuntimeConfig(check_batch_delay_ms=0)
    set_runtime_config(config)
    yield config
    set_runtime_config(RuntimeConfig())


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
async def engine(tmp_path):
    # One database file per test
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'imbiber.sqlite3'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def sql_storage(session_factory) -> SqlKeyValueStorage:
    return SqlKeyValueStorage(session_factory)
