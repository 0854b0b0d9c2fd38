"""
Process-wide service wiring.

One ServiceContext is built at startup (web app lifespan or CLI command) and
shared by the API, the scheduler job and the release runner.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from imbiber.cache import ApiCache
from imbiber.catalog.google_books import GoogleBooksClient
from imbiber.config import get_runtime_config
from imbiber.debounce import Debouncer
from imbiber.library import AuthorRepository, AuthorRoster, BookRepository, ChangeFeed
from imbiber.notifier import BadgeCounter, BarkNotifier
from imbiber.runner import ReleaseChecker
from imbiber.storage import KeyValueStorage, SqlKeyValueStorage

logger = logging.getLogger(__name__)


@dataclass
class ServiceContext:
    session_factory: async_sessionmaker[AsyncSession]
    storage: KeyValueStorage
    cache: ApiCache
    catalog: GoogleBooksClient
    debouncer: Debouncer
    notifier: BarkNotifier
    badge: BadgeCounter
    feed: ChangeFeed
    authors: AuthorRepository
    books: BookRepository
    roster: AuthorRoster
    checker: ReleaseChecker

    @classmethod
    def build(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Optional[Callable[[], int]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "ServiceContext":
        """
        Wire every service on top of one session factory.

        Args:
            session_factory: Async session factory of the application database.
            clock: Millisecond clock shared by cache, cooldowns and checks.
            transport: httpx transport for the catalog and push clients.
        """
        storage = SqlKeyValueStorage(session_factory)
        cache = ApiCache(storage, clock=clock)
        catalog = GoogleBooksClient(cache, transport=transport)
        debouncer = Debouncer(get_runtime_config().check_cooldown_ms, clock=clock)
        notifier = BarkNotifier(transport=transport)
        badge = BadgeCounter(storage)
        feed = ChangeFeed()
        authors = AuthorRepository(session_factory, feed)
        books = BookRepository(session_factory, feed)

        checker = ReleaseChecker(
            catalog=catalog,
            notifier=notifier,
            badge=badge,
            debouncer=debouncer,
            storage=storage,
            clock=clock,
        )

        logger.debug("Service context built")
        return cls(
            session_factory=session_factory,
            storage=storage,
            cache=cache,
            catalog=catalog,
            debouncer=debouncer,
            notifier=notifier,
            badge=badge,
            feed=feed,
            authors=authors,
            books=books,
            roster=AuthorRoster(authors, feed),
            checker=checker,
        )

    def apply_config(self) -> None:
        """Pick up a changed cooldown after a settings update."""
        self.debouncer.cooldown_ms = get_runtime_config().check_cooldown_ms

    def close(self) -> None:
        self.roster.close()
