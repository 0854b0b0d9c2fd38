"""
Release check runner - searches followed authors, filters what the user owns,
stores new-release notifications and pushes them.
"""

import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Iterable, Optional

from imbiber.books import Book, as_book, filter_unowned_books
from imbiber.cache import now_ms
from imbiber.catalog.base import BaseCatalog
from imbiber.config import RuntimeConfig, get_runtime_config
from imbiber.debounce import Debouncer
from imbiber.models import CheckRun
from imbiber.notifications import NotificationRecord, NotificationStore, ReleaseBatch
from imbiber.notifier.badge import BadgeCounter
from imbiber.notifier.bark import BarkNotifier
from imbiber.storage import KeyValueStorage

if TYPE_CHECKING:
    from imbiber.services import ServiceContext

logger = logging.getLogger(__name__)


class AuthorCheckState(str, Enum):
    IDLE = "idle"
    CHECKING = "checking"
    NO_NEW_RELEASES = "no_new_releases"
    NEW_RELEASES_FOUND = "new_releases_found"
    FAILED = "failed"


def _author_fields(author: Any) -> tuple[str, Optional[str]]:
    """(display name, row id) of a followed author row, dict or plain name."""
    if isinstance(author, str):
        return author, None
    if isinstance(author, dict):
        return author.get("author_name") or author.get("authorName") or "", author.get("id")
    return author.author_name, getattr(author, "id", None)


def is_recent(book: Book, min_year: int) -> bool:
    year = book.published_year
    return bool(year) and int(year) >= min_year


class ReleaseChecker:
    """
    Finds new releases of followed authors for one user at a time.

    Each author goes idle -> checking -> no_new_releases | new_releases_found
    (or failed); the last state per user and author is kept in ``states``.
    """

    def __init__(
        self,
        catalog: BaseCatalog,
        notifier: BarkNotifier,
        badge: BadgeCounter,
        debouncer: Debouncer,
        storage: KeyValueStorage,
        config: Optional[RuntimeConfig] = None,
        clock: Optional[Callable[[], int]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.catalog = catalog
        self.notifier = notifier
        self.badge = badge
        self.debouncer = debouncer
        self.storage = storage
        self._config = config
        self.clock = clock or now_ms
        self._sleep = sleep
        self._stores: dict[str, NotificationStore] = {}
        self.states: dict[str, dict[str, AuthorCheckState]] = {}

    @property
    def config(self) -> RuntimeConfig:
        return self._config or get_runtime_config()

    def store_for(self, user_id: str) -> NotificationStore:
        """The user's notification store, with the currently configured retention."""
        retention = self.config.notification_retention
        if user_id not in self._stores:
            self._stores[user_id] = NotificationStore(self.storage, user_id, retention=retention)
        store = self._stores[user_id]
        store.retention = retention
        return store

    @staticmethod
    def cooldown_key(user_id: str) -> str:
        return f"release_check:{user_id}"

    def in_cooldown(self, user_id: str) -> bool:
        return not self.debouncer.can_proceed(self.cooldown_key(user_id))

    async def check_for_new_releases(
        self,
        user_id: str,
        authors: Iterable[Any],
        owned_books: Iterable[Any],
        force_refresh: bool = False,
    ) -> list[ReleaseBatch]:
        """
        Search every followed author and record notifications for new books.

        Args:
            user_id: Owner of the followed authors and the library.
            authors: FollowedAuthor rows (or names).
            owned_books: The user's unread and read books together.
            force_refresh: Ignore the per-user cooldown.

        Returns:
            One ReleaseBatch per author with unowned recent books, including
            authors whose notification was a duplicate. Empty when skipped.
        """
        authors = list(authors)
        if not authors:
            return []

        key = self.cooldown_key(user_id)
        if not force_refresh and not self.debouncer.can_proceed(key):
            remaining = self.debouncer.get_remaining_time(key)
            logger.info(f"Release check for user {user_id} skipped, cooldown {remaining // 1000}s left")
            return []
        self.debouncer.mark_called(key)

        config = self.config
        owned = [as_book(b) for b in owned_books]
        store = self.store_for(user_id)
        current_year = datetime.fromtimestamp(self.clock() / 1000, tz=timezone.utc).year
        min_year = current_year - config.release_year_window

        states = self.states.setdefault(user_id, {})
        for author in authors:
            states[_author_fields(author)[0]] = AuthorCheckState.IDLE

        releases: list[ReleaseBatch] = []
        batch_size = config.check_batch_size
        for start in range(0, len(authors), batch_size):
            if start:
                await self._sleep(config.check_batch_delay_ms / 1000)
            batch = authors[start:start + batch_size]
            results = await asyncio.gather(
                *(self._check_author(user_id, author, owned, store, min_year) for author in batch)
            )
            releases.extend(r for r in results if r is not None)

        logger.info(
            f"Release check for user {user_id}: {len(authors)} authors, "
            f"{len(releases)} with new releases"
        )
        return releases

    async def _check_author(
        self,
        user_id: str,
        author: Any,
        owned: list[Book],
        store: NotificationStore,
        min_year: int,
    ) -> Optional[ReleaseBatch]:
        name, row_id = _author_fields(author)
        states = self.states[user_id]
        states[name] = AuthorCheckState.CHECKING
        config = self.config

        try:
            outcome = await self.catalog.search_author_outcome(name, config.author_search_max_results)
            if not outcome.ok:
                logger.warning(f"Release search for {name} failed: {outcome.error.message}")
                states[name] = AuthorCheckState.FAILED
                return None

            recent = [book for book in outcome.books if is_recent(book, min_year)]
            unowned = filter_unowned_books(recent, owned)

            if not unowned:
                states[name] = AuthorCheckState.NO_NEW_RELEASES
                return None

            top = unowned[: config.releases_per_notification]
            record = NotificationRecord.create(name, top, prefix=row_id)
            if await store.save_notification(record):
                await self.notifier.notify_release(name, top)
                await self.badge.increment(user_id)

            states[name] = AuthorCheckState.NEW_RELEASES_FOUND
            return ReleaseBatch(author=name, books=top)

        except Exception as e:
            logger.error(f"Error checking releases for {name}: {e}")
            states[name] = AuthorCheckState.FAILED
            return None

    async def list_notifications(self, user_id: str) -> list[NotificationRecord]:
        return await self.store_for(user_id).load()

    async def current_new_releases(self, user_id: str, owned_books: Iterable[Any]) -> list[ReleaseBatch]:
        """Unread releases with books the user owns by now filtered out."""
        store = self.store_for(user_id)
        await store.load()
        return store.new_releases(owned_books)

    async def mark_notification_read(self, user_id: str, record_id: str) -> bool:
        changed = await self.store_for(user_id).mark_notification_read(record_id)
        if changed:
            await self.badge.decrement(user_id)
        return changed

    async def delete_notification(self, user_id: str, record_id: str) -> bool:
        store = self.store_for(user_id)
        records = await store.load()
        was_unread = any(r.id == record_id and not r.read for r in records)
        deleted = await store.delete_notification(record_id)
        if deleted and was_unread:
            await self.badge.decrement(user_id)
        return deleted


async def run_check(
    services: "ServiceContext",
    force_refresh: bool = False,
    user_id: Optional[str] = None,
) -> dict[str, Any]:
    """
    Run a release check for every user following authors (or just one user).

    Returns:
        Dictionary with check results including release and error counts.
    """
    checker = services.checker

    async with services.session_factory() as session:
        check_run = CheckRun(status="running", forced=force_refresh)
        session.add(check_run)
        await session.commit()
        await session.refresh(check_run)

        total_authors = 0
        total_releases = 0
        skipped: list[str] = []
        errors: list[str] = []

        try:
            user_ids = [user_id] if user_id else await services.authors.users_with_authors()
            check_run.total_users = len(user_ids)

            for uid in user_ids:
                if not force_refresh and checker.in_cooldown(uid):
                    skipped.append(uid)
                    continue
                try:
                    authors = await services.authors.list_followed(uid, active_only=True)
                    library = await services.books.list_books(uid)
                    releases = await checker.check_for_new_releases(
                        uid, authors, library.all_books, force_refresh=force_refresh
                    )

                    states = checker.states.get(uid, {})
                    checked_ids = [
                        a.id for a in authors
                        if states.get(a.author_name) not in (None, AuthorCheckState.FAILED)
                    ]
                    await services.authors.touch_last_checked(checked_ids)

                    total_authors += len(authors)
                    total_releases += len(releases)
                except Exception as e:
                    error_msg = f"Error checking releases for user {uid}: {e}"
                    logger.error(error_msg)
                    errors.append(error_msg)

            check_run.completed_at = datetime.utcnow()
            check_run.status = "completed" if not errors else "completed_with_errors"
            check_run.total_authors = total_authors
            check_run.total_releases = total_releases
            if errors:
                check_run.error_message = "\n".join(errors)

            await session.commit()

        except Exception as e:
            check_run.completed_at = datetime.utcnow()
            check_run.status = "failed"
            check_run.error_message = str(e)
            await session.commit()
            logger.error(f"Check run failed: {e}")
            raise

        return {
            "run_id": check_run.id,
            "status": check_run.status,
            "users": check_run.total_users,
            "skipped_users": skipped,
            "authors": total_authors,
            "releases": total_releases,
            "errors": errors,
        }
