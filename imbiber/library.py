"""
User library and followed authors.

Repositories over the application database, plus a small in-process change
feed so long-lived views (the author roster) stay current without reloading.
"""

import json
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from imbiber.books import Book, as_book
from imbiber.exceptions import AlreadyFollowingError, InvalidInputError, NotFoundError
from imbiber.models import FollowedAuthor, OwnedBook

logger = logging.getLogger(__name__)

AUTHORS = "authors"
BOOKS = "books"

UNKNOWN_AUTHORS = {"Unknown", "Unknown Author"}


@dataclass
class LibraryEvent:
    kind: str  # 'create', 'update', 'delete'
    collection: str
    payload: Any


class ChangeFeed:
    """Publish/subscribe of library changes within the process."""

    def __init__(self):
        self._subscribers: list[Callable[[LibraryEvent], None]] = []

    def subscribe(self, callback: Callable[[LibraryEvent], None]) -> Callable[[], None]:
        """Register a callback; returns a function that unregisters it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, event: LibraryEvent) -> None:
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Change feed subscriber failed on {event.kind} {event.collection}: {e}")


def to_book(row: OwnedBook) -> Book:
    """Library row as a Book record for ownership checks."""
    return Book(
        title=row.title or "",
        author=row.author or "",
        published_date=row.published_date or "",
        catalog_id=row.google_books_id or None,
        description=row.description or "",
        categories=row.categories or "",
        thumbnail=row.thumbnail,
        average_rating=row.average_rating or 0.0,
        ratings_count=row.ratings_count or 0,
    )


@dataclass
class LibrarySnapshot:
    """A user's books split into unread and read (read sorted newest first)."""

    unread: list[OwnedBook] = field(default_factory=list)
    read: list[OwnedBook] = field(default_factory=list)

    @property
    def all_books(self) -> list[Book]:
        return [to_book(row) for row in [*self.unread, *self.read]]


class AuthorRepository:
    """Followed authors, scoped by user id."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        feed: Optional[ChangeFeed] = None,
    ):
        self._session_factory = session_factory
        self._feed = feed or ChangeFeed()

    async def list_followed(self, user_id: str, active_only: bool = False) -> list[FollowedAuthor]:
        """Followed authors of a user, newest follow first."""
        stmt = select(FollowedAuthor).where(FollowedAuthor.user_id == user_id)
        if active_only:
            stmt = stmt.where(FollowedAuthor.is_active == True)  # noqa: E712
        stmt = stmt.order_by(FollowedAuthor.created_at.desc())
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def follow_author(
        self,
        user_id: str,
        name: str,
        author_id: Optional[str] = None,
        books_count: int = 0,
        genres: Optional[list[str]] = None,
    ) -> FollowedAuthor:
        """
        Start following an author.

        Raises:
            InvalidInputError: If the name is blank.
            AlreadyFollowingError: If the user follows this name already
                (case-insensitive).
        """
        name = (name or "").strip()
        if not name:
            raise InvalidInputError("Author name must not be empty")

        async with self._session_factory() as session:
            existing = await session.execute(
                select(FollowedAuthor.id)
                .where(FollowedAuthor.user_id == user_id)
                .where(func.lower(FollowedAuthor.author_name) == name.lower())
            )
            if existing.first() is not None:
                raise AlreadyFollowingError(name)

            author = FollowedAuthor(
                user_id=user_id,
                author_name=name,
                author_id=author_id,
                books_count=books_count,
                genres=json.dumps(genres or []),
                last_checked=datetime.utcnow(),
                is_active=True,
            )
            session.add(author)
            await session.commit()
            await session.refresh(author)

        logger.info(f"User {user_id} now follows {name}")
        self._feed.publish(LibraryEvent("create", AUTHORS, author))
        return author

    async def unfollow_author(self, user_id: str, author_row_id: str) -> None:
        """
        Stop following an author.

        Raises:
            NotFoundError: If the user has no such followed author.
        """
        async with self._session_factory() as session:
            author = await session.get(FollowedAuthor, author_row_id)
            if author is None or author.user_id != user_id:
                raise NotFoundError(f"Followed author {author_row_id} not found")
            await session.delete(author)
            await session.commit()

        logger.info(f"User {user_id} unfollowed {author.author_name}")
        self._feed.publish(LibraryEvent("delete", AUTHORS, author))

    async def touch_last_checked(self, author_row_ids: Iterable[str], when: Optional[datetime] = None) -> None:
        ids = list(author_row_ids)
        if not ids:
            return
        when = when or datetime.utcnow()
        async with self._session_factory() as session:
            await session.execute(
                update(FollowedAuthor).where(FollowedAuthor.id.in_(ids)).values(last_checked=when)
            )
            await session.commit()
            result = await session.execute(select(FollowedAuthor).where(FollowedAuthor.id.in_(ids)))
            updated = list(result.scalars().all())

        for author in updated:
            self._feed.publish(LibraryEvent("update", AUTHORS, author))

    async def users_with_authors(self) -> list[str]:
        """User ids that follow at least one active author."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(FollowedAuthor.user_id)
                .where(FollowedAuthor.is_active == True)  # noqa: E712
                .distinct()
            )
            return sorted(result.scalars().all())


class BookRepository:
    """Owned books, scoped by user id."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        feed: Optional[ChangeFeed] = None,
    ):
        self._session_factory = session_factory
        self._feed = feed or ChangeFeed()

    async def list_books(self, user_id: str) -> LibrarySnapshot:
        async with self._session_factory() as session:
            result = await session.execute(select(OwnedBook).where(OwnedBook.user_id == user_id))
            rows = list(result.scalars().all())

        read = [row for row in rows if row.is_read]
        read.sort(key=lambda row: row.read_at or datetime.min, reverse=True)
        return LibrarySnapshot(unread=[row for row in rows if not row.is_read], read=read)

    async def add_book(self, user_id: str, data: Any, read: bool = False) -> OwnedBook:
        """Add a book (Book or dict) to the user's library."""
        book = as_book(data)
        row = OwnedBook(
            user_id=user_id,
            title=book.title,
            author=book.author,
            description=book.description,
            published_date=book.published_date,
            google_books_id=book.catalog_id,
            thumbnail=book.thumbnail,
            categories=book.categories,
            average_rating=book.average_rating,
            ratings_count=book.ratings_count,
            read=read,
            read_at=datetime.utcnow() if read else None,
        )
        async with self._session_factory() as session:
            session.add(row)
            await session.commit()
            await session.refresh(row)

        self._feed.publish(LibraryEvent("create", BOOKS, row))
        return row

    async def set_read(self, user_id: str, book_id: str, read: bool = True) -> OwnedBook:
        async with self._session_factory() as session:
            row = await session.get(OwnedBook, book_id)
            if row is None or row.user_id != user_id:
                raise NotFoundError(f"Book {book_id} not found")
            row.read = read
            row.read_at = datetime.utcnow() if read else None
            await session.commit()
            await session.refresh(row)

        self._feed.publish(LibraryEvent("update", BOOKS, row))
        return row

    async def delete_book(self, user_id: str, book_id: str) -> None:
        async with self._session_factory() as session:
            row = await session.get(OwnedBook, book_id)
            if row is None or row.user_id != user_id:
                raise NotFoundError(f"Book {book_id} not found")
            await session.delete(row)
            await session.commit()

        self._feed.publish(LibraryEvent("delete", BOOKS, row))


class AuthorRoster:
    """
    In-memory followed-author lists per user.

    Loaded from the repository on first use, then kept current by the change
    feed: creates are prepended, updates replaced, deletes removed. Events
    that arrive while a user's list is loading are replayed onto it.
    """

    def __init__(self, repository: AuthorRepository, feed: ChangeFeed):
        self._repository = repository
        self._authors: dict[str, list[FollowedAuthor]] = {}
        self._pending: dict[str, list[LibraryEvent]] = {}
        self._unsubscribe = feed.subscribe(self.apply)

    async def authors_for(self, user_id: str) -> list[FollowedAuthor]:
        if user_id not in self._authors:
            self._pending.setdefault(user_id, [])
            try:
                loaded = await self._repository.list_followed(user_id)
            finally:
                events = self._pending.pop(user_id, [])
            # A concurrent load may have finished first
            if user_id not in self._authors:
                self._authors[user_id] = loaded
                for event in events:
                    self.apply(event)
        return list(self._authors[user_id])

    def apply(self, event: LibraryEvent) -> None:
        if event.collection != AUTHORS:
            return
        author = event.payload
        authors = self._authors.get(author.user_id)
        if authors is None:
            if author.user_id in self._pending:
                self._pending[author.user_id].append(event)
            return

        remaining = [a for a in authors if a.id != author.id]
        if event.kind == "create":
            self._authors[author.user_id] = [author, *remaining]
        elif event.kind == "update":
            self._authors[author.user_id] = [author if a.id == author.id else a for a in authors]
        elif event.kind == "delete":
            self._authors[author.user_id] = remaining

    def close(self) -> None:
        self._unsubscribe()


@dataclass
class AuthorSuggestion:
    name: str
    books_count: int
    reason: str


def author_suggestions(
    owned_books: Iterable[Any],
    followed_names: Iterable[str],
    min_books: int = 2,
    limit: int = 5,
) -> list[AuthorSuggestion]:
    """Authors the user owns several books by but does not follow yet."""
    counts = Counter(
        book.author
        for book in (as_book(b) for b in owned_books)
        if book.author and book.author not in UNKNOWN_AUTHORS
    )
    followed = {name.lower() for name in followed_names}

    suggestions = [
        AuthorSuggestion(
            name=name,
            books_count=count,
            reason=f"You have {count} books by this author",
        )
        for name, count in counts.items()
        if count >= min_books and name.lower() not in followed
    ]
    suggestions.sort(key=lambda s: s.books_count, reverse=True)
    return suggestions[:limit]
