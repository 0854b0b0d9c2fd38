"""
Per-user release notification history.

History is a JSON list in key-value storage, newest first, capped at a fixed
retention. A notification is a duplicate of an earlier one for the same
author when both list the same set of book fingerprints.
"""

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from imbiber.books import Book, filter_unowned_books
from imbiber.storage import KeyValueStorage

logger = logging.getLogger(__name__)

NOTIFICATIONS_KEY = "bookimbiber_notifications"
DEFAULT_RETENTION = 50


@dataclass
class ReleaseBatch:
    """Newly detected, unowned books of one author."""

    author: str
    books: list[Book]

    def to_dict(self) -> dict:
        return {"author": self.author, "books": [b.to_dict() for b in self.books]}


@dataclass
class NotificationRecord:
    """One "author has new releases" notification."""

    author: str
    books: list[Book]
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    read: bool = False

    @classmethod
    def create(cls, author: str, books: list[Book], prefix: Optional[str] = None) -> "NotificationRecord":
        """New unread record with an id unique to this creation event."""
        return cls(author=author, books=list(books), id=f"{prefix or author}-{uuid.uuid4().hex[:12]}")

    @property
    def fingerprints(self) -> list[str]:
        """Sorted, de-duplicated fingerprints of the listed books."""
        return sorted({book.fingerprint for book in self.books})

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "author": self.author,
            "books": [b.to_dict() for b in self.books],
            "ts": self.created_at,
            "read": self.read,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "NotificationRecord":
        return cls(
            id=str(data.get("id") or uuid.uuid4().hex),
            author=str(data.get("author") or ""),
            books=[Book.from_dict(b) for b in data.get("books") or [] if isinstance(b, dict)],
            created_at=str(data.get("ts") or data.get("created_at") or ""),
            read=bool(data.get("read", False)),
        )


def derive_new_releases(
    records: Iterable[NotificationRecord], owned_books: Iterable[Any]
) -> list[ReleaseBatch]:
    """Unread notifications minus books the user owns by now; empty ones dropped."""
    owned = list(owned_books)
    batches = []
    for record in records:
        if record.read:
            continue
        books = filter_unowned_books(record.books, owned)
        if books:
            batches.append(ReleaseBatch(author=record.author, books=books))
    return batches


class NotificationStore:
    """
    Notification history of one user.

    Writes go through a lock so two overlapping release checks cannot drop
    each other's notifications. The in-memory list is the last state that
    was successfully loaded or written.
    """

    def __init__(self, storage: KeyValueStorage, user_id: str, retention: int = DEFAULT_RETENTION):
        self.storage = storage
        self.user_id = user_id
        self.retention = retention
        self.key = f"{NOTIFICATIONS_KEY}:{user_id}"
        self._records: list[NotificationRecord] = []
        self._lock = asyncio.Lock()

    @property
    def records(self) -> list[NotificationRecord]:
        return list(self._records)

    async def _read(self) -> list[NotificationRecord]:
        raw = await self.storage.get_item(self.key)
        if not raw:
            return []
        data = json.loads(raw)
        if not isinstance(data, list):
            raise ValueError(f"notification history under {self.key} is not a list")
        return [NotificationRecord.from_dict(item) for item in data if isinstance(item, dict)]

    async def _write(self, records: list[NotificationRecord]) -> None:
        await self.storage.set_item(self.key, json.dumps([r.to_dict() for r in records]))
        self._records = records

    async def load(self) -> list[NotificationRecord]:
        """Reload history from storage; keeps the previous list on failure."""
        try:
            self._records = await self._read()
        except Exception as e:
            logger.warning(f"Failed to load notifications for user {self.user_id}: {e}")
        return self.records

    async def save_notification(self, record: NotificationRecord) -> bool:
        """
        Persist a notification unless it duplicates an earlier one.

        Returns:
            True if saved, False if duplicate or if storage failed.
        """
        new_keys = record.fingerprints
        async with self._lock:
            try:
                existing = await self._read()

                for other in existing:
                    if other.author == record.author and other.fingerprints == new_keys:
                        logger.debug(f"Duplicate notification for {record.author}, skipping")
                        return False

                await self._write([record, *existing][: self.retention])
            except Exception as e:
                logger.warning(f"Failed to save notification for {record.author}: {e}")
                return False

        logger.info(f"Saved notification {record.id} for {record.author} ({len(record.books)} books)")
        return True

    async def mark_notification_read(self, record_id: str) -> bool:
        """Flip a notification to read. Returns True only if it was unread."""
        async with self._lock:
            try:
                existing = await self._read()
                target = next((r for r in existing if r.id == record_id), None)
                if target is None or target.read:
                    return False
                target.read = True
                await self._write(existing)
                return True
            except Exception as e:
                logger.warning(f"Failed to mark notification {record_id} read: {e}")
                return False

    async def delete_notification(self, record_id: str) -> bool:
        """Remove a notification. Returns True if it existed."""
        async with self._lock:
            try:
                existing = await self._read()
                remaining = [r for r in existing if r.id != record_id]
                if len(remaining) == len(existing):
                    return False
                await self._write(remaining)
                return True
            except Exception as e:
                logger.warning(f"Failed to delete notification {record_id}: {e}")
                return False

    def unread_count(self) -> int:
        return sum(1 for r in self._records if not r.read)

    def new_releases(self, owned_books: Iterable[Any]) -> list[ReleaseBatch]:
        """Current new releases, computed from the in-memory history."""
        return derive_new_releases(self._records, owned_books)
