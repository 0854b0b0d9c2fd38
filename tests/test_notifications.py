"""Tests for per-user notification history."""

from __future__ import annotations

import asyncio
import json

from imbiber.books import Book
from imbiber.notifications import (
    NotificationRecord,
    NotificationStore,
    derive_new_releases,
)

DUNE = Book(title="Dune", author="Frank Herbert", published_date="2026", catalog_id="dune")
MESSIAH = Book(title="Dune Messiah", author="Frank Herbert", published_date="2026", catalog_id="messiah")
CHILDREN = Book(title="Children of Dune", author="Frank Herbert", published_date="2026", catalog_id="cod")


class TestNotificationRecord:
    """Tests for the record type."""

    def test_create_uses_prefix_and_unique_suffix(self):
        a = NotificationRecord.create("Frank Herbert", [DUNE], prefix="author123")
        b = NotificationRecord.create("Frank Herbert", [DUNE], prefix="author123")

        assert a.id.startswith("author123-")
        assert a.id != b.id
        assert a.read is False

    def test_fingerprints_are_sorted_and_unique(self):
        record = NotificationRecord.create("Frank Herbert", [MESSIAH, DUNE, DUNE])
        assert record.fingerprints == ["id:dune", "id:messiah"]

    def test_dict_round_trip(self):
        record = NotificationRecord.create("Frank Herbert", [DUNE])
        data = record.to_dict()

        assert set(data) == {"id", "author", "books", "ts", "read"}
        assert NotificationRecord.from_dict(data) == record


class TestSaveNotification:
    """Tests for persisting and deduplicating notifications."""

    async def test_saved_newest_first(self, memory_storage):
        store = NotificationStore(memory_storage, "u1")

        assert await store.save_notification(NotificationRecord.create("A", [DUNE]))
        assert await store.save_notification(NotificationRecord.create("B", [MESSIAH]))

        records = await store.load()
        assert [r.author for r in records] == ["B", "A"]
        assert "bookimbiber_notifications:u1" in memory_storage.data

    async def test_same_author_same_books_is_duplicate(self, memory_storage):
        """Test that book order does not matter for the duplicate check."""
        store = NotificationStore(memory_storage, "u1")
        await store.save_notification(NotificationRecord.create("Frank Herbert", [DUNE, MESSIAH]))

        saved = await store.save_notification(NotificationRecord.create("Frank Herbert", [MESSIAH, DUNE]))

        assert saved is False
        assert len(await store.load()) == 1

    async def test_duplicate_even_after_read(self, memory_storage):
        store = NotificationStore(memory_storage, "u1")
        first = NotificationRecord.create("Frank Herbert", [DUNE])
        await store.save_notification(first)
        await store.mark_notification_read(first.id)

        assert not await store.save_notification(NotificationRecord.create("Frank Herbert", [DUNE]))

    async def test_other_author_or_other_books_are_new(self, memory_storage):
        store = NotificationStore(memory_storage, "u1")
        await store.save_notification(NotificationRecord.create("Frank Herbert", [DUNE]))

        assert await store.save_notification(NotificationRecord.create("Brian Herbert", [DUNE]))
        assert await store.save_notification(NotificationRecord.create("Frank Herbert", [DUNE, MESSIAH]))

    async def test_retention_drops_oldest(self, memory_storage):
        store = NotificationStore(memory_storage, "u1", retention=3)
        for i in range(5):
            book = Book(title=f"Book {i}", catalog_id=f"b{i}")
            await store.save_notification(NotificationRecord.create(f"Author {i}", [book]))

        records = await store.load()
        assert [r.author for r in records] == ["Author 4", "Author 3", "Author 2"]

    async def test_concurrent_saves_are_not_lost(self, memory_storage):
        """Test that overlapping writers each append their record."""
        store = NotificationStore(memory_storage, "u1")
        records = [
            NotificationRecord.create(f"Author {i}", [Book(title=f"T{i}", catalog_id=f"id{i}")])
            for i in range(10)
        ]

        results = await asyncio.gather(*(store.save_notification(r) for r in records))

        assert all(results)
        assert len(await store.load()) == 10

    async def test_storage_failure_returns_false(self, memory_storage):
        store = NotificationStore(memory_storage, "u1")
        memory_storage.fail = True

        assert await store.save_notification(NotificationRecord.create("A", [DUNE])) is False
        assert store.records == []

    async def test_users_are_isolated(self, memory_storage):
        await NotificationStore(memory_storage, "u1").save_notification(
            NotificationRecord.create("A", [DUNE])
        )

        assert await NotificationStore(memory_storage, "u2").load() == []


class TestReadAndDelete:
    """Tests for marking and removing notifications."""

    async def test_mark_read_reports_change_once(self, memory_storage):
        store = NotificationStore(memory_storage, "u1")
        record = NotificationRecord.create("A", [DUNE])
        await store.save_notification(record)

        assert await store.mark_notification_read(record.id) is True
        assert await store.mark_notification_read(record.id) is False
        assert store.unread_count() == 0

    async def test_mark_unknown_id(self, memory_storage):
        store = NotificationStore(memory_storage, "u1")
        assert await store.mark_notification_read("nope") is False

    async def test_delete(self, memory_storage):
        store = NotificationStore(memory_storage, "u1")
        record = NotificationRecord.create("A", [DUNE])
        await store.save_notification(record)

        assert await store.delete_notification(record.id) is True
        assert await store.delete_notification(record.id) is False
        assert await store.load() == []


class TestLoad:
    """Tests for reading history."""

    async def test_corrupt_history_keeps_last_known_good(self, memory_storage):
        store = NotificationStore(memory_storage, "u1")
        await store.save_notification(NotificationRecord.create("A", [DUNE]))

        memory_storage.data[store.key] = "{broken"
        records = await store.load()

        assert [r.author for r in records] == ["A"]

    async def test_reads_stored_documents(self, memory_storage):
        memory_storage.data["bookimbiber_notifications:u1"] = json.dumps(
            [
                {
                    "id": "x-1",
                    "author": "Frank Herbert",
                    "books": [{"title": "Dune", "googleBooksId": "dune"}],
                    "ts": "2026-06-01T00:00:00+00:00",
                    "read": False,
                }
            ]
        )

        records = await NotificationStore(memory_storage, "u1").load()

        assert records[0].books[0].fingerprint == "id:dune"


class TestNewReleases:
    """Tests for the derived new-release view."""

    def test_drops_read_owned_and_empty(self):
        unread = NotificationRecord.create("Frank Herbert", [DUNE, MESSIAH])
        read = NotificationRecord.create("Frank Herbert", [CHILDREN])
        read.read = True
        all_owned = NotificationRecord.create("Brian Herbert", [CHILDREN])

        batches = derive_new_releases([unread, read, all_owned], owned_books=[MESSIAH, CHILDREN])

        assert len(batches) == 1
        assert batches[0].author == "Frank Herbert"
        assert [b.title for b in batches[0].books] == ["Dune"]

    async def test_store_view_follows_library(self, memory_storage):
        store = NotificationStore(memory_storage, "u1")
        await store.save_notification(NotificationRecord.create("Frank Herbert", [DUNE]))

        assert len(store.new_releases([])) == 1
        assert store.new_releases([{"googleBooksId": "dune"}]) == []
