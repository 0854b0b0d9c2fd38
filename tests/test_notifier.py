"""Tests for Bark push dispatch and the unread badge."""

from __future__ import annotations

import json

import httpx

from imbiber.books import Book
from imbiber.config import RuntimeConfig
from imbiber.notifier import BadgeCounter, BarkNotifier


def bark_config(**overrides) -> RuntimeConfig:
    values = {"bark_enabled": True, "bark_device_key": "device123", "bark_server_url": "https://bark.test/"}
    values.update(overrides)
    return RuntimeConfig(**values)


class BarkApi:
    def __init__(self, response: httpx.Response):
        self.response = response
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.response


class TestBarkPermissions:
    """Tests for the permission gate."""

    def test_enabled_with_device_key(self):
        assert BarkNotifier(bark_config()).ensure_permissions()

    def test_disabled(self):
        assert not BarkNotifier(bark_config(bark_enabled=False)).ensure_permissions()

    def test_missing_device_key(self):
        assert not BarkNotifier(bark_config(bark_device_key=None)).ensure_permissions()

    async def test_no_request_without_permission(self):
        api = BarkApi(httpx.Response(200, json={"code": 200}))
        notifier = BarkNotifier(bark_config(bark_enabled=False), transport=httpx.MockTransport(api))

        assert await notifier.send("title", "body") is False
        assert api.requests == []


class TestBarkSend:
    """Tests for sending pushes."""

    async def test_posts_payload_to_device_endpoint(self):
        api = BarkApi(httpx.Response(200, json={"code": 200, "message": "success"}))
        notifier = BarkNotifier(bark_config(), transport=httpx.MockTransport(api))

        assert await notifier.send("Hello", "World", url="https://x.test", group="g")

        request = api.requests[0]
        assert str(request.url) == "https://bark.test/device123"
        assert json.loads(request.content) == {
            "title": "Hello",
            "body": "World",
            "group": "g",
            "url": "https://x.test",
        }

    async def test_api_error_code_is_failure(self):
        api = BarkApi(httpx.Response(200, json={"code": 400, "message": "bad key"}))
        notifier = BarkNotifier(bark_config(), transport=httpx.MockTransport(api))

        assert await notifier.send("t", "b") is False

    async def test_http_error_is_failure(self):
        api = BarkApi(httpx.Response(500, text="oops"))
        notifier = BarkNotifier(bark_config(), transport=httpx.MockTransport(api))

        assert await notifier.send("t", "b") is False

    async def test_notify_release_lists_up_to_three_titles(self):
        api = BarkApi(httpx.Response(200, json={"code": 200}))
        notifier = BarkNotifier(bark_config(), transport=httpx.MockTransport(api))
        books = [Book(title=f"Book {i}", info_link=f"https://books.test/{i}") for i in range(4)]

        assert await notifier.notify_release("Ursula K. Le Guin", books)

        payload = json.loads(api.requests[0].content)
        assert payload["title"] == "Ursula K. Le Guin has new releases"
        assert payload["body"] == "Book 0, Book 1, Book 2"
        assert payload["url"] == "https://books.test/0"


class TestBadgeCounter:
    """Tests for the per-user unread counter."""

    async def test_increment_and_decrement(self, memory_storage):
        badge = BadgeCounter(memory_storage)
        await badge.increment("u1")
        await badge.increment("u1")
        await badge.decrement("u1")

        assert await badge.get("u1") == 1
        assert await badge.get("u2") == 0

    async def test_decrement_floors_at_zero(self, memory_storage):
        badge = BadgeCounter(memory_storage)
        await badge.decrement("u1")

        assert await badge.get("u1") == 0

    async def test_clear(self, memory_storage):
        badge = BadgeCounter(memory_storage)
        await badge.increment("u1")
        await badge.clear("u1")

        assert await badge.get("u1") == 0

    async def test_storage_failure_reads_zero(self, memory_storage):
        badge = BadgeCounter(memory_storage)
        memory_storage.fail = True

        await badge.increment("u1")
        assert await badge.get("u1") == 0
