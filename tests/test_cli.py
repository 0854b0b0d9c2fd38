"""Tests for the command-line utilities."""

from __future__ import annotations

import httpx
import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker

from conftest import volume
from imbiber import cli
from imbiber.cache import ApiCache
from imbiber.catalog.google_books import GoogleBooksClient
from imbiber.services import ServiceContext


def handler(request: httpx.Request) -> httpx.Response:
    q = request.url.params["q"]
    if q.startswith("isbn:"):
        return httpx.Response(200, json={"totalItems": 0})
    return httpx.Response(200, json={"items": [volume("v1", "The Left Hand of Darkness", ["Ursula K. Le Guin"])]})


@pytest.fixture
def cli_services(monkeypatch, memory_storage, clock):
    """Services whose catalog and cache never touch the database."""
    services = ServiceContext.build(async_sessionmaker(), clock=clock)
    services.cache = ApiCache(memory_storage, clock=clock)
    services.catalog = GoogleBooksClient(services.cache, transport=httpx.MockTransport(handler))

    async def _services():
        return services

    monkeypatch.setattr(cli, "_services", _services)
    return services


class TestCli:
    """Tests for the argparse entry point."""

    def test_search_prints_books(self, cli_services, capsys):
        assert cli.main(["search", "left hand", "--max", "3"]) == 0

        assert '"title": "The Left Hand of Darkness"' in capsys.readouterr().out

    def test_blank_search_is_an_error(self, cli_services, capsys):
        assert cli.main(["search", "  "]) == 2
        assert "Error:" in capsys.readouterr().err

    def test_invalid_isbn(self, cli_services, capsys):
        assert cli.main(["isbn", "123"]) == 2
        assert "10 or 13 digits" in capsys.readouterr().err

    def test_unknown_isbn(self, cli_services, capsys):
        assert cli.main(["isbn", "0316769487"]) == 1
        assert "No book found" in capsys.readouterr().err

    def test_clear_cache(self, cli_services, capsys, memory_storage):
        cli.main(["search", "left hand"])
        capsys.readouterr()

        assert cli.main(["clear-cache"]) == 0
        assert "Removed 1 cache entries." in capsys.readouterr().out

    def test_command_is_required(self):
        with pytest.raises(SystemExit):
            cli.main([])
