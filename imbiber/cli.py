"""
Command-line utilities for Book Imbiber.
"""

import argparse
import asyncio
import json
import sys
from typing import Optional

from imbiber.config import StaticConfig
from imbiber.config_store import ensure_config
from imbiber.db import async_session, init_db
from imbiber.exceptions import InvalidInputError
from imbiber.logging_config import setup_logging
from imbiber.services import ServiceContext


async def _services() -> ServiceContext:
    StaticConfig.ensure_data_dir()
    await init_db()

    async with async_session() as session:
        await ensure_config(session)

    return ServiceContext.build(async_session)


async def _check(user_id: Optional[str], force: bool) -> dict:
    from imbiber.runner import run_check

    services = await _services()
    try:
        return await run_check(services, force_refresh=force, user_id=user_id)
    finally:
        services.close()


async def _search(query: str, max_results: int, locale: Optional[str]) -> list[dict]:
    services = await _services()
    try:
        books = await services.catalog.search_by_query(query, max_results=max_results, locale=locale)
        return [book.to_dict() for book in books]
    finally:
        services.close()


async def _isbn(isbn: str) -> Optional[dict]:
    services = await _services()
    try:
        book = await services.catalog.search_by_identifier(isbn)
        return book.to_dict() if book else None
    finally:
        services.close()


async def _clear_cache() -> int:
    services = await _services()
    try:
        return await services.cache.clear_all()
    finally:
        services.close()


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Book Imbiber CLI utilities")
    subparsers = parser.add_subparsers(dest="command", required=True)

    check_parser = subparsers.add_parser(
        "check",
        help="Run a release check now (all users unless --user is given)",
    )
    check_parser.add_argument("--user", help="Only check this user id")
    check_parser.add_argument(
        "--force",
        action="store_true",
        help="Ignore the per-user cooldown",
    )

    search_parser = subparsers.add_parser("search", help="Search the book catalog")
    search_parser.add_argument("query")
    search_parser.add_argument("--max", type=int, default=10, dest="max_results")
    search_parser.add_argument("--locale", help="Also search in this language (e.g. 'de')")

    isbn_parser = subparsers.add_parser("isbn", help="Look up a book by ISBN")
    isbn_parser.add_argument("isbn")

    subparsers.add_parser("clear-cache", help="Drop every cached catalog response")

    args = parser.parse_args(argv)
    setup_logging()

    try:
        if args.command == "check":
            result = asyncio.run(_check(args.user, args.force))
            _print_json(result)
            return 1 if result["errors"] else 0

        if args.command == "search":
            _print_json(asyncio.run(_search(args.query, args.max_results, args.locale)))
            return 0

        if args.command == "isbn":
            book = asyncio.run(_isbn(args.isbn))
            if book is None:
                print("No book found for this ISBN.", file=sys.stderr)
                return 1
            _print_json(book)
            return 0

        if args.command == "clear-cache":
            removed = asyncio.run(_clear_cache())
            print(f"Removed {removed} cache entries.")
            return 0

    except InvalidInputError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
