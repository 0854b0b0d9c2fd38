"""
Google Books API catalog implementation.
https://developers.google.com/books/docs/v1/reference/volumes/list
"""

import asyncio
import logging
import math
import re
from dataclasses import dataclass
from typing import Optional

import httpx

from imbiber.books import Book
from imbiber.cache import DAY_MS, HOUR_MS, ApiCache
from imbiber.catalog.base import BaseCatalog, SearchOutcome
from imbiber.config import RuntimeConfig, get_runtime_config
from imbiber.exceptions import InvalidIdentifierError, InvalidQueryError

logger = logging.getLogger(__name__)

# Upper bound accepted by the volumes endpoint
MAX_RESULTS_LIMIT = 40

_ISBN_SEPARATORS = re.compile(r"[-\s]")
_ISBN_DIGITS = re.compile(r"^\d{10}$|^\d{13}$")


@dataclass
class IsbnValidation:
    is_valid: bool
    clean: str
    formatted: str


def clean_isbn(raw: Optional[str]) -> str:
    return _ISBN_SEPARATORS.sub("", raw or "")


def validate_isbn(raw: Optional[str]) -> IsbnValidation:
    """Strip separators, check for 10 or 13 digits and hyphenate for display."""
    clean = clean_isbn(raw)
    is_valid = bool(_ISBN_DIGITS.match(clean))

    formatted = clean
    if is_valid and len(clean) == 10:
        formatted = f"{clean[0]}-{clean[1:4]}-{clean[4:9]}-{clean[9]}"
    elif is_valid:
        formatted = f"{clean[:3]}-{clean[3]}-{clean[4:7]}-{clean[7:12]}-{clean[12]}"

    return IsbnValidation(is_valid=is_valid, clean=clean, formatted=formatted)


def high_quality_cover(thumbnail: Optional[str]) -> Optional[str]:
    """Ask Google for the full-size rendition of a thumbnail URL."""
    if not thumbnail:
        return None
    return thumbnail.replace("zoom=1", "zoom=0")


def _get_isbn(identifiers, kind: str) -> Optional[str]:
    if not isinstance(identifiers, list):
        return None
    for identifier in identifiers:
        if isinstance(identifier, dict) and identifier.get("type") == kind:
            return identifier.get("identifier")
    return None


def parse_volume(item: dict, language: str = "") -> Book:
    """Map a raw volumes item into a Book, filling documented defaults."""
    info = item.get("volumeInfo") or {}
    images = info.get("imageLinks") or {}

    authors = info.get("authors")
    author = ", ".join(authors) if isinstance(authors, list) and authors else "Unknown"

    categories = info.get("categories")
    categories = ", ".join(categories) if isinstance(categories, list) else ""

    return Book(
        catalog_id=item.get("id") or None,
        title=info.get("title") or "Unknown Title",
        author=author,
        subtitle=info.get("subtitle") or "",
        description=info.get("description") or "",
        published_date=info.get("publishedDate") or "",
        publisher=info.get("publisher") or "",
        page_count=info.get("pageCount") or 0,
        categories=categories,
        language=info.get("language") or language,
        isbn10=_get_isbn(info.get("industryIdentifiers"), "ISBN_10"),
        isbn13=_get_isbn(info.get("industryIdentifiers"), "ISBN_13"),
        thumbnail=images.get("thumbnail") or images.get("smallThumbnail"),
        cover_image=images.get("large") or images.get("medium") or high_quality_cover(images.get("thumbnail")),
        average_rating=info.get("averageRating") or 0,
        ratings_count=info.get("ratingsCount") or 0,
        preview_link=info.get("previewLink"),
        info_link=info.get("infoLink"),
        maturity_rating=info.get("maturityRating") or "NOT_MATURE",
    )


def merge_unique(*book_lists: list[Book]) -> list[Book]:
    """Concatenate lists, keeping the first book of each fingerprint."""
    seen: set[str] = set()
    merged = []
    for books in book_lists:
        for book in books:
            if book.fingerprint in seen:
                continue
            seen.add(book.fingerprint)
            merged.append(book)
    return merged


class GoogleBooksClient(BaseCatalog):
    """Cache-backed Google Books search client."""

    def __init__(
        self,
        cache: ApiCache,
        config: Optional[RuntimeConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.cache = cache
        self._config = config
        self._transport = transport

    @property
    def config(self) -> RuntimeConfig:
        return self._config or get_runtime_config()

    async def search_by_query(
        self, query: str, max_results: int = 10, locale: Optional[str] = None
    ) -> list[Book]:
        """
        Free-text search, optionally mixing in the user's language.

        With a non-default locale the result budget is split between a
        locale-restricted and a default-language query run concurrently;
        locale hits come first and duplicates are dropped.

        Raises:
            InvalidQueryError: If the query is empty.
        """
        if not query or not query.strip():
            raise InvalidQueryError("Search query must not be empty")
        query = query.strip()

        default_language = self.config.default_language
        if locale and locale != default_language:
            per_language = math.ceil(max_results / 2)
            local, default = await asyncio.gather(
                self._search_language(query, per_language, locale),
                self._search_language(query, per_language, default_language),
            )
            books = merge_unique(local.books, default.books)
        else:
            outcome = await self._search_language(query, max_results, default_language)
            books = merge_unique(outcome.books)

        return books[:max_results]

    async def search_author_outcome(self, author_name: str, max_results: int = 10) -> SearchOutcome:
        """Author search that reports failures instead of hiding them."""
        if not author_name or not author_name.strip():
            raise InvalidQueryError("Author name must not be empty")
        name = author_name.strip()

        return await self._cached_search(
            cache_key=f"author:{name.lower()}:{max_results}",
            params={
                "q": f'inauthor:"{name}"',
                "maxResults": min(max_results, MAX_RESULTS_LIMIT),
                "orderBy": "newest",
            },
            ttl_ms=self.config.author_cache_ttl_hours * HOUR_MS,
        )

    async def search_by_author(self, author_name: str, max_results: int = 10) -> list[Book]:
        """Books by one author as returned by the API (newest first)."""
        outcome = await self.search_author_outcome(author_name, max_results)
        return outcome.books

    async def search_by_identifier(self, identifier: str) -> Optional[Book]:
        """
        Look up a single book by ISBN-10 or ISBN-13.

        Raises:
            InvalidIdentifierError: If the identifier is not 10 or 13 digits.
        """
        validation = validate_isbn(identifier)
        if not validation.is_valid:
            raise InvalidIdentifierError(identifier)

        outcome = await self._cached_search(
            cache_key=f"isbn:{validation.clean}",
            params={"q": f"isbn:{validation.clean}", "maxResults": 1},
            ttl_ms=self.config.identifier_cache_ttl_days * DAY_MS,
        )
        return outcome.books[0] if outcome.books else None

    async def _search_language(self, query: str, max_results: int, language: str) -> SearchOutcome:
        return await self._cached_search(
            cache_key=f"query:{language}:{max_results}:{query.lower()}",
            params={
                "q": query,
                "maxResults": min(max_results, MAX_RESULTS_LIMIT),
                "langRestrict": language,
                "orderBy": "relevance",
            },
            ttl_ms=self.config.query_cache_ttl_hours * HOUR_MS,
            language=language,
        )

    async def _cached_search(
        self, cache_key: str, params: dict, ttl_ms: int, language: str = ""
    ) -> SearchOutcome:
        """Serve from cache or fetch, caching confirmed (possibly empty) answers."""
        cached = await self.cache.get(cache_key)
        if isinstance(cached, list):
            return SearchOutcome(
                books=[Book.from_dict(b) for b in cached if isinstance(b, dict)],
                from_cache=True,
            )

        outcome = await self._fetch_volumes(params, language)
        if outcome.ok:
            await self.cache.set(cache_key, [b.to_dict() for b in outcome.books], ttl_ms)
        return outcome

    async def _fetch_volumes(self, params: dict, language: str = "") -> SearchOutcome:
        """Call the volumes endpoint. Never raises for upstream trouble."""
        config = self.config
        if config.google_books_api_key:
            params = {**params, "key": config.google_books_api_key}

        headers = {
            "User-Agent": config.user_agent,
            "Accept": "application/json",
        }

        logger.info(f"Searching Google Books: q={params.get('q')!r} lang={params.get('langRestrict', '-')}")
        try:
            async with httpx.AsyncClient(
                timeout=config.request_timeout, transport=self._transport
            ) as client:
                response = await client.get(config.google_books_api_url, params=params, headers=headers)
        except httpx.RequestError as e:
            logger.error(f"Request error searching Google Books for {params.get('q')!r}: {e}")
            return SearchOutcome.failed("network", str(e))

        if not response.is_success:
            logger.error(
                f"Google Books API error for {params.get('q')!r}: "
                f"{response.status_code} - {response.text[:200]}"
            )
            return SearchOutcome.failed(
                "http_status", f"HTTP {response.status_code}", status_code=response.status_code
            )

        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"Invalid JSON from Google Books for {params.get('q')!r}: {e}")
            return SearchOutcome.failed("decode", str(e))

        items = data.get("items") if isinstance(data, dict) else None
        if not items:
            logger.info(f"No books found for {params.get('q')!r}")
            return SearchOutcome()

        books = [parse_volume(item, language) for item in items if isinstance(item, dict)]
        logger.debug(f"Fetched {len(books)} books for {params.get('q')!r}")
        return SearchOutcome(books=books)
