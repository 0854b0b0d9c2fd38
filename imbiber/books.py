"""
Book record and fingerprinting.

A book coming from the catalog and a book typed in by hand are the same
logical book when their fingerprints match. The fingerprint prefers the
catalog volume id and falls back to normalized title, author and year.
"""

import re
import unicodedata
from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any, Iterable, Optional

from dateutil import parser as date_parser

_NON_ALNUM = re.compile(r"[^a-z0-9]", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")
_LEADING_YEAR = re.compile(r"^\s*(\d{4})")

# camelCase keys used by the mobile client and stored documents
_ALIASES = {
    "googleBooksId": "catalog_id",
    "google_books_id": "catalog_id",
    "publishedDate": "published_date",
    "pageCount": "page_count",
    "coverImage": "cover_image",
    "averageRating": "average_rating",
    "ratingsCount": "ratings_count",
    "previewLink": "preview_link",
    "infoLink": "info_link",
    "maturityRating": "maturity_rating",
}


def normalize(value: Any) -> str:
    """
    Canonical form used inside fingerprints.

    Decomposes Unicode, drops diacritics, turns every non-alphanumeric
    character into a space, collapses whitespace and lowercases. Accepts
    anything (None becomes "").
    """
    if value is None:
        return ""
    text = unicodedata.normalize("NFKD", str(value))
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = _NON_ALNUM.sub(" ", text)
    return _WHITESPACE.sub(" ", text).strip().lower()


def year_of(published_date: Optional[str]) -> str:
    """Four-digit publication year of a partial ISO date, or ""."""
    if not published_date:
        return ""
    match = _LEADING_YEAR.match(str(published_date))
    if match:
        return match.group(1)
    try:
        # Free-form dates such as "March 2021" from hand-entered books
        parsed = date_parser.parse(str(published_date), default=datetime(1, 1, 1))
    except (ValueError, OverflowError):
        return ""
    return f"{parsed.year:04d}" if parsed.year > 1 else ""


@dataclass
class Book:
    """Standardized book record from the catalog or from a user's library."""

    title: str = ""
    author: str = ""
    published_date: str = ""
    catalog_id: Optional[str] = None
    subtitle: str = ""
    description: str = ""
    publisher: str = ""
    page_count: int = 0
    categories: str = ""
    language: str = ""
    isbn10: Optional[str] = None
    isbn13: Optional[str] = None
    thumbnail: Optional[str] = None
    cover_image: Optional[str] = None
    average_rating: float = 0.0
    ratings_count: int = 0
    preview_link: Optional[str] = None
    info_link: Optional[str] = None
    maturity_rating: str = "NOT_MATURE"
    extra: dict = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_dict(cls, data: dict) -> "Book":
        """
        Build a Book from a loosely shaped dict.

        Unknown keys are kept in ``extra``; None values fall back to the
        field defaults so every attribute has its declared type.
        """
        known = {f.name for f in fields(cls)} - {"extra"}
        values: dict[str, Any] = {}
        extra: dict[str, Any] = {}

        for key, value in (data or {}).items():
            if key == "fingerprint":
                continue
            name = _ALIASES.get(key, key)
            if name in known:
                if value is not None:
                    values[name] = value
            else:
                extra[key] = value

        for name in ("title", "author", "published_date", "subtitle", "description",
                     "publisher", "categories", "language"):
            if name in values:
                values[name] = str(values[name])
        if values.get("catalog_id") == "":
            values.pop("catalog_id")
        for name, cast in (("page_count", int), ("ratings_count", int), ("average_rating", float)):
            if name in values:
                try:
                    values[name] = cast(values[name])
                except (TypeError, ValueError):
                    values.pop(name)

        return cls(**values, extra=extra)

    def to_dict(self) -> dict:
        """Convert book to dictionary for serialization."""
        data = {f.name: getattr(self, f.name) for f in fields(self) if f.name != "extra"}
        data["fingerprint"] = self.fingerprint
        return data

    @property
    def published_year(self) -> str:
        return year_of(self.published_date)

    @property
    def fallback_fingerprint(self) -> str:
        """Title/author/year identity, ignoring any catalog id."""
        return (
            f"title:{normalize(self.title)}"
            f"|author:{normalize(self.author)}"
            f"|year:{self.published_year}"
        )

    @property
    def fingerprint(self) -> str:
        """
        Stable identity for ownership checks and notification dedup.
        Priority: catalog id > (title + author + year)
        """
        if self.catalog_id:
            return f"id:{self.catalog_id}"
        return self.fallback_fingerprint


def as_book(value: Any) -> Book:
    """Accept a Book or a dict-shaped record."""
    if isinstance(value, Book):
        return value
    return Book.from_dict(value)


def fingerprint(book: Any) -> str:
    return as_book(book).fingerprint


def is_same_book(a: Any, b: Any) -> bool:
    """
    True when both records describe the same book.

    Besides a direct fingerprint match, when exactly one side carries a
    catalog id its title/author/year identity is compared with the other
    side, so a hand-entered copy matches the catalog volume.
    """
    a, b = as_book(a), as_book(b)
    if a.fingerprint == b.fingerprint:
        return True
    if a.catalog_id and not b.catalog_id:
        return a.fallback_fingerprint == b.fingerprint
    if b.catalog_id and not a.catalog_id:
        return b.fallback_fingerprint == a.fingerprint
    return False


def is_book_owned(book: Any, owned: Iterable[Any]) -> bool:
    """
    True when the library holds this book.

    Catalogs hand out several volume ids for one edition, so two records
    that both carry ids still count as owned when title, author and year
    agree.
    """
    book = as_book(book)
    for owned_book in owned:
        owned_book = as_book(owned_book)
        if is_same_book(book, owned_book):
            return True
        if book.catalog_id and owned_book.catalog_id and normalize(book.title):
            if book.fallback_fingerprint == owned_book.fallback_fingerprint:
                return True
    return False


def filter_unowned_books(candidates: Iterable[Any], owned: Iterable[Any]) -> list[Book]:
    """Drop candidates already in the user's library, keeping order."""
    owned_books = [as_book(b) for b in owned]
    return [
        book
        for book in (as_book(c) for c in candidates)
        if not is_book_owned(book, owned_books)
    ]
