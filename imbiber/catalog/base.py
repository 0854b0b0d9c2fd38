"""
Base class and common data structures for book catalogs.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

from imbiber.books import Book


@dataclass
class SearchError:
    """Why an upstream call produced no usable answer."""

    kind: str  # 'http_status', 'network', 'decode'
    message: str
    status_code: Optional[int] = None


@dataclass
class SearchOutcome:
    """
    Result of one catalog request.

    ``ok`` separates a confirmed empty answer from a failed call; the public
    search methods collapse both to "no results".
    """

    books: list[Book] = field(default_factory=list)
    error: Optional[SearchError] = None
    from_cache: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failed(cls, kind: str, message: str, status_code: Optional[int] = None) -> "SearchOutcome":
        return cls(error=SearchError(kind=kind, message=message, status_code=status_code))


class BaseCatalog(ABC):
    """
    Abstract base class for book catalogs.
    The release checker only depends on this interface.
    """

    @abstractmethod
    async def search_by_query(
        self, query: str, max_results: int = 10, locale: Optional[str] = None
    ) -> list[Book]:
        """Free-text search."""
        pass

    @abstractmethod
    async def search_by_author(self, author_name: str, max_results: int = 10) -> list[Book]:
        """Books by one author, newest first."""
        pass

    async def search_author_outcome(self, author_name: str, max_results: int = 10) -> SearchOutcome:
        """Author search that reports a failed call instead of an empty list."""
        return SearchOutcome(books=await self.search_by_author(author_name, max_results))

    @abstractmethod
    async def search_by_identifier(self, identifier: str) -> Optional[Book]:
        """Exact lookup by ISBN."""
        pass
