"""
Book Imbiber exception hierarchy.

Exception Hierarchy:
    ImbiberError (base)
    ├── InvalidInputError - caller passed something unusable (also a ValueError)
    │   ├── InvalidQueryError - empty or blank search query
    │   └── InvalidIdentifierError - malformed ISBN
    ├── AlreadyFollowingError - duplicate follow request
    └── NotFoundError - referenced record does not exist

Upstream and storage failures are deliberately absent: the catalog client and
the stores log those and return an empty result instead of raising.
"""

from __future__ import annotations

from typing import Any


class ImbiberError(Exception):
    """Base exception for all Book Imbiber errors."""

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class InvalidInputError(ImbiberError, ValueError):
    """Caller input that can never succeed."""


class InvalidQueryError(InvalidInputError):
    """Search query is empty."""


class InvalidIdentifierError(InvalidInputError):
    """Identifier is not a 10 or 13 digit ISBN."""

    def __init__(self, identifier: str) -> None:
        super().__init__(
            "Invalid ISBN format. Must be 10 or 13 digits.",
            details={"identifier": identifier},
        )
        self.identifier = identifier


class AlreadyFollowingError(ImbiberError):
    """User already follows this author."""

    def __init__(self, author_name: str) -> None:
        super().__init__(
            "Already following this author",
            details={"author_name": author_name},
        )
        self.author_name = author_name


class NotFoundError(ImbiberError):
    """Record does not exist (or belongs to another user)."""
