"""Catalog clients for looking up book metadata."""

from imbiber.catalog.base import BaseCatalog, SearchError, SearchOutcome

__all__ = ["BaseCatalog", "SearchError", "SearchOutcome"]
