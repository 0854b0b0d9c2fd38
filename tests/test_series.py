"""Tests for series detection and grouping."""

from __future__ import annotations

import pytest

from conftest import FakeCatalog
from imbiber.books import Book
from imbiber.series import (
    HIGH,
    LOW,
    MEDIUM,
    clean_series_name,
    detect_series,
    find_more_books_in_series,
    group_books_by_series,
    is_roman_numeral,
    roman_to_number,
)


class TestRomanNumerals:
    @pytest.mark.parametrize(("roman", "number"), [("I", 1), ("iv", 4), ("IX", 9), ("XII", 12)])
    def test_roman_to_number(self, roman, number):
        assert roman_to_number(roman) == number

    def test_is_roman_numeral(self):
        assert is_roman_numeral("VII")
        assert not is_roman_numeral("VIM")


class TestCleanSeriesName:
    def test_strips_article_and_separator(self):
        assert clean_series_name("The Expanse -") == "Expanse"
        assert clean_series_name("A Song of Ice and Fire") == "Song of Ice and Fire"


class TestDetectSeries:
    """Tests for per-book detection."""

    @pytest.mark.parametrize(
        ("title", "series_name", "number", "confidence"),
        [
            ("The Expanse: Book 3", "Expanse", 3, HIGH),
            ("Mistborn: Book One", "Mistborn", 1, HIGH),
            ("Wheel of Time - Volume 7", "Wheel of Time", 7, HIGH),
            ("Dune - Part Two", "Dune", 2, HIGH),
            ("Discworld #12", "Discworld", 12, HIGH),
            ("Foundation 2", "Foundation", 2, MEDIUM),
            ("Rocky III", "Rocky", 3, MEDIUM),
            ("Mistborn: Era 2 Omnibus", "Mistborn", 2, LOW),
        ],
    )
    def test_title_patterns(self, title, series_name, number, confidence):
        info = detect_series(Book(title=title, author="Someone"))

        assert info is not None
        assert info.series_name == series_name
        assert info.book_number == number
        assert info.confidence == confidence
        assert info.author == "Someone"

    def test_standalone_title(self):
        assert detect_series(Book(title="Project Hail Mary", author="Andy Weir")) is None

    def test_sequel_title_without_marker(self):
        assert detect_series(Book(title="Dune Messiah", subtitle="", author="Frank Herbert")) is None

    def test_subtitle_marks_position(self):
        """Test detection from a subtitle like 'Book 1 of the Stormlight Archive'."""
        book = Book(title="The Way of Kings", subtitle="Book 1 of the Stormlight Archive")

        info = detect_series(book)

        assert info.series_name == "Stormlight Archive"
        assert info.book_number == 1
        assert info.confidence == MEDIUM
        assert info.detected_from == "subtitle"

    def test_missing_number_defaults_to_one(self):
        info = detect_series(Book(title="Galaxy Quest: A Space Opera Novel"))

        assert info.confidence == LOW
        assert info.book_number == 1


class TestGroupBooksBySeries:
    """Tests for library grouping."""

    def test_groups_and_sorts_by_number(self):
        books = [
            Book(title="The Expanse: Book 3", author="James S. A. Corey"),
            Book(title="Project Hail Mary", author="Andy Weir"),
            Book(title="The Expanse: Book 1", author="James S. A. Corey"),
            Book(title="the expanse: book 2", author="James S. A. Corey"),
        ]

        grouping = group_books_by_series(books)

        assert len(grouping.series) == 1
        group = grouping.series[0]
        assert group.series_name == "Expanse"
        assert [entry.book_number for entry in group.entries] == [1, 2, 3]
        assert [b.title for b in grouping.standalone] == ["Project Hail Mary"]

    def test_same_series_name_different_authors_are_separate(self):
        books = [
            Book(title="Legacy: Book 1", author="Author A"),
            Book(title="Legacy: Book 2", author="Author B"),
        ]

        assert len(group_books_by_series(books).series) == 2

    def test_low_confidence_counts_as_standalone(self):
        books = [Book(title="Mistborn: Era 2 Omnibus", author="Brandon Sanderson")]

        grouping = group_books_by_series(books)

        assert grouping.series == []
        assert len(grouping.standalone) == 1


class TestFindMoreBooksInSeries:
    """Tests for catalog lookups of other series volumes."""

    async def test_filters_and_orders_results(self):
        catalog = FakeCatalog(
            by_query=[
                Book(title="The Expanse: Book 5", author="James S. A. Corey"),
                Book(title="Unrelated Cookbook", author="James S. A. Corey"),
                Book(title="The Expanse: Book 2", author="James S. A. Corey"),
            ]
        )

        entries = await find_more_books_in_series(catalog, "Expanse", "James S. A. Corey")

        assert [entry.book_number for entry in entries] == [2, 5]
        assert catalog.query_calls == ['inauthor:"James S. A. Corey" intitle:"Expanse"']
