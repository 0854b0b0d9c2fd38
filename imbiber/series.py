"""
Series detection for grouping a library by series.

Patterns are tried in a fixed order and the first match wins, so the order
of ``TITLE_PATTERNS`` is part of the behaviour.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from imbiber.books import Book, as_book
from imbiber.catalog.base import BaseCatalog

logger = logging.getLogger(__name__)

HIGH = "high"
MEDIUM = "medium"
LOW = "low"

_WORD_NUMBERS = {
    "one": 1, "two": 2, "three": 3, "four": 4, "five": 5, "six": 6,
    "seven": 7, "eight": 8, "nine": 9, "ten": 10, "eleven": 11, "twelve": 12,
}
_NUMBER = r"(\d+|" + "|".join(_WORD_NUMBERS) + r")\b"
_SEP = r"\s*[:\-–]\s*"
_ROMAN_VALUES = {"I": 1, "V": 5, "X": 10}


@dataclass(frozen=True)
class SeriesPattern:
    regex: re.Pattern
    confidence: str
    name_group: int = 1
    number_group: Optional[int] = 2


TITLE_PATTERNS = [
    # Explicit series markers
    SeriesPattern(re.compile(rf"(.+?){_SEP}Book\s+{_NUMBER}", re.I), HIGH),
    SeriesPattern(re.compile(rf"(.+?){_SEP}Volume\s+{_NUMBER}", re.I), HIGH),
    SeriesPattern(re.compile(rf"(.+?){_SEP}Part\s+{_NUMBER}", re.I), HIGH),
    SeriesPattern(re.compile(r"(.+?)\s+#(\d+)", re.I), HIGH),
    # Numbered titles
    SeriesPattern(re.compile(r"(.+?)\s+(\d+)$", re.I), MEDIUM),
    SeriesPattern(re.compile(r"(.+?)\s+(\d+)[:\-–]", re.I), MEDIUM),
    SeriesPattern(re.compile(r"(.+?)\s+(I{1,3}|IV|V|VI{1,3}|IX|X)$", re.I), MEDIUM),
    # Subtitle-ish indicators
    SeriesPattern(re.compile(rf"(.+?){_SEP}(.+?)\s+(\d+)", re.I), LOW, number_group=3),
    SeriesPattern(re.compile(rf"(.+?){_SEP}(A .+ Novel|The .+ Series|.+ Saga)", re.I), LOW, number_group=None),
]

SUBTITLE_PATTERNS = [
    SeriesPattern(
        re.compile(r"(?:Book|Vol|Volume|Part)\s+(\d+)\s+(?:of|in)\s+(?:the\s+)?(.+)", re.I),
        MEDIUM, name_group=2, number_group=1,
    ),
    SeriesPattern(re.compile(r"(.+)\s+(?:Book|Vol|Volume|Part)\s+(\d+)", re.I), MEDIUM),
    SeriesPattern(re.compile(r"(?:A|An)\s+(.+)\s+Novel", re.I), MEDIUM, number_group=None),
]


@dataclass
class SeriesInfo:
    series_name: str
    book_number: int
    confidence: str
    author: str = ""
    detected_from: str = "title"


@dataclass
class SeriesEntry:
    book: Book
    book_number: int


@dataclass
class SeriesGroup:
    series_name: str
    author: str
    confidence: str
    entries: list[SeriesEntry] = field(default_factory=list)

    @property
    def books(self) -> list[Book]:
        return [entry.book for entry in self.entries]


@dataclass
class SeriesGrouping:
    series: list[SeriesGroup]
    standalone: list[Book]


def is_roman_numeral(value: str) -> bool:
    return bool(re.fullmatch(r"[IVX]+", value, re.I))


def roman_to_number(roman: str) -> int:
    result = 0
    prev_value = 0
    for ch in reversed(roman.upper()):
        value = _ROMAN_VALUES[ch]
        if value < prev_value:
            result -= value
        else:
            result += value
        prev_value = value
    return result


def _to_number(raw: Optional[str]) -> int:
    """Integer for a captured ordinal; 1 when nothing usable was captured."""
    if not raw:
        return 1
    raw = raw.strip()
    if raw.isdigit():
        return int(raw) or 1
    if raw.lower() in _WORD_NUMBERS:
        return _WORD_NUMBERS[raw.lower()]
    if is_roman_numeral(raw):
        return roman_to_number(raw)
    return 1


def clean_series_name(name: str) -> str:
    name = re.sub(r"\s*[:\-–]\s*$", "", name)
    name = re.sub(r"^(The|A|An)\s+", "", name, flags=re.I)
    return name.strip()


def _match(patterns: list[SeriesPattern], text: str, author: str, source: str) -> Optional[SeriesInfo]:
    for pattern in patterns:
        match = pattern.regex.search(text)
        if not match:
            continue
        number = match.group(pattern.number_group) if pattern.number_group else None
        return SeriesInfo(
            series_name=clean_series_name(match.group(pattern.name_group)),
            book_number=_to_number(number),
            confidence=pattern.confidence,
            author=author,
            detected_from=source,
        )
    return None


def detect_series(book: Any) -> Optional[SeriesInfo]:
    """Guess series name and position from title and subtitle, or None."""
    book = as_book(book)
    full_title = f"{book.title} {book.subtitle}".strip()

    info = _match(TITLE_PATTERNS, full_title, book.author, "title")
    if info is None and book.subtitle:
        info = _match(SUBTITLE_PATTERNS, book.subtitle, book.author, "subtitle")
    return info


def group_books_by_series(books: Iterable[Any]) -> SeriesGrouping:
    """
    Partition books into series groups and standalone books.

    Low-confidence detections count as standalone. Groups are keyed by
    author and series name (case-insensitive) and sorted by book number.
    """
    groups: dict[str, SeriesGroup] = {}
    standalone: list[Book] = []

    for book in (as_book(b) for b in books):
        info = detect_series(book)
        if info is None or info.confidence == LOW:
            standalone.append(book)
            continue

        key = f"{info.author}_{info.series_name}".lower()
        if key not in groups:
            groups[key] = SeriesGroup(
                series_name=info.series_name,
                author=info.author,
                confidence=info.confidence,
            )
        groups[key].entries.append(SeriesEntry(book=book, book_number=info.book_number))

    for group in groups.values():
        group.entries.sort(key=lambda entry: entry.book_number)

    return SeriesGrouping(series=list(groups.values()), standalone=standalone)


async def find_more_books_in_series(
    catalog: BaseCatalog, series_name: str, author: str, max_results: int = 20
) -> list[SeriesEntry]:
    """Search the catalog for other books of a series, ordered by position."""
    query = f'inauthor:"{author}" intitle:"{series_name}"'
    results = await catalog.search_by_query(query, max_results)

    wanted = series_name.lower()
    entries = []
    for book in results:
        info = detect_series(book)
        if info and wanted in info.series_name.lower():
            entries.append(SeriesEntry(book=book, book_number=info.book_number))

    entries.sort(key=lambda entry: entry.book_number)
    logger.debug(f"Found {len(entries)} books in series {series_name!r} by {author}")
    return entries
