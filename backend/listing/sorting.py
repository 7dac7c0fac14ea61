"""Ordering helpers for listing entries."""

import re
from enum import Enum

from listing.models import ListingEntry

_SIZE = re.compile(r"^([\d.]+)\s*([A-Z]+)$", re.IGNORECASE)
_UNITS = {"B": 1, "KB": 1024, "MB": 1024 ** 2, "GB": 1024 ** 3}


class SortOption(str, Enum):
    RELEVANCE = "relevance"
    TITLE = "title"
    AUTHOR = "author"
    SIZE = "size"
    TYPE = "type"


def size_to_bytes(size: str) -> float:
    """'1001.7KB' -> bytes. Unparseable sizes count as 0."""
    match = _SIZE.match(size.strip())
    if not match:
        return 0
    try:
        value = float(match.group(1))
    except ValueError:
        return 0
    return value * _UNITS.get(match.group(2).upper(), 0)


def sort_entries(
    entries: list[ListingEntry], by: SortOption = SortOption.RELEVANCE
) -> list[ListingEntry]:
    """Return a sorted copy. Relevance keeps the bot's order."""
    by = SortOption(by)
    if by == SortOption.TITLE:
        return sorted(entries, key=lambda e: e.title.lower())
    if by == SortOption.AUTHOR:
        # Entries without an author go last
        return sorted(entries, key=lambda e: (not e.author, e.author.lower()))
    if by == SortOption.SIZE:
        return sorted(entries, key=lambda e: size_to_bytes(e.size), reverse=True)
    if by == SortOption.TYPE:
        return sorted(entries, key=lambda e: e.file_type)
    return list(entries)
