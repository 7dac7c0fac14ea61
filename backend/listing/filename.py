"""
Title/author/file-type heuristics for bot-advertised filenames.

Common shapes:
  Author - Title
  Title - Subtitle - Author
  Title - LastName, FirstName
  Author - [Series 03] - Title
  Title by Author
"""

import re
from typing import NamedTuple

from config import EBOOK_TYPES

_EXTENSION = re.compile(r"\.([a-z0-9]+)$", re.IGNORECASE)
_PARENTHESISED = re.compile(r"\(([^)]+)\)")
_BY_AUTHOR = re.compile(r"^(.+?)\s+by\s+(.+)$", re.IGNORECASE)
_COMMA_AUTHOR = re.compile(r"^[A-Z][a-z]+,\s*[A-Z]")
_STRONG_AUTHOR = re.compile(r"^[A-Z][a-z]+,\s*[A-Z]|^[A-Z]\.[A-Z]\.")
_INITIALS_AUTHOR = re.compile(r"^[A-Z]\s+[A-Z]\s+[A-Z]|^[A-Z][a-z]+,\s*[A-Z]")
_SINGLE_NAME = re.compile(r"^[A-Z][a-z]+$")
_STARTS_WITH_THE = re.compile(r"^the\s+", re.IGNORECASE)
_TITLE_NOISE = re.compile(
    r"\s*\((?:retail|azw3|epub|mobi|pdf|kf8 mobi|lrf|illustrated)\)\s*",
    re.IGNORECASE,
)


class ParsedFilename(NamedTuple):
    title: str
    author: str
    file_type: str


def parse_filename(filename: str) -> ParsedFilename:
    """Best-effort split of a filename into title, author and type."""
    if not filename or not filename.strip():
        return ParsedFilename("", "", "unknown")

    file_type, clean_name = _extract_file_type(filename)
    author, title = _extract_author_and_title(clean_name)
    return ParsedFilename(clean_title(title), normalize_author(author), file_type)


def _extract_file_type(filename: str) -> tuple[str, str]:
    match = _EXTENSION.search(filename)
    if match and match.group(1).lower() in EBOOK_TYPES:
        return match.group(1).lower(), filename[: match.start()]

    # Some bots put the format in parentheses: "Title (epub)"
    for paren in _PARENTHESISED.finditer(filename):
        content = paren.group(1).strip().lower()
        if content in EBOOK_TYPES:
            return content, filename

    return "unknown", filename


def looks_like_author(text: str) -> bool:
    """Check if a string looks like a person's name."""
    if _COMMA_AUTHOR.match(text):
        return True

    # Single-name authors ("Madonna")
    if _SINGLE_NAME.match(text) and len(text) >= 4:
        return True

    words = text.split()
    if 2 <= len(words) <= 4:
        all_capitalised = all(w[:1].isupper() for w in words)
        no_numbers = not any(c.isdigit() for c in text)
        if all_capitalised and no_numbers and len(text) <= 40:
            return True

    return False


def _extract_author_and_title(name: str) -> tuple[str, str]:
    """Returns (author, title)."""
    if " - " not in name:
        by_match = _BY_AUTHOR.match(name)
        if by_match:
            return by_match.group(2).strip(), by_match.group(1).strip()
        return "", name

    parts = [p.strip() for p in name.split(" - ")]

    if len(parts) == 2:
        first, second = parts
        first_is_author = looks_like_author(first)
        second_is_author = looks_like_author(second)

        if _STRONG_AUTHOR.match(second):
            return second, first
        if _STRONG_AUTHOR.match(first) or (first_is_author and _STARTS_WITH_THE.match(second)):
            return first, second
        if first_is_author and second_is_author:
            # The shorter half is usually the name
            if len(first) <= len(second):
                return first, second
            return second, first
        if second_is_author:
            return second, first
        return first, second

    last = parts[-1]
    middle = parts[1]

    if _INITIALS_AUTHOR.match(last) or looks_like_author(last):
        return last, " - ".join(parts[:-1])

    if _INITIALS_AUTHOR.match(middle):
        return middle, " - ".join([parts[0]] + parts[2:])

    return parts[0], " - ".join(parts[1:])


def normalize_author(author: str) -> str:
    """'LastName, FirstName' -> 'FirstName LastName'."""
    if not author:
        return ""
    if "," in author:
        last, first = author.split(",", 1)
        if last.strip() and first.strip():
            return f"{first.strip()} {last.strip()}"
    return author.strip()


def clean_title(title: str) -> str:
    if not title:
        return ""
    cleaned = _TITLE_NOISE.sub(" ", title.strip())
    return " ".join(cleaned.split())
