"""
Search listing parser.

Turns the text file a search bot sends back into ListingEntry objects.
Expected line shape:

    !BotName [HASH | | %HASH%] filename ::INFO:: size [::HASH:: digest]

Example:

    !Bsk Cube Kid - Diary of a Wimpy Villager - Book 02.epub  ::INFO:: 1001.7KB
"""

import logging
import re
from pathlib import Path

from errors import ListingDecodeError
from listing.filename import parse_filename
from listing.models import ListingEntry

logger = logging.getLogger(__name__)

INFO_MARKER = "::INFO::"
ENCODINGS = ("utf-8", "cp1252")

_BOT_COMMAND = re.compile(r"^(!\w+)\s+")
_PIPE_HASH = re.compile(r"^[a-f0-9]+\s*\|\s*")
_PERCENT_HASH = re.compile(r"^%[A-F0-9]+%\s+")


def decode_listing(content: bytes) -> str:
    """Decode listing bytes, trying the encodings bots commonly use."""
    for encoding in ENCODINGS:
        try:
            return content.decode(encoding)
        except UnicodeDecodeError:
            continue
    raise ListingDecodeError("Listing is not decodable as text")


def parse_line(line: str) -> ListingEntry | None:
    """Parse a single listing line. Returns None if the line does not fit."""
    line = line.strip()

    match = _BOT_COMMAND.match(line)
    if not match:
        return None

    info_index = line.find(INFO_MARKER)
    if info_index == -1:
        return None

    # Size runs up to the next "::" marker (e.g. ::HASH::)
    size = line[info_index + len(INFO_MARKER):].split("::", 1)[0].strip()

    advertised = line[:info_index].strip()
    filename = advertised[match.end():].strip()
    filename = _PIPE_HASH.sub("", filename)
    filename = _PERCENT_HASH.sub("", filename).strip()

    if not filename or not size:
        return None

    parsed = parse_filename(filename)
    return ListingEntry(
        bot_command=match.group(1),
        filename=filename,
        size=size,
        raw_command=advertised,
        title=parsed.title,
        author=parsed.author,
        file_type=parsed.file_type,
    )


def parse_listing(content: str | bytes) -> list[ListingEntry]:
    """Parse listing text into entries, preserving file order.

    Lines that don't match are skipped; only undecodable input raises.
    """
    if isinstance(content, bytes):
        content = decode_listing(content)

    entries: list[ListingEntry] = []
    skipped = 0
    for line in content.splitlines():
        if not line.strip():
            continue
        try:
            entry = parse_line(line)
        except Exception as e:
            logger.debug(f"Skipping listing line after parse error: {e}")
            entry = None
        if entry is None:
            skipped += 1
            continue
        entries.append(entry.model_copy(update={"book_number": len(entries) + 1}))

    logger.info(f"Parsed {len(entries)} listing entries ({skipped} lines skipped)")
    return entries


def parse_listing_file(path: str | Path) -> list[ListingEntry]:
    return parse_listing(Path(path).read_bytes())


def has_results(path: str | Path) -> bool:
    """Check whether a listing file contains any usable entries."""
    try:
        return len(parse_listing_file(path)) > 0
    except (OSError, ListingDecodeError):
        return False
