"""Tests for listing parsing, filename heuristics and sorting."""

import pytest

from errors import ListingDecodeError
from listing.filename import looks_like_author, normalize_author, parse_filename
from listing.models import ListingEntry
from listing.parser import decode_listing, has_results, parse_line, parse_listing
from listing.sorting import SortOption, size_to_bytes, sort_entries

SAMPLE_LISTING = """\
Search results from SearchBot v3.00.07 by Ook
Searched 7 databases for: wimpy villager

!Bsk Cube Kid - Diary of a Wimpy Villager - Book 02.epub  ::INFO:: 1001.7KB
!Dumbledore a1b2c3d4 | Kinney, Jeff - Diary of a Wimpy Kid.mobi ::INFO:: 2.1MB ::HASH:: 0af3
!Horla %F00D% The Hobbit - J.R.R. Tolkien.pdf ::INFO:: 12MB
this line is not an entry
!Bsk Missing the info marker.epub
"""


# --- parse_line ---

def test_parse_line_basic_entry():
    entry = parse_line("!Bsk Cube Kid - Diary of a Wimpy Villager - Book 02.epub  ::INFO:: 1001.7KB")

    assert entry.bot_command == "!Bsk"
    assert entry.bot_name == "Bsk"
    assert entry.filename == "Cube Kid - Diary of a Wimpy Villager - Book 02.epub"
    assert entry.size == "1001.7KB"
    assert entry.file_type == "epub"


def test_parse_line_raw_command_is_advertised_text():
    line = "!Dumbledore a1b2c3d4 | Kinney, Jeff - Diary of a Wimpy Kid.mobi ::INFO:: 2.1MB"
    entry = parse_line(line)

    assert entry.raw_command == "!Dumbledore a1b2c3d4 | Kinney, Jeff - Diary of a Wimpy Kid.mobi"
    # The hash prefix is only hidden from the display name
    assert entry.filename == "Kinney, Jeff - Diary of a Wimpy Kid.mobi"
    assert entry.author == "Jeff Kinney"
    assert entry.title == "Diary of a Wimpy Kid"


def test_parse_line_percent_hash_and_trailing_hash_marker():
    entry = parse_line("!Horla %F00D% The Hobbit - J.R.R. Tolkien.pdf ::INFO:: 12MB ::HASH:: beef")

    assert entry.filename == "The Hobbit - J.R.R. Tolkien.pdf"
    assert entry.size == "12MB"
    assert entry.raw_command == "!Horla %F00D% The Hobbit - J.R.R. Tolkien.pdf"


@pytest.mark.parametrize(
    "line",
    [
        "",
        "Searched 7 databases for: wimpy",
        "!Bsk Some Book.epub",
        "Bsk Some Book.epub ::INFO:: 1MB",
        "!Bsk ::INFO:: 1MB",
        "!Bsk Some Book.epub ::INFO::",
    ],
)
def test_parse_line_rejects_non_entries(line):
    assert parse_line(line) is None


# --- parse_listing ---

def test_parse_listing_keeps_file_order_and_skips_noise():
    entries = parse_listing(SAMPLE_LISTING)

    assert [e.bot_command for e in entries] == ["!Bsk", "!Dumbledore", "!Horla"]
    assert [e.book_number for e in entries] == [1, 2, 3]
    assert all(isinstance(e, ListingEntry) for e in entries)


def test_parse_listing_empty_input():
    assert parse_listing("") == []
    assert parse_listing(b"") == []


def test_parse_listing_accepts_cp1252_bytes():
    content = "!Bsk Gabriel García Márquez - Cien años de soledad.epub ::INFO:: 1MB\n".encode("cp1252")
    entries = parse_listing(content)

    assert len(entries) == 1
    assert "Márquez" in entries[0].filename


def test_decode_listing_prefers_utf8():
    assert decode_listing("Ménage".encode("utf-8")) == "Ménage"


def test_decode_listing_rejects_undecodable_bytes():
    # 0x81 is unmapped in cp1252 and invalid as a UTF-8 start byte
    with pytest.raises(ListingDecodeError):
        decode_listing(b"\x81\x81\x81")


def test_has_results(tmp_path):
    listing = tmp_path / "results.txt"
    listing.write_text(SAMPLE_LISTING)
    empty = tmp_path / "empty.txt"
    empty.write_text("No results\n")

    assert has_results(listing) is True
    assert has_results(empty) is False
    assert has_results(tmp_path / "missing.txt") is False


# --- filename heuristics ---

@pytest.mark.parametrize(
    "filename, title, author, file_type",
    [
        ("Stephen King - The Shining.epub", "The Shining", "Stephen King", "epub"),
        ("The Shining - King, Stephen.mobi", "The Shining", "Stephen King", "mobi"),
        ("Dune by Frank Herbert.azw3", "Dune", "Frank Herbert", "azw3"),
        ("Just A Title", "Just A Title", "", "unknown"),
        ("Neuromancer (retail) (epub)", "Neuromancer", "", "epub"),
    ],
)
def test_parse_filename(filename, title, author, file_type):
    parsed = parse_filename(filename)

    assert parsed.title == title
    assert parsed.author == author
    assert parsed.file_type == file_type


def test_parse_filename_blank():
    assert parse_filename("   ") == ("", "", "unknown")


def test_looks_like_author():
    assert looks_like_author("Frank Herbert")
    assert looks_like_author("Herbert, Frank")
    assert not looks_like_author("book 12 of 20")


def test_normalize_author():
    assert normalize_author("Tolkien, J.R.R.") == "J.R.R. Tolkien"
    assert normalize_author("Madonna") == "Madonna"
    assert normalize_author("") == ""


# --- sorting ---

def _entry(title, author="", size="1KB", file_type="epub"):
    return ListingEntry(
        bot_command="!Bot",
        filename=f"{title}.{file_type}",
        size=size,
        raw_command=f"!Bot {title}.{file_type}",
        title=title,
        author=author,
        file_type=file_type,
    )


def test_size_to_bytes():
    assert size_to_bytes("1KB") == 1024
    assert size_to_bytes("1.5 MB") == 1.5 * 1024 ** 2
    assert size_to_bytes("huge") == 0


def test_sort_entries():
    entries = [
        _entry("beta", author="Zed", size="2MB", file_type="pdf"),
        _entry("Alpha", size="10KB", file_type="mobi"),
        _entry("gamma", author="Amy", size="1GB", file_type="epub"),
    ]

    assert sort_entries(entries) == entries
    assert [e.title for e in sort_entries(entries, SortOption.TITLE)] == ["Alpha", "beta", "gamma"]
    assert [e.author for e in sort_entries(entries, SortOption.AUTHOR)] == ["Amy", "Zed", ""]
    assert [e.title for e in sort_entries(entries, SortOption.SIZE)] == ["gamma", "beta", "Alpha"]
    assert [e.file_type for e in sort_entries(entries, "type")] == ["epub", "mobi", "pdf"]


def test_parse_listing_tolerates_interleaved_bad_lines():
    good = [f"!Bot{i} Author Name - Book {i}.epub ::INFO:: {i}MB" for i in range(1, 6)]
    lines = [good[0], "garbage", good[1], good[2], "!Bot9 no marker here.epub", good[3], good[4]]

    entries = parse_listing("\n".join(lines))

    assert len(entries) == 5
    assert [e.bot_command for e in entries] == ["!Bot1", "!Bot2", "!Bot3", "!Bot4", "!Bot5"]
