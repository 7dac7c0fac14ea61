"""Pydantic models for parsed search listings."""

from pydantic import BaseModel, ConfigDict


class BookMetadata(BaseModel):
    """Catalog metadata attached to a listing entry by enrichment."""
    title: str | None = None
    authors: list[str] = []
    description: str | None = None
    cover_url: str | None = None
    publish_year: int | None = None
    isbn: str | None = None
    page_count: int | None = None
    subjects: list[str] = []


class ListingEntry(BaseModel):
    """One line of a bot listing file.

    ``raw_command`` is exactly what the bot advertised and is sent back
    verbatim to request the file.
    """
    model_config = ConfigDict(frozen=True)

    bot_command: str
    filename: str
    size: str
    raw_command: str
    title: str
    author: str = ""
    file_type: str = "unknown"
    book_number: int = 0  # 1-based position in the listing file
    metadata: BookMetadata | None = None

    @property
    def bot_name(self) -> str:
        return self.bot_command.lstrip("!")
