"""In-memory TTL cache for catalog metadata, keyed by title and author."""

import logging
import time
from collections import OrderedDict
from typing import Callable

from config import METADATA_CACHE_MAX_SIZE, METADATA_CACHE_TTL
from listing.models import BookMetadata

logger = logging.getLogger(__name__)


def cache_key(title: str, author: str) -> str:
    return f"{title.strip().lower()}|{author.strip().lower()}"


class MetadataCache:
    """Bounded, time-limited memo of metadata lookups.

    When full, the oldest inserted entry is evicted first.
    """

    def __init__(
        self,
        ttl: float = METADATA_CACHE_TTL,
        max_size: int = METADATA_CACHE_MAX_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl
        self._max_size = max_size
        self._clock = clock
        self._entries: OrderedDict[str, tuple[BookMetadata, float]] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> BookMetadata | None:
        """Cached metadata, or None if absent or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        data, stored_at = entry
        if self._clock() - stored_at > self._ttl:
            del self._entries[key]
            return None
        return data

    def set(self, key: str, data: BookMetadata) -> None:
        if key in self._entries:
            del self._entries[key]
        elif len(self._entries) >= self._max_size:
            self._entries.popitem(last=False)
        self._entries[key] = (data, self._clock())

    def clear(self) -> None:
        self._entries.clear()

    def cleanup(self) -> int:
        """Drop expired entries. Returns how many were removed."""
        now = self._clock()
        expired = [k for k, (_, stored_at) in self._entries.items() if now - stored_at > self._ttl]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.info(f"Removed {len(expired)} expired metadata cache entries")
        return len(expired)

    def stats(self) -> dict:
        return {"size": len(self._entries), "max_size": self._max_size, "ttl": self._ttl}
