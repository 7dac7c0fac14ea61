"""
Attach catalog metadata to listing entries.

The catalog client is injected as ``lookup(title, author)``. Lookups are
bounded in time and never fail a search: errors and timeouts just leave
the entry without metadata.
"""

import asyncio
import logging
from typing import Awaitable, Callable

from config import ENRICHMENT_TIMEOUT
from listing.models import BookMetadata, ListingEntry
from metadata.cache import MetadataCache, cache_key

logger = logging.getLogger(__name__)

MetadataLookup = Callable[[str, str], Awaitable[BookMetadata | None]]


async def _fetch(lookup: MetadataLookup, title: str, author: str) -> BookMetadata | None:
    metadata = await lookup(title, author)
    if metadata is None and author:
        # Author spellings in filenames are unreliable; retry on title alone
        metadata = await lookup(title, "")
    return metadata


async def enrich_entry(
    entry: ListingEntry,
    lookup: MetadataLookup,
    cache: MetadataCache,
    timeout: float = ENRICHMENT_TIMEOUT,
) -> ListingEntry:
    if not entry.title:
        return entry

    key = cache_key(entry.title, entry.author)
    cached = cache.get(key)
    if cached is not None:
        logger.debug(f"Cache hit for: {entry.title}")
        return entry.model_copy(update={"metadata": cached})

    try:
        metadata = await asyncio.wait_for(_fetch(lookup, entry.title, entry.author), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"Enrichment timeout for {entry.title!r}")
        return entry
    except Exception as e:
        logger.error(f"Error enriching result for {entry.title!r}: {e}")
        return entry

    if metadata is None:
        return entry
    cache.set(key, metadata)
    return entry.model_copy(update={"metadata": metadata})


async def enrich_entries(
    entries: list[ListingEntry],
    lookup: MetadataLookup,
    cache: MetadataCache,
    timeout: float = ENRICHMENT_TIMEOUT,
) -> list[ListingEntry]:
    """Enrich all entries concurrently, keeping their order."""
    if not entries:
        return entries

    logger.info(f"Enriching {len(entries)} search results...")
    enriched = await asyncio.gather(
        *(enrich_entry(e, lookup, cache, timeout) for e in entries)
    )
    count = sum(1 for e in enriched if e.metadata is not None)
    logger.info(f"Enriched {count}/{len(entries)} results")
    return list(enriched)
