"""
Transfer correlator — pairs an outgoing command with the DCC push that
answers it.

Bots give no request IDs, so correlation relies on there being at most one
outstanding operation. The pending slot is a mailbox of capacity one:
arming it while occupied raises TransferBusy, and whichever of
{transfer outcome, deadline, caller cancellation} comes first empties it.
Anything that arrives after that is ignored.
"""

import asyncio
import logging
from pathlib import Path

from chat.session import ChatSession
from config import LISTING_SUFFIX
from errors import (
    DownloadTimeout,
    ListingDecodeError,
    NoListingFound,
    SearchTimeout,
    ShelfSeekerError,
    TransferBusy,
)
from listing.models import ListingEntry
from listing.parser import parse_listing
from transfer.models import (
    Completed,
    Failed,
    FailureKind,
    OperationKind,
    TransferOutcome,
)
from transfer.service import find_listing_files

logger = logging.getLogger(__name__)


class PendingTransfer:
    """The one in-flight operation: its kind, result future and deadline."""

    def __init__(self, kind: OperationKind, future: asyncio.Future, timer: asyncio.TimerHandle | None = None):
        self.kind = kind
        self.future = future
        self.timer = timer

    def settle(self, outcome: TransferOutcome | None) -> None:
        """Deliver the outcome (None means the deadline elapsed)."""
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None
        if not self.future.done():
            self.future.set_result(outcome)

    def abort(self, error: Exception) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None
        if not self.future.done():
            self.future.set_exception(error)


class TransferCorrelator:
    """search() and download() over a ChatSession, one at a time."""

    def __init__(
        self,
        session: ChatSession,
        search_timeout: float | None = None,
        download_timeout: float | None = None,
        search_command: str | None = None,
        listing_suffix: str = LISTING_SUFFIX,
    ) -> None:
        config = session.config
        self._session = session
        self._search_timeout = search_timeout if search_timeout is not None else config.search_timeout
        self._download_timeout = download_timeout if download_timeout is not None else config.download_timeout
        self._search_command = search_command or config.search_command
        self._listing_suffix = listing_suffix
        self._pending: PendingTransfer | None = None

    @property
    def pending(self) -> PendingTransfer | None:
        return self._pending

    def expected_kind(self) -> OperationKind | None:
        """What the armed slot expects, or None when idle."""
        return self._pending.kind if self._pending else None

    # --- Operations ---

    async def search(self, query: str) -> list[ListingEntry]:
        """Send a search and parse the listing the bot pushes back."""
        self._session.require_joined()
        if self._pending is not None:
            raise TransferBusy(self._pending.kind.value)

        logger.info(f"Search: {query}")
        outcome = await self._exchange(
            OperationKind.SEARCH, f"{self._search_command} {query}", self._search_timeout
        )

        if outcome is None:
            raise SearchTimeout()
        if isinstance(outcome, Failed):
            if outcome.kind == FailureKind.ARCHIVE:
                raise NoListingFound(f"Search results archive unusable: {outcome.reason}")
            raise SearchTimeout(f"Search timeout - transfer failed: {outcome.reason}")

        listing_path = self.locate_listing(outcome)
        if listing_path is None:
            raise NoListingFound()

        logger.info(f"Parsing search results from {listing_path}")
        try:
            content = await asyncio.to_thread(listing_path.read_bytes)
            entries = parse_listing(content)
        except (OSError, ListingDecodeError) as e:
            raise NoListingFound(f"Search results unreadable: {e}") from e

        logger.info(f"Found {len(entries)} results")
        return entries

    async def download(self, command: str) -> str:
        """Replay a listing's raw command verbatim; returns the delivered filename."""
        self._session.require_joined()
        if self._pending is not None:
            raise TransferBusy(self._pending.kind.value)

        logger.info(f"Download: {command}")
        outcome = await self._exchange(OperationKind.DOWNLOAD, command, self._download_timeout)

        if outcome is None:
            raise DownloadTimeout()
        if isinstance(outcome, Failed):
            raise DownloadTimeout(f"Download failed: {outcome.reason}")

        logger.info(f"Downloaded: {outcome.filename}")
        return outcome.filename

    def locate_listing(self, outcome: Completed) -> Path | None:
        """The listing file: first matching archive entry, or the file itself."""
        if outcome.was_archive:
            candidates = find_listing_files(outcome.extracted_entries or [], self._listing_suffix)
            if len(candidates) > 1:
                logger.info(f"{len(candidates)} listing candidates in archive, using {candidates[0].name}")
            return candidates[0] if candidates else None
        if outcome.final_path.name.lower().endswith(self._listing_suffix.lower()):
            return outcome.final_path
        return None

    # --- Slot ---

    async def _exchange(self, kind: OperationKind, command: str, timeout: float) -> TransferOutcome | None:
        """Arm the slot, send the command, wait for the slot to settle."""
        slot = self._arm(kind, timeout)
        try:
            self._session.send_message(command)
            return await slot.future
        finally:
            # Covers send failures and cancelled callers; no-op once settled
            self._release(slot)

    def _arm(self, kind: OperationKind, timeout: float) -> PendingTransfer:
        if self._pending is not None:
            raise TransferBusy(self._pending.kind.value)
        loop = asyncio.get_running_loop()
        slot = PendingTransfer(kind, loop.create_future())
        slot.timer = loop.call_later(timeout, self._expire, slot)
        self._pending = slot
        return slot

    def _release(self, slot: PendingTransfer) -> None:
        if self._pending is slot:
            self._pending = None
        if slot.timer is not None:
            slot.timer.cancel()
            slot.timer = None

    def _expire(self, slot: PendingTransfer) -> None:
        if self._pending is not slot:
            return  # a newer operation owns the slot
        logger.info(f"{slot.kind.value} timeout")
        self._pending = None
        slot.timer = None
        slot.settle(None)

    def resolve(self, outcome: TransferOutcome, slot: PendingTransfer | None = None) -> bool:
        """Hand a transfer outcome to the operation that was waiting for it.

        `slot` is the operation that was armed when the offer arrived; it
        defaults to the one armed now. Returns False (and does nothing) if
        that operation has already finished, so a late transfer can never
        settle a newer operation.
        """
        if slot is None:
            slot = self._pending
        if slot is None or slot.future.done():
            logger.debug(f"No pending operation for transfer outcome ({outcome.status}); ignoring")
            return False
        if self._pending is not slot:
            logger.info(f"Stale {slot.kind.value} outcome ({outcome.status}) ignored")
            return False
        self._pending = None
        slot.settle(outcome)
        return True

    def cancel_all(self, reason: str) -> None:
        """Fail whatever is outstanding, e.g. on reconfiguration."""
        slot, self._pending = self._pending, None
        if slot is not None:
            logger.info(f"Cancelled pending {slot.kind.value}: {reason}")
            slot.abort(ShelfSeekerError(reason))
