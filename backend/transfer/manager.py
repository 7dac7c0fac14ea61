"""
Transfer Manager — the backend's single entry point.

Owns the chat session, the correlator and DCC reception, and coordinates
them with the WebSocket event system.
"""

import asyncio
import logging
from pathlib import Path

from chat.models import SessionConfig, SessionEvent, SessionEventKind
from chat.session import ChatSession, TransportFactory
from chat.transport import IrcTransport
from config import DEFAULT_DOWNLOAD_DIR, DEFAULT_TEMP_DIR, TRANSFER_INACTIVITY_TIMEOUT
from errors import ShelfSeekerError
from listing.models import ListingEntry
from listing.sorting import SortOption, sort_entries
from metadata.cache import MetadataCache
from metadata.enrichment import MetadataLookup, enrich_entries
from transfer.correlator import PendingTransfer, TransferCorrelator
from transfer.models import (
    Completed,
    DccOffer,
    OperationKind,
    TransferInfo,
    TransferOutcome,
    TransferState,
)
from transfer.service import TransferReceiver

logger = logging.getLogger(__name__)


class TransferManager:
    """Connect, search and download over one configured chat session."""

    def __init__(
        self,
        config: SessionConfig,
        download_dir: str | Path = DEFAULT_DOWNLOAD_DIR,
        temp_dir: str | Path = DEFAULT_TEMP_DIR,
        transport_factory: TransportFactory = IrcTransport,
        inactivity_timeout: float = TRANSFER_INACTIVITY_TIMEOUT,
        metadata_lookup: MetadataLookup | None = None,
        metadata_cache: MetadataCache | None = None,
    ) -> None:
        self._config = config
        self._transport_factory = transport_factory
        self._inactivity_timeout = inactivity_timeout
        self._temp_dir = Path(temp_dir)
        self._temp_dir.mkdir(parents=True, exist_ok=True)
        self._save_dir = Path(download_dir)
        self._save_dir.mkdir(parents=True, exist_ok=True)
        self._metadata_lookup = metadata_lookup
        self._metadata_cache = metadata_cache or MetadataCache()
        self._event_callbacks: list = []  # async fn(event_type, data)
        self._tasks: set[asyncio.Task] = set()
        self._last_transfer: TransferInfo | None = None
        self._build_session()

    def _build_session(self) -> None:
        self._session = ChatSession(self._config, self._transport_factory)
        self._session.on_event(self._on_session_event)
        self._session.on_transfer(self._handle_offer)
        self._correlator = TransferCorrelator(self._session)

    @property
    def session(self) -> ChatSession:
        return self._session

    @property
    def correlator(self) -> TransferCorrelator:
        return self._correlator

    @property
    def can_enrich(self) -> bool:
        """Whether a metadata provider was injected; search(enrich=True) is a no-op without one."""
        return self._metadata_lookup is not None

    @property
    def save_dir(self) -> Path:
        return self._save_dir

    @save_dir.setter
    def save_dir(self, path: str | Path) -> None:
        """Takes effect from the next offer; transfers in flight keep their target."""
        path = Path(path)
        path.mkdir(parents=True, exist_ok=True)
        self._save_dir = path

    def on_event(self, callback) -> None:
        """Register callback: async fn(event_type: str, data: dict)."""
        self._event_callbacks.append(callback)

    async def _emit(self, event_type: str, data: dict) -> None:
        """Emit an event to all registered callbacks."""
        for cb in self._event_callbacks:
            try:
                await cb(event_type, data)
            except Exception as e:
                logger.error(f"Event callback error: {e}")

    # --- Lifecycle ---

    async def start(self) -> None:
        """Auto-connect when enabled; a failure here is logged, not raised."""
        if not self._config.enabled:
            logger.info("IRC is disabled, skipping auto-connect")
            return
        try:
            await self.connect()
        except ShelfSeekerError as e:
            logger.error(f"Failed to auto-connect to IRC: {e}")

    async def stop(self) -> None:
        """Cancel in-flight receptions and leave the network."""
        self._correlator.cancel_all("Shutting down")
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
        await self._session.disconnect()
        logger.info("Transfer manager stopped")

    async def connect(self) -> None:
        await self._session.connect()

    async def disconnect(self) -> None:
        await self._session.disconnect()

    async def reconnect_with_new_nickname(self) -> None:
        await self._session.reconnect_with_new_nickname()

    # --- Operations ---

    async def search(
        self, query: str, enrich: bool = False, sort: SortOption = SortOption.RELEVANCE
    ) -> list[ListingEntry]:
        entries = await self._correlator.search(query)
        if enrich and self._metadata_lookup is not None:
            entries = await enrich_entries(entries, self._metadata_lookup, self._metadata_cache)
        return sort_entries(entries, sort)

    async def download(self, command: str) -> str:
        return await self._correlator.download(command)

    def status(self) -> dict:
        kind = self._correlator.expected_kind()
        return {
            "connection_status": self._session.state.value,
            "nickname": self._session.nickname,
            "operation": f"{kind.value}ing" if kind else "idle",
            "banned": self._session.is_banned,
            "last_transfer": self._last_transfer.model_dump(mode="json") if self._last_transfer else None,
        }

    def current_config(self) -> SessionConfig:
        return self._config

    async def update_config(self, new_config: SessionConfig) -> None:
        """Tear the session down and rebuild it with new settings."""
        self._correlator.cancel_all("IRC configuration updated, request cancelled")
        await self._session.disconnect()

        self._config = new_config
        self._build_session()
        logger.info(f"Session reconfigured for {new_config.server}:{new_config.port} {new_config.channel}")

        if new_config.enabled:
            await self.connect()
        else:
            logger.info("IRC is disabled, not reconnecting")

    # --- Inbound transfers ---

    async def _handle_offer(self, offer: DccOffer) -> None:
        """Start receiving an offer without blocking the chat read loop."""
        # The offer answers whichever operation is armed right now, if any
        slot = self._correlator.pending
        if slot is None:
            logger.info(f"Unsolicited DCC offer of {offer.filename} from {offer.nick}")
        await self._emit("dcc_incoming", offer.model_dump(mode="json"))

        # Captured now: a later save_dir change must not move this transfer
        receiver = TransferReceiver(self._save_dir, self._temp_dir, self._inactivity_timeout)
        task = asyncio.create_task(self._receive(receiver, self._correlator, slot, offer))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _receive(
        self,
        receiver: TransferReceiver,
        correlator: TransferCorrelator,
        slot: PendingTransfer | None,
        offer: DccOffer,
    ) -> TransferOutcome:
        expect_archive = slot is not None and slot.kind == OperationKind.SEARCH
        outcome = await receiver.receive(offer, expect_archive, progress_callback=self._on_progress)
        if slot is None or not correlator.resolve(outcome, slot):
            if isinstance(outcome, Completed):
                logger.info(f"{outcome.filename} arrived with no operation waiting; kept at {outcome.final_path}")
            else:
                logger.info(f"Late transfer failure ignored: {outcome.reason}")
        return outcome

    async def _on_progress(self, info: TransferInfo) -> None:
        self._last_transfer = info
        event_type = (
            "transfer_state"
            if info.state in (TransferState.COMPLETED, TransferState.FAILED)
            else "transfer_progress"
        )
        await self._emit(event_type, info.model_dump(mode="json"))

    async def _on_session_event(self, event: SessionEvent) -> None:
        if event.kind == SessionEventKind.RECONNECT_FAILED:
            # Whether this is fatal is up to whoever embeds the manager
            logger.error("IRC reconnection failed; session left in error state")
        await self._emit("session_event", event.model_dump(mode="json"))
