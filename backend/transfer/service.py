"""
DCC file receiver.

Connects to the endpoint a peer offered, streams the payload to disk with
an inactivity timeout, acknowledges received bytes the way DCC SEND expects,
and optionally unpacks a zip archive next to the staged file.
"""

import asyncio
import logging
import shutil
import struct
import time
import zipfile
import zlib
from pathlib import Path, PurePosixPath
from typing import Awaitable, Callable

from config import CHUNK_SIZE, PROGRESS_INTERVAL, TRANSFER_INACTIVITY_TIMEOUT
from errors import ArchiveError, TransferIncomplete, TransferStalled
from transfer.models import (
    Completed,
    DccOffer,
    Failed,
    FailureKind,
    TransferInfo,
    TransferOutcome,
    TransferState,
)

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[TransferInfo], Awaitable[None]]

ACK_FORMAT = "!I"  # 4-byte big-endian running total


class SpeedTracker:
    """Rolling average speed calculator."""

    def __init__(self, window: float = 2.0):
        self._window = window
        self._samples: list[tuple[float, int]] = []

    def record(self, byte_count: int) -> None:
        now = time.monotonic()
        self._samples.append((now, byte_count))
        cutoff = now - self._window
        self._samples = [(t, b) for t, b in self._samples if t >= cutoff]

    def get_speed(self) -> float:
        """Returns speed in bytes/sec."""
        if len(self._samples) < 2:
            return 0.0
        total_bytes = sum(b for _, b in self._samples[1:])
        elapsed = self._samples[-1][0] - self._samples[0][0]
        if elapsed <= 0:
            return 0.0
        return total_bytes / elapsed


def safe_filename(filename: str) -> str:
    """Strip any directory part a peer put into an offered name."""
    name = PurePosixPath(filename.replace("\\", "/")).name
    if name in ("", ".", ".."):
        return "unnamed"
    return name


def extract_archive(archive_path: Path, target_dir: Path) -> list[Path]:
    """Extract every file entry of a zip flat into target_dir.

    Directory structure inside the archive is dropped.
    """
    extracted: list[Path] = []
    try:
        with zipfile.ZipFile(archive_path) as zf:
            for info in zf.infolist():
                if info.is_dir():
                    continue
                name = safe_filename(info.filename)
                dest = target_dir / name
                with zf.open(info) as src, open(dest, "wb") as dst:
                    shutil.copyfileobj(src, dst)
                extracted.append(dest)
    except (zipfile.BadZipFile, zlib.error, NotImplementedError, RuntimeError, EOFError, OSError) as e:
        raise ArchiveError(f"Failed to extract {archive_path.name}: {e}") from e
    return extracted


def find_listing_files(entries: list[Path], suffix: str) -> list[Path]:
    """Every extracted entry whose name ends with suffix, in archive order."""
    suffix = suffix.lower()
    return [p for p in entries if p.name.lower().endswith(suffix)]


class TransferReceiver:
    """Stages inbound DCC payloads under a download or temp directory."""

    def __init__(
        self,
        download_dir: str | Path,
        temp_dir: str | Path,
        inactivity_timeout: float = TRANSFER_INACTIVITY_TIMEOUT,
        chunk_size: int = CHUNK_SIZE,
    ) -> None:
        self.download_dir = Path(download_dir)
        self.temp_dir = Path(temp_dir)
        self.inactivity_timeout = inactivity_timeout
        self.chunk_size = chunk_size
        self.download_dir.mkdir(parents=True, exist_ok=True)
        self.temp_dir.mkdir(parents=True, exist_ok=True)

    async def receive(
        self,
        offer: DccOffer,
        expect_archive: bool = False,
        progress_callback: UpdateCallback | None = None,
    ) -> TransferOutcome:
        """Open the offered socket and hand the stream to handle_transfer."""
        logger.info(f"DCC connecting to {offer.ip}:{offer.port} for {offer.filename}")
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(offer.ip, offer.port),
                timeout=self.inactivity_timeout,
            )
        except asyncio.TimeoutError:
            return Failed(reason=f"Timed out connecting to {offer.ip}:{offer.port}", kind=FailureKind.STALLED)
        except OSError as e:
            return Failed(reason=f"Failed to connect to {offer.ip}:{offer.port}: {e}", kind=FailureKind.IO)

        return await self.handle_transfer(offer, reader, writer, expect_archive, progress_callback)

    async def handle_transfer(
        self,
        offer: DccOffer,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        expect_archive: bool = False,
        progress_callback: UpdateCallback | None = None,
    ) -> TransferOutcome:
        """
        Persist one inbound stream and report how it ended.

        Args:
            offer: The DCC offer being fulfilled.
            reader, writer: The connected DCC streams.
            expect_archive: Stage in the temp directory and unpack the file
                if it turns out to be a zip archive.
            progress_callback: async fn(TransferInfo) for progress/state.

        Returns:
            Completed or Failed. Never raises for transfer problems.
        """
        target_dir = self.temp_dir if expect_archive else self.download_dir
        file_path = self._target_path(target_dir, offer.filename, unique=not expect_archive)
        info = TransferInfo(
            file_name=file_path.name,
            file_size=offer.size,
            peer_nick=offer.nick,
            state=TransferState.TRANSFERRING,
        )

        try:
            await self._notify(progress_callback, info)
            await self._stream_to_file(offer, reader, writer, file_path, info, progress_callback)
        except TransferStalled as e:
            return await self._fail(info, file_path, str(e), FailureKind.STALLED, progress_callback)
        except TransferIncomplete as e:
            return await self._fail(info, file_path, str(e), FailureKind.INCOMPLETE, progress_callback)
        except OSError as e:
            return await self._fail(info, file_path, f"Transfer I/O error: {e}", FailureKind.IO, progress_callback)
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError as e:
                logger.debug(f"Error closing DCC socket: {e}")

        logger.info(f"DCC download complete: {file_path.name} ({info.transferred_bytes} bytes)")

        if expect_archive and zipfile.is_zipfile(file_path):
            info.state = TransferState.EXTRACTING
            await self._notify(progress_callback, info)
            try:
                entries = await asyncio.to_thread(extract_archive, file_path, target_dir)
            except ArchiveError as e:
                logger.warning(str(e))
                info.state = TransferState.FAILED
                info.error_message = str(e)
                await self._notify(progress_callback, info)
                return Failed(reason=str(e), kind=FailureKind.ARCHIVE)
            logger.info(f"Extracted {len(entries)} entries from {file_path.name}")
            outcome = Completed(
                filename=file_path.name,
                final_path=file_path,
                was_archive=True,
                extracted_entries=entries,
            )
        else:
            outcome = Completed(filename=file_path.name, final_path=file_path)

        info.state = TransferState.COMPLETED
        info.progress_percent = 100.0
        info.speed_bps = 0
        info.eta_seconds = 0
        await self._notify(progress_callback, info)
        return outcome

    async def _stream_to_file(
        self,
        offer: DccOffer,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        file_path: Path,
        info: TransferInfo,
        progress_callback: UpdateCallback | None,
    ) -> None:
        tracker = SpeedTracker()
        last_progress_time = time.monotonic()

        with open(file_path, "wb") as f:
            while offer.size <= 0 or info.transferred_bytes < offer.size:
                # Never read past the declared size
                to_read = (
                    min(self.chunk_size, offer.size - info.transferred_bytes)
                    if offer.size > 0
                    else self.chunk_size
                )
                try:
                    chunk = await asyncio.wait_for(
                        reader.read(to_read), timeout=self.inactivity_timeout
                    )
                except asyncio.TimeoutError:
                    raise TransferStalled(
                        f"DCC transfer stalled: no data for {self.inactivity_timeout}s"
                    )

                if not chunk:
                    break

                await asyncio.to_thread(f.write, chunk)
                info.transferred_bytes += len(chunk)
                tracker.record(len(chunk))
                await self._acknowledge(writer, info.transferred_bytes)

                now = time.monotonic()
                if now - last_progress_time >= PROGRESS_INTERVAL:
                    info.speed_bps = tracker.get_speed()
                    info.progress_percent = (
                        info.transferred_bytes / offer.size * 100 if offer.size > 0 else 0
                    )
                    remaining = max(offer.size - info.transferred_bytes, 0)
                    info.eta_seconds = remaining / info.speed_bps if info.speed_bps > 0 else 0
                    await self._notify(progress_callback, info)
                    last_progress_time = now

        if offer.size > 0 and info.transferred_bytes < offer.size:
            raise TransferIncomplete(
                f"Size mismatch: expected {offer.size} bytes, got {info.transferred_bytes}"
            )

    @staticmethod
    async def _acknowledge(writer: asyncio.StreamWriter, total: int) -> None:
        """Send the running byte count back; senders wait on it."""
        try:
            writer.write(struct.pack(ACK_FORMAT, total & 0xFFFFFFFF))
            await writer.drain()
        except ConnectionError as e:
            # Senders often hang up as soon as the last byte is out
            logger.debug(f"DCC ack not delivered: {e}")

    @staticmethod
    def _target_path(target_dir: Path, filename: str, unique: bool) -> Path:
        name = safe_filename(filename)
        path = target_dir / name
        if unique and path.exists():
            stem, suffix = path.stem, path.suffix
            path = target_dir / f"{stem}_{int(time.time() * 1000)}{suffix}"
        return path

    async def _fail(
        self,
        info: TransferInfo,
        file_path: Path,
        reason: str,
        kind: FailureKind,
        progress_callback: UpdateCallback | None,
    ) -> Failed:
        logger.warning(f"Transfer of {info.file_name} failed: {reason}")
        file_path.unlink(missing_ok=True)
        info.state = TransferState.FAILED
        info.error_message = reason
        await self._notify(progress_callback, info)
        return Failed(reason=reason, kind=kind)

    @staticmethod
    async def _notify(callback: UpdateCallback | None, info: TransferInfo) -> None:
        if callback is None:
            return
        try:
            await callback(info.model_copy())
        except Exception as e:
            logger.error(f"Transfer progress callback error: {e}")
