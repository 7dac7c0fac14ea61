"""End-to-end tests for the TransferManager over a fake chat network and loopback DCC."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from conftest import make_zip, wait_until
from errors import DownloadTimeout, NotConnected, SearchTimeout
from listing.models import BookMetadata
from listing.sorting import SortOption
from transfer.manager import TransferManager
from transfer.models import OperationKind

LISTING = (
    b"!Bsk Frank Herbert - The Dune Chronicles.epub ::INFO:: 1.1MB\n"
    b"!Horla Herbert, Frank - Dune Messiah.mobi ::INFO:: 9MB\n"
)


@pytest.fixture
def manager(session_config, network, tmp_path):
    return TransferManager(
        session_config,
        download_dir=tmp_path / "downloads",
        temp_dir=tmp_path / "tmp",
        transport_factory=network,
        inactivity_timeout=0.5,
    )


def _recorder(manager):
    events = []

    async def record(event_type, data):
        events.append((event_type, data))

    manager.on_event(record)
    return events


@pytest.mark.asyncio
async def test_search_end_to_end(manager, network, dcc_sender_factory):
    events = _recorder(manager)
    await manager.connect()

    task = asyncio.create_task(manager.search("dune", sort=SortOption.SIZE))
    await wait_until(lambda: network.sent)
    assert manager.status()["operation"] == "searching"

    sender = await dcc_sender_factory(make_zip({"SearchBot_results_for_dune.txt": LISTING}))
    await network.current.offer(sender.offer("SearchBot_results_for_dune.zip", nick="Search"))
    entries = await task

    assert [e.title for e in entries] == ["Dune Messiah", "The Dune Chronicles"]
    assert manager.status()["operation"] == "idle"
    event_types = [t for t, _ in events]
    assert "dcc_incoming" in event_types
    assert ("transfer_state", "completed") in [(t, d.get("state")) for t, d in events]
    # Search results are staged away from the user's downloads
    assert not any(manager.save_dir.iterdir())


@pytest.mark.asyncio
async def test_download_end_to_end(manager, network, dcc_sender_factory):
    await manager.connect()

    task = asyncio.create_task(manager.download("!Bsk Frank Herbert - The Dune Chronicles.epub"))
    await wait_until(lambda: network.sent)
    sender = await dcc_sender_factory(b"epub bytes" * 50)
    await network.current.offer(sender.offer("Frank Herbert - The Dune Chronicles.epub"))

    filename = await task

    assert filename == "Frank Herbert - The Dune Chronicles.epub"
    assert (manager.save_dir / filename).read_bytes() == b"epub bytes" * 50
    assert network.sent == ["!Bsk Frank Herbert - The Dune Chronicles.epub"]


@pytest.mark.asyncio
async def test_save_dir_change_applies_to_next_offer(manager, network, dcc_sender_factory, tmp_path):
    await manager.connect()
    manager.save_dir = tmp_path / "elsewhere"

    task = asyncio.create_task(manager.download("!Bsk book.epub"))
    await wait_until(lambda: network.sent)
    sender = await dcc_sender_factory(b"book")
    await network.current.offer(sender.offer("book.epub"))
    await task

    assert (tmp_path / "elsewhere" / "book.epub").read_bytes() == b"book"


@pytest.mark.asyncio
async def test_unsolicited_offer_is_kept(manager, network, dcc_sender_factory):
    await manager.connect()
    sender = await dcc_sender_factory(b"surprise")

    await network.current.offer(sender.offer("gift.epub"))
    target = manager.save_dir / "gift.epub"
    await wait_until(lambda: target.exists() and target.read_bytes() == b"surprise")

    assert manager.correlator.pending is None
    await manager.stop()


@pytest.mark.asyncio
async def test_search_with_enrichment(session_config, network, tmp_path, dcc_sender_factory):
    lookup = AsyncMock(return_value=BookMetadata(title="Dune Messiah", publish_year=1969))
    manager = TransferManager(
        session_config,
        download_dir=tmp_path / "downloads",
        temp_dir=tmp_path / "tmp",
        transport_factory=network,
        metadata_lookup=lookup,
    )
    await manager.connect()

    task = asyncio.create_task(manager.search("dune", enrich=True))
    await wait_until(lambda: network.sent)
    sender = await dcc_sender_factory(LISTING)
    await network.current.offer(sender.offer("results.txt"))
    entries = await task

    assert all(e.metadata and e.metadata.publish_year == 1969 for e in entries)
    assert lookup.await_count == 2
    assert manager.can_enrich


def test_enrichment_needs_a_provider(manager):
    assert not manager.can_enrich


@pytest.mark.asyncio
async def test_search_requires_connection(manager):
    with pytest.raises(NotConnected):
        await manager.search("dune")


@pytest.mark.asyncio
async def test_update_config_rebuilds_session(manager, network, session_config):
    events = _recorder(manager)
    await manager.connect()
    old_session = manager.session

    pending = asyncio.create_task(manager.search("dune"))
    await wait_until(lambda: network.sent)

    new_config = session_config.model_copy(update={"channel": "#bookz"})
    await manager.update_config(new_config)

    with pytest.raises(Exception, match="IRC configuration updated"):
        await pending
    assert manager.session is not old_session
    assert manager.current_config().channel == "#bookz"
    assert network.current.joined == ["#bookz"]
    assert manager.status()["connection_status"] == "joined"
    assert any(t == "session_event" and d["kind"] == "disconnected" for t, d in events)


@pytest.mark.asyncio
async def test_update_config_disabled_stays_offline(manager, network, session_config):
    await manager.connect()

    await manager.update_config(session_config.model_copy(update={"enabled": False}))

    assert manager.status()["connection_status"] == "disconnected"
    assert len(network.transports) == 1


@pytest.mark.asyncio
async def test_start_swallows_connect_failure(manager, network):
    network.refuse = True

    await manager.start()

    assert manager.status()["connection_status"] == "error"


@pytest.mark.asyncio
async def test_stop_disconnects(manager, network):
    await manager.connect()

    await manager.stop()

    assert network.current.closed
    assert manager.status() == {
        "connection_status": "disconnected",
        "nickname": "TestNick",
        "operation": "idle",
        "banned": False,
        "last_transfer": None,
    }


@pytest.mark.asyncio
async def test_search_picks_listing_among_archive_entries_then_downloads(manager, network, dcc_sender_factory):
    await manager.connect()

    search = asyncio.create_task(manager.search("dune"))
    await wait_until(lambda: network.sent)
    archive = make_zip({"cover.jpg": b"\xff\xd8\xff", "results.txt": LISTING})
    sender = await dcc_sender_factory(archive)
    await network.current.offer(sender.offer("SearchBot_results_for_dune.zip"))
    entries = await search
    assert len(entries) > 0

    chosen = entries[1]
    download = asyncio.create_task(manager.download(chosen.raw_command))
    await wait_until(lambda: len(network.sent) == 2)
    assert network.sent[-1] == chosen.raw_command

    book = await dcc_sender_factory(b"mobi" * 100)
    await network.current.offer(book.offer("Dune Messiah.mobi", nick="Horla"))
    assert await download == "Dune Messiah.mobi"


@pytest.mark.asyncio
async def test_late_search_transfer_does_not_answer_next_download(
    session_config, network, tmp_path, dcc_sender_factory
):
    manager = TransferManager(
        session_config,
        download_dir=tmp_path / "downloads",
        temp_dir=tmp_path / "tmp",
        transport_factory=network,
        inactivity_timeout=5,
    )
    events = _recorder(manager)
    await manager.connect()

    search = asyncio.create_task(manager.search("dune"))
    await wait_until(lambda: network.sent)
    archive = make_zip({"results.txt": LISTING})
    sender = await dcc_sender_factory(archive, pause_after=len(archive) // 2, pause_for=1.4)
    await network.current.offer(sender.offer("results.zip", nick="Search"))

    with pytest.raises(SearchTimeout):
        await search

    # Nobody ever answers this one
    download = asyncio.create_task(manager.download("!Bot01 get book.epub"))
    await wait_until(lambda: len(network.sent) == 2)
    await wait_until(lambda: ("transfer_state", "completed") in [(t, d.get("state")) for t, d in events])

    assert manager.correlator.expected_kind() == OperationKind.DOWNLOAD
    with pytest.raises(DownloadTimeout):
        await download
    await manager.stop()


@pytest.mark.asyncio
async def test_stalled_download_surfaces_timeout(manager, network, dcc_sender_factory):
    await manager.connect()

    task = asyncio.create_task(manager.download("!Bot01 get book.epub"))
    await wait_until(lambda: network.sent)
    sender = await dcc_sender_factory(b"b" * 100, send_bytes=0)
    await network.current.offer(sender.offer("book.epub"))

    with pytest.raises(DownloadTimeout):
        await task
    assert manager.correlator.pending is None
