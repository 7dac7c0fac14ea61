"""
Shared fixtures: a scripted in-memory chat network and a loopback DCC sender.
"""

import asyncio
import io
import zipfile

import pytest
import pytest_asyncio

from chat.models import (
    Joined,
    Registered,
    Rejected,
    SessionConfig,
    SocketClosed,
    SocketError,
    TransferOffered,
)
from transfer.models import DccOffer


class FakeTransport:
    """Stands in for IrcTransport; behaviour comes from its FakeNetwork."""

    def __init__(self, handler, network):
        self._handler = handler
        self._network = network
        self.nick = ""
        self.joined: list[str] = []
        self.sent: list[str] = []
        self.closed = False
        self.quit_message = None

    async def emit(self, event) -> None:
        await self._handler(event)

    async def connect(self, host, port, nick, use_tls=False):
        if self._network.refuse:
            raise ConnectionRefusedError(f"refused {host}:{port}")
        self.nick = nick
        if self._network.register:
            await self.emit(Registered(nick=nick))

    def join(self, channel):
        self.joined.append(channel)
        if self._network.reject is not None:
            code, message = self._network.reject
            self._schedule(Rejected(code=code, message=message))
        elif self._network.join:
            self._schedule(Joined(nick=self.nick, channel=channel))

    def send(self, channel, text):
        if self.closed:
            raise ConnectionError("IRC socket is not open")
        self.sent.append(text)
        self._network.sent.append(text)

    async def quit(self, message="Goodbye"):
        self.closed = True
        self.quit_message = message

    async def drop(self, error: str | None = None) -> None:
        """Simulate the server hanging up."""
        self.closed = True
        if error:
            await self.emit(SocketError(message=error))
        await self.emit(SocketClosed())

    async def offer(self, offer: DccOffer) -> None:
        await self.emit(TransferOffered(offer=offer))

    def _schedule(self, event) -> None:
        task = asyncio.get_running_loop().create_task(self.emit(event))
        self._network.tasks.append(task)


class FakeNetwork:
    """Transport factory; every connection attempt gets a new FakeTransport."""

    def __init__(self):
        self.transports: list[FakeTransport] = []
        self.sent: list[str] = []
        self.tasks: list[asyncio.Task] = []
        self.refuse = False
        self.register = True
        self.join = True
        self.reject: tuple[str, str] | None = None

    def __call__(self, handler) -> FakeTransport:
        transport = FakeTransport(handler, self)
        self.transports.append(transport)
        return transport

    @property
    def current(self) -> FakeTransport:
        return self.transports[-1]


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Poll until predicate() is true; fail the test otherwise."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


def make_zip(files: dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, data in files.items():
            zf.writestr(name, data)
    return buffer.getvalue()


class DccSender:
    """Loopback DCC peer: pushes a payload and records the acks it gets."""

    def __init__(
        self,
        payload: bytes,
        send_bytes: int | None = None,
        hang_up: bool = False,
        pause_after: int | None = None,
        pause_for: float = 0.0,
    ):
        self.payload = payload
        self.send_bytes = len(payload) if send_bytes is None else send_bytes
        self.hang_up = hang_up
        self.pause_after = pause_after
        self.pause_for = pause_for
        self.acks = bytearray()
        self.server: asyncio.AbstractServer | None = None

    @property
    def port(self) -> int:
        return self.server.sockets[0].getsockname()[1]

    def offer(self, filename: str, size: int | None = None, nick: str = "Bsk") -> DccOffer:
        return DccOffer(
            filename=filename,
            size=len(self.payload) if size is None else size,
            nick=nick,
            ip="127.0.0.1",
            port=self.port,
        )

    async def _handle(self, reader, writer):
        data = self.payload[: self.send_bytes]
        if self.pause_after is not None:
            # Slow peer: part of the file, a gap, then the rest
            writer.write(data[: self.pause_after])
            await writer.drain()
            await asyncio.sleep(self.pause_for)
            data = data[self.pause_after:]
        writer.write(data)
        await writer.drain()
        if not self.hang_up:
            # Keep reading acks until the receiver closes its side
            while True:
                data = await reader.read(4096)
                if not data:
                    break
                self.acks.extend(data)
        writer.close()

    async def start(self) -> "DccSender":
        self.server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        return self

    async def stop(self) -> None:
        self.server.close()
        await self.server.wait_closed()


@pytest.fixture
def network():
    return FakeNetwork()


@pytest.fixture
def session_config():
    return SessionConfig(
        server="irc.test.local",
        port=6667,
        channel="#ebooks",
        nickname="TestNick",
        max_retries=2,
        retry_delay=0,
        connect_timeout=1,
        search_timeout=1,
        download_timeout=1,
    )


@pytest_asyncio.fixture
async def dcc_sender_factory():
    """Start loopback senders on demand; all are stopped afterwards."""
    senders: list[DccSender] = []

    async def factory(payload: bytes, **kwargs) -> DccSender:
        sender = await DccSender(payload, **kwargs).start()
        senders.append(sender)
        return sender

    yield factory
    for sender in senders:
        await sender.stop()
