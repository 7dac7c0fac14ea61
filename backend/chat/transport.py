"""
IRC line client over asyncio streams.

Covers just what the session needs: registration, joining one channel,
PING/PONG, CTCP VERSION replies, PRIVMSG to the channel and CTCP DCC SEND
offers. Everything it learns is reported as a TransportEvent to a single
async handler, strictly in arrival order.
"""

import asyncio
import logging
import ssl
from typing import Awaitable, Callable

from chat.models import (
    Joined,
    Registered,
    Rejected,
    SocketClosed,
    SocketError,
    TransferOffered,
    TransportEvent,
)
from config import CTCP_VERSION, IRC_REALNAME, IRC_USERNAME
from errors import DccParseError
from transfer.dcc import parse_dcc_send

logger = logging.getLogger(__name__)

EventHandler = Callable[[TransportEvent], Awaitable[None]]

CTCP_DELIM = "\x01"
REJECTION_NUMERICS = {
    "465": "You are banned from this server",
    "474": "Cannot join channel (banned)",
    "477": "Channel requires registration or authentication",
}


def parse_line(line: str) -> tuple[str, str, list[str]]:
    """Split a raw IRC line into (prefix, command, params)."""
    prefix = ""
    if line.startswith(":"):
        prefix, _, line = line[1:].partition(" ")
    trailing = None
    if " :" in line:
        line, _, trailing = line.partition(" :")
    parts = line.split()
    command = parts[0].upper() if parts else ""
    params = parts[1:]
    if trailing is not None:
        params.append(trailing)
    return prefix, command, params


def nick_from_prefix(prefix: str) -> str:
    return prefix.split("!", 1)[0]


class IrcTransport:
    """One TCP (optionally TLS) connection to an IRC server."""

    def __init__(self, handler: EventHandler, version: str = CTCP_VERSION) -> None:
        self._handler = handler
        self._version = version
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._read_task: asyncio.Task | None = None
        self._nick = ""
        self._registered = False

    @property
    def nick(self) -> str:
        return self._nick

    async def connect(self, host: str, port: int, nick: str, use_tls: bool = False) -> None:
        """Open the socket, send registration and start reading."""
        context = ssl.create_default_context() if use_tls else None
        self._reader, self._writer = await asyncio.open_connection(host, port, ssl=context)
        self._nick = nick
        self._registered = False
        self._write(f"NICK {nick}")
        self._write(f"USER {IRC_USERNAME} 0 * :{IRC_REALNAME}")
        self._read_task = asyncio.create_task(self._read_loop())

    def join(self, channel: str) -> None:
        self._write(f"JOIN {channel}")

    def send(self, channel: str, text: str) -> None:
        self._write(f"PRIVMSG {channel} :{text}")

    async def quit(self, message: str = "Goodbye") -> None:
        if self._writer is None:
            return
        try:
            self._write(f"QUIT :{message}")
            await self._writer.drain()
        except (ConnectionError, RuntimeError) as e:
            logger.debug(f"QUIT not delivered: {e}")
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except OSError as e:
            logger.debug(f"Error closing IRC socket: {e}")

    def _write(self, line: str) -> None:
        if self._writer is None or self._writer.is_closing():
            raise ConnectionError("IRC socket is not open")
        logger.debug(f">> {line}")
        self._writer.write(f"{line}\r\n".encode("utf-8"))

    async def _emit(self, event: TransportEvent) -> None:
        try:
            await self._handler(event)
        except Exception as e:
            logger.error(f"Transport event handler error: {e}", exc_info=True)

    async def _read_loop(self) -> None:
        try:
            while True:
                raw = await self._reader.readline()
                if not raw:
                    break
                line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
                if line:
                    await self._handle_line(line)
        except asyncio.CancelledError:
            raise
        except (ConnectionError, OSError, asyncio.IncompleteReadError, asyncio.LimitOverrunError) as e:
            logger.warning(f"IRC socket error: {e}")
            await self._emit(SocketError(message=str(e) or e.__class__.__name__))
        await self._emit(SocketClosed())

    async def _handle_line(self, line: str) -> None:
        logger.debug(f"<< {line}")
        prefix, command, params = parse_line(line)

        if command == "PING":
            self._write(f"PONG :{params[-1] if params else ''}")
        elif command == "001":
            self._registered = True
            if params:
                self._nick = params[0]
            await self._emit(Registered(nick=self._nick))
        elif command == "433" and not self._registered:
            self._nick = f"{self._nick}_"
            logger.info(f"Nickname in use, retrying as {self._nick}")
            self._write(f"NICK {self._nick}")
        elif command == "JOIN" and params:
            await self._emit(Joined(nick=nick_from_prefix(prefix), channel=params[0]))
        elif command in REJECTION_NUMERICS:
            detail = params[-1] if len(params) > 1 else REJECTION_NUMERICS[command]
            await self._emit(Rejected(code=command, message=detail))
        elif command in ("PRIVMSG", "NOTICE") and len(params) >= 2:
            text = params[-1]
            if text.startswith(CTCP_DELIM):
                await self._handle_ctcp(nick_from_prefix(prefix), command, text.strip(CTCP_DELIM))

    async def _handle_ctcp(self, sender: str, command: str, body: str) -> None:
        if command != "PRIVMSG":
            return
        if body.upper() == "VERSION":
            self._write(f"NOTICE {sender} :{CTCP_DELIM}VERSION {self._version}{CTCP_DELIM}")
        elif body.upper().startswith("DCC SEND"):
            try:
                offer = parse_dcc_send(body, nick=sender)
            except DccParseError as e:
                logger.info(f"[DCC] {e}")
                return
            await self._emit(TransferOffered(offer=offer))
