"""
Chat session state machine.

disconnected --connect()--> connecting --registered--> connected --joined--> joined
joined|connected --socket loss--> reconnect attempts --> joined, or error + reconnect_failed
any --disconnect()--> disconnected

connect() returns once the channel join is confirmed, or raises on the
first of: connect deadline, transport error, server rejection.
"""

import asyncio
import logging
from typing import Awaitable, Callable

from chat.identity import generate_nickname
from chat.models import (
    Joined,
    Registered,
    Rejected,
    SessionConfig,
    SessionEvent,
    SessionEventKind,
    SessionState,
    SocketClosed,
    SocketError,
    TransferOffered,
    TransportEvent,
)
from chat.transport import EventHandler, IrcTransport
from errors import (
    ConnectionRejected,
    ConnectivityError,
    ConnectTimeout,
    NotConnected,
    SessionSocketError,
)
from transfer.models import DccOffer

logger = logging.getLogger(__name__)

TransportFactory = Callable[[EventHandler], IrcTransport]
SessionCallback = Callable[[SessionEvent], Awaitable[None]]
TransferHandler = Callable[[DccOffer], Awaitable[None]]


class ChatSession:
    """Owns one chat connection and its reconnection policy."""

    def __init__(
        self,
        config: SessionConfig,
        transport_factory: TransportFactory = IrcTransport,
    ) -> None:
        self._config = config
        self._nickname = config.nickname
        self._transport_factory = transport_factory
        self._transport: IrcTransport | None = None
        self._state = SessionState.DISCONNECTED
        self._event_callbacks: list[SessionCallback] = []
        self._transfer_handler: TransferHandler | None = None
        self._join_waiter: asyncio.Future | None = None
        self._reconnect_task: asyncio.Task | None = None
        self._retry_count = 0
        self._established = False  # registered on the current transport
        self._closing = False
        self._banned = False

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def config(self) -> SessionConfig:
        return self._config

    @property
    def nickname(self) -> str:
        if self._transport is not None and self._transport.nick:
            return self._transport.nick
        return self._nickname

    @property
    def is_banned(self) -> bool:
        return self._banned

    def on_event(self, callback: SessionCallback) -> None:
        """Register callback: async fn(SessionEvent)."""
        self._event_callbacks.append(callback)

    def on_transfer(self, handler: TransferHandler) -> None:
        """Set the single receiver of inbound DCC offers."""
        self._transfer_handler = handler

    async def _emit(self, kind: SessionEventKind, attempt: int = 0, message: str | None = None) -> None:
        event = SessionEvent(kind=kind, state=self._state, attempt=attempt, message=message)
        for cb in self._event_callbacks:
            try:
                await cb(event)
            except Exception as e:
                logger.error(f"Session event callback error: {e}")

    def _set_state(self, state: SessionState) -> None:
        if state != self._state:
            logger.debug(f"Session state {self._state.value} -> {state.value}")
            self._state = state

    # --- Public operations ---

    async def connect(self) -> None:
        """Connect, register and join the configured channel."""
        if self._banned:
            raise ConnectionRejected(
                "banned",
                "Cannot connect: banned from server/channel. "
                "Reconnect with a new nickname or wait for the ban to expire.",
            )
        if self._state == SessionState.JOINED:
            return
        if self._join_waiter is not None:
            raise ConnectivityError("A connection attempt is already in progress")

        self._cancel_reconnect()
        self._closing = False
        logger.info(f"Connecting to {self._config.server}:{self._config.port} as {self._nickname}")
        await self._open()

    async def disconnect(self) -> None:
        """Leave voluntarily. Never triggers reconnection."""
        self._closing = True
        self._cancel_reconnect()

        transport, self._transport = self._transport, None
        self._fail_waiter(NotConnected("Disconnected"))
        self._established = False
        self._set_state(SessionState.DISCONNECTED)

        if transport is not None:
            await transport.quit("Goodbye")
        logger.info("Disconnected from chat")
        await self._emit(SessionEventKind.DISCONNECTED)

    async def reconnect_with_new_nickname(self) -> None:
        """Start over with a fresh nickname; clears a ban."""
        if self._state != SessionState.DISCONNECTED:
            await self.disconnect()
        self._banned = False
        self._retry_count = 0
        self._nickname = generate_nickname()
        await self.connect()

    def require_joined(self) -> None:
        if self._state != SessionState.JOINED or self._transport is None:
            raise NotConnected()

    def send_message(self, text: str) -> None:
        """Say something in the channel. Requires the joined state."""
        self.require_joined()
        try:
            self._transport.send(self._config.channel, text)
        except ConnectionError as e:
            raise SessionSocketError(str(e)) from e
        logger.debug(f"Sent to {self._config.channel}: {text}")

    # --- Connection attempts ---

    async def _open(self) -> None:
        """One connection attempt, bounded by the connect deadline."""
        waiter = asyncio.get_running_loop().create_future()
        self._join_waiter = waiter
        self._established = False
        self._set_state(SessionState.CONNECTING)

        transport: IrcTransport | None = None

        async def handler(event: TransportEvent) -> None:
            await self._on_transport_event(transport, event)

        transport = self._transport_factory(handler)
        self._transport = transport

        async def connect_and_join() -> None:
            await transport.connect(
                self._config.server, self._config.port, self._nickname, self._config.use_tls
            )
            await waiter

        try:
            await asyncio.wait_for(connect_and_join(), timeout=self._config.connect_timeout)
        except asyncio.TimeoutError:
            await self._abandon(transport)
            raise ConnectTimeout()
        except OSError as e:
            await self._abandon(transport)
            await self._emit(SessionEventKind.ERROR, message=str(e))
            raise SessionSocketError(f"Failed to connect to {self._config.server}: {e}") from e
        except ConnectivityError:
            await self._abandon(transport)
            raise
        finally:
            if self._join_waiter is waiter:
                self._join_waiter = None

    async def _abandon(self, transport: IrcTransport) -> None:
        """Drop a failed attempt; its late events are ignored."""
        if self._transport is transport:
            self._transport = None
        self._established = False
        if not self._closing:
            self._set_state(SessionState.ERROR)
        try:
            await transport.quit("Goodbye")
        except OSError as e:
            logger.debug(f"Error closing abandoned transport: {e}")

    def _fail_waiter(self, error: Exception) -> None:
        waiter = self._join_waiter
        if waiter is not None and not waiter.done():
            waiter.set_exception(error)

    # --- Transport events ---

    async def _on_transport_event(self, transport: IrcTransport | None, event: TransportEvent) -> None:
        if transport is None or transport is not self._transport:
            logger.debug(f"Ignoring {type(event).__name__} from a stale transport")
            return

        if isinstance(event, Registered):
            self._established = True
            self._set_state(SessionState.CONNECTED)
            logger.info(f"Registered as {event.nick}")
            await self._emit(SessionEventKind.CONNECTED)
            transport.join(self._config.channel)

        elif isinstance(event, Joined):
            if event.nick.lower() != transport.nick.lower():
                return
            self._set_state(SessionState.JOINED)
            self._retry_count = 0
            logger.info(f"Joined {event.channel}")
            waiter = self._join_waiter
            if waiter is not None and not waiter.done():
                waiter.set_result(None)
            await self._emit(SessionEventKind.JOINED, message=event.channel)

        elif isinstance(event, Rejected):
            self._banned = True
            self._set_state(SessionState.ERROR)
            logger.error(f"Rejected by server ({event.code}): {event.message}")
            self._fail_waiter(ConnectionRejected(event.code, event.message))
            await self._emit(SessionEventKind.ERROR, message=event.message)

        elif isinstance(event, SocketError):
            self._set_state(SessionState.ERROR)
            logger.error(f"Chat socket error: {event.message}")
            self._fail_waiter(SessionSocketError(event.message))
            await self._emit(SessionEventKind.ERROR, message=event.message)

        elif isinstance(event, SocketClosed):
            await self._on_socket_closed()

        elif isinstance(event, TransferOffered):
            if self._transfer_handler is None:
                logger.warning(f"No handler for DCC offer of {event.offer.filename}")
                return
            await self._transfer_handler(event.offer)

    async def _on_socket_closed(self) -> None:
        established = self._established
        self._transport = None
        self._established = False

        if self._closing:
            self._set_state(SessionState.DISCONNECTED)
            return

        waiter = self._join_waiter
        if waiter is not None and not waiter.done():
            # Still inside connect(); that caller decides what happens next
            self._set_state(SessionState.ERROR)
            waiter.set_exception(SessionSocketError("Connection closed before channel join"))
            return

        if not established:
            if self._state != SessionState.ERROR:
                self._set_state(SessionState.DISCONNECTED)
            return

        logger.warning("Chat connection lost")
        await self._emit(SessionEventKind.CONNECTION_LOST)
        self._schedule_reconnect()

    # --- Reconnection ---

    def _schedule_reconnect(self) -> None:
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return
        self._reconnect_task = asyncio.create_task(self._reconnect_loop())

    def _cancel_reconnect(self) -> None:
        task = self._reconnect_task
        self._reconnect_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _reconnect_loop(self) -> None:
        while True:
            if self._banned:
                self._set_state(SessionState.ERROR)
                logger.error("Cannot reconnect: banned from server/channel")
                await self._emit(SessionEventKind.RECONNECT_FAILED, message="banned from server/channel")
                return

            if self._retry_count >= self._config.max_retries:
                self._set_state(SessionState.ERROR)
                logger.error(f"Giving up after {self._retry_count} reconnect attempts")
                await self._emit(SessionEventKind.RECONNECT_FAILED, attempt=self._retry_count)
                return

            self._retry_count += 1
            attempt = self._retry_count
            logger.info(f"Reconnecting (attempt {attempt}/{self._config.max_retries})")
            await self._emit(SessionEventKind.RECONNECTING, attempt=attempt)

            await asyncio.sleep(self._config.retry_delay)
            if self._closing:
                return

            try:
                await self._open()
                logger.info("Reconnected")
                return
            except ConnectivityError as e:
                logger.warning(f"Reconnect attempt {attempt} failed: {e}")
