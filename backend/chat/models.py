"""Pydantic models for the chat session."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from chat.identity import generate_nickname
from config import (
    CONNECT_TIMEOUT,
    DOWNLOAD_TIMEOUT,
    IRC_CHANNEL,
    IRC_PORT,
    IRC_SERVER,
    IRC_USE_TLS,
    MAX_RETRIES,
    RETRY_DELAY,
    SEARCH_COMMAND,
    SEARCH_TIMEOUT,
)
from transfer.models import DccOffer


class SessionState(str, Enum):
    """All possible states of the chat session."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    JOINED = "joined"
    ERROR = "error"


class SessionConfig(BaseModel):
    """Connection settings for one session instance. Immutable."""
    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    server: str = IRC_SERVER
    port: int = Field(default=IRC_PORT, ge=1, le=65535)
    channel: str = IRC_CHANNEL
    nickname: str = Field(default_factory=generate_nickname)
    search_command: str = SEARCH_COMMAND
    use_tls: bool = IRC_USE_TLS
    max_retries: int = Field(default=MAX_RETRIES, ge=0)
    retry_delay: float = Field(default=RETRY_DELAY, ge=0)
    connect_timeout: float = Field(default=CONNECT_TIMEOUT, gt=0)
    search_timeout: float = Field(default=SEARCH_TIMEOUT, gt=0)
    download_timeout: float = Field(default=DOWNLOAD_TIMEOUT, gt=0)

    @field_validator("channel")
    @classmethod
    def _channel_prefix(cls, value: str) -> str:
        if not value or value[0] not in "#&":
            raise ValueError("channel must start with '#' or '&'")
        return value

    @field_validator("server", "nickname", "search_command")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value.strip()


# --- Transport events (what the wire client reports, in arrival order) ---

class Registered(BaseModel):
    nick: str


class Joined(BaseModel):
    nick: str
    channel: str


class Rejected(BaseModel):
    """Server numerics that refuse us: 465, 474, 477."""
    code: str
    message: str


class SocketError(BaseModel):
    message: str


class SocketClosed(BaseModel):
    pass


class TransferOffered(BaseModel):
    offer: DccOffer


TransportEvent = Registered | Joined | Rejected | SocketError | SocketClosed | TransferOffered


# --- Session events (what the session reports to its owner) ---

class SessionEventKind(str, Enum):
    CONNECTED = "connected"
    JOINED = "joined"
    DISCONNECTED = "disconnected"
    CONNECTION_LOST = "connection_lost"
    RECONNECTING = "reconnecting"
    RECONNECT_FAILED = "reconnect_failed"
    ERROR = "error"


class SessionEvent(BaseModel):
    kind: SessionEventKind
    state: SessionState
    attempt: int = 0
    message: str | None = None
