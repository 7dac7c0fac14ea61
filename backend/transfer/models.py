"""Pydantic models for DCC file transfer."""

from enum import Enum
from pathlib import Path
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class OperationKind(str, Enum):
    """What an outgoing command expects back."""
    SEARCH = "search"
    DOWNLOAD = "download"


class TransferState(str, Enum):
    """All possible states for an inbound transfer."""
    CONNECTING = "connecting"
    TRANSFERRING = "transferring"
    EXTRACTING = "extracting"
    COMPLETED = "completed"
    FAILED = "failed"


class FailureKind(str, Enum):
    STALLED = "stalled"
    INCOMPLETE = "incomplete"
    ARCHIVE = "archive"
    IO = "io"


class DccOffer(BaseModel):
    """A parsed DCC SEND offer: what a peer wants to push and where from."""
    model_config = ConfigDict(frozen=True)

    filename: str
    size: int = 0
    nick: str = ""
    ip: str
    port: int

    @property
    def address(self) -> tuple[str, int]:
        return (self.ip, self.port)


class TransferInfo(BaseModel):
    """Live state of a single inbound transfer, exposed to the frontend."""
    file_name: str
    file_size: int
    transferred_bytes: int = 0
    state: TransferState = TransferState.CONNECTING
    peer_nick: str = ""
    speed_bps: float = 0.0
    progress_percent: float = 0.0
    eta_seconds: float = 0.0
    error_message: str | None = None


# --- Outcomes ---

class Completed(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Literal["completed"] = "completed"
    filename: str
    final_path: Path
    was_archive: bool = False
    extracted_entries: list[Path] | None = None


class Failed(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Literal["failed"] = "failed"
    reason: str
    kind: FailureKind = FailureKind.IO


TransferOutcome = Annotated[Union[Completed, Failed], Field(discriminator="status")]
