"""Exception hierarchy shared by the session, transfer and listing layers."""


class ShelfSeekerError(Exception):
    """Base exception for every failure surfaced by the backend."""
    pass


# --- Connectivity ---

class ConnectivityError(ShelfSeekerError):
    """The chat session is not usable."""
    pass


class NotConnected(ConnectivityError):
    """An operation needs a joined channel and the session is not there."""

    def __init__(self, message: str = "Not connected to channel"):
        super().__init__(message)


class ConnectTimeout(ConnectivityError):
    """No join confirmation arrived within the connect deadline."""

    def __init__(self, message: str = "Connection timeout"):
        super().__init__(message)


class SessionSocketError(ConnectivityError):
    """The underlying transport reported an error."""
    pass


class ConnectionRejected(ConnectivityError):
    """The server or channel refused us (ban, registration required)."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code


# --- Correlation ---

class CorrelationError(ShelfSeekerError):
    """A search or download did not produce a usable result."""
    pass


class SearchTimeout(CorrelationError):
    def __init__(self, message: str = "Search timeout - no results received"):
        super().__init__(message)


class DownloadTimeout(CorrelationError):
    def __init__(self, message: str = "Download timeout"):
        super().__init__(message)


class NoListingFound(CorrelationError):
    def __init__(self, message: str = "No text file found in search results"):
        super().__init__(message)


class TransferBusy(CorrelationError):
    """Another search or download is still waiting for its transfer."""

    def __init__(self, kind: str):
        super().__init__(f"A {kind} is already in progress")
        self.kind = kind


# --- Transfer ---

class TransferError(ShelfSeekerError):
    """Base exception for DCC transfer problems."""
    pass


class DccParseError(TransferError):
    """Failed to parse a DCC SEND offer."""
    pass


class TransferStalled(TransferError):
    """No bytes arrived within the inactivity timeout."""
    pass


class TransferIncomplete(TransferError):
    """The sender closed the stream before the declared size arrived."""
    pass


class ArchiveError(TransferError):
    """The received archive could not be extracted."""
    pass


# --- Listing ---

class ListingDecodeError(ShelfSeekerError):
    """A listing file could not be decoded as text."""
    pass
