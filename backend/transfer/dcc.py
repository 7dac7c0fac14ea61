"""DCC SEND offer parsing.

CTCP payload format:  DCC SEND "filename.epub" 2760158537 2050 2321788
                                |               |          |    |
                                filename        IP(int)    port size (optional)
"""

import logging
import re
import struct

from errors import DccParseError
from transfer.models import DccOffer

logger = logging.getLogger(__name__)

DCC_SEND = re.compile(r'^DCC SEND (?:"(.+)"|(.+?)) (\d+) (\d+)(?: (\d+))?\s*$')


def int_to_ip(ip_int: int) -> str:
    """Convert a 32-bit integer (DCC format) to dotted notation."""
    packed = struct.pack(">I", ip_int & 0xFFFFFFFF)
    return ".".join(str(b) for b in packed)


def parse_dcc_send(text: str, nick: str = "") -> DccOffer:
    """Parse a DCC SEND message. Raises DccParseError on failure."""
    clean = text.replace("\x01", "").strip()
    match = DCC_SEND.match(clean)
    if not match:
        raise DccParseError(f"Invalid DCC SEND format: {clean[:100]}")

    quoted, bare, ip_int, port, size = match.groups()
    filename = (quoted or bare).strip()
    if not filename:
        raise DccParseError(f"Empty filename in DCC SEND: {clean[:100]}")

    return DccOffer(
        filename=filename,
        ip=int_to_ip(int(ip_int)),
        port=int(port),
        size=int(size) if size else 0,
        nick=nick,
    )
