import hashlib
import re
from typing import Callable, Optional

HashFunc = Callable[[bytes], bytes]


def sha256(data: bytes) -> bytes:
    """Returns SHA256 hash of bytes."""
    return hashlib.sha256(data).digest()


def to_0x_hex(data: bytes) -> str:
    """Lowercase hex with a 0x prefix, the exported textual form of hashes."""
    return "0x" + data.hex()


def from_0x_hex(text: str) -> bytes:
    """Inverse of to_0x_hex. The prefix is optional."""
    if text[:2] in ("0x", "0X"):
        text = text[2:]
    return bytes.fromhex(text)


_0X_HEX = re.compile(r"0x(?:[0-9a-f]{2})*")


def is_0x_hex(text: str, size: Optional[int] = None) -> bool:
    """True only for the exact form to_0x_hex produces, of size bytes if given."""
    if not isinstance(text, str) or not _0X_HEX.fullmatch(text):
        return False
    return size is None or len(text) == 2 + 2 * size
