import bech32 # type: ignore
from typing import Tuple
from .hash import to_0x_hex, from_0x_hex
from ..types.common import AddressFormat


def bech32_from_bytes(addr: bytes, prefix: str = "bnb") -> str:
    """Creates Bech32 address from raw address bytes."""
    five_bit_r = bech32.convertbits(addr, 8, 5)
    if five_bit_r is None:
        raise ValueError("Error converting to bech32 words")

    return bech32.bech32_encode(prefix, five_bit_r)


def decode_address(addr: str) -> Tuple[str, bytes]:
    """Decodes Bech32 address to (prefix, address_bytes)."""
    hrp, data = bech32.bech32_decode(addr)
    if hrp is None or data is None:
        raise ValueError("Invalid bech32 address")

    decoded = bech32.convertbits(data, 5, 8, False)
    if decoded is None:
        raise ValueError("Error converting from bech32 words")

    return hrp, bytes(decoded)


def format_address(addr: bytes, address_format: AddressFormat = AddressFormat.HEX, prefix: str = "bnb") -> str:
    """Canonical textual form of an address, used as the key of exported proofs."""
    if AddressFormat(address_format) == AddressFormat.BECH32:
        return bech32_from_bytes(addr, prefix)
    return to_0x_hex(addr)


def parse_address(text: str) -> bytes:
    """Accepts either textual form produced by format_address."""
    if text[:2] in ("0x", "0X"):
        return from_0x_hex(text)
    _, raw = decode_address(text)
    return raw
