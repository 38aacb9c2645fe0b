"""
Canonical leaf encoding of account records.

Layout (integers big-endian):

    u8   encoding version
    u8   address length, address bytes
    u64  account number
    u32  coin count
    per coin, denoms sorted by their UTF-8 bytes:
        u16 denom length, denom bytes, u256 amount

Two records with the same logical content always encode to the same bytes,
whatever order the store kept the coins in.
"""

import struct
from typing import List, Tuple

from .accounts import Account
from ...protocol.config.params import ADDRESS_LENGTH, LEAF_ENCODING_VERSION
from ...protocol.crypto.hash import HashFunc, sha256
from ...protocol.types.common import EncodingError

MAX_U64 = 2**64 - 1
MAX_U256 = 2**256 - 1
MAX_DENOM_LENGTH = 2**16 - 1


def _check_int(name: str, value, upper: int) -> int:
    # bool is an int subclass but never a valid amount
    if isinstance(value, bool) or not isinstance(value, int):
        raise EncodingError(f"{name} must be an integer, got {type(value).__name__}")
    if value < 0:
        raise EncodingError(f"{name} must be non-negative, got {value}")
    if value > upper:
        raise EncodingError(f"{name} {value} does not fit the encoding")
    return value


def _sorted_coins(account: Account) -> List[Tuple[bytes, int]]:
    coins = []
    for denom, amount in account.coins.items():
        if not isinstance(denom, str) or not denom:
            raise EncodingError(f"Empty denom in account {account.address.hex()}")
        denom_bytes = denom.encode("utf-8")
        if len(denom_bytes) > MAX_DENOM_LENGTH:
            raise EncodingError(f"Denom too long in account {account.address.hex()}")
        coins.append((denom_bytes, _check_int(f"amount of {denom}", amount, MAX_U256)))
    coins.sort(key=lambda c: c[0])
    return coins


def encode_account(account: Account) -> bytes:
    """Returns the canonical byte encoding of an account record."""
    address = account.address
    if not isinstance(address, bytes) or len(address) != ADDRESS_LENGTH:
        raise EncodingError(
            f"Address must be {ADDRESS_LENGTH} bytes, got {len(address) if isinstance(address, bytes) else type(address).__name__}"
        )
    account_number = _check_int("account_number", account.account_number, MAX_U64)
    coins = _sorted_coins(account)

    parts = [
        struct.pack(">BB", LEAF_ENCODING_VERSION, len(address)),
        address,
        struct.pack(">QI", account_number, len(coins)),
    ]
    for denom_bytes, amount in coins:
        parts.append(struct.pack(">H", len(denom_bytes)))
        parts.append(denom_bytes)
        parts.append(amount.to_bytes(32, "big"))
    return b"".join(parts)


def leaf_hash(account: Account, hash_func: HashFunc = sha256) -> bytes:
    """Hash of the canonical encoding, i.e. the account's Merkle leaf."""
    return hash_func(encode_account(account))
