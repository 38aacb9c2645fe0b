from enum import Enum


class AddressFormat(str, Enum):
    HEX = "hex"
    BECH32 = "bech32"


class ProtocolError(Exception):
    """Base error for every export stage. `stage` names where it failed."""
    stage = "export"


class EncodingError(ProtocolError, ValueError):
    stage = "encode"


class EmptyTreeError(ProtocolError):
    stage = "tree"


class HashMismatchError(ProtocolError):
    stage = "tree"


class ExportCancelled(ProtocolError):
    stage = "tree"


class StoreIterationError(ProtocolError):
    stage = "store"


class SnapshotError(ProtocolError):
    stage = "assemble"


class OutputError(ProtocolError):
    stage = "write"
