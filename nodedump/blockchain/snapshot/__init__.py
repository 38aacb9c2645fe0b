# MIT License
# Copyright (c) 2025 Hashborn

"""
State Export

Builds Merkle-committed snapshots of the account state, with one inclusion
proof per account.
"""

from .exporter import StateExporter, verify_snapshot
from .types import ExportContext, ExportedAccount, ExportedCoin, StateSnapshot

__all__ = [
    "StateExporter",
    "verify_snapshot",
    "ExportContext",
    "ExportedAccount",
    "ExportedCoin",
    "StateSnapshot",
]
