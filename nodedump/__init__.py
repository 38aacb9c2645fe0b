# MIT License
# Copyright (c) 2025 Hashborn

"""
nodedump: Merkle-committed export of ledger account state.
"""

__version__ = "0.1.0"
