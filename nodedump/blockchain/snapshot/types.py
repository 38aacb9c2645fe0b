# MIT License
# Copyright (c) 2025 Hashborn

"""
Exported State Snapshot Structures
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Union

from pydantic import BaseModel, Field


@dataclass(frozen=True)
class ExportContext:
    """
    Everything one export needs from the outside world, passed explicitly.

    iterate_accounts returns a fresh, finite iterable of Account records in
    the store's stable order.
    """
    iterate_accounts: Callable[[], Iterable]
    chain_id: str
    block_height: int
    commit_id: str


class ExportedCoin(BaseModel):
    denom: str
    amount: int


class ExportedAccount(BaseModel):
    address: str = Field(..., description="Canonical address text (0x hex or bech32)")
    account_number: int
    coins: List[ExportedCoin] = Field(default_factory=list, description="Sorted by denom")


class StateSnapshot(BaseModel):
    """
    Complete exported account state with its Merkle commitment.
    """
    chain_id: str = Field(..., description="Chain ID")
    block_height: int = Field(..., description="Block height of the exported state")
    commit_id: str = Field(..., description="Commit identifier at that height")
    accounts: List[ExportedAccount] = Field(default_factory=list, description="Accounts in store order")
    assets: Dict[str, int] = Field(default_factory=dict, description="denom -> total amount")
    state_root: str = Field(..., description="0x-prefixed Merkle root")
    proofs: Dict[str, List[str]] = Field(default_factory=dict, description="address -> sibling hashes, bottom first")

    def to_json(self, indent: Union[int, str, None] = "\t") -> str:
        if indent is None:
            return self.model_dump_json()
        # pydantic only indents with spaces; go through json for tabs
        return json.dumps(self.model_dump(mode="json"), indent=indent)

    @classmethod
    def load(cls, path: Union[str, Path]) -> 'StateSnapshot':
        with open(path, 'r') as f:
            return cls.model_validate_json(f.read())
