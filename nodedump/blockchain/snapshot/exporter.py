# MIT License
# Copyright (c) 2025 Hashborn

"""
State Exporter

Walks the account store once, commits every account into a Merkle tree and
assembles the exported snapshot: root, per-account proofs, accounts, asset
totals and chain metadata. An export either returns a complete snapshot or
raises; nothing partial is ever produced.
"""

import os
import logging
import tempfile
import threading
import time
from pathlib import Path
from typing import Dict, List, Optional, Union

from .types import ExportContext, ExportedAccount, ExportedCoin, StateSnapshot
from ..core.accounts import Account
from ..core.encoding import encode_account, leaf_hash
from ..core.merkle import MerkleConfig, MerkleTree, verify_proof
from ..observability.metrics import record_export, record_tree
from ...protocol.config.params import NetworkConfig, CURRENT_NETWORK
from ...protocol.crypto.addresses import format_address, parse_address
from ...protocol.crypto.hash import from_0x_hex, is_0x_hex
from ...protocol.types.common import EmptyTreeError, OutputError, SnapshotError

logger = logging.getLogger(__name__)


class StateExporter:
    """
    Produces StateSnapshot documents from an ExportContext.
    """

    def __init__(self, network: Optional[NetworkConfig] = None, merkle_config: Optional[MerkleConfig] = None):
        """
        Args:
            network: Address formatting settings (default: CURRENT_NETWORK)
            merkle_config: Tree settings (default: 4 routines, sorted sibling pairs)
        """
        self.network = network or CURRENT_NETWORK
        self.merkle_config = merkle_config or MerkleConfig()

    def export(self, ctx: ExportContext, cancel_event: Optional[threading.Event] = None) -> StateSnapshot:
        """
        Export the account state described by ctx.

        Args:
            ctx: Account iteration capability plus chain metadata
            cancel_event: Checked between tree levels; setting it aborts the export

        Returns:
            The complete StateSnapshot

        Raises:
            EncodingError: An account cannot be encoded
            EmptyTreeError: The store yielded no accounts
            StoreIterationError: The store failed while iterating
            SnapshotError: Two accounts share an address
            HashMismatchError / ExportCancelled: From tree construction
        """
        logger.info(f"Exporting state of {ctx.chain_id} at height {ctx.block_height}...")
        start = time.perf_counter()

        try:
            snapshot = self._export(ctx, cancel_event)
        except Exception as e:
            stage = getattr(e, "stage", "error")
            record_export(stage, time.perf_counter() - start)
            logger.error(f"Export aborted during {stage}: {e}")
            raise

        duration = time.perf_counter() - start
        record_export("success", duration, len(snapshot.accounts))
        logger.info(
            f"Export complete at height {snapshot.block_height}: "
            f"{len(snapshot.accounts)} accounts, {len(snapshot.assets)} assets, "
            f"root {snapshot.state_root} ({duration:.2f}s)"
        )
        return snapshot

    def _export(self, ctx: ExportContext, cancel_event: Optional[threading.Event]) -> StateSnapshot:
        accounts: List[ExportedAccount] = []
        data_blocks: List[bytes] = []
        assets: Dict[str, int] = {}
        seen = set()

        # 1. Sequential pass over the store
        for acc in ctx.iterate_accounts():
            data_blocks.append(encode_account(acc))

            address = format_address(acc.address, self.network.address_format, self.network.bech32_prefix_acc)
            if address in seen:
                raise SnapshotError(f"Duplicate account address {address}")
            seen.add(address)

            for denom, amount in acc.coins.items():
                assets[denom] = assets.get(denom, 0) + amount

            accounts.append(ExportedAccount(
                address=address,
                account_number=acc.account_number,
                coins=[ExportedCoin(denom=d, amount=acc.coins[d]) for d in sorted(acc.coins)],
            ))

        if not data_blocks:
            raise EmptyTreeError("No accounts to export")

        # 2. Commit
        tree_start = time.perf_counter()
        tree = MerkleTree(data_blocks, self.merkle_config, cancel_event)
        record_tree(time.perf_counter() - tree_start, tree.depth)
        logger.info(f"Merkle tree built: {tree.num_leaves} leaves, depth {tree.depth}")

        # 3. Assemble
        proofs = {acc.address: tree.proof(i).to_hex() for i, acc in enumerate(accounts)}

        return StateSnapshot(
            chain_id=ctx.chain_id,
            block_height=ctx.block_height,
            commit_id=ctx.commit_id,
            accounts=accounts,
            assets=assets,
            state_root=tree.root_hex,
            proofs=proofs,
        )

    def write(self, snapshot: StateSnapshot, path: Union[str, Path]) -> Path:
        """
        Write the snapshot as tab-indented JSON, replacing any existing file.

        The document goes to a temporary file in the same directory first, so
        the target holds either the previous content or the complete new one.
        """
        path = Path(path)
        try:
            fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        except OSError as e:
            raise OutputError(f"Cannot write {path}: {e}") from e
        try:
            with os.fdopen(fd, 'w') as f:
                f.write(snapshot.to_json())
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except OSError as e:
            _discard(tmp_name)
            raise OutputError(f"Cannot write {path}: {e}") from e
        except BaseException:
            _discard(tmp_name)
            raise

        logger.info(f"Snapshot written to {path}")
        return path


def _discard(tmp_name: str):
    if os.path.exists(tmp_name):
        os.unlink(tmp_name)


def verify_snapshot(snapshot: StateSnapshot, merkle_config: Optional[MerkleConfig] = None) -> bool:
    """
    Check an exported snapshot on its own: every account's proof must
    reproduce state_root and the asset totals must equal the account sums.

    Returns False on any inconsistency; never raises for bad content.
    """
    config = merkle_config or MerkleConfig()
    if not snapshot.accounts:
        return False
    hash_size = len(config.hash_func(b""))
    if not is_0x_hex(snapshot.state_root, hash_size):
        logger.warning(f"Malformed state root {snapshot.state_root!r}")
        return False
    root = from_0x_hex(snapshot.state_root)

    if set(snapshot.proofs) != {acc.address for acc in snapshot.accounts}:
        logger.warning("Snapshot proofs do not match its account list")
        return False

    totals: Dict[str, int] = {}
    for index, exported in enumerate(snapshot.accounts):
        proof_hex = snapshot.proofs[exported.address]
        if not all(is_0x_hex(s, hash_size) for s in proof_hex):
            logger.warning(f"Account {exported.address} has a malformed proof")
            return False
        coins = {c.denom: c.amount for c in exported.coins}
        if len(coins) != len(exported.coins):
            logger.warning(f"Account {exported.address} lists a denom twice")
            return False
        try:
            acc = Account(
                address=parse_address(exported.address),
                account_number=exported.account_number,
                coins=coins,
            )
            leaf = leaf_hash(acc, config.hash_func)
            siblings = [from_0x_hex(s) for s in proof_hex]
        except ValueError as e:
            logger.warning(f"Account {exported.address} cannot be re-encoded: {e}")
            return False

        if not verify_proof(leaf, siblings, root, config, leaf_index=index):
            logger.warning(f"Proof for {exported.address} does not match the state root")
            return False

        for denom, amount in coins.items():
            totals[denom] = totals.get(denom, 0) + amount

    if totals != snapshot.assets:
        logger.warning("Asset totals do not match the account balances")
        return False
    return True
