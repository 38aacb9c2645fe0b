"""
Merkle tree over account leaves, with per-leaf inclusion proofs.

Construction rules:
- Every data block is hashed into a leaf.
- A single leaf is its own root and has an empty proof.
- Otherwise the leaf level is padded to the next power of two by repeating
  the last leaf hash, so each level halves cleanly.
- A parent is H(a || b). With sort_sibling_pairs the pair is ordered
  byte-wise first, which makes the parent independent of which child is
  on the left; verifiers must apply the same rule.

Hashing within a level may run on a fixed thread pool. Each level is split
into contiguous chunks that write disjoint slots of a pre-allocated list,
and all chunks are joined before the next level starts, so the tree does not
depend on scheduling or on the worker count.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from ...protocol.config.params import DEFAULT_NUM_ROUTINES, RUN_IN_PARALLEL, SORT_SIBLING_PAIRS
from ...protocol.crypto.hash import HashFunc, sha256, to_0x_hex, from_0x_hex
from ...protocol.types.common import EmptyTreeError, ExportCancelled, HashMismatchError

logger = logging.getLogger(__name__)


@dataclass
class MerkleConfig:
    num_routines: int = DEFAULT_NUM_ROUTINES
    run_in_parallel: bool = RUN_IN_PARALLEL
    sort_sibling_pairs: bool = SORT_SIBLING_PAIRS
    hash_func: HashFunc = sha256
    # Re-verify every proof against the root once the tree is built
    verify_after_build: bool = True


@dataclass
class Proof:
    """Inclusion proof for one leaf. Siblings are ordered bottom level first."""

    leaf_index: int
    leaf_hash: bytes
    siblings: List[bytes] = field(default_factory=list)

    def to_hex(self) -> List[str]:
        return [to_0x_hex(s) for s in self.siblings]


def hash_pair(a: bytes, b: bytes, hash_func: HashFunc = sha256, sort_pairs: bool = True) -> bytes:
    """Hash two sibling nodes into their parent."""
    if sort_pairs and b < a:
        a, b = b, a
    return hash_func(a + b)


def verify_proof(
    leaf_hash: bytes,
    siblings: Sequence[bytes],
    root: bytes,
    config: Optional[MerkleConfig] = None,
    leaf_index: int = 0,
) -> bool:
    """
    Recompute the root from a leaf hash and its siblings.

    leaf_index gives the left/right position at each level and only matters
    when sort_sibling_pairs is disabled. A proof that does not match is
    reported as False, never raised.
    """
    config = config or MerkleConfig()
    try:
        current = leaf_hash
        index = leaf_index
        for sibling in siblings:
            if config.sort_sibling_pairs or index % 2 == 0:
                current = hash_pair(current, sibling, config.hash_func, config.sort_sibling_pairs)
            else:
                current = hash_pair(sibling, current, config.hash_func, False)
            index >>= 1
        return current == root
    except (TypeError, ValueError):
        return False


def verify_hex_proof(
    leaf_hash_hex: str,
    proof_hex: Sequence[str],
    root_hex: str,
    config: Optional[MerkleConfig] = None,
    leaf_index: int = 0,
) -> bool:
    """verify_proof over the exported "0x"-prefixed hex form."""
    try:
        leaf = from_0x_hex(leaf_hash_hex)
        siblings = [from_0x_hex(s) for s in proof_hex]
        root = from_0x_hex(root_hex)
    except (TypeError, ValueError):
        return False
    return verify_proof(leaf, siblings, root, config, leaf_index)


class MerkleTree:
    """
    Immutable Merkle tree built once from an ordered list of data blocks.

    Attributes:
        leaves: leaf hashes of the original blocks, in input order
        levels: every level bottom-up, levels[0] being the padded leaf level
        root: root hash
        proofs: one Proof per original block
    """

    def __init__(
        self,
        data_blocks: Sequence[bytes],
        config: Optional[MerkleConfig] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.config = config or MerkleConfig()
        if self.config.num_routines < 1:
            raise ValueError(f"num_routines must be >= 1, got {self.config.num_routines}")
        if not data_blocks:
            raise EmptyTreeError("Cannot build a Merkle tree without data blocks")

        self.num_leaves = len(data_blocks)
        self._cancel_event = cancel_event
        self.levels: List[List[bytes]] = []
        self.proofs: List[Proof] = []

        if self._use_pool():
            with ThreadPoolExecutor(
                max_workers=self.config.num_routines, thread_name_prefix="merkle"
            ) as executor:
                self._build(data_blocks, executor)
        else:
            self._build(data_blocks, None)

        self.root: bytes = self.levels[-1][0]

        if self.config.verify_after_build:
            self._check_consistency()

        logger.debug(
            f"Built Merkle tree: {self.num_leaves} leaves, depth {self.depth}, "
            f"root {self.root.hex()}"
        )

    @property
    def depth(self) -> int:
        return len(self.levels) - 1

    @property
    def leaves(self) -> List[bytes]:
        return self.levels[0][:self.num_leaves]

    @property
    def root_hex(self) -> str:
        return to_0x_hex(self.root)

    def proof(self, index: int) -> Proof:
        if not (0 <= index < self.num_leaves):
            raise IndexError(f"leaf index {index} out of range [0, {self.num_leaves})")
        return self.proofs[index]

    def verify(self, index: int) -> bool:
        p = self.proof(index)
        return verify_proof(p.leaf_hash, p.siblings, self.root, self.config, p.leaf_index)

    # --- construction ---

    def _use_pool(self) -> bool:
        return self.config.run_in_parallel and self.config.num_routines > 1 and self.num_leaves > 1

    def _check_cancelled(self):
        if self._cancel_event is not None and self._cancel_event.is_set():
            raise ExportCancelled("Merkle tree construction cancelled")

    def _run_chunks(self, executor: Optional[ThreadPoolExecutor], count: int, task: Callable[[int, int], None]):
        """Run task(start, end) over [0, count), split across the pool, and wait for all chunks."""
        if executor is None or count < 2:
            task(0, count)
            return

        chunks = min(self.config.num_routines, count)
        step, extra = divmod(count, chunks)
        futures = []
        start = 0
        for i in range(chunks):
            end = start + step + (1 if i < extra else 0)
            futures.append(executor.submit(task, start, end))
            start = end

        # Barrier: every chunk of this stage finishes (or raises) before the caller moves on
        for future in futures:
            future.result()

    def _build(self, data_blocks: Sequence[bytes], executor: Optional[ThreadPoolExecutor]):
        hash_func = self.config.hash_func
        sort_pairs = self.config.sort_sibling_pairs

        # 1. Leaf hashes
        leaves: List[Optional[bytes]] = [None] * self.num_leaves

        def hash_leaves(start: int, end: int):
            for i in range(start, end):
                leaves[i] = hash_func(data_blocks[i])

        self._run_chunks(executor, self.num_leaves, hash_leaves)

        # 2. Pad to the next power of two with the last leaf
        size = 1 << (self.num_leaves - 1).bit_length()
        level = leaves + [leaves[-1]] * (size - self.num_leaves)
        self.levels = [level]

        # 3. Levels bottom-up
        while len(level) > 1:
            self._check_cancelled()
            child = level
            parents: List[Optional[bytes]] = [None] * (len(child) // 2)

            def hash_parents(start: int, end: int):
                for i in range(start, end):
                    parents[i] = hash_pair(child[2 * i], child[2 * i + 1], hash_func, sort_pairs)

            self._run_chunks(executor, len(parents), hash_parents)
            logger.debug(f"Merkle level {len(self.levels)}: {len(parents)} nodes")
            self.levels.append(parents)
            level = parents

        # 4. Sibling paths
        self._check_cancelled()
        proofs: List[Optional[Proof]] = [None] * self.num_leaves
        inner_levels = self.levels[:-1]

        def extract_proofs(start: int, end: int):
            for i in range(start, end):
                index = i
                siblings = []
                for lvl in inner_levels:
                    siblings.append(lvl[index ^ 1])
                    index >>= 1
                proofs[i] = Proof(leaf_index=i, leaf_hash=self.levels[0][i], siblings=siblings)

        self._run_chunks(executor, self.num_leaves, extract_proofs)
        self.proofs = proofs

    def _check_consistency(self):
        for p in self.proofs:
            if not verify_proof(p.leaf_hash, p.siblings, self.root, self.config, p.leaf_index):
                raise HashMismatchError(
                    f"Proof for leaf {p.leaf_index} does not reproduce root {self.root.hex()}"
                )
