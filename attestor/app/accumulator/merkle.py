"""
Fixed-depth Merkle accumulator over signer fingerprints.

The tree is rebuilt in full from the allow-list on every run and is
immutable once built. There is no insert/update API.

Shape:
    depth D = 8, capacity 2^D = 256 leaves
    unused leaf slots hold the field zero
    node(k+1, j) = H(node(k, 2j), node(k, 2j+1))

For leaf index i, the sibling at level k is node(k, (i >> k) XOR 1).
Bit k of i decides whether the running hash is the left (0) or right (1)
input at that level.

H is supplied by an injected CompressionBackend. Because a wrong H only
shows up later as a proving failure, build() recomputes the root from a
sample proof before returning and raises AccumulatorError on mismatch.
"""

from __future__ import annotations

import logging
from typing import List, Sequence, Tuple

from attestor.app.accumulator.compression import CompressionBackend
from attestor.app.errors import AccumulatorError
from attestor.app.schemas.material import MerkleProof
from attestor.app.utils.hashing import BN254_SCALAR_FIELD

logger = logging.getLogger(__name__)


MERKLE_DEPTH = 8
FIELD_ZERO = 0


def compute_root(
    leaf: int,
    index: int,
    siblings: Sequence[int],
    compression: CompressionBackend,
) -> int:
    """Fold a leaf up to the root using its siblings and index bits."""
    node = leaf
    for level, sibling in enumerate(siblings):
        if (index >> level) & 1:
            node = compression.compress(sibling, node)
        else:
            node = compression.compress(node, sibling)
    return node


def verify_proof(proof: MerkleProof, compression: CompressionBackend) -> bool:
    return compute_root(
        proof.leaf, proof.leaf_index, proof.siblings, compression
    ) == proof.root


def pad_merkle_path(path: Sequence[int], depth: int = MERKLE_DEPTH) -> List[int]:
    """Right-pad a path with field zeros to exactly depth entries."""
    if len(path) > depth:
        raise AccumulatorError(
            f"Merkle path has {len(path)} entries, maximum is {depth}"
        )
    return list(path) + [FIELD_ZERO] * (depth - len(path))


class MerkleTree:
    """
    Immutable zero-padded Merkle tree.

    levels[0] are the padded leaves, levels[depth] is (root,).
    """

    def __init__(
        self,
        levels: Tuple[Tuple[int, ...], ...],
        leaf_count: int,
    ) -> None:
        self._levels = levels
        self._leaf_count = leaf_count

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def build(
        cls,
        leaves: Sequence[int],
        compression: CompressionBackend,
        *,
        depth: int = MERKLE_DEPTH,
    ) -> "MerkleTree":
        capacity = 1 << depth
        if len(leaves) > capacity:
            raise AccumulatorError(
                f"Allow-list has {len(leaves)} entries; accumulator "
                f"capacity is {capacity}"
            )
        for i, leaf in enumerate(leaves):
            if not 0 <= leaf < BN254_SCALAR_FIELD:
                raise AccumulatorError(f"Leaf {i} is not a field element")

        level: Tuple[int, ...] = tuple(leaves) + (FIELD_ZERO,) * (
            capacity - len(leaves)
        )
        levels = [level]
        for _ in range(depth):
            level = tuple(
                compression.compress(level[j], level[j + 1])
                for j in range(0, len(level), 2)
            )
            levels.append(level)

        tree = cls(levels=tuple(levels), leaf_count=len(leaves))
        tree._self_check(compression)

        logger.info(
            "Built Merkle tree: %d leaves, depth %d, root %d",
            len(leaves),
            depth,
            tree.root,
        )
        return tree

    def _self_check(self, compression: CompressionBackend) -> None:
        sample = max(self._leaf_count - 1, 0)
        proof = self._proof(sample)
        recomputed = compute_root(
            proof.leaf, proof.leaf_index, proof.siblings, compression
        )
        if recomputed != self.root:
            raise AccumulatorError(
                f"Merkle self-check failed at index {sample}: "
                f"recomputed {recomputed}, built {self.root}"
            )

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def root(self) -> int:
        return self._levels[-1][0]

    @property
    def depth(self) -> int:
        return len(self._levels) - 1

    @property
    def leaf_count(self) -> int:
        return self._leaf_count

    @property
    def leaves(self) -> Tuple[int, ...]:
        """All 2^depth leaves, including zero padding."""
        return self._levels[0]

    # ------------------------------------------------------------------
    # Proofs
    # ------------------------------------------------------------------

    def _proof(self, index: int) -> MerkleProof:
        siblings = tuple(
            self._levels[k][(index >> k) ^ 1]
            for k in range(self.depth)
        )
        return MerkleProof(
            leaf=self._levels[0][index],
            leaf_index=index,
            siblings=siblings,
            root=self.root,
        )

    def proof_for(self, index: int) -> MerkleProof:
        if not 0 <= index < self._leaf_count:
            raise AccumulatorError(
                f"Leaf index {index} outside populated range "
                f"[0, {self._leaf_count})"
            )
        return self._proof(index)
