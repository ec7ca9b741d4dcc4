"""
Copyright (C) 2026 Garudex Labs.  All Rights Reserved.
Merkle Airdrop, a product of Garudex Labs

Sorted-pair Merkle tree for airdrop allocations.

This module implements a binary Merkle tree over 32-byte leaf hashes with
SHA-256. It supports:
- Tree construction with the sorted-pair rule (smaller child hashed first)
- Canonical leaf ordering, so any permutation of the input yields the same root
- Merkle proof generation for any leaf
- Parallel level construction for large phases
- Builder pattern for convenient tree construction
"""

import concurrent.futures
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from airdrop.exceptions import MalformedInputError
from airdrop.logging_config import get_logger
from airdrop.merkle.leaf import sha256

logger = get_logger(__name__)

HASH_SIZE = 32


def hash_pair(a: bytes, b: bytes) -> bytes:
    """
    Combine two sibling hashes with the sorted-pair rule.

    The smaller hash (byte order) is concatenated before the larger one, so
    the result does not depend on which side each sibling sits.
    """
    if b < a:
        a, b = b, a
    return sha256(a + b)


@dataclass
class MerkleProof:
    """
    Proof that a leaf is included in a Merkle tree.

    Attributes:
        leaf_hash: Hash of the leaf being proven
        proof_hashes: Sibling hashes from leaf to root
        root_hash: Root the proof was generated against
    """
    leaf_hash: bytes
    proof_hashes: List[bytes]
    root_hash: bytes

    def to_hex(self) -> List[str]:
        """Proof as a list of 64-character hex strings."""
        return [h.hex() for h in self.proof_hashes]


class MerkleTree:
    """
    Binary Merkle tree over leaf hashes using the sorted-pair rule.

    Leaves are sorted before construction. At each level sibling pairs are
    combined with ``hash_pair``; an unpaired last node is promoted unchanged to
    the next level. A single-leaf tree has the leaf itself as root.

    Example:
        >>> tree = MerkleTree([leaf_a, leaf_b, leaf_c])
        >>> root = tree.get_root()
        >>> proof = tree.generate_proof(leaf_b)
        >>> assert verify_proof(leaf_b, proof.proof_hashes, root)
    """

    # Threshold for parallel processing (use parallel for levels larger than this)
    PARALLEL_THRESHOLD = 1024

    def __init__(self, leaves: Iterable[bytes], use_parallel: bool = True):
        """
        Build Merkle tree from leaf hashes.

        Args:
            leaves: 32-byte leaf hashes, in any order
            use_parallel: Enable parallel processing for large levels (default: True)

        Raises:
            MalformedInputError: If leaves is empty, contains a value that is not
                32 bytes, or contains duplicates
        """
        leaves = [bytes(leaf) for leaf in leaves]
        if not leaves:
            raise MalformedInputError("Cannot create Merkle tree from empty leaves list")

        for leaf in leaves:
            if len(leaf) != HASH_SIZE:
                raise MalformedInputError(
                    f"Leaf hashes must be {HASH_SIZE} bytes, got {len(leaf)}"
                )

        self.leaves: List[bytes] = sorted(leaves)
        self._index: Dict[bytes, int] = {leaf: i for i, leaf in enumerate(self.leaves)}
        if len(self._index) != len(self.leaves):
            raise MalformedInputError("Duplicate leaf hashes in Merkle tree input")

        self.leaf_count = len(self.leaves)
        self.use_parallel = use_parallel and self.leaf_count >= self.PARALLEL_THRESHOLD

        # List of levels, bottom (leaves) to top (root)
        self.tree = self._build_tree()

    def _build_level(self, current_level: List[bytes]) -> List[bytes]:
        next_level = []
        for i in range(0, len(current_level) - 1, 2):
            next_level.append(hash_pair(current_level[i], current_level[i + 1]))
        if len(current_level) % 2 == 1:
            # Odd node out is promoted unchanged
            next_level.append(current_level[-1])
        return next_level

    def _build_level_parallel(self, current_level: List[bytes]) -> List[bytes]:
        pairs = [
            (current_level[i], current_level[i + 1])
            for i in range(0, len(current_level) - 1, 2)
        ]
        with concurrent.futures.ThreadPoolExecutor(max_workers=4) as executor:
            next_level = list(executor.map(lambda p: hash_pair(p[0], p[1]), pairs))
        if len(current_level) % 2 == 1:
            next_level.append(current_level[-1])
        return next_level

    def _build_tree(self) -> List[List[bytes]]:
        """
        Build the tree bottom-up.

        Returns:
            List of levels where tree[0] is the leaf level and tree[-1] holds the root
        """
        tree = [self.leaves]
        current_level = self.leaves

        while len(current_level) > 1:
            if self.use_parallel and len(current_level) >= self.PARALLEL_THRESHOLD:
                next_level = self._build_level_parallel(current_level)
            else:
                next_level = self._build_level(current_level)
            tree.append(next_level)
            current_level = next_level

        return tree

    def get_root(self) -> bytes:
        """Get the Merkle root hash."""
        return self.tree[-1][0]

    @property
    def depth(self) -> int:
        """Number of levels above the leaves."""
        return len(self.tree) - 1

    def index_of(self, leaf: bytes) -> Optional[int]:
        """Position of a leaf hash in canonical order, or None if absent."""
        return self._index.get(bytes(leaf))

    def generate_proof(self, leaf: bytes) -> MerkleProof:
        """
        Generate the Merkle proof for a leaf hash.

        The proof lists the sibling hash at every level where the node has a
        sibling; levels where the node is promoted contribute nothing.

        Args:
            leaf: Leaf hash to prove

        Returns:
            MerkleProof for the leaf

        Raises:
            MalformedInputError: If the leaf is not in the tree
        """
        index = self.index_of(leaf)
        if index is None:
            raise MalformedInputError(f"Leaf {bytes(leaf).hex()} is not in the tree")
        return self.generate_proof_at(index)

    def generate_proof_at(self, leaf_index: int) -> MerkleProof:
        """
        Generate the Merkle proof for the leaf at a canonical index.

        Raises:
            MalformedInputError: If leaf_index is out of range
        """
        if leaf_index < 0 or leaf_index >= self.leaf_count:
            raise MalformedInputError(
                f"Leaf index {leaf_index} out of range [0, {self.leaf_count})"
            )

        proof_hashes = []
        current_index = leaf_index

        for level in self.tree[:-1]:
            sibling_index = current_index ^ 1
            if sibling_index < len(level):
                proof_hashes.append(level[sibling_index])
            current_index //= 2

        return MerkleProof(
            leaf_hash=self.leaves[leaf_index],
            proof_hashes=proof_hashes,
            root_hash=self.get_root(),
        )


class MerkleTreeBuilder:
    """
    Builder class for constructing Merkle trees for one phase.

    Example:
        >>> builder = MerkleTreeBuilder().build_tree(leaf_hashes)
        >>> root = builder.get_root()
        >>> proof = builder.get_proof(leaf_hashes[0])
    """

    def __init__(self, use_parallel: bool = True):
        self.use_parallel = use_parallel
        self._tree: Optional[MerkleTree] = None

    def build_tree(self, leaves: Iterable[bytes]) -> "MerkleTreeBuilder":
        """
        Build Merkle tree from leaf hashes.

        Returns:
            Self for method chaining

        Raises:
            MalformedInputError: If leaves are empty or malformed
        """
        self._tree = MerkleTree(leaves, use_parallel=self.use_parallel)
        logger.debug(f"Built Merkle tree with {self._tree.leaf_count} leaves")
        return self

    @property
    def tree(self) -> MerkleTree:
        if self._tree is None:
            raise RuntimeError("Tree has not been built yet. Call build_tree() first.")
        return self._tree

    def get_root(self) -> bytes:
        """
        Get the Merkle root hash.

        Raises:
            RuntimeError: If tree has not been built yet
        """
        return self.tree.get_root()

    def get_proof(self, leaf: bytes) -> MerkleProof:
        """
        Generate Merkle proof for a leaf hash.

        Raises:
            RuntimeError: If tree has not been built yet
            MalformedInputError: If the leaf is not in the tree
        """
        return self.tree.generate_proof(leaf)
