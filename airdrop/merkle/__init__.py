"""
Copyright (C) 2026 Garudex Labs.  All Rights Reserved.
Merkle Airdrop, a product of Garudex Labs

Merkle commitment for airdrop allocations: leaf encoding, sorted-pair tree
construction, proof verification and distributable artifacts.
"""

from airdrop.merkle.leaf import Leaf, encode_leaf, leaf_hash, scale_amount
from airdrop.merkle.tree import MerkleProof, MerkleTree, MerkleTreeBuilder, hash_pair
from airdrop.merkle.verifier import (
    VerificationResult,
    VerificationSummary,
    compute_root,
    require_valid_proof,
    verify_allocation,
    verify_artifact,
    verify_proof,
)
from airdrop.merkle.artifact import (
    PhaseClaim,
    PoolCreationArtifact,
    ProofArtifact,
    ProofEntry,
    collect_phase_claims,
    generate_distribution,
)

__all__ = [
    "Leaf",
    "MerkleProof",
    "MerkleTree",
    "MerkleTreeBuilder",
    "PhaseClaim",
    "PoolCreationArtifact",
    "ProofArtifact",
    "ProofEntry",
    "VerificationResult",
    "VerificationSummary",
    "collect_phase_claims",
    "compute_root",
    "encode_leaf",
    "generate_distribution",
    "hash_pair",
    "leaf_hash",
    "require_valid_proof",
    "scale_amount",
    "verify_allocation",
    "verify_artifact",
    "verify_proof",
]
