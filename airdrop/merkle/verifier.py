"""
Copyright (C) 2026 Garudex Labs.  All Rights Reserved.
Merkle Airdrop, a product of Garudex Labs

Merkle proof verification.

The verifier recomputes a root from a leaf hash and its proof using the same
sorted-pair rule as the tree builder. It is used by administrator tooling to
sanity-check a distribution and by the airdrop program before it authorizes a
transfer; both sides must agree exactly, since a divergence silently yields a
different root rather than an error.
"""

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional, Sequence

from airdrop.exceptions import AirdropError, ProofInvalidError
from airdrop.logging_config import get_logger
from airdrop.merkle.leaf import leaf_hash
from airdrop.merkle.tree import HASH_SIZE, hash_pair

if TYPE_CHECKING:
    from airdrop.merkle.artifact import ProofArtifact

logger = get_logger(__name__)


def compute_root(leaf: bytes, proof: Sequence[bytes]) -> bytes:
    """
    Fold a proof over a leaf hash with the sorted-pair rule.

    Args:
        leaf: 32-byte leaf hash
        proof: Ordered sibling hashes from leaf to root

    Returns:
        The recomputed root
    """
    current = bytes(leaf)
    for sibling in proof:
        current = hash_pair(current, bytes(sibling))
    return current


def verify_proof(leaf: bytes, proof: Sequence[bytes], root: bytes) -> bool:
    """
    Check that a proof recomputes the expected root.

    Malformed input (wrong-sized hashes) verifies as False rather than raising.

    Args:
        leaf: 32-byte leaf hash
        proof: Ordered sibling hashes
        root: Expected 32-byte root

    Returns:
        True if the recomputed root equals root
    """
    if len(leaf) != HASH_SIZE or len(root) != HASH_SIZE:
        return False
    if any(len(sibling) != HASH_SIZE for sibling in proof):
        return False
    return compute_root(leaf, proof) == bytes(root)


def verify_allocation(
    phase: int,
    recipient: bytes,
    amount: int,
    proof: Sequence[bytes],
    root: bytes,
) -> bool:
    """Re-encode (phase, recipient, amount) and verify its proof against root."""
    return verify_proof(leaf_hash(phase, recipient, amount), proof, root)


def require_valid_proof(
    phase: int,
    recipient: bytes,
    amount: int,
    proof: Sequence[bytes],
    root: bytes,
) -> None:
    """
    Raise unless the allocation verifies against root.

    Raises:
        ProofInvalidError: If the recomputed root does not match
    """
    if not verify_allocation(phase, recipient, amount, proof, root):
        raise ProofInvalidError(
            f"Proof does not match the published root for phase {phase}"
        )


@dataclass
class VerificationResult:
    """
    Result of verifying one recipient's entry in a proof artifact.

    Attributes:
        address: Recipient address
        verified: True if the proof recomputes the artifact root
        computed_root: Root recomputed from the proof
        error_message: Error message if verification failed
    """
    address: str
    verified: bool
    computed_root: bytes = b""
    error_message: Optional[str] = None


@dataclass
class VerificationSummary:
    """
    Summary of verifying every entry of a proof artifact.

    Attributes:
        total_entries: Number of entries checked
        verified_entries: Number of entries that verified
        failed_entries: Number of entries that failed
        verification_errors: Failed verification results
    """
    total_entries: int
    verified_entries: int
    failed_entries: int
    verification_errors: List[VerificationResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.failed_entries == 0


def verify_artifact(artifact: "ProofArtifact") -> VerificationSummary:
    """
    Re-verify every entry of a proof artifact against its own root.

    Args:
        artifact: Distribution artifact to check

    Returns:
        VerificationSummary with any failing entries
    """
    start = time.perf_counter()
    errors: List[VerificationResult] = []

    for address, entry in artifact.entries.items():
        try:
            recipient = artifact.recipient_bytes(address)
            computed = compute_root(
                leaf_hash(artifact.phase, recipient, entry.amount), entry.proof
            )
        except (AirdropError, ValueError) as e:
            errors.append(VerificationResult(address=address, verified=False, error_message=str(e)))
            continue

        if computed != artifact.merkle_root:
            errors.append(
                VerificationResult(
                    address=address,
                    verified=False,
                    computed_root=computed,
                    error_message="computed root does not match artifact root",
                )
            )

    total = len(artifact.entries)
    duration_ms = (time.perf_counter() - start) * 1000
    if errors:
        logger.error(
            "artifact_verification_failed",
            phase=artifact.phase,
            failed=len(errors),
            total=total,
            duration_ms=duration_ms,
        )
    else:
        logger.info(
            "artifact_verified", phase=artifact.phase, total=total, duration_ms=duration_ms
        )

    return VerificationSummary(
        total_entries=total,
        verified_entries=total - len(errors),
        failed_entries=len(errors),
        verification_errors=errors,
    )
