"""
Copyright (C) 2026 Garudex Labs.  All Rights Reserved.
Merkle Airdrop, a product of Garudex Labs

Distributable artifacts.

The administrator turns a recipient -> amount table into a ProofArtifact (the
phase root plus every recipient's amount and proof) and, after creating the
pool, records a PoolCreationArtifact. Both are plain JSON; hashes travel as
64-character lowercase hex.
"""

import json
import os
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from airdrop.chain.keys import Pubkey
from airdrop.exceptions import ArtifactError, FileWriteError, MalformedInputError
from airdrop.logging_config import get_logger, log_merkle_root_computation
from airdrop.merkle.leaf import leaf_hash, scale_amount, validate_amount, validate_phase
from airdrop.merkle.tree import HASH_SIZE, MerkleTreeBuilder

logger = get_logger(__name__)


def hash_to_hex(value: bytes) -> str:
    return bytes(value).hex()


def hash_from_hex(text: str) -> bytes:
    """
    Decode a 64-character hex hash (an optional 0x prefix is accepted).

    Raises:
        ArtifactError: If text is not exactly 32 bytes of hex
    """
    if not isinstance(text, str):
        raise ArtifactError(f"hash must be a hex string, got {text!r}")
    cleaned = text[2:] if text.startswith(("0x", "0X")) else text
    if len(cleaned) != HASH_SIZE * 2:
        raise ArtifactError(f"hash must be {HASH_SIZE * 2} hex characters, got {len(cleaned)}")
    try:
        return bytes.fromhex(cleaned)
    except ValueError as e:
        raise ArtifactError(f"invalid hex hash {text!r}") from e


def _write_json_atomic(path: Path, data: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    try:
        with open(tmp_path, "w") as f:
            json.dump(data, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except OSError as e:
        logger.error(f"Failed to write artifact to {path}: {e}", exc_info=True)
        raise FileWriteError(f"Failed to write artifact to {path}: {e}") from e


def _read_json(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "r") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ArtifactError(f"Failed to read artifact {path}: {e}") from e
    if not isinstance(data, dict):
        raise ArtifactError(f"Artifact {path} must contain a JSON object")
    return data


@dataclass
class ProofEntry:
    """One recipient's amount (smallest units) and proof."""
    amount: int
    proof: List[bytes]

    def to_dict(self) -> Dict[str, Any]:
        return {"amount": str(self.amount), "proof": [hash_to_hex(h) for h in self.proof]}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ProofEntry":
        try:
            amount = int(str(data["amount"]))
            proof = [hash_from_hex(h) for h in data["proof"]]
        except (KeyError, TypeError, ValueError) as e:
            raise ArtifactError(f"Malformed proof entry {data!r}: {e}") from e
        return cls(amount=amount, proof=proof)


@dataclass
class ProofArtifact:
    """
    Distributable proof file for one phase.

    Attributes:
        phase: Phase the root commits
        merkle_root: 32-byte root
        entries: Recipient address (base58) -> ProofEntry
    """
    phase: int
    merkle_root: bytes
    entries: Dict[str, ProofEntry] = field(default_factory=dict)

    @property
    def total_amount(self) -> int:
        return sum(entry.amount for entry in self.entries.values())

    def recipient_bytes(self, address: str) -> bytes:
        return bytes(Pubkey.from_string(address))

    def get(self, address: Union[str, Pubkey]) -> Optional[ProofEntry]:
        return self.entries.get(str(address))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.phase,
            "merkle_root": hash_to_hex(self.merkle_root),
            "total_amount": str(self.total_amount),
            "leaves": {address: entry.to_dict() for address, entry in self.entries.items()},
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], phase: Optional[int] = None) -> "ProofArtifact":
        """
        Parse an artifact dictionary.

        ``root`` is accepted as an alias of ``merkle_root``. Files without a
        ``phase`` field need the phase passed explicitly.

        Raises:
            ArtifactError: If required fields are missing or malformed
        """
        root_hex = data.get("merkle_root", data.get("root"))
        if root_hex is None:
            raise ArtifactError("Artifact is missing 'merkle_root'")
        leaves = data.get("leaves")
        if not isinstance(leaves, Mapping):
            raise ArtifactError("Artifact is missing the 'leaves' mapping")

        artifact_phase = data.get("phase", phase)
        if artifact_phase is None:
            raise ArtifactError("Artifact has no phase; pass it explicitly")
        try:
            artifact_phase = validate_phase(int(artifact_phase))
        except (TypeError, ValueError, MalformedInputError) as e:
            raise ArtifactError(f"Invalid artifact phase: {e}") from e

        return cls(
            phase=artifact_phase,
            merkle_root=hash_from_hex(root_hex),
            entries={str(address): ProofEntry.from_dict(entry) for address, entry in leaves.items()},
        )

    def save(self, path: Union[str, Path]) -> Path:
        path = Path(path).expanduser()
        _write_json_atomic(path, self.to_dict())
        logger.info(f"Wrote proof artifact for phase {self.phase} to {path}")
        return path

    @classmethod
    def load(cls, path: Union[str, Path], phase: Optional[int] = None) -> "ProofArtifact":
        path = Path(path).expanduser()
        return cls.from_dict(_read_json(path), phase=phase)


@dataclass
class PoolCreationArtifact:
    """Record of a created pool, consumed by later claim and admin operations."""
    phase: int
    token_mint: str
    merkle_root: str
    deposit_amount: str
    lookup_table_address: str
    transaction_signature: str
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.phase,
            "token_mint": self.token_mint,
            "merkle_root": self.merkle_root,
            "deposit_amount": self.deposit_amount,
            "lookup_table_address": self.lookup_table_address,
            "transaction_signature": self.transaction_signature,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PoolCreationArtifact":
        try:
            return cls(
                phase=int(data["phase"]),
                token_mint=str(data["token_mint"]),
                merkle_root=str(data["merkle_root"]),
                deposit_amount=str(data["deposit_amount"]),
                lookup_table_address=str(data["lookup_table_address"]),
                transaction_signature=str(data["transaction_signature"]),
                timestamp=str(data["timestamp"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ArtifactError(f"Malformed pool creation artifact: {e}") from e

    def save(self, path: Union[str, Path]) -> Path:
        path = Path(path).expanduser()
        _write_json_atomic(path, self.to_dict())
        return path

    @classmethod
    def load(cls, path: Union[str, Path]) -> "PoolCreationArtifact":
        return cls.from_dict(_read_json(Path(path).expanduser()))


def generate_distribution(
    phase: int,
    allocations: Mapping[str, Union[int, str, Decimal]],
    decimals: Optional[int] = None,
) -> ProofArtifact:
    """
    Build the Merkle tree for one phase and return its distributable artifact.

    Args:
        phase: Phase number (1-255)
        allocations: Recipient address (base58) -> amount. Amounts are smallest
            units unless ``decimals`` is given, in which case they are display
            amounts scaled by 10**decimals.
        decimals: Token decimals for display amounts

    Returns:
        ProofArtifact with root and every recipient's proof

    Raises:
        MalformedInputError: If the table is empty or any row is invalid; no
            partial artifact is produced
    """
    validate_phase(phase)
    if not allocations:
        raise MalformedInputError("Cannot generate a distribution with no recipients")

    start = time.perf_counter()
    amounts: Dict[str, int] = {}
    leaves: Dict[str, bytes] = {}
    for address, raw_amount in allocations.items():
        recipient = Pubkey.from_string(address)
        if decimals is not None:
            amount = scale_amount(raw_amount, decimals)
        else:
            if isinstance(raw_amount, (str, Decimal)):
                raise MalformedInputError(
                    f"amount for {address} must be an integer in smallest units; "
                    "pass decimals to scale display amounts"
                )
            amount = validate_amount(raw_amount)
        key = str(recipient)
        if key in amounts:
            raise MalformedInputError(f"Duplicate recipient address {key}")
        amounts[key] = amount
        leaves[key] = leaf_hash(phase, bytes(recipient), amount)

    builder = MerkleTreeBuilder().build_tree(leaves.values())
    root = builder.get_root()

    entries = {
        address: ProofEntry(amount=amounts[address], proof=builder.get_proof(leaf).proof_hashes)
        for address, leaf in leaves.items()
    }
    artifact = ProofArtifact(phase=phase, merkle_root=root, entries=entries)

    log_merkle_root_computation(
        logger,
        phase=phase,
        leaf_count=len(entries),
        merkle_root=root.hex(),
        duration_ms=(time.perf_counter() - start) * 1000,
        total_amount=str(artifact.total_amount),
    )
    return artifact


@dataclass(frozen=True)
class PhaseClaim:
    """One phase's allocation for a single recipient."""
    phase: int
    amount: int
    proof: List[bytes]


def collect_phase_claims(address: Union[str, Pubkey], artifacts: Iterable[ProofArtifact]) -> List[PhaseClaim]:
    """
    Aggregate a recipient's allocations across phase artifacts.

    Returns:
        PhaseClaim per phase the address appears in, ordered by phase

    Raises:
        ArtifactError: If two artifacts describe the same phase
    """
    key = str(address)
    claims: Dict[int, PhaseClaim] = {}
    seen = set()
    for artifact in artifacts:
        if artifact.phase in seen:
            raise ArtifactError(f"Multiple artifacts for phase {artifact.phase}")
        seen.add(artifact.phase)
        entry = artifact.get(key)
        if entry is not None:
            claims[artifact.phase] = PhaseClaim(
                phase=artifact.phase, amount=entry.amount, proof=list(entry.proof)
            )
    return [claims[phase] for phase in sorted(claims)]
