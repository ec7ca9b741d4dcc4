"""
Copyright (C) 2026 Garudex Labs.  All Rights Reserved.
Merkle Airdrop, a product of Garudex Labs

Deterministic address derivation.

Protocol-controlled accounts (the pool record, its vault, each claim record)
live at program-derived addresses computed from fixed seed labels, the phase,
the recipient and the token mint. Any party can recompute them without a
registry, and the program rejects any supplied address that differs from its
own derivation.
"""

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from airdrop.chain.keys import Pubkey, as_pubkey
from airdrop.exceptions import DerivationMismatchError, MalformedInputError
from airdrop.logging_config import get_logger
from airdrop.merkle.leaf import sha256, validate_phase

logger = get_logger(__name__)

MAX_SEEDS = 16
MAX_SEED_LENGTH = 32
PDA_MARKER = b"ProgramDerivedAddress"

# Seed labels
MERKLE_ROOT_SEED = b"merkle_root"
CLAIM_RECORD_SEED = b"claim_record"
GLOBAL_CONFIG_SEED = b"global_conf"

# Well-known program and sysvar addresses
SYSTEM_PROGRAM_ID = Pubkey.from_string("11111111111111111111111111111111")
TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
TOKEN_2022_PROGRAM_ID = Pubkey.from_string("TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb")
ASSOCIATED_TOKEN_PROGRAM_ID = Pubkey.from_string("ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL")
ADDRESS_LOOKUP_TABLE_PROGRAM_ID = Pubkey.from_string("AddressLookupTab1e1111111111111111111111111")
COMPUTE_BUDGET_PROGRAM_ID = Pubkey.from_string("ComputeBudget111111111111111111111111111111")
ED25519_PROGRAM_ID = Pubkey.from_string("Ed25519SigVerify111111111111111111111111111")
SYSVAR_INSTRUCTIONS_ID = Pubkey.from_string("Sysvar1nstructions1111111111111111111111111")

DEFAULT_AIRDROP_PROGRAM_ID = Pubkey.from_string("5hFNEgPoU55nCmohrdN6rGdAxqim32qtDzaMHnNiREzF")

TOKEN_PROGRAMS = {
    "token": TOKEN_PROGRAM_ID,
    "token-2022": TOKEN_2022_PROGRAM_ID,
}


def create_program_address(seeds: Sequence[bytes], program_id: Pubkey) -> Optional[Pubkey]:
    """
    Hash seeds into a candidate program address.

    Returns:
        The address, or None if it happens to be a valid curve point

    Raises:
        MalformedInputError: If there are too many seeds or a seed is too long
    """
    if len(seeds) > MAX_SEEDS:
        raise MalformedInputError(f"at most {MAX_SEEDS} seeds allowed, got {len(seeds)}")
    for seed in seeds:
        if len(seed) > MAX_SEED_LENGTH:
            raise MalformedInputError(
                f"seed length {len(seed)} exceeds {MAX_SEED_LENGTH} bytes"
            )
    digest = sha256(b"".join(bytes(s) for s in seeds) + bytes(program_id) + PDA_MARKER)
    candidate = Pubkey(digest)
    if candidate.is_on_curve():
        return None
    return candidate


def find_program_address(seeds: Sequence[bytes], program_id: Pubkey) -> Tuple[Pubkey, int]:
    """
    Find the first off-curve address for seeds, trying bump seeds 255 down to 0.

    Returns:
        (address, bump)
    """
    for bump in range(255, -1, -1):
        address = create_program_address(list(seeds) + [bytes([bump])], program_id)
        if address is not None:
            return address, bump
    raise MalformedInputError("Unable to find a viable program address bump seed")


def get_associated_token_address(
    owner: Pubkey,
    mint: Pubkey,
    token_program_id: Pubkey = TOKEN_2022_PROGRAM_ID,
) -> Pubkey:
    """Derive the canonical token account of owner for mint."""
    address, _ = find_program_address(
        [bytes(owner), bytes(token_program_id), bytes(mint)],
        ASSOCIATED_TOKEN_PROGRAM_ID,
    )
    return address


def get_lookup_table_address(authority: Pubkey, recent_slot: int) -> Tuple[Pubkey, int]:
    """Derive a lookup table address from its authority and creation slot."""
    return find_program_address(
        [bytes(authority), recent_slot.to_bytes(8, "little")],
        ADDRESS_LOOKUP_TABLE_PROGRAM_ID,
    )


def phase_seed(phase: int) -> bytes:
    """Single little-endian byte identifying a phase."""
    return validate_phase(phase).to_bytes(1, "little")


@dataclass(frozen=True)
class PhaseAddresses:
    """Every address a claim in one phase touches."""
    phase: int
    mint: Pubkey
    pool: Pubkey
    pool_bump: int
    vault: Pubkey


class AddressDeriver:
    """
    Pure address derivation bound to an explicit program identity.

    Example:
        >>> deriver = AddressDeriver(program_id)
        >>> pool, bump = deriver.pool_address(1, mint)
        >>> record, _ = deriver.claim_record_address(1, recipient, mint)
    """

    def __init__(
        self,
        program_id: Pubkey = DEFAULT_AIRDROP_PROGRAM_ID,
        token_program_id: Pubkey = TOKEN_2022_PROGRAM_ID,
    ):
        self.program_id = as_pubkey(program_id)
        self.token_program_id = as_pubkey(token_program_id)

    def global_config_address(self) -> Tuple[Pubkey, int]:
        return find_program_address([GLOBAL_CONFIG_SEED], self.program_id)

    def pool_address(self, phase: int, mint: Pubkey) -> Tuple[Pubkey, int]:
        """Pool (Merkle root) record for (phase, mint)."""
        return find_program_address(
            [MERKLE_ROOT_SEED, phase_seed(phase), bytes(mint)],
            self.program_id,
        )

    def vault_address(self, pool: Pubkey, mint: Pubkey) -> Pubkey:
        """Token vault owned by a pool record."""
        return get_associated_token_address(pool, mint, self.token_program_id)

    def claim_record_address(
        self, phase: int, recipient: Pubkey, mint: Pubkey
    ) -> Tuple[Pubkey, int]:
        """Claim record for (phase, recipient, mint)."""
        return find_program_address(
            [CLAIM_RECORD_SEED, phase_seed(phase), bytes(recipient), bytes(mint)],
            self.program_id,
        )

    def token_account(self, owner: Pubkey, mint: Pubkey) -> Pubkey:
        return get_associated_token_address(owner, mint, self.token_program_id)

    def phase_addresses(self, phase: int, mint: Pubkey) -> PhaseAddresses:
        pool, bump = self.pool_address(phase, mint)
        return PhaseAddresses(
            phase=phase,
            mint=mint,
            pool=pool,
            pool_bump=bump,
            vault=self.vault_address(pool, mint),
        )


def verify_derived_address(label: str, expected: Pubkey, supplied: Pubkey) -> None:
    """
    Compare a caller-supplied address against its derivation.

    Raises:
        DerivationMismatchError: If the two differ
    """
    if expected != supplied:
        logger.error(
            "derivation_mismatch", account=label, expected=str(expected), supplied=str(supplied)
        )
        raise DerivationMismatchError(
            f"{label} address {supplied} does not match derived address {expected}"
        )
