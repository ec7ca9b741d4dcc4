"""
Copyright (C) 2026 Garudex Labs.  All Rights Reserved.
Merkle Airdrop, a product of Garudex Labs

Transaction assembly for claims.

A claim touches many fixed accounts (mint, pool, vault, token programs, the
instructions sysvar). Each phase registers them once in an address lookup
table and every claim transaction references them by one-byte index, which
keeps a signed claim with a deep proof under the transaction size limit.
A claim is never assembled without its table: if the table cannot be
resolved the build fails with LookupTableUnavailableError.
"""

from typing import List, Optional, Sequence

from airdrop.chain.address import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    SYSTEM_PROGRAM_ID,
    SYSVAR_INSTRUCTIONS_ID,
)
from airdrop.chain.keys import Keypair, Pubkey
from airdrop.chain.programs.airdrop import AirdropInstructions, claim_reward_message
from airdrop.chain.programs.native import (
    new_ed25519_instruction,
    set_compute_unit_limit,
    set_compute_unit_price,
)
from airdrop.chain.runtime import Runtime
from airdrop.chain.transaction import (
    MAX_TRANSACTION_SIZE,
    AddressLookupTableAccount,
    Instruction,
    Message,
    Transaction,
    check_transaction_size,
)
from airdrop.exceptions import LookupTableUnavailableError
from airdrop.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_COMPUTE_UNIT_LIMIT = 1_000_000
DEFAULT_COMPUTE_UNIT_PRICE = 30_000


class TransactionAssembler:
    """
    Builds signed, size-checked transactions for a runtime.

    Args:
        runtime: Runtime supplying blockhashes and lookup tables
        compute_unit_limit: Compute unit limit prefixed to every transaction
        compute_unit_price: Priority fee in micro-lamports per compute unit
        max_transaction_size: Serialized size ceiling in bytes
    """

    def __init__(
        self,
        runtime: Runtime,
        compute_unit_limit: int = DEFAULT_COMPUTE_UNIT_LIMIT,
        compute_unit_price: int = DEFAULT_COMPUTE_UNIT_PRICE,
        max_transaction_size: int = MAX_TRANSACTION_SIZE,
    ):
        self.runtime = runtime
        self.deriver = runtime.deriver
        self.instructions = AirdropInstructions(self.deriver)
        self.compute_unit_limit = compute_unit_limit
        self.compute_unit_price = compute_unit_price
        self.max_transaction_size = max_transaction_size

    def lookup_table_addresses(self, phase: int, mint: Pubkey) -> List[Pubkey]:
        """The fixed accounts every claim in a phase references."""
        addresses = self.deriver.phase_addresses(phase, mint)
        return [
            mint,
            addresses.pool,
            addresses.vault,
            SYSVAR_INSTRUCTIONS_ID,
            ASSOCIATED_TOKEN_PROGRAM_ID,
            self.deriver.token_program_id,
            SYSTEM_PROGRAM_ID,
        ]

    def compute_budget_instructions(self) -> List[Instruction]:
        return [
            set_compute_unit_limit(self.compute_unit_limit),
            set_compute_unit_price(self.compute_unit_price),
        ]

    def resolve_lookup_table(self, address: Optional[Pubkey]) -> AddressLookupTableAccount:
        """
        Fetch an active lookup table.

        Raises:
            LookupTableUnavailableError: If no table is configured, or it does
                not exist or is not active yet
        """
        if address is None:
            raise LookupTableUnavailableError("no lookup table is configured for this phase")
        table = self.runtime.get_address_lookup_table(address)
        if table is None:
            logger.warning(f"Lookup table {address} is not available at slot {self.runtime.slot}")
            raise LookupTableUnavailableError(
                f"address lookup table {address} is not available yet; retry after it activates"
            )
        return table

    def assemble(
        self,
        payer: Keypair,
        instructions: Sequence[Instruction],
        signers: Sequence[Keypair] = (),
        lookup_tables: Optional[Sequence[AddressLookupTableAccount]] = None,
    ) -> Transaction:
        """
        Compile, sign and size-check a transaction.

        A v0 message is compiled when lookup_tables is given, a legacy one
        otherwise.

        Raises:
            TransactionTooLargeError: If the result exceeds the size ceiling
        """
        message = Message.compile(
            payer.pubkey, instructions, self.runtime.latest_blockhash(), lookup_tables
        )
        transaction = Transaction.sign(message, [payer, *signers])
        size = check_transaction_size(transaction, self.max_transaction_size)
        logger.debug(
            f"Assembled {'v0' if message.is_versioned else 'legacy'} transaction "
            f"of {size} bytes with {len(instructions)} instructions"
        )
        return transaction

    def build_claim(
        self,
        claimer: Keypair,
        phase: int,
        mint: Pubkey,
        amount: int,
        proof: Sequence[bytes],
        lookup_table: Optional[Pubkey],
    ) -> Transaction:
        """Claim claimer's own allocation into claimer's token account."""
        table = self.resolve_lookup_table(lookup_table)
        instructions = self.compute_budget_instructions() + [
            self.instructions.claim_airdrop(claimer.pubkey, phase, mint, amount, proof)
        ]
        return self.assemble(claimer, instructions, lookup_tables=[table])

    def claim_with_receiver_instructions(
        self,
        receiver: Pubkey,
        owner: Pubkey,
        phase: int,
        mint: Pubkey,
        amount: int,
        proof: Sequence[bytes],
        expire_at: int,
        signature: bytes,
    ) -> List[Instruction]:
        """Compute budget, ed25519 verification of owner's signature, then the claim."""
        prefix = self.compute_budget_instructions()
        verify_ix_index = len(prefix)
        message = claim_reward_message(proof, receiver, expire_at)
        return prefix + [
            new_ed25519_instruction(owner, message, signature),
            self.instructions.claim_airdrop_with_receiver(
                receiver, owner, phase, mint, amount, proof, expire_at, signature, verify_ix_index
            ),
        ]

    def build_claim_with_receiver(
        self,
        receiver: Keypair,
        owner: Pubkey,
        phase: int,
        mint: Pubkey,
        amount: int,
        proof: Sequence[bytes],
        expire_at: int,
        signature: bytes,
        lookup_table: Optional[Pubkey],
    ) -> Transaction:
        """Claim owner's allocation into receiver's token account, authorized by owner's signature."""
        table = self.resolve_lookup_table(lookup_table)
        instructions = self.claim_with_receiver_instructions(
            receiver.pubkey, owner, phase, mint, amount, proof, expire_at, signature
        )
        return self.assemble(receiver, instructions, lookup_tables=[table])
