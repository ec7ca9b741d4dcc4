"""
Copyright (C) 2026 Garudex Labs.  All Rights Reserved.
Merkle Airdrop, a product of Garudex Labs

Administrator client: program initialization and pool lifecycle.
"""

from decimal import Decimal
from typing import Optional, Sequence, Tuple, Union

from airdrop.chain.accounts import LookupTable, PoolRecord
from airdrop.chain.address import get_lookup_table_address
from airdrop.chain.keys import Keypair, Pubkey
from airdrop.chain.programs.airdrop import AirdropInstructions
from airdrop.chain.programs.lookup_table import (
    MAX_RECENT_SLOT_AGE,
    create_lookup_table,
    extend_lookup_table,
)
from airdrop.chain.runtime import Runtime
from airdrop.chain.transaction import Instruction
from airdrop.core.assembler import TransactionAssembler
from airdrop.exceptions import (
    AccountNotFoundError,
    InvalidInstructionError,
    PoolAlreadyExistsError,
    PoolNotFoundError,
)
from airdrop.logging_config import correlation_context, get_logger, log_pool_operation
from airdrop.merkle.artifact import PoolCreationArtifact
from airdrop.merkle.leaf import scale_amount

logger = get_logger(__name__)


class AirdropAdmin:
    """
    Administrative operations, signed and paid for by the admin keypair.

    Example:
        >>> admin = AirdropAdmin(runtime, admin_keypair)
        >>> admin.initialize()
        >>> artifact = admin.create_pool(1, mint, proofs.merkle_root, deposit_amount="1350.5")
    """

    def __init__(
        self,
        runtime: Runtime,
        admin: Keypair,
        assembler: Optional[TransactionAssembler] = None,
    ):
        self.runtime = runtime
        self.admin = admin
        self.assembler = assembler or TransactionAssembler(runtime)
        self.instructions = AirdropInstructions(runtime.deriver)

    @property
    def pubkey(self) -> Pubkey:
        return self.admin.pubkey

    def _send(self, instructions: Sequence[Instruction]) -> str:
        transaction = self.assembler.assemble(
            self.admin, self.assembler.compute_budget_instructions() + list(instructions)
        )
        with correlation_context():
            return self.runtime.send_transaction(transaction)

    def initialize(self) -> str:
        """Create the global config naming this keypair as admin."""
        signature = self._send([self.instructions.initialize(self.pubkey)])
        logger.info(f"Initialized airdrop program {self.runtime.program_id} with admin {self.pubkey}")
        return signature

    def _unused_lookup_table_slot(self) -> int:
        current = self.runtime.slot
        for recent_slot in range(current, max(current - MAX_RECENT_SLOT_AGE, 0) - 1, -1):
            address, _ = get_lookup_table_address(self.pubkey, recent_slot)
            if not self.runtime.store.exists(address):
                return recent_slot
        raise InvalidInstructionError(
            f"no unused lookup table address for {self.pubkey} in the last {MAX_RECENT_SLOT_AGE} slots"
        )

    def create_lookup_table(self, phase: int, mint: Pubkey) -> Tuple[Pubkey, str]:
        """
        Create and fill the phase's lookup table in one transaction.

        The table becomes usable for claims one slot later.

        Returns:
            (table address, transaction signature)
        """
        recent_slot = self._unused_lookup_table_slot()
        create_ix, table = create_lookup_table(self.pubkey, self.pubkey, recent_slot)
        extend_ix = extend_lookup_table(
            table, self.pubkey, self.pubkey, self.assembler.lookup_table_addresses(phase, mint)
        )
        signature = self._send([create_ix, extend_ix])
        logger.info(f"Created lookup table {table} for phase {phase} at slot {self.runtime.slot}")
        return table, signature

    def find_lookup_table(self, phase: int, mint: Pubkey) -> Optional[Pubkey]:
        """An existing table of ours holding exactly the phase's claim accounts."""
        wanted = tuple(self.assembler.lookup_table_addresses(phase, mint))
        matches = self.runtime.store.find(
            LookupTable, lambda t: t.authority == self.pubkey and t.addresses == wanted
        )
        return matches[0][0] if matches else None

    def create_pool(
        self,
        phase: int,
        mint: Pubkey,
        merkle_root: bytes,
        deposit_amount: Optional[Union[str, Decimal, int]] = None,
    ) -> PoolCreationArtifact:
        """
        Create a phase's pool, its lookup table and optionally fund it.

        Args:
            phase: Phase number
            mint: Token mint
            merkle_root: Root of the phase's distribution
            deposit_amount: Display amount to deposit, scaled by the mint's decimals

        Returns:
            PoolCreationArtifact for the claim side

        Raises:
            PoolAlreadyExistsError: If the phase already has a pool for mint
            AccountNotFoundError: If the mint does not exist
        """
        if self.runtime.get_pool(phase, mint) is not None:
            raise PoolAlreadyExistsError(f"pool for phase {phase} and mint {mint} already exists")
        mint_record = self.runtime.get_mint(mint)
        if mint_record is None:
            raise AccountNotFoundError(f"mint {mint} does not exist")

        amount = 0
        if deposit_amount is not None:
            amount = scale_amount(deposit_amount, mint_record.decimals)

        with correlation_context():
            # A table left by an earlier attempt whose pool transaction failed is reused
            table = self.find_lookup_table(phase, mint)
            if table is None:
                table, _ = self.create_lookup_table(phase, mint)

            instructions = [self.instructions.init_merkle_root(self.pubkey, phase, mint, merkle_root)]
            if amount:
                instructions.append(self.instructions.deposit(self.pubkey, phase, mint, amount))
            signature = self._send(instructions)

            log_pool_operation(
                logger,
                "create_pool",
                phase,
                str(mint),
                merkle_root=merkle_root.hex(),
                deposit=str(amount),
                lookup_table=str(table),
            )
        return PoolCreationArtifact(
            phase=phase,
            token_mint=str(mint),
            merkle_root=merkle_root.hex(),
            deposit_amount=str(amount),
            lookup_table_address=str(table),
            transaction_signature=signature,
        )

    def update_merkle_root(self, phase: int, mint: Pubkey, merkle_root: bytes) -> str:
        """Rotate a pool's root. Proofs against the previous root stop verifying."""
        return self._send([self.instructions.update_merkle_root(self.pubkey, phase, mint, merkle_root)])

    def deposit(self, phase: int, mint: Pubkey, amount: int) -> str:
        """Move amount (smallest units) from the admin's token account into the vault."""
        return self._send([self.instructions.deposit(self.pubkey, phase, mint, amount)])

    def withdraw_unclaimed_tokens(self, phase: int, mint: Pubkey) -> str:
        """Drain the vault back to the admin and mark the pool drained."""
        return self._send([self.instructions.withdraw_unclaimed_tokens(self.pubkey, phase, mint)])

    def get_pool(self, phase: int, mint: Pubkey) -> PoolRecord:
        pool = self.runtime.get_pool(phase, mint)
        if pool is None:
            raise PoolNotFoundError(f"no pool for phase {phase} and mint {mint}")
        return pool

    def pool_balance(self, phase: int, mint: Pubkey) -> int:
        return self.runtime.get_token_balance(self.get_pool(phase, mint).vault)
