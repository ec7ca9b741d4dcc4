"""
Copyright (C) 2026 Garudex Labs.  All Rights Reserved.
Merkle Airdrop, a product of Garudex Labs

Shared program plumbing: the invocation context and account checks.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence

from airdrop.chain.accounts import AccountStore
from airdrop.chain.keys import Pubkey
from airdrop.chain.transaction import AccountMeta, Instruction
from airdrop.exceptions import InvalidInstructionError, UnauthorizedError


@dataclass
class InvokeContext:
    """
    State visible to a program while one transaction executes.

    Attributes:
        store: Account store; writes are rolled back if the transaction fails
        slot: Current slot
        unix_timestamp: Current clock value in seconds
        instructions: Every resolved instruction of the transaction, for
            instruction introspection
        index: Position of the executing instruction
    """
    store: AccountStore
    slot: int
    unix_timestamp: int
    instructions: List[Instruction]
    index: int = 0
    compute_unit_limit: Optional[int] = None
    compute_unit_price: Optional[int] = None

    def instruction_at(self, index: int) -> Instruction:
        if index < 0 or index >= len(self.instructions):
            raise InvalidInstructionError(f"no instruction at index {index}")
        return self.instructions[index]


class Program:
    """Base class for programs the runtime can invoke."""

    program_id: Pubkey
    # Precompiles are verified before any instruction executes
    precompile = False

    def process(self, ctx: InvokeContext, accounts: Sequence[AccountMeta], data: bytes) -> None:
        raise NotImplementedError

    def verify(self, data: bytes, instructions: Optional[Sequence[Instruction]] = None) -> None:
        raise NotImplementedError


def expect_accounts(accounts: Sequence[AccountMeta], count: int, instruction: str) -> None:
    if len(accounts) < count:
        raise InvalidInstructionError(
            f"{instruction} expects {count} accounts, got {len(accounts)}"
        )


def require_signer(meta: AccountMeta, label: str) -> None:
    if not meta.is_signer:
        raise UnauthorizedError(f"{label} {meta.pubkey} did not sign the transaction")


def require_writable(meta: AccountMeta, label: str) -> None:
    if not meta.is_writable:
        raise InvalidInstructionError(f"{label} {meta.pubkey} must be writable")
