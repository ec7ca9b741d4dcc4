"""
Copyright (C) 2026 Garudex Labs.  All Rights Reserved.
Merkle Airdrop, a product of Garudex Labs

Programs executed by the runtime.

- airdrop: pool administration and exactly-once claim settlement
- token: mints, token accounts and transfers
- lookup_table: address lookup tables for v0 messages
- native: compute budget and ed25519 signature verification
"""

from airdrop.chain.programs.airdrop import AirdropInstructions, AirdropProgram, claim_reward_message
from airdrop.chain.programs.base import InvokeContext, Program
from airdrop.chain.programs.lookup_table import LookupTableProgram
from airdrop.chain.programs.native import ComputeBudgetProgram, Ed25519Program
from airdrop.chain.programs.token import AssociatedTokenProgram, TokenProgram

__all__ = [
    "AirdropInstructions",
    "AirdropProgram",
    "AssociatedTokenProgram",
    "ComputeBudgetProgram",
    "Ed25519Program",
    "InvokeContext",
    "LookupTableProgram",
    "Program",
    "TokenProgram",
    "claim_reward_message",
]
