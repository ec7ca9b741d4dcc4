"""
Copyright (C) 2026 Garudex Labs.  All Rights Reserved.
Merkle Airdrop, a product of Garudex Labs

Address lookup table program.

Tables are created at an address derived from (authority, recent slot) and
extended append-only by their authority. Extensions become visible to v0
messages one slot after they land.
"""

from typing import List, Sequence, Tuple

from airdrop.chain.accounts import LookupTable
from airdrop.chain.address import (
    ADDRESS_LOOKUP_TABLE_PROGRAM_ID,
    SYSTEM_PROGRAM_ID,
    get_lookup_table_address,
    verify_derived_address,
)
from airdrop.chain.codec import Decoder, encode_u8, encode_u32, encode_u64
from airdrop.chain.keys import Pubkey
from airdrop.chain.programs.base import (
    InvokeContext,
    Program,
    expect_accounts,
    require_signer,
    require_writable,
)
from airdrop.chain.transaction import AccountMeta, Instruction
from airdrop.exceptions import InvalidInstructionError, UnauthorizedError
from airdrop.logging_config import get_logger

logger = get_logger(__name__)

CREATE_LOOKUP_TABLE = 0
EXTEND_LOOKUP_TABLE = 2

MAX_ADDRESSES = 256
# How far back a creation slot may lie
MAX_RECENT_SLOT_AGE = 150


class LookupTableProgram(Program):
    program_id = ADDRESS_LOOKUP_TABLE_PROGRAM_ID

    def process(self, ctx: InvokeContext, accounts: Sequence[AccountMeta], data: bytes) -> None:
        decoder = Decoder(data)
        tag = decoder.read_u32()
        expect_accounts(accounts, 3, "lookup table instruction")
        table_meta, authority_meta = accounts[0], accounts[1]
        require_writable(table_meta, "lookup table")
        require_signer(authority_meta, "lookup table authority")

        if tag == CREATE_LOOKUP_TABLE:
            recent_slot = decoder.read_u64()
            bump = decoder.read_u8()
            decoder.finish()
            self._create(ctx, table_meta.pubkey, authority_meta.pubkey, recent_slot, bump)
        elif tag == EXTEND_LOOKUP_TABLE:
            count = decoder.read_u64()
            addresses = [decoder.read_pubkey() for _ in range(count)]
            decoder.finish()
            self._extend(ctx, table_meta.pubkey, authority_meta.pubkey, addresses)
        else:
            raise InvalidInstructionError(f"unknown lookup table instruction tag {tag}")

    def _create(self, ctx, table: Pubkey, authority: Pubkey, recent_slot: int, bump: int) -> None:
        if recent_slot > ctx.slot or ctx.slot - recent_slot > MAX_RECENT_SLOT_AGE:
            raise InvalidInstructionError(f"{recent_slot} is not a recent slot")
        expected, expected_bump = get_lookup_table_address(authority, recent_slot)
        verify_derived_address("lookup table", expected, table)
        if bump != expected_bump:
            raise InvalidInstructionError(f"invalid lookup table bump seed {bump}")
        if not ctx.store.create_if_absent(table, LookupTable(authority=authority)):
            raise InvalidInstructionError(f"lookup table {table} already exists")
        logger.debug(f"Created lookup table {table} for authority {authority}")

    def _extend(self, ctx, table: Pubkey, authority: Pubkey, addresses: List[Pubkey]) -> None:
        if not addresses:
            raise InvalidInstructionError("extend requires at least one address")
        record = ctx.store.require(table, LookupTable)
        if record.authority != authority:
            raise UnauthorizedError(f"{authority} is not the authority of lookup table {table}")
        combined = record.addresses + tuple(addresses)
        if len(combined) > MAX_ADDRESSES:
            raise InvalidInstructionError(
                f"lookup table {table} would hold {len(combined)} addresses (max {MAX_ADDRESSES})"
            )
        ctx.store.put(
            table,
            LookupTable(authority=authority, addresses=combined, last_extended_slot=ctx.slot),
        )
        logger.debug(f"Extended lookup table {table} to {len(combined)} addresses")


def create_lookup_table(authority: Pubkey, payer: Pubkey, recent_slot: int) -> Tuple[Instruction, Pubkey]:
    """Build a create instruction; returns it with the new table's address."""
    address, bump = get_lookup_table_address(authority, recent_slot)
    instruction = Instruction(
        program_id=ADDRESS_LOOKUP_TABLE_PROGRAM_ID,
        accounts=[
            AccountMeta(address, is_writable=True),
            AccountMeta(authority, is_signer=True),
            AccountMeta(payer, is_signer=True, is_writable=True),
            AccountMeta(SYSTEM_PROGRAM_ID),
        ],
        data=encode_u32(CREATE_LOOKUP_TABLE) + encode_u64(recent_slot) + encode_u8(bump),
    )
    return instruction, address


def extend_lookup_table(
    table: Pubkey, authority: Pubkey, payer: Pubkey, addresses: Sequence[Pubkey]
) -> Instruction:
    return Instruction(
        program_id=ADDRESS_LOOKUP_TABLE_PROGRAM_ID,
        accounts=[
            AccountMeta(table, is_writable=True),
            AccountMeta(authority, is_signer=True),
            AccountMeta(payer, is_signer=True, is_writable=True),
            AccountMeta(SYSTEM_PROGRAM_ID),
        ],
        data=encode_u32(EXTEND_LOOKUP_TABLE)
        + encode_u64(len(addresses))
        + b"".join(bytes(a) for a in addresses),
    )
