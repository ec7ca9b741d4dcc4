"""
Copyright (C) 2026 Garudex Labs.  All Rights Reserved.
Merkle Airdrop, a product of Garudex Labs

Native programs: compute budget and ed25519 signature verification.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence

from airdrop.chain.address import COMPUTE_BUDGET_PROGRAM_ID, ED25519_PROGRAM_ID
from airdrop.chain.codec import Decoder, encode_u8, encode_u16, encode_u32, encode_u64
from airdrop.chain.keys import PUBKEY_LENGTH, SIGNATURE_LENGTH, Pubkey, verify_signature
from airdrop.chain.programs.base import InvokeContext, Program
from airdrop.chain.transaction import AccountMeta, Instruction
from airdrop.exceptions import InvalidInstructionError, SignatureVerificationError

SET_COMPUTE_UNIT_LIMIT = 2
SET_COMPUTE_UNIT_PRICE = 3
MAX_COMPUTE_UNIT_LIMIT = 1_400_000

# Offsets of the single-signature ed25519 layout
ED25519_HEADER_SIZE = 2
ED25519_OFFSETS_SIZE = 14
ED25519_PUBKEY_OFFSET = ED25519_HEADER_SIZE + ED25519_OFFSETS_SIZE
ED25519_SIGNATURE_OFFSET = ED25519_PUBKEY_OFFSET + PUBKEY_LENGTH
ED25519_MESSAGE_OFFSET = ED25519_SIGNATURE_OFFSET + SIGNATURE_LENGTH
CURRENT_INSTRUCTION = 0xFFFF


class ComputeBudgetProgram(Program):
    program_id = COMPUTE_BUDGET_PROGRAM_ID

    def process(self, ctx: InvokeContext, accounts: Sequence[AccountMeta], data: bytes) -> None:
        decoder = Decoder(data)
        tag = decoder.read_u8()
        if tag == SET_COMPUTE_UNIT_LIMIT:
            units = decoder.read_u32()
            decoder.finish()
            if ctx.compute_unit_limit is not None:
                raise InvalidInstructionError("duplicate compute unit limit instruction")
            if units > MAX_COMPUTE_UNIT_LIMIT:
                raise InvalidInstructionError(f"compute unit limit {units} exceeds {MAX_COMPUTE_UNIT_LIMIT}")
            ctx.compute_unit_limit = units
        elif tag == SET_COMPUTE_UNIT_PRICE:
            price = decoder.read_u64()
            decoder.finish()
            if ctx.compute_unit_price is not None:
                raise InvalidInstructionError("duplicate compute unit price instruction")
            ctx.compute_unit_price = price
        else:
            raise InvalidInstructionError(f"unknown compute budget instruction tag {tag}")


def set_compute_unit_limit(units: int) -> Instruction:
    return Instruction(COMPUTE_BUDGET_PROGRAM_ID, [], encode_u8(SET_COMPUTE_UNIT_LIMIT) + encode_u32(units))


def set_compute_unit_price(micro_lamports: int) -> Instruction:
    return Instruction(COMPUTE_BUDGET_PROGRAM_ID, [], encode_u8(SET_COMPUTE_UNIT_PRICE) + encode_u64(micro_lamports))


@dataclass(frozen=True)
class Ed25519Signature:
    """One (public key, signature, message) triple carried by a verify instruction."""
    pubkey: Pubkey
    signature: bytes
    message: bytes


def new_ed25519_instruction(pubkey: Pubkey, message: bytes, signature: bytes) -> Instruction:
    """Single-signature verify instruction with all data inline."""
    if len(signature) != SIGNATURE_LENGTH:
        raise InvalidInstructionError(f"signature must be {SIGNATURE_LENGTH} bytes")
    offsets = b"".join(
        encode_u16(v)
        for v in (
            ED25519_SIGNATURE_OFFSET,
            CURRENT_INSTRUCTION,
            ED25519_PUBKEY_OFFSET,
            CURRENT_INSTRUCTION,
            ED25519_MESSAGE_OFFSET,
            len(message),
            CURRENT_INSTRUCTION,
        )
    )
    data = encode_u8(1) + encode_u8(0) + offsets + bytes(pubkey) + bytes(signature) + bytes(message)
    return Instruction(ED25519_PROGRAM_ID, [], data)


def parse_ed25519_instruction(
    data: bytes, instructions: Optional[Sequence[Instruction]] = None
) -> List[Ed25519Signature]:
    """
    Decode the signatures a verify instruction carries.

    Offsets may point into other instructions of the same transaction when
    ``instructions`` is given.

    Raises:
        InvalidInstructionError: If the layout is malformed
    """
    decoder = Decoder(data)
    count = decoder.read_u8()
    decoder.read_u8()
    if count == 0:
        raise InvalidInstructionError("ed25519 instruction carries no signatures")

    def extract(index: int, offset: int, size: int) -> bytes:
        if index == CURRENT_INSTRUCTION:
            source = data
        elif instructions is not None and index < len(instructions):
            source = instructions[index].data
        else:
            raise InvalidInstructionError(f"ed25519 offset refers to unknown instruction {index}")
        if offset + size > len(source):
            raise InvalidInstructionError("ed25519 offset out of bounds")
        return source[offset:offset + size]

    entries = []
    for _ in range(count):
        sig_offset = decoder.read_u16()
        sig_index = decoder.read_u16()
        key_offset = decoder.read_u16()
        key_index = decoder.read_u16()
        msg_offset = decoder.read_u16()
        msg_size = decoder.read_u16()
        msg_index = decoder.read_u16()
        entries.append(
            Ed25519Signature(
                pubkey=Pubkey(extract(key_index, key_offset, PUBKEY_LENGTH)),
                signature=extract(sig_index, sig_offset, SIGNATURE_LENGTH),
                message=extract(msg_index, msg_offset, msg_size),
            )
        )
    return entries


class Ed25519Program(Program):
    """Signature verification precompile."""

    program_id = ED25519_PROGRAM_ID
    precompile = True

    def verify(self, data: bytes, instructions: Optional[Sequence[Instruction]] = None) -> None:
        """
        Raises:
            SignatureVerificationError: If any carried signature does not verify
        """
        for entry in parse_ed25519_instruction(data, instructions):
            if not verify_signature(entry.pubkey, entry.message, entry.signature):
                raise SignatureVerificationError(
                    f"ed25519 signature by {entry.pubkey} does not verify"
                )

    def process(self, ctx: InvokeContext, accounts: Sequence[AccountMeta], data: bytes) -> None:
        # Verified up front by the runtime
        return None
