"""
Copyright (C) 2026 Garudex Labs.  All Rights Reserved.
Merkle Airdrop, a product of Garudex Labs

Instructions, messages and signed transactions.

A message lists every account its instructions touch, ordered writable
signers, read-only signers, writable non-signers, read-only non-signers, and
refers to them by index. A v0 message may move non-signer accounts out of the
static list into address lookup tables, replacing each 32-byte key with a
one-byte table index. Serialized transactions may not exceed
MAX_TRANSACTION_SIZE bytes.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import base58

from airdrop.chain.codec import encode_shortvec_length
from airdrop.chain.keys import Keypair, Pubkey, verify_signature
from airdrop.exceptions import (
    InvalidInstructionError,
    SignatureVerificationError,
    TransactionTooLargeError,
)

MAX_TRANSACTION_SIZE = 1232
MESSAGE_VERSION_PREFIX = 0x80


@dataclass(frozen=True)
class AccountMeta:
    pubkey: Pubkey
    is_signer: bool = False
    is_writable: bool = False


@dataclass
class Instruction:
    """A program invocation with its ordered accounts and opaque data."""
    program_id: Pubkey
    accounts: List[AccountMeta]
    data: bytes


@dataclass(frozen=True)
class AddressLookupTableAccount:
    """Client-side view of an on-chain lookup table."""
    key: Pubkey
    addresses: Tuple[Pubkey, ...]


@dataclass
class MessageHeader:
    num_required_signatures: int
    num_readonly_signed_accounts: int
    num_readonly_unsigned_accounts: int


@dataclass
class CompiledInstruction:
    program_id_index: int
    accounts: List[int]
    data: bytes


@dataclass
class MessageAddressTableLookup:
    account_key: Pubkey
    writable_indexes: List[int] = field(default_factory=list)
    readonly_indexes: List[int] = field(default_factory=list)


@dataclass
class _KeyMeta:
    is_signer: bool = False
    is_writable: bool = False
    is_invoked: bool = False


def _collect_keys(payer: Pubkey, instructions: Sequence[Instruction]) -> Dict[Pubkey, _KeyMeta]:
    metas: Dict[Pubkey, _KeyMeta] = {payer: _KeyMeta(is_signer=True, is_writable=True)}
    for ix in instructions:
        metas.setdefault(ix.program_id, _KeyMeta()).is_invoked = True
        for account in ix.accounts:
            meta = metas.setdefault(account.pubkey, _KeyMeta())
            meta.is_signer |= account.is_signer
            meta.is_writable |= account.is_writable
    return metas


def _order_keys(payer: Pubkey, metas: Dict[Pubkey, _KeyMeta]) -> Tuple[List[Pubkey], MessageHeader]:
    rest = [k for k in metas if k != payer]
    writable_signers = [payer] + [k for k in rest if metas[k].is_signer and metas[k].is_writable]
    readonly_signers = [k for k in rest if metas[k].is_signer and not metas[k].is_writable]
    writable = [k for k in rest if not metas[k].is_signer and metas[k].is_writable]
    readonly = [k for k in rest if not metas[k].is_signer and not metas[k].is_writable]
    header = MessageHeader(
        num_required_signatures=len(writable_signers) + len(readonly_signers),
        num_readonly_signed_accounts=len(readonly_signers),
        num_readonly_unsigned_accounts=len(readonly),
    )
    return writable_signers + readonly_signers + writable + readonly, header


@dataclass
class Message:
    """
    A compiled message.

    ``address_table_lookups`` is None for a legacy message and a (possibly
    empty) list for a v0 message.
    """
    header: MessageHeader
    account_keys: List[Pubkey]
    recent_blockhash: bytes
    instructions: List[CompiledInstruction]
    address_table_lookups: Optional[List[MessageAddressTableLookup]] = None

    @property
    def is_versioned(self) -> bool:
        return self.address_table_lookups is not None

    @classmethod
    def compile(
        cls,
        payer: Pubkey,
        instructions: Sequence[Instruction],
        recent_blockhash: bytes,
        lookup_tables: Optional[Sequence[AddressLookupTableAccount]] = None,
    ) -> "Message":
        """
        Compile instructions into a message.

        With ``lookup_tables`` a v0 message is produced and every account that
        is neither a signer nor an invoked program, and appears in one of the
        tables, is referenced through that table. Without it a legacy message
        is produced.
        """
        metas = _collect_keys(payer, instructions)
        lookups: Optional[List[MessageAddressTableLookup]] = None
        looked_up_writable: List[Pubkey] = []
        looked_up_readonly: List[Pubkey] = []

        if lookup_tables is not None:
            lookups = []
            for table in lookup_tables:
                lookup = MessageAddressTableLookup(account_key=table.key)
                for index, address in enumerate(table.addresses):
                    meta = metas.get(address)
                    if meta is None or meta.is_signer or meta.is_invoked:
                        continue
                    if meta.is_writable:
                        lookup.writable_indexes.append(index)
                        looked_up_writable.append(address)
                    else:
                        lookup.readonly_indexes.append(index)
                        looked_up_readonly.append(address)
                    del metas[address]
                if lookup.writable_indexes or lookup.readonly_indexes:
                    lookups.append(lookup)

        static_keys, header = _order_keys(payer, metas)
        positions = {
            key: i
            for i, key in enumerate(static_keys + looked_up_writable + looked_up_readonly)
        }
        compiled = [
            CompiledInstruction(
                program_id_index=positions[ix.program_id],
                accounts=[positions[a.pubkey] for a in ix.accounts],
                data=ix.data,
            )
            for ix in instructions
        ]
        return cls(
            header=header,
            account_keys=static_keys,
            recent_blockhash=bytes(recent_blockhash),
            instructions=compiled,
            address_table_lookups=lookups,
        )

    def signer_keys(self) -> List[Pubkey]:
        return self.account_keys[: self.header.num_required_signatures]

    def is_static_writable(self, index: int) -> bool:
        header = self.header
        if index < header.num_required_signatures:
            return index < header.num_required_signatures - header.num_readonly_signed_accounts
        return index < len(self.account_keys) - header.num_readonly_unsigned_accounts

    def serialize(self) -> bytes:
        out = bytearray()
        if self.is_versioned:
            out.append(MESSAGE_VERSION_PREFIX | 0)
        out += bytes([
            self.header.num_required_signatures,
            self.header.num_readonly_signed_accounts,
            self.header.num_readonly_unsigned_accounts,
        ])
        out += encode_shortvec_length(len(self.account_keys))
        for key in self.account_keys:
            out += bytes(key)
        out += self.recent_blockhash
        out += encode_shortvec_length(len(self.instructions))
        for ix in self.instructions:
            out.append(ix.program_id_index)
            out += encode_shortvec_length(len(ix.accounts))
            out += bytes(ix.accounts)
            out += encode_shortvec_length(len(ix.data))
            out += ix.data
        if self.is_versioned:
            out += encode_shortvec_length(len(self.address_table_lookups))
            for lookup in self.address_table_lookups:
                out += bytes(lookup.account_key)
                out += encode_shortvec_length(len(lookup.writable_indexes))
                out += bytes(lookup.writable_indexes)
                out += encode_shortvec_length(len(lookup.readonly_indexes))
                out += bytes(lookup.readonly_indexes)
        return bytes(out)


class Transaction:
    """A message plus one signature per required signer, in key order."""

    def __init__(self, message: Message, signatures: Sequence[bytes]):
        self.message = message
        self.signatures = [bytes(s) for s in signatures]

    @classmethod
    def sign(cls, message: Message, signers: Sequence[Keypair]) -> "Transaction":
        """
        Sign message with every required signer.

        Raises:
            SignatureVerificationError: If a required signer is missing
        """
        by_key = {kp.pubkey: kp for kp in signers}
        payload = message.serialize()
        signatures = []
        for key in message.signer_keys():
            keypair = by_key.get(key)
            if keypair is None:
                raise SignatureVerificationError(f"missing signer {key}")
            signatures.append(keypair.sign(payload))
        return cls(message, signatures)

    def serialize(self) -> bytes:
        out = bytearray(encode_shortvec_length(len(self.signatures)))
        for signature in self.signatures:
            out += signature
        out += self.message.serialize()
        return bytes(out)

    @property
    def size(self) -> int:
        return len(self.serialize())

    @property
    def signature(self) -> str:
        """Base58 of the fee payer's signature, the transaction identifier."""
        if not self.signatures:
            raise InvalidInstructionError("transaction has no signatures")
        return base58.b58encode(self.signatures[0]).decode("ascii")

    def verify_signatures(self) -> bool:
        keys = self.message.signer_keys()
        if len(keys) != len(self.signatures):
            return False
        payload = self.message.serialize()
        return all(verify_signature(k, payload, s) for k, s in zip(keys, self.signatures))


def check_transaction_size(transaction: Transaction, limit: int = MAX_TRANSACTION_SIZE) -> int:
    """
    Return the serialized size, raising if it exceeds limit.

    Raises:
        TransactionTooLargeError: If the transaction does not fit
    """
    size = transaction.size
    if size > limit:
        raise TransactionTooLargeError(
            f"transaction is {size} bytes, exceeding the {limit}-byte limit"
        )
    return size
