"""
Copyright (C) 2026 Garudex Labs.  All Rights Reserved.
Merkle Airdrop, a product of Garudex Labs

Local execution environment for the airdrop protocol.

The Runtime accepts signed transactions and executes them atomically against
an AccountStore: size, signatures, blockhash and lookup tables are checked
first, then every instruction runs in order inside one store transaction. If
any instruction fails, no write from the transaction survives.

State (accounts, slot, clock, recent blockhashes) can be persisted to a JSON
file so command line invocations share one ledger.
"""

import json
import os
import shutil
import time
from collections import OrderedDict
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from airdrop.chain.accounts import AccountStore, ClaimRecord, LookupTable, Mint, PoolRecord, TokenAccount
from airdrop.chain.address import (
    DEFAULT_AIRDROP_PROGRAM_ID,
    TOKEN_2022_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    AddressDeriver,
)
from airdrop.chain.keys import Keypair, Pubkey
from airdrop.chain.programs.airdrop import AirdropProgram
from airdrop.chain.programs.base import InvokeContext, Program
from airdrop.chain.programs.lookup_table import LookupTableProgram
from airdrop.chain.programs.native import ComputeBudgetProgram, Ed25519Program
from airdrop.chain.programs.token import (
    AssociatedTokenProgram,
    TokenProgram,
    create_associated_token_account_idempotent,
    initialize_mint_instruction,
    mint_to_instruction,
)
from airdrop.chain.transaction import (
    MAX_TRANSACTION_SIZE,
    AccountMeta,
    AddressLookupTableAccount,
    Instruction,
    Message,
    Transaction,
)
from airdrop.core.retry import retry_on_transient_failure
from airdrop.exceptions import (
    AirdropError,
    BlockhashNotFoundError,
    FileReadError,
    FileWriteError,
    InvalidInstructionError,
    LookupTableUnavailableError,
    SignatureVerificationError,
    StorageError,
    TransactionError,
    TransactionTooLargeError,
)
from airdrop.logging_config import get_logger
from airdrop.merkle.leaf import sha256

logger = get_logger(__name__)

STATE_VERSION = 1
# Blockhashes stay valid for this many slots
BLOCKHASH_HISTORY = 150
GENESIS_BLOCKHASH = sha256(b"merkle-airdrop genesis")


class Runtime:
    """
    Executes transactions against an account store.

    Example:
        >>> runtime = Runtime()
        >>> mint = runtime.create_mint(authority, decimals=9)
        >>> runtime.mint_to(authority, mint, owner=authority.pubkey, amount=10**12)
        >>> runtime.advance_slot()
    """

    def __init__(
        self,
        store: Optional[AccountStore] = None,
        program_id: Pubkey = DEFAULT_AIRDROP_PROGRAM_ID,
        token_program_id: Pubkey = TOKEN_2022_PROGRAM_ID,
        slot: int = 1,
        unix_timestamp: Optional[int] = None,
        blockhashes: Optional[List[bytes]] = None,
        max_transaction_size: int = MAX_TRANSACTION_SIZE,
    ):
        self.store = store if store is not None else AccountStore()
        self.deriver = AddressDeriver(program_id, token_program_id)
        self.max_transaction_size = max_transaction_size
        self._slot = slot
        self._unix_timestamp = int(time.time()) if unix_timestamp is None else unix_timestamp
        # blockhash -> slot it was produced in, oldest first
        self._blockhashes: "OrderedDict[bytes, int]" = OrderedDict()
        initial = blockhashes or [GENESIS_BLOCKHASH]
        for offset, blockhash in enumerate(initial):
            self._blockhashes[blockhash] = slot - len(initial) + 1 + offset
        self._processed: Dict[str, int] = {}

        self.programs: Dict[Pubkey, Program] = {}
        for program in (
            AirdropProgram(program_id, token_program_id),
            TokenProgram(TOKEN_PROGRAM_ID),
            TokenProgram(TOKEN_2022_PROGRAM_ID),
            AssociatedTokenProgram(),
            LookupTableProgram(),
            ComputeBudgetProgram(),
            Ed25519Program(),
        ):
            self.register_program(program)

    def register_program(self, program: Program) -> None:
        self.programs[program.program_id] = program

    @property
    def program_id(self) -> Pubkey:
        return self.deriver.program_id

    @property
    def token_program_id(self) -> Pubkey:
        return self.deriver.token_program_id

    # Slots, clock and blockhashes

    @property
    def slot(self) -> int:
        return self._slot

    @property
    def unix_timestamp(self) -> int:
        return self._unix_timestamp

    def latest_blockhash(self) -> bytes:
        return next(reversed(self._blockhashes))

    def is_blockhash_valid(self, blockhash: bytes) -> bool:
        return bytes(blockhash) in self._blockhashes

    def advance_slot(self, count: int = 1) -> int:
        """Produce count new slots, each with a fresh blockhash. Returns the new slot."""
        with self.store.transaction():
            for _ in range(count):
                self._slot += 1
                blockhash = sha256(self.latest_blockhash() + self._slot.to_bytes(8, "little"))
                self._blockhashes[blockhash] = self._slot
                while len(self._blockhashes) > BLOCKHASH_HISTORY:
                    self._blockhashes.popitem(last=False)
            oldest = self._slot - BLOCKHASH_HISTORY
            self._processed = {s: slot for s, slot in self._processed.items() if slot > oldest}
        return self._slot

    def advance_clock(self, seconds: int) -> int:
        with self.store.transaction():
            self._unix_timestamp += seconds
        return self._unix_timestamp

    def set_clock(self, unix_timestamp: int) -> None:
        with self.store.transaction():
            self._unix_timestamp = unix_timestamp

    # Transaction processing

    def send_transaction(self, transaction: Transaction) -> str:
        """
        Validate and execute a transaction atomically.

        Returns:
            The transaction signature (base58)

        Raises:
            TransactionTooLargeError: If the serialized transaction is too large
            SignatureVerificationError: If a signature is missing or invalid
            BlockhashNotFoundError: If the blockhash is unknown or expired
            LookupTableUnavailableError: If a referenced lookup table is
                missing or not yet active
            AirdropError: Whatever an instruction raised; nothing is committed
        """
        size = len(transaction.serialize())
        if size > self.max_transaction_size:
            raise TransactionTooLargeError(
                f"transaction is {size} bytes, exceeding the {self.max_transaction_size}-byte limit"
            )
        if not transaction.verify_signatures():
            raise SignatureVerificationError("transaction signature verification failed")

        message = transaction.message
        signature = transaction.signature
        with self.store.transaction():
            if not self.is_blockhash_valid(message.recent_blockhash):
                raise BlockhashNotFoundError("blockhash not found or expired")
            if signature in self._processed:
                raise TransactionError(f"transaction {signature} has already been processed")

            instructions = self._resolve_instructions(message)
            for ix in instructions:
                program = self.programs.get(ix.program_id)
                if program is not None and program.precompile:
                    program.verify(ix.data, instructions)

            ctx = InvokeContext(
                store=self.store,
                slot=self._slot,
                unix_timestamp=self._unix_timestamp,
                instructions=instructions,
            )
            try:
                for index, ix in enumerate(instructions):
                    program = self.programs.get(ix.program_id)
                    if program is None:
                        raise InvalidInstructionError(f"program {ix.program_id} is not executable")
                    ctx.index = index
                    program.process(ctx, ix.accounts, ix.data)
            except AirdropError as e:
                logger.warning(
                    f"Transaction {signature} failed at instruction {ctx.index}: {e.kind}: {e}"
                )
                raise

            self._processed[signature] = self._slot

        logger.debug(f"Processed transaction {signature} ({size} bytes, {len(instructions)} instructions)")
        return signature

    def _resolve_instructions(self, message: Message) -> List[Instruction]:
        keys: List[Tuple[Pubkey, bool]] = [
            (key, message.is_static_writable(i)) for i, key in enumerate(message.account_keys)
        ]
        signers = set(message.signer_keys())

        if message.address_table_lookups:
            writable: List[Pubkey] = []
            readonly: List[Pubkey] = []
            for lookup in message.address_table_lookups:
                table = self.get_address_lookup_table(lookup.account_key)
                if table is None:
                    raise LookupTableUnavailableError(
                        f"address lookup table {lookup.account_key} is not available"
                    )
                for index in lookup.writable_indexes + lookup.readonly_indexes:
                    if index >= len(table.addresses):
                        raise InvalidInstructionError(
                            f"lookup table {lookup.account_key} has no entry {index}"
                        )
                writable.extend(table.addresses[i] for i in lookup.writable_indexes)
                readonly.extend(table.addresses[i] for i in lookup.readonly_indexes)
            keys.extend((key, True) for key in writable)
            keys.extend((key, False) for key in readonly)

        resolved = []
        for compiled in message.instructions:
            try:
                program_id = keys[compiled.program_id_index][0]
                accounts = [
                    AccountMeta(keys[i][0], is_signer=keys[i][0] in signers, is_writable=keys[i][1])
                    for i in compiled.accounts
                ]
            except IndexError as e:
                raise InvalidInstructionError("instruction references an unknown account index") from e
            resolved.append(Instruction(program_id, accounts, compiled.data))
        return resolved

    # Queries

    def get_account(self, address: Pubkey):
        return self.store.get(address)

    def get_address_lookup_table(self, address: Pubkey) -> Optional[AddressLookupTableAccount]:
        """The table at address if it exists and is active, else None."""
        record = self.store.get(address)
        if not isinstance(record, LookupTable) or not record.is_active(self._slot):
            return None
        return AddressLookupTableAccount(key=address, addresses=record.addresses)

    def get_mint(self, mint: Pubkey) -> Optional[Mint]:
        record = self.store.get(mint)
        return record if isinstance(record, Mint) else None

    def get_token_balance(self, token_account: Pubkey) -> int:
        record = self.store.get(token_account)
        return record.amount if isinstance(record, TokenAccount) else 0

    def get_owner_balance(self, owner: Pubkey, mint: Pubkey) -> int:
        return self.get_token_balance(self.deriver.token_account(owner, mint))

    def get_pool(self, phase: int, mint: Pubkey) -> Optional[PoolRecord]:
        pool, _ = self.deriver.pool_address(phase, mint)
        record = self.store.get(pool)
        return record if isinstance(record, PoolRecord) else None

    def get_claim_record(self, phase: int, recipient: Pubkey, mint: Pubkey) -> Optional[ClaimRecord]:
        address, _ = self.deriver.claim_record_address(phase, recipient, mint)
        record = self.store.get(address)
        return record if isinstance(record, ClaimRecord) else None

    # Convenience transactions

    def create_mint(self, authority: Keypair, decimals: int, mint: Optional[Keypair] = None) -> Pubkey:
        """Create a mint whose authority (and fee payer) is authority."""
        mint = mint or Keypair.generate()
        message = Message.compile(
            authority.pubkey,
            [initialize_mint_instruction(mint.pubkey, decimals, authority.pubkey, self.token_program_id)],
            self.latest_blockhash(),
        )
        self.send_transaction(Transaction.sign(message, [authority, mint]))
        logger.info(f"Created mint {mint.pubkey} with {decimals} decimals")
        return mint.pubkey

    def mint_to(self, authority: Keypair, mint: Pubkey, owner: Pubkey, amount: int) -> str:
        """Mint amount (smallest units) into owner's canonical token account."""
        destination = self.deriver.token_account(owner, mint)
        message = Message.compile(
            authority.pubkey,
            [
                create_associated_token_account_idempotent(authority.pubkey, owner, mint, self.token_program_id),
                mint_to_instruction(mint, destination, authority.pubkey, amount, self.token_program_id),
            ],
            self.latest_blockhash(),
        )
        return self.send_transaction(Transaction.sign(message, [authority]))

    # Persistence

    def to_dict(self) -> Dict:
        return {
            "version": STATE_VERSION,
            "program_id": str(self.program_id),
            "token_program_id": str(self.token_program_id),
            "slot": self._slot,
            "unix_timestamp": self._unix_timestamp,
            "blockhashes": [h.hex() for h in self._blockhashes],
            "processed": self._processed,
            "accounts": self.store.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "Runtime":
        try:
            blockhashes = [bytes.fromhex(h) for h in data["blockhashes"]]
            runtime = cls(
                store=AccountStore.from_dict(data["accounts"]),
                program_id=Pubkey.from_string(data["program_id"]),
                token_program_id=Pubkey.from_string(data["token_program_id"]),
                slot=int(data["slot"]),
                unix_timestamp=int(data["unix_timestamp"]),
                blockhashes=blockhashes,
            )
            runtime._processed = {str(k): int(v) for k, v in data.get("processed", {}).items()}
        except (KeyError, TypeError, ValueError) as e:
            raise StorageError(f"malformed runtime state: {e}") from e
        return runtime

    def save(self, path: Union[str, Path], backup_count: int = 3) -> None:
        """
        Persist state atomically with rolling backups.

        Raises:
            FileWriteError: If the write fails after retries
        """
        path = Path(path).expanduser()
        try:
            self._persist(path, backup_count)
        except OSError as e:
            logger.error(f"Failed to persist runtime state to {path}: {e}", exc_info=True)
            raise FileWriteError(f"Failed to persist runtime state to {path}: {e}") from e

    @retry_on_transient_failure(max_retries=3, base_delay=0.1, backoff_factor=2.0)
    def _persist(self, path: Path, backup_count: int) -> None:
        """
        Write state: back up the current file, write .tmp, fsync, rename.
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        _create_backup(path, backup_count)
        with self.store.transaction():
            data = self.to_dict()
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        with open(tmp_path, "w") as f:
            json.dump(data, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
        logger.debug(f"Persisted {len(self.store)} accounts to {path}")

    @classmethod
    def load(cls, path: Union[str, Path]) -> "Runtime":
        """
        Raises:
            FileReadError: If the file cannot be read or parsed
        """
        path = Path(path).expanduser()
        try:
            with open(path, "r") as f:
                data = json.load(f)
            runtime = cls.from_dict(data)
        except (OSError, json.JSONDecodeError, StorageError) as e:
            logger.error(f"Failed to load runtime state from {path}: {e}", exc_info=True)
            raise FileReadError(f"Failed to load runtime state from {path}: {e}") from e
        logger.debug(f"Loaded {len(runtime.store)} accounts from {path} at slot {runtime.slot}")
        return runtime

    @classmethod
    def open(
        cls,
        path: Union[str, Path],
        program_id: Pubkey = DEFAULT_AIRDROP_PROGRAM_ID,
        token_program_id: Pubkey = TOKEN_2022_PROGRAM_ID,
    ) -> "Runtime":
        """Load state from path, or start a fresh runtime if the file does not exist."""
        path = Path(path).expanduser()
        if path.exists():
            return cls.load(path)
        logger.info(f"No runtime state at {path}, starting a new ledger")
        return cls(program_id=program_id, token_program_id=token_program_id)


def _create_backup(path: Path, backup_count: int) -> None:
    """
    Rotate backups: state.json.bak.1 is the newest, .bak.<backup_count> the oldest.
    """
    if not path.exists() or backup_count <= 0:
        return
    try:
        oldest = Path(f"{path}.bak.{backup_count}")
        if oldest.exists():
            oldest.unlink()
        for i in range(backup_count - 1, 0, -1):
            old_backup = Path(f"{path}.bak.{i}")
            if old_backup.exists():
                old_backup.rename(Path(f"{path}.bak.{i + 1}"))
        shutil.copy2(path, Path(f"{path}.bak.1"))
    except OSError as e:
        # Backup failure shouldn't prevent writes
        logger.warning(f"Failed to create backup of runtime state: {e}")
