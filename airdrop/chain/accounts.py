"""
Copyright (C) 2026 Garudex Labs.  All Rights Reserved.
Merkle Airdrop, a product of Garudex Labs

Account records and the atomic account store.

Every piece of on-chain state is an immutable record stored at an address.
Writers go through ``AccountStore.transaction()``, which serializes them and
undoes every write made inside the block if an exception escapes it.
``create_if_absent`` is the create-if-unoccupied primitive a claim record is
built on: of two concurrent attempts for one address exactly one succeeds.
"""

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, Type, TypeVar

from airdrop.chain.keys import Pubkey
from airdrop.exceptions import AccountNotFoundError, MalformedInputError, StorageError
from airdrop.logging_config import get_logger

logger = get_logger(__name__)

R = TypeVar("R")


@dataclass(frozen=True)
class GlobalConfig:
    """Program-wide settings; holds the administrator key."""
    admin: Pubkey

    record_type = "global_config"

    def to_dict(self) -> Dict[str, Any]:
        return {"admin": str(self.admin)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GlobalConfig":
        return cls(admin=Pubkey.from_string(data["admin"]))


@dataclass(frozen=True)
class Mint:
    """A token definition."""
    authority: Pubkey
    decimals: int
    token_program: Pubkey
    supply: int = 0

    record_type = "mint"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "authority": str(self.authority),
            "decimals": self.decimals,
            "token_program": str(self.token_program),
            "supply": str(self.supply),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Mint":
        return cls(
            authority=Pubkey.from_string(data["authority"]),
            decimals=int(data["decimals"]),
            token_program=Pubkey.from_string(data["token_program"]),
            supply=int(data["supply"]),
        )


@dataclass(frozen=True)
class TokenAccount:
    """A balance of one mint held for one owner."""
    mint: Pubkey
    owner: Pubkey
    amount: int = 0

    record_type = "token_account"

    def to_dict(self) -> Dict[str, Any]:
        return {"mint": str(self.mint), "owner": str(self.owner), "amount": str(self.amount)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TokenAccount":
        return cls(
            mint=Pubkey.from_string(data["mint"]),
            owner=Pubkey.from_string(data["owner"]),
            amount=int(data["amount"]),
        )


@dataclass(frozen=True)
class PoolRecord:
    """
    A phase's published root and the vault backing it.

    Attributes:
        phase: Phase number
        mint: Token mint
        merkle_root: Currently published 32-byte root
        vault: Token account holding the phase balance
        admin: Administrator that created the pool
        bump: Bump seed of the pool address
        drained: Set once the residual balance has been withdrawn
    """
    phase: int
    mint: Pubkey
    merkle_root: bytes
    vault: Pubkey
    admin: Pubkey
    bump: int
    drained: bool = False

    record_type = "pool"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.phase,
            "mint": str(self.mint),
            "merkle_root": self.merkle_root.hex(),
            "vault": str(self.vault),
            "admin": str(self.admin),
            "bump": self.bump,
            "drained": self.drained,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PoolRecord":
        return cls(
            phase=int(data["phase"]),
            mint=Pubkey.from_string(data["mint"]),
            merkle_root=bytes.fromhex(data["merkle_root"]),
            vault=Pubkey.from_string(data["vault"]),
            admin=Pubkey.from_string(data["admin"]),
            bump=int(data["bump"]),
            drained=bool(data.get("drained", False)),
        )


@dataclass(frozen=True)
class ClaimRecord:
    """Existence marks (phase, recipient, mint) as claimed."""
    phase: int
    recipient: Pubkey
    mint: Pubkey
    amount: int
    claimed_at: int

    record_type = "claim_record"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.phase,
            "recipient": str(self.recipient),
            "mint": str(self.mint),
            "amount": str(self.amount),
            "claimed_at": self.claimed_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClaimRecord":
        return cls(
            phase=int(data["phase"]),
            recipient=Pubkey.from_string(data["recipient"]),
            mint=Pubkey.from_string(data["mint"]),
            amount=int(data["amount"]),
            claimed_at=int(data["claimed_at"]),
        )


@dataclass(frozen=True)
class LookupTable:
    """An append-only list of addresses referenced by index from v0 messages."""
    authority: Pubkey
    addresses: Tuple[Pubkey, ...] = field(default_factory=tuple)
    last_extended_slot: int = 0

    record_type = "lookup_table"

    def is_active(self, current_slot: int) -> bool:
        """Addresses become usable one slot after the last extension."""
        return bool(self.addresses) and current_slot > self.last_extended_slot

    def to_dict(self) -> Dict[str, Any]:
        return {
            "authority": str(self.authority),
            "addresses": [str(a) for a in self.addresses],
            "last_extended_slot": self.last_extended_slot,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LookupTable":
        return cls(
            authority=Pubkey.from_string(data["authority"]),
            addresses=tuple(Pubkey.from_string(a) for a in data["addresses"]),
            last_extended_slot=int(data["last_extended_slot"]),
        )


RECORD_TYPES: Dict[str, Type] = {
    cls.record_type: cls
    for cls in (GlobalConfig, Mint, TokenAccount, PoolRecord, ClaimRecord, LookupTable)
}


class AccountStore:
    """
    Address -> record map with transactional writes.

    Example:
        >>> store = AccountStore()
        >>> with store.transaction():
        ...     store.put(address, TokenAccount(mint, owner, 10))
        ...     raise ValueError  # the put above is undone
    """

    def __init__(self, accounts: Optional[Dict[Pubkey, Any]] = None):
        self._accounts: Dict[Pubkey, Any] = dict(accounts or {})
        self._lock = threading.RLock()
        self._journal: Optional[List[Tuple[Pubkey, Any]]] = None
        self._depth = 0

    @contextmanager
    def transaction(self) -> Iterator["AccountStore"]:
        """
        Serialize writers and roll back every write on error.

        Nested blocks on the same thread join the outermost transaction.
        """
        with self._lock:
            outermost = self._depth == 0
            if outermost:
                self._journal = []
            self._depth += 1
            try:
                yield self
            except BaseException:
                if outermost:
                    self._rollback()
                raise
            finally:
                self._depth -= 1
                if outermost:
                    self._journal = None

    def _rollback(self) -> None:
        undone = 0
        for address, previous in reversed(self._journal or []):
            if previous is None:
                self._accounts.pop(address, None)
            else:
                self._accounts[address] = previous
            undone += 1
        if undone:
            logger.debug(f"Rolled back {undone} account writes")

    def _record_write(self, address: Pubkey) -> None:
        if self._journal is None:
            raise StorageError("account writes must happen inside AccountStore.transaction()")
        self._journal.append((address, self._accounts.get(address)))

    def get(self, address: Pubkey) -> Optional[Any]:
        with self._lock:
            return self._accounts.get(address)

    def exists(self, address: Pubkey) -> bool:
        with self._lock:
            return address in self._accounts

    def require(self, address: Pubkey, record_type: Type[R]) -> R:
        """
        Fetch a record and check its type.

        Raises:
            AccountNotFoundError: If nothing of that type lives at address
        """
        record = self.get(address)
        if not isinstance(record, record_type):
            raise AccountNotFoundError(
                f"no {record_type.__name__} account at {address}"
            )
        return record

    def put(self, address: Pubkey, record: Any) -> None:
        with self._lock:
            self._record_write(address)
            self._accounts[address] = record

    def create_if_absent(self, address: Pubkey, record: Any) -> bool:
        """
        Store record only if address is unoccupied.

        Returns:
            True if the record was created, False if the address was taken
        """
        with self._lock:
            if address in self._accounts:
                return False
            self._record_write(address)
            self._accounts[address] = record
            return True

    def update(self, address: Pubkey, record_type: Type[R], **changes: Any) -> R:
        """Replace fields of an existing record and return the new record."""
        with self._lock:
            updated = replace(self.require(address, record_type), **changes)
            self.put(address, updated)
            return updated

    def items(self, record_type: Optional[Type] = None) -> List[Tuple[Pubkey, Any]]:
        with self._lock:
            return [
                (address, record)
                for address, record in self._accounts.items()
                if record_type is None or isinstance(record, record_type)
            ]

    def find(self, record_type: Type[R], predicate: Callable[[R], bool]) -> List[Tuple[Pubkey, R]]:
        return [(a, r) for a, r in self.items(record_type) if predicate(r)]

    def __len__(self) -> int:
        return len(self._accounts)

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            return {
                str(address): {"type": record.record_type, "data": record.to_dict()}
                for address, record in self._accounts.items()
            }

    @classmethod
    def from_dict(cls, data: Dict[str, Dict[str, Any]]) -> "AccountStore":
        """
        Rebuild a store from ``to_dict`` output.

        Raises:
            StorageError: If an entry has an unknown type or malformed fields
        """
        accounts: Dict[Pubkey, Any] = {}
        for address, entry in data.items():
            record_cls = RECORD_TYPES.get(entry.get("type"))
            if record_cls is None:
                raise StorageError(f"unknown account type {entry.get('type')!r} at {address}")
            try:
                accounts[Pubkey.from_string(address)] = record_cls.from_dict(entry["data"])
            except (KeyError, TypeError, ValueError, MalformedInputError) as e:
                raise StorageError(f"malformed {entry['type']} account at {address}: {e}") from e
        return cls(accounts)
