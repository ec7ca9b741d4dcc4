"""
Unit tests for account records and the transactional account store.
"""

import threading

import pytest

from airdrop.chain.accounts import (
    AccountStore,
    ClaimRecord,
    LookupTable,
    Mint,
    PoolRecord,
    TokenAccount,
)
from airdrop.chain.keys import Pubkey
from airdrop.exceptions import AccountNotFoundError, StorageError


def _key(value: int) -> Pubkey:
    return Pubkey(bytes([value]) * 32)


MINT = _key(1)
OWNER = _key(2)


class TestAccountStore:
    """Test reads, writes and rollback."""

    def test_write_outside_transaction_rejected(self):
        store = AccountStore()
        with pytest.raises(StorageError, match="transaction"):
            store.put(_key(9), TokenAccount(MINT, OWNER))

    def test_put_and_get(self):
        store = AccountStore()
        with store.transaction():
            store.put(_key(9), TokenAccount(MINT, OWNER, 5))

        assert store.get(_key(9)) == TokenAccount(MINT, OWNER, 5)
        assert store.exists(_key(9))
        assert len(store) == 1

    def test_rollback_on_error(self):
        """Test that every write inside a failed block is undone."""
        store = AccountStore()
        with store.transaction():
            store.put(_key(9), TokenAccount(MINT, OWNER, 5))

        with pytest.raises(ValueError):
            with store.transaction():
                store.put(_key(9), TokenAccount(MINT, OWNER, 1))
                store.put(_key(10), TokenAccount(MINT, OWNER, 2))
                raise ValueError("boom")

        assert store.get(_key(9)).amount == 5
        assert not store.exists(_key(10))

    def test_nested_transaction_joins_outer(self):
        store = AccountStore()
        with pytest.raises(RuntimeError):
            with store.transaction():
                with store.transaction():
                    store.put(_key(9), TokenAccount(MINT, OWNER, 1))
                raise RuntimeError("outer failure")

        assert not store.exists(_key(9))

    def test_create_if_absent(self):
        store = AccountStore()
        record = ClaimRecord(phase=1, recipient=OWNER, mint=MINT, amount=10, claimed_at=0)
        with store.transaction():
            assert store.create_if_absent(_key(9), record)
            assert not store.create_if_absent(_key(9), record)

    def test_create_if_absent_single_winner_under_threads(self):
        """Test that concurrent creators of one address see exactly one success."""
        store = AccountStore()
        results = []
        barrier = threading.Barrier(8)

        def create(i):
            barrier.wait()
            with store.transaction():
                results.append(
                    store.create_if_absent(
                        _key(9), ClaimRecord(phase=1, recipient=OWNER, mint=MINT, amount=i, claimed_at=0)
                    )
                )

        threads = [threading.Thread(target=create, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 1

    def test_require(self):
        store = AccountStore()
        with store.transaction():
            store.put(_key(9), TokenAccount(MINT, OWNER))

        assert store.require(_key(9), TokenAccount).owner == OWNER
        with pytest.raises(AccountNotFoundError):
            store.require(_key(9), Mint)
        with pytest.raises(AccountNotFoundError):
            store.require(_key(10), TokenAccount)

    def test_update(self):
        store = AccountStore()
        with store.transaction():
            store.put(_key(9), TokenAccount(MINT, OWNER, 5))
            updated = store.update(_key(9), TokenAccount, amount=7)

        assert updated.amount == 7
        assert store.get(_key(9)).amount == 7

    def test_items_and_find(self):
        store = AccountStore()
        with store.transaction():
            store.put(_key(9), TokenAccount(MINT, OWNER, 5))
            store.put(_key(10), TokenAccount(MINT, _key(3), 0))
            store.put(_key(11), Mint(authority=OWNER, decimals=9, token_program=_key(4)))

        assert len(store.items(TokenAccount)) == 2
        assert len(store.items()) == 3
        assert store.find(TokenAccount, lambda a: a.amount > 0) == [(_key(9), TokenAccount(MINT, OWNER, 5))]


class TestSerialization:
    """Test store round trips through plain dictionaries."""

    def test_every_record_type_round_trips(self):
        records = {
            _key(10): Mint(authority=OWNER, decimals=6, token_program=_key(4), supply=100),
            _key(11): TokenAccount(MINT, OWNER, 2**64 - 1),
            _key(12): PoolRecord(
                phase=3, mint=MINT, merkle_root=bytes(range(32)), vault=_key(5),
                admin=OWNER, bump=254, drained=True,
            ),
            _key(13): ClaimRecord(phase=3, recipient=OWNER, mint=MINT, amount=7, claimed_at=1_700_000_000),
            _key(14): LookupTable(authority=OWNER, addresses=(MINT, _key(5)), last_extended_slot=4),
        }
        store = AccountStore(records)

        restored = AccountStore.from_dict(store.to_dict())

        for address, record in records.items():
            assert restored.get(address) == record

    def test_pool_root_is_hex(self):
        pool = PoolRecord(phase=1, mint=MINT, merkle_root=b"\xab" * 32, vault=_key(5), admin=OWNER, bump=1)
        assert pool.to_dict()["merkle_root"] == "ab" * 32

    def test_unknown_type(self):
        with pytest.raises(StorageError, match="unknown account type"):
            AccountStore.from_dict({str(_key(9)): {"type": "widget", "data": {}}})

    def test_malformed_record(self):
        with pytest.raises(StorageError, match="malformed"):
            AccountStore.from_dict({str(_key(9)): {"type": "token_account", "data": {"mint": str(MINT)}}})


class TestLookupTable:
    """Test lookup table activation."""

    def test_empty_table_inactive(self):
        assert not LookupTable(authority=OWNER).is_active(100)

    def test_active_one_slot_after_extension(self):
        table = LookupTable(authority=OWNER, addresses=(MINT,), last_extended_slot=5)
        assert not table.is_active(5)
        assert table.is_active(6)
