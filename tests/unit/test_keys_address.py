"""
Unit tests for keys, signatures and deterministic address derivation.
"""

import json
import os
import stat

import pytest

from airdrop.chain.address import (
    DEFAULT_AIRDROP_PROGRAM_ID,
    SYSTEM_PROGRAM_ID,
    TOKEN_2022_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    AddressDeriver,
    create_program_address,
    find_program_address,
    get_associated_token_address,
    get_lookup_table_address,
    verify_derived_address,
)
from airdrop.chain.keys import Keypair, Pubkey, as_pubkey, verify_signature
from airdrop.exceptions import DerivationMismatchError, FileReadError, MalformedInputError


class TestPubkey:
    """Test address parsing and rendering."""

    def test_system_program_is_zero_bytes(self):
        assert bytes(SYSTEM_PROGRAM_ID) == bytes(32)
        assert str(Pubkey.default()) == "11111111111111111111111111111111"

    def test_string_round_trip(self):
        key = Pubkey(bytes(range(32)))
        assert Pubkey.from_string(str(key)) == key

    def test_equality_and_hash(self):
        a = Pubkey(bytes([7]) * 32)
        b = Pubkey(bytes([7]) * 32)
        assert a == b
        assert len({a, b}) == 1
        assert a != Pubkey(bytes([8]) * 32)
        assert a < Pubkey(bytes([8]) * 32)

    @pytest.mark.parametrize("text", ["", "abc", "0OIl" * 8, str(Pubkey(bytes(32))) + "2"])
    def test_invalid_strings(self, text):
        with pytest.raises(MalformedInputError):
            Pubkey.from_string(text)

    def test_wrong_length_bytes(self):
        with pytest.raises(MalformedInputError, match="32 bytes"):
            Pubkey(b"\x01" * 31)

    def test_as_pubkey(self):
        key = Pubkey(bytes([3]) * 32)
        assert as_pubkey(key) is key
        assert as_pubkey(str(key)) == key
        assert as_pubkey(bytes([3]) * 32) == key


class TestKeypair:
    """Test signing keypairs and keypair files."""

    def test_seed_is_deterministic(self, make_keypair):
        assert make_keypair(0x42).pubkey == make_keypair(0x42).pubkey
        assert make_keypair(0x42).pubkey != make_keypair(0x43).pubkey

    def test_public_key_is_on_curve(self, make_keypair):
        assert make_keypair(0x42).pubkey.is_on_curve()

    def test_sign_and_verify(self, make_keypair):
        keypair = make_keypair(0x42)
        signature = keypair.sign(b"message")

        assert len(signature) == 64
        assert verify_signature(keypair.pubkey, b"message", signature)
        assert not verify_signature(keypair.pubkey, b"other", signature)
        assert not verify_signature(make_keypair(0x43).pubkey, b"message", signature)
        assert not verify_signature(keypair.pubkey, b"message", signature[:63])

    def test_bytes_round_trip(self):
        keypair = Keypair.generate()
        restored = Keypair.from_bytes(keypair.to_bytes())
        assert restored.pubkey == keypair.pubkey

    def test_mismatched_halves_rejected(self, make_keypair):
        raw = make_keypair(1).seed() + bytes(make_keypair(2).pubkey)
        with pytest.raises(MalformedInputError, match="does not match"):
            Keypair.from_bytes(raw)

    def test_save_and_load(self, temp_dir, make_keypair):
        keypair = make_keypair(0x42)
        path = temp_dir / "keys" / "id.json"
        keypair.save(path)

        data = json.loads(path.read_text())
        assert len(data) == 64
        assert stat.S_IMODE(os.stat(path).st_mode) == 0o600
        assert Keypair.load(path).pubkey == keypair.pubkey

    def test_load_missing_file(self, temp_dir):
        with pytest.raises(FileReadError):
            Keypair.load(temp_dir / "missing.json")

    def test_load_malformed_file(self, temp_dir):
        path = temp_dir / "bad.json"
        path.write_text("[1, 2, 3]")
        with pytest.raises(FileReadError):
            Keypair.load(path)


class TestProgramAddresses:
    """Test program-derived address rules."""

    def test_found_address_is_off_curve(self):
        address, bump = find_program_address([b"seed"], DEFAULT_AIRDROP_PROGRAM_ID)
        assert not address.is_on_curve()
        assert 0 <= bump <= 255
        assert create_program_address([b"seed", bytes([bump])], DEFAULT_AIRDROP_PROGRAM_ID) == address

    def test_seed_too_long(self):
        with pytest.raises(MalformedInputError, match="exceeds"):
            create_program_address([b"x" * 33], DEFAULT_AIRDROP_PROGRAM_ID)

    def test_too_many_seeds(self):
        with pytest.raises(MalformedInputError, match="seeds"):
            create_program_address([b"x"] * 17, DEFAULT_AIRDROP_PROGRAM_ID)

    def test_associated_token_address_depends_on_token_program(self, make_keypair):
        owner = make_keypair(1).pubkey
        mint = make_keypair(2).pubkey
        assert get_associated_token_address(owner, mint, TOKEN_PROGRAM_ID) != get_associated_token_address(
            owner, mint, TOKEN_2022_PROGRAM_ID
        )

    def test_lookup_table_address_depends_on_slot(self, make_keypair):
        authority = make_keypair(1).pubkey
        assert get_lookup_table_address(authority, 1)[0] != get_lookup_table_address(authority, 2)[0]


class TestAddressDeriver:
    """Test derivation of pool, vault and claim record addresses."""

    @pytest.fixture
    def deriver(self):
        return AddressDeriver()

    def test_derivation_is_deterministic(self, deriver, make_keypair):
        mint = make_keypair(9).pubkey
        assert deriver.pool_address(1, mint) == AddressDeriver().pool_address(1, mint)

    def test_pool_address_varies_by_phase_and_mint(self, deriver, make_keypair):
        mint_a = make_keypair(9).pubkey
        mint_b = make_keypair(10).pubkey
        addresses = {
            deriver.pool_address(1, mint_a)[0],
            deriver.pool_address(2, mint_a)[0],
            deriver.pool_address(1, mint_b)[0],
        }
        assert len(addresses) == 3

    def test_claim_record_varies_by_phase_recipient_and_mint(self, deriver, make_keypair):
        mint = make_keypair(9).pubkey
        alice = make_keypair(1).pubkey
        bob = make_keypair(2).pubkey
        records = {
            deriver.claim_record_address(1, alice, mint)[0],
            deriver.claim_record_address(2, alice, mint)[0],
            deriver.claim_record_address(1, bob, mint)[0],
            deriver.claim_record_address(1, alice, make_keypair(10).pubkey)[0],
        }
        assert len(records) == 4

    def test_program_identity_changes_addresses(self, make_keypair):
        mint = make_keypair(9).pubkey
        other = AddressDeriver(program_id=make_keypair(77).pubkey)
        assert other.pool_address(1, mint) != AddressDeriver().pool_address(1, mint)

    def test_phase_addresses(self, deriver, make_keypair):
        mint = make_keypair(9).pubkey
        addresses = deriver.phase_addresses(3, mint)
        pool, bump = deriver.pool_address(3, mint)

        assert addresses.pool == pool
        assert addresses.pool_bump == bump
        assert addresses.vault == get_associated_token_address(pool, mint, TOKEN_2022_PROGRAM_ID)

    def test_invalid_phase(self, deriver, make_keypair):
        with pytest.raises(MalformedInputError):
            deriver.pool_address(0, make_keypair(9).pubkey)

    def test_verify_derived_address(self, make_keypair):
        a = make_keypair(1).pubkey
        verify_derived_address("pool", a, a)
        with pytest.raises(DerivationMismatchError, match="pool"):
            verify_derived_address("pool", a, make_keypair(2).pubkey)
