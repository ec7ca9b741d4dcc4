"""
Unit tests for the airdrop program.

Tests cover:
- Claim settlement and the claim record
- Exactly-once claims, including concurrent submissions
- Phase independence
- Proof, vault and derivation failures (and that they leave no state behind)
- Signed claims on behalf of an owner
- Pool lifecycle: root rotation, deposits, withdrawal and the drained state
- Administrator authorization
"""

from concurrent.futures import ThreadPoolExecutor

import pytest

from airdrop.chain.transaction import AccountMeta
from airdrop.core.assembler import TransactionAssembler
from airdrop.core.admin import AirdropAdmin
from airdrop.core.claims import sign_claim_reward
from airdrop.chain.programs.airdrop import AirdropInstructions, claim_reward_message
from airdrop.chain.programs.native import new_ed25519_instruction
from airdrop.exceptions import (
    AccountNotFoundError,
    AlreadyClaimedError,
    ClaimSignatureExpiredError,
    DerivationMismatchError,
    InsufficientVaultBalanceError,
    InvalidClaimSignatureError,
    InvalidInstructionError,
    MalformedInputError,
    PoolAlreadyExistsError,
    PoolDrainedError,
    PoolNotFoundError,
    ProofInvalidError,
    SignatureVerificationError,
    UnauthorizedError,
)
from airdrop.merkle.artifact import generate_distribution


def submit_claim(env, claimer, funded, amount=None, proof=None, assembler=None):
    """Build and send claimer's claim for a funded phase."""
    entry = funded.proofs.get(claimer.pubkey)
    assembler = assembler or TransactionAssembler(env.runtime)
    transaction = assembler.build_claim(
        claimer,
        funded.proofs.phase,
        env.mint,
        entry.amount if amount is None else amount,
        entry.proof if proof is None else proof,
        funded.lookup_table,
    )
    return env.runtime.send_transaction(transaction)


def vault_balance(env, phase):
    return env.runtime.get_token_balance(env.runtime.get_pool(phase, env.mint).vault)


class TestClaim:
    """Test claim settlement."""

    def test_claim_transfers_allocation(self, env, recipients, allocations):
        """Test that a valid claim moves the allocation and records the claim."""
        funded = env.fund_phase(1, allocations)
        alice = recipients[0]
        before = vault_balance(env, 1)

        signature = submit_claim(env, alice, funded)

        assert signature
        assert env.runtime.get_owner_balance(alice.pubkey, env.mint) == 100 * 10**9
        assert vault_balance(env, 1) == before - 100 * 10**9
        record = env.runtime.get_claim_record(1, alice.pubkey, env.mint)
        assert record.amount == 100 * 10**9
        assert record.recipient == alice.pubkey
        assert record.claimed_at == env.runtime.unix_timestamp

    def test_every_recipient_can_claim(self, env, recipients, allocations):
        funded = env.fund_phase(1, allocations)
        for keypair in recipients:
            submit_claim(env, keypair, funded)

        assert vault_balance(env, 1) == 0
        for keypair in recipients:
            assert env.runtime.get_owner_balance(keypair.pubkey, env.mint) == allocations[str(keypair.pubkey)]

    def test_second_claim_rejected(self, env, recipients, allocations):
        """Test that a phase can be claimed only once."""
        funded = env.fund_phase(1, allocations)
        bob = recipients[1]
        submit_claim(env, bob, funded)
        env.runtime.advance_slot()

        with pytest.raises(AlreadyClaimedError):
            submit_claim(env, bob, funded)

        assert env.runtime.get_owner_balance(bob.pubkey, env.mint) == 250_500_000_000

    def test_concurrent_claims_settle_once(self, env, recipients, allocations):
        """Test that concurrent submissions of one claim settle exactly once."""
        funded = env.fund_phase(1, allocations)
        carol = recipients[2]
        entry = funded.proofs.get(carol.pubkey)
        transactions = [
            TransactionAssembler(env.runtime, compute_unit_price=price).build_claim(
                carol, 1, env.mint, entry.amount, entry.proof, funded.lookup_table
            )
            for price in range(1, 9)
        ]

        def attempt(transaction):
            try:
                return env.runtime.send_transaction(transaction)
            except AlreadyClaimedError as e:
                return e

        with ThreadPoolExecutor(max_workers=8) as executor:
            results = list(executor.map(attempt, transactions))

        assert sum(1 for r in results if isinstance(r, str)) == 1
        assert sum(1 for r in results if isinstance(r, AlreadyClaimedError)) == 7
        assert env.runtime.get_owner_balance(carol.pubkey, env.mint) == entry.amount

    def test_phases_are_independent(self, env, recipients, allocations):
        """Test that claiming one phase does not affect another."""
        phase1 = env.fund_phase(1, allocations)
        phase2 = env.fund_phase(2, allocations)
        alice = recipients[0]

        submit_claim(env, alice, phase1)

        assert env.runtime.get_claim_record(2, alice.pubkey, env.mint) is None
        submit_claim(env, alice, phase2)
        assert env.runtime.get_owner_balance(alice.pubkey, env.mint) == 2 * 100 * 10**9
        assert vault_balance(env, 1) == vault_balance(env, 2)

    def test_claim_record_per_mint(self, env, recipients, allocations, admin_keypair):
        """Test that the same phase under another mint is a separate pool."""
        env.fund_phase(1, allocations)
        other_mint = env.runtime.create_mint(admin_keypair, 9)

        assert env.runtime.get_pool(1, other_mint) is None
        env.runtime.mint_to(admin_keypair, other_mint, admin_keypair.pubkey, 10**15)
        env.admin.create_pool(1, other_mint, generate_distribution(1, allocations).merkle_root)
        assert env.runtime.get_pool(1, other_mint) is not None


class TestClaimFailures:
    """Test rejected claims leave no state behind."""

    def test_wrong_amount(self, env, recipients, allocations):
        funded = env.fund_phase(1, allocations)
        alice = recipients[0]

        with pytest.raises(ProofInvalidError):
            submit_claim(env, alice, funded, amount=100 * 10**9 + 1)

        assert env.runtime.get_claim_record(1, alice.pubkey, env.mint) is None
        assert env.runtime.get_owner_balance(alice.pubkey, env.mint) == 0

    def test_recipient_not_in_distribution(self, env, recipients, allocations, make_keypair):
        """Test that borrowing another recipient's proof fails."""
        funded = env.fund_phase(1, allocations)
        entry = funded.proofs.get(recipients[1].pubkey)
        mallory = make_keypair(0x66)

        with pytest.raises(ProofInvalidError):
            submit_claim(env, mallory, funded, amount=entry.amount, proof=entry.proof)

    def test_stale_proof_after_root_rotation(self, env, recipients, allocations):
        """Test that proofs against a replaced root stop verifying."""
        funded = env.fund_phase(1, allocations)
        bob = recipients[1]
        rotated = dict(allocations)
        rotated[str(bob.pubkey)] = 300 * 10**9
        new_proofs = generate_distribution(1, rotated)
        env.admin.update_merkle_root(1, env.mint, new_proofs.merkle_root)

        with pytest.raises(ProofInvalidError):
            submit_claim(env, bob, funded)

        new_entry = new_proofs.get(bob.pubkey)
        submit_claim(env, bob, funded, amount=new_entry.amount, proof=new_entry.proof)
        assert env.runtime.get_owner_balance(bob.pubkey, env.mint) == 300 * 10**9

    def test_insufficient_vault_balance(self, env, recipients, allocations):
        """Test that an underfunded vault rejects the claim and creates no record."""
        funded = env.fund_phase(1, allocations, deposit=100 * 10**9)
        carol = recipients[2]

        with pytest.raises(InsufficientVaultBalanceError):
            submit_claim(env, carol, funded)

        assert env.runtime.get_claim_record(1, carol.pubkey, env.mint) is None
        submit_claim(env, recipients[0], funded)
        assert vault_balance(env, 1) == 0

    def test_pool_not_found(self, env, recipients, assembler):
        alice = recipients[0]
        ix = AirdropInstructions(env.runtime.deriver).claim_airdrop(alice.pubkey, 9, env.mint, 1, [])

        with pytest.raises(PoolNotFoundError):
            env.runtime.send_transaction(assembler.assemble(alice, [ix]))

    @pytest.mark.parametrize("position,label", [(1, "pool"), (2, "vault"), (3, "claim record"), (4, "recipient")])
    def test_derivation_mismatch(self, env, recipients, allocations, assembler, make_keypair, position, label):
        """Test that a substituted protocol account is rejected."""
        funded = env.fund_phase(1, allocations)
        alice = recipients[0]
        entry = funded.proofs.get(alice.pubkey)
        ix = AirdropInstructions(env.runtime.deriver).claim_airdrop(alice.pubkey, 1, env.mint, entry.amount, entry.proof)
        original = ix.accounts[position]
        ix.accounts[position] = AccountMeta(make_keypair(0x99).pubkey, is_writable=original.is_writable)

        with pytest.raises(DerivationMismatchError, match=label):
            env.runtime.send_transaction(assembler.assemble(alice, [ix]))

        assert env.runtime.get_claim_record(1, alice.pubkey, env.mint) is None

    def test_claimer_must_sign(self, env, recipients, allocations, assembler):
        funded = env.fund_phase(1, allocations)
        alice, bob = recipients[0], recipients[1]
        entry = funded.proofs.get(alice.pubkey)
        ix = AirdropInstructions(env.runtime.deriver).claim_airdrop(alice.pubkey, 1, env.mint, entry.amount, entry.proof)
        ix.accounts[0] = AccountMeta(alice.pubkey, is_writable=True)

        with pytest.raises(UnauthorizedError):
            env.runtime.send_transaction(assembler.assemble(bob, [ix]))


class TestSignedClaim:
    """Test claims submitted by a receiver on an owner's behalf."""

    @pytest.fixture
    def funded(self, env, allocations):
        return env.fund_phase(1, allocations)

    def test_receiver_claims_with_owner_signature(self, env, recipients, funded, make_keypair):
        owner = recipients[1]
        receiver = make_keypair(0x77)
        entry = funded.proofs.get(owner.pubkey)
        expire_at = env.runtime.unix_timestamp + 3600
        signature = sign_claim_reward(owner, entry.proof, receiver.pubkey, expire_at)

        transaction = TransactionAssembler(env.runtime).build_claim_with_receiver(
            receiver, owner.pubkey, 1, env.mint, entry.amount, entry.proof, expire_at, signature, funded.lookup_table
        )
        env.runtime.send_transaction(transaction)

        assert env.runtime.get_owner_balance(receiver.pubkey, env.mint) == entry.amount
        assert env.runtime.get_owner_balance(owner.pubkey, env.mint) == 0
        assert env.runtime.get_claim_record(1, owner.pubkey, env.mint) is not None
        with pytest.raises(AlreadyClaimedError):
            submit_claim(env, owner, funded)

    def test_expired_signature(self, env, recipients, funded, make_keypair):
        owner = recipients[1]
        receiver = make_keypair(0x77)
        entry = funded.proofs.get(owner.pubkey)
        expire_at = env.runtime.unix_timestamp
        signature = sign_claim_reward(owner, entry.proof, receiver.pubkey, expire_at)

        transaction = TransactionAssembler(env.runtime).build_claim_with_receiver(
            receiver, owner.pubkey, 1, env.mint, entry.amount, entry.proof, expire_at, signature, funded.lookup_table
        )
        with pytest.raises(ClaimSignatureExpiredError):
            env.runtime.send_transaction(transaction)

        assert env.runtime.get_claim_record(1, owner.pubkey, env.mint) is None

    def test_forged_signature_fails_verification(self, env, recipients, funded, make_keypair):
        """Test that a signature not made by the owner fails the ed25519 check."""
        owner = recipients[1]
        receiver = make_keypair(0x77)
        entry = funded.proofs.get(owner.pubkey)
        expire_at = env.runtime.unix_timestamp + 3600
        forged = sign_claim_reward(receiver, entry.proof, receiver.pubkey, expire_at)

        transaction = TransactionAssembler(env.runtime).build_claim_with_receiver(
            receiver, owner.pubkey, 1, env.mint, entry.amount, entry.proof, expire_at, forged, funded.lookup_table
        )
        with pytest.raises(SignatureVerificationError):
            env.runtime.send_transaction(transaction)

    def test_signature_for_another_receiver(self, env, recipients, funded, make_keypair):
        owner = recipients[1]
        intended = make_keypair(0x77)
        thief = make_keypair(0x78)
        entry = funded.proofs.get(owner.pubkey)
        expire_at = env.runtime.unix_timestamp + 3600
        signature = sign_claim_reward(owner, entry.proof, intended.pubkey, expire_at)

        transaction = TransactionAssembler(env.runtime).build_claim_with_receiver(
            thief, owner.pubkey, 1, env.mint, entry.amount, entry.proof, expire_at, signature, funded.lookup_table
        )
        with pytest.raises(SignatureVerificationError):
            env.runtime.send_transaction(transaction)

    def test_verified_signature_from_wrong_key(self, env, recipients, funded, make_keypair):
        """Test that a valid ed25519 entry by someone other than the owner is refused."""
        owner = recipients[1]
        receiver = make_keypair(0x77)
        entry = funded.proofs.get(owner.pubkey)
        expire_at = env.runtime.unix_timestamp + 3600
        message = claim_reward_message(entry.proof, receiver.pubkey, expire_at)
        signature = receiver.sign(message)
        assembler = TransactionAssembler(env.runtime)
        instructions = assembler.compute_budget_instructions() + [
            new_ed25519_instruction(receiver.pubkey, message, signature),
            assembler.instructions.claim_airdrop_with_receiver(
                receiver.pubkey, owner.pubkey, 1, env.mint, entry.amount, entry.proof, expire_at, signature, 2
            ),
        ]
        transaction = assembler.assemble(
            receiver, instructions, lookup_tables=[assembler.resolve_lookup_table(funded.lookup_table)]
        )

        with pytest.raises(InvalidClaimSignatureError):
            env.runtime.send_transaction(transaction)

    def test_verify_index_must_point_at_ed25519(self, env, recipients, funded, make_keypair):
        owner = recipients[1]
        receiver = make_keypair(0x77)
        entry = funded.proofs.get(owner.pubkey)
        expire_at = env.runtime.unix_timestamp + 3600
        signature = sign_claim_reward(owner, entry.proof, receiver.pubkey, expire_at)
        assembler = TransactionAssembler(env.runtime)
        instructions = assembler.claim_with_receiver_instructions(
            receiver.pubkey, owner.pubkey, 1, env.mint, entry.amount, entry.proof, expire_at, signature
        )
        instructions[-1] = assembler.instructions.claim_airdrop_with_receiver(
            receiver.pubkey, owner.pubkey, 1, env.mint, entry.amount, entry.proof, expire_at, signature, 0
        )
        transaction = assembler.assemble(
            receiver, instructions, lookup_tables=[assembler.resolve_lookup_table(funded.lookup_table)]
        )

        with pytest.raises(InvalidClaimSignatureError, match="not an ed25519"):
            env.runtime.send_transaction(transaction)

    def test_signature_length_checked(self, env, recipients):
        with pytest.raises(MalformedInputError):
            AirdropInstructions(env.runtime.deriver).claim_airdrop_with_receiver(
                recipients[0].pubkey, recipients[1].pubkey, 1, env.mint, 1, [], 0, b"\x00" * 10, 2
            )


class TestPoolLifecycle:
    """Test administrator pool operations."""

    def test_create_pool_records_root(self, env, allocations):
        proofs = generate_distribution(1, allocations)
        env.admin.create_pool(1, env.mint, proofs.merkle_root)

        pool = env.runtime.get_pool(1, env.mint)
        assert pool.merkle_root == proofs.merkle_root
        assert pool.admin == env.admin.pubkey
        assert not pool.drained
        assert vault_balance(env, 1) == 0

    def test_pool_already_exists(self, env, allocations, assembler, admin_keypair):
        root = generate_distribution(1, allocations).merkle_root
        env.admin.create_pool(1, env.mint, root)

        with pytest.raises(PoolAlreadyExistsError):
            env.admin.create_pool(1, env.mint, root)

        ix = AirdropInstructions(env.runtime.deriver).init_merkle_root(admin_keypair.pubkey, 1, env.mint, root)
        with pytest.raises(PoolAlreadyExistsError):
            env.runtime.send_transaction(assembler.assemble(admin_keypair, [ix]))

    def test_create_pool_for_unknown_mint(self, env, allocations, make_keypair):
        with pytest.raises(AccountNotFoundError):
            env.admin.create_pool(1, make_keypair(0x55).pubkey, generate_distribution(1, allocations).merkle_root)

    def test_zero_deposit_rejected(self, env, allocations):
        env.fund_phase(1, allocations)
        with pytest.raises(MalformedInputError):
            env.admin.deposit(1, env.mint, 0)

    def test_deposit_adds_to_vault(self, env, allocations):
        env.fund_phase(1, allocations, deposit=10)
        env.admin.deposit(1, env.mint, 5)
        assert vault_balance(env, 1) == 15

    def test_withdraw_drains_pool(self, env, recipients, allocations):
        """Test that withdrawal returns the residual and ends the pool."""
        funded = env.fund_phase(1, allocations)
        submit_claim(env, recipients[0], funded)
        admin_before = env.runtime.get_owner_balance(env.admin.pubkey, env.mint)

        env.admin.withdraw_unclaimed_tokens(1, env.mint)

        residual = funded.proofs.total_amount - 100 * 10**9
        assert env.runtime.get_owner_balance(env.admin.pubkey, env.mint) == admin_before + residual
        assert vault_balance(env, 1) == 0
        assert env.runtime.get_pool(1, env.mint).drained

    def test_drained_pool_rejects_changes(self, env, recipients, allocations):
        funded = env.fund_phase(1, allocations)
        env.admin.withdraw_unclaimed_tokens(1, env.mint)
        env.runtime.advance_slot()

        with pytest.raises(InsufficientVaultBalanceError):
            submit_claim(env, recipients[0], funded)
        with pytest.raises(PoolDrainedError):
            env.admin.update_merkle_root(1, env.mint, b"\x01" * 32)
        with pytest.raises(PoolDrainedError):
            env.admin.deposit(1, env.mint, 10)
        with pytest.raises(PoolDrainedError):
            env.admin.withdraw_unclaimed_tokens(1, env.mint)

    def test_admin_operations_on_missing_pool(self, env):
        with pytest.raises(PoolNotFoundError):
            env.admin.update_merkle_root(7, env.mint, b"\x01" * 32)
        with pytest.raises(PoolNotFoundError):
            env.admin.get_pool(7, env.mint)


class TestAuthorization:
    """Test that pool administration is limited to the administrator."""

    @pytest.fixture
    def intruder(self, env, make_keypair):
        keypair = make_keypair(0x44)
        env.runtime.mint_to(env.admin_keypair, env.mint, keypair.pubkey, 10**12)
        return AirdropAdmin(env.runtime, keypair)

    def test_update_root_unauthorized(self, env, allocations, intruder):
        env.fund_phase(1, allocations)
        with pytest.raises(UnauthorizedError):
            intruder.update_merkle_root(1, env.mint, b"\x01" * 32)

    def test_withdraw_unauthorized(self, env, allocations, intruder):
        env.fund_phase(1, allocations)
        with pytest.raises(UnauthorizedError):
            intruder.withdraw_unclaimed_tokens(1, env.mint)
        assert not env.runtime.get_pool(1, env.mint).drained

    def test_deposit_unauthorized(self, env, allocations, intruder):
        env.fund_phase(1, allocations)
        with pytest.raises(UnauthorizedError):
            intruder.deposit(1, env.mint, 10)

    def test_create_pool_unauthorized(self, env, allocations, intruder):
        with pytest.raises(UnauthorizedError):
            intruder.create_pool(1, env.mint, generate_distribution(1, allocations).merkle_root)
        assert env.runtime.get_pool(1, env.mint) is None

    def test_initialize_only_once(self, env, intruder):
        env.runtime.advance_slot()
        with pytest.raises(InvalidInstructionError, match="already initialized"):
            intruder.initialize()
