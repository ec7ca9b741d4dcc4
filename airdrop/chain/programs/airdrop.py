"""
Copyright (C) 2026 Garudex Labs.  All Rights Reserved.
Merkle Airdrop, a product of Garudex Labs

The airdrop program.

Holds one pool record per (phase, mint) with the phase's published Merkle root
and settles claims against it. A claim record at the address derived from
(phase, recipient, mint) is the only claim-state signal: it is created in the
same atomic step that moves the allocation out of the vault, so a recipient
can claim each phase at most once however often a claim is submitted.

Pool lifecycle (administrator only):
    uninitialized -> active     init_merkle_root (optionally followed by deposit)
    active -> active            update_merkle_root, deposit
    active -> drained           withdraw_unclaimed_tokens (one way)

Claim check order:
    derived addresses, pool exists, proof verifies against the current root,
    claim record created if absent, vault balance covers the amount, transfer.
"""

from typing import Callable, Dict, List, Optional, Sequence

from airdrop.chain.accounts import ClaimRecord, GlobalConfig, PoolRecord, TokenAccount
from airdrop.chain.address import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    DEFAULT_AIRDROP_PROGRAM_ID,
    ED25519_PROGRAM_ID,
    SYSTEM_PROGRAM_ID,
    SYSVAR_INSTRUCTIONS_ID,
    TOKEN_2022_PROGRAM_ID,
    AddressDeriver,
    verify_derived_address,
)
from airdrop.chain.codec import (
    Decoder,
    encode_hash_vec,
    encode_i64,
    encode_u8,
    encode_u64,
    instruction_discriminator,
)
from airdrop.chain.keys import SIGNATURE_LENGTH, Pubkey
from airdrop.chain.programs.base import (
    InvokeContext,
    Program,
    expect_accounts,
    require_signer,
    require_writable,
)
from airdrop.chain.programs.native import parse_ed25519_instruction
from airdrop.chain.programs.token import ensure_associated_token_account, transfer_tokens
from airdrop.chain.transaction import AccountMeta, Instruction
from airdrop.exceptions import (
    AccountNotFoundError,
    AlreadyClaimedError,
    ClaimSignatureExpiredError,
    InsufficientVaultBalanceError,
    InvalidClaimSignatureError,
    InvalidInstructionError,
    MalformedInputError,
    PoolAlreadyExistsError,
    PoolDrainedError,
    PoolNotFoundError,
    UnauthorizedError,
)
from airdrop.logging_config import get_logger, log_pool_operation
from airdrop.merkle.leaf import sha256, validate_phase
from airdrop.merkle.tree import HASH_SIZE
from airdrop.merkle.verifier import require_valid_proof

logger = get_logger(__name__)

INITIALIZE = instruction_discriminator("initialize")
INIT_MERKLE_ROOT = instruction_discriminator("init_merkle_root")
UPDATE_MERKLE_ROOT = instruction_discriminator("update_merkle_root")
DEPOSIT = instruction_discriminator("deposit")
WITHDRAW_UNCLAIMED_TOKENS = instruction_discriminator("withdraw_unclaimed_tokens")
CLAIM_AIRDROP = instruction_discriminator("claim_airdrop")
CLAIM_AIRDROP_WITH_RECEIVER = instruction_discriminator("claim_airdrop_with_receiver")


def claim_reward_message(proof: Sequence[bytes], receiver: Pubkey, expire_at: int) -> bytes:
    """
    Message an allocation owner signs to let receiver claim on their behalf.

    The UTF-8 hex text of sha256(sha256(proof bytes) || receiver || expire_at
    as i64 little-endian).
    """
    proof_digest = sha256(b"".join(bytes(h) for h in proof))
    return sha256(proof_digest + bytes(receiver) + encode_i64(expire_at)).hex().encode("utf-8")


class AirdropProgram(Program):
    """Pool administration and exactly-once claim settlement."""

    def __init__(
        self,
        program_id: Pubkey = DEFAULT_AIRDROP_PROGRAM_ID,
        token_program_id: Pubkey = TOKEN_2022_PROGRAM_ID,
    ):
        self.program_id = program_id
        self.deriver = AddressDeriver(program_id, token_program_id)
        self._handlers: Dict[bytes, Callable[[InvokeContext, Sequence[AccountMeta], Decoder], None]] = {
            INITIALIZE: self._initialize,
            INIT_MERKLE_ROOT: self._init_merkle_root,
            UPDATE_MERKLE_ROOT: self._update_merkle_root,
            DEPOSIT: self._deposit,
            WITHDRAW_UNCLAIMED_TOKENS: self._withdraw_unclaimed_tokens,
            CLAIM_AIRDROP: self._claim_airdrop,
            CLAIM_AIRDROP_WITH_RECEIVER: self._claim_airdrop_with_receiver,
        }

    def process(self, ctx: InvokeContext, accounts: Sequence[AccountMeta], data: bytes) -> None:
        decoder = Decoder(data)
        discriminator = decoder.read_fixed(8)
        handler = self._handlers.get(discriminator)
        if handler is None:
            raise InvalidInstructionError(f"unknown airdrop instruction {discriminator.hex()}")
        handler(ctx, accounts, decoder)

    # Shared checks

    def _read_phase(self, decoder: Decoder) -> int:
        return validate_phase(decoder.read_u8())

    def _check_token_program(self, meta: AccountMeta) -> None:
        verify_derived_address("token program", self.deriver.token_program_id, meta.pubkey)

    def _require_admin(self, ctx: InvokeContext, config_meta: AccountMeta, admin_meta: AccountMeta) -> None:
        expected, _ = self.deriver.global_config_address()
        verify_derived_address("global config", expected, config_meta.pubkey)
        try:
            config = ctx.store.require(config_meta.pubkey, GlobalConfig)
        except AccountNotFoundError as e:
            raise AccountNotFoundError("airdrop program has not been initialized") from e
        require_signer(admin_meta, "admin")
        if config.admin != admin_meta.pubkey:
            logger.warning(f"Rejected admin instruction from {admin_meta.pubkey}")
            raise UnauthorizedError(f"{admin_meta.pubkey} is not the airdrop administrator")

    def _load_pool(self, ctx: InvokeContext, phase: int, mint: Pubkey, pool_meta: AccountMeta) -> PoolRecord:
        expected, _ = self.deriver.pool_address(phase, mint)
        verify_derived_address("pool", expected, pool_meta.pubkey)
        pool = ctx.store.get(pool_meta.pubkey)
        if not isinstance(pool, PoolRecord):
            raise PoolNotFoundError(f"no pool for phase {phase} and mint {mint}")
        return pool

    # Administrator instructions

    def _initialize(self, ctx, accounts, decoder: Decoder) -> None:
        decoder.finish()
        expect_accounts(accounts, 2, "initialize")
        config_meta, admin_meta = accounts[:2]
        expected, _ = self.deriver.global_config_address()
        verify_derived_address("global config", expected, config_meta.pubkey)
        require_writable(config_meta, "global config")
        require_signer(admin_meta, "admin")
        if not ctx.store.create_if_absent(config_meta.pubkey, GlobalConfig(admin=admin_meta.pubkey)):
            raise InvalidInstructionError("airdrop program is already initialized")
        logger.info(f"Initialized airdrop program with admin {admin_meta.pubkey}")

    def _init_merkle_root(self, ctx, accounts, decoder: Decoder) -> None:
        phase = self._read_phase(decoder)
        root = decoder.read_fixed(HASH_SIZE)
        decoder.finish()
        expect_accounts(accounts, 6, "init_merkle_root")
        config_meta, pool_meta, vault_meta, mint_meta, admin_meta, token_meta = accounts[:6]
        self._require_admin(ctx, config_meta, admin_meta)
        self._check_token_program(token_meta)
        require_writable(pool_meta, "pool")
        require_writable(vault_meta, "vault")

        mint = mint_meta.pubkey
        pool_address, bump = self.deriver.pool_address(phase, mint)
        verify_derived_address("pool", pool_address, pool_meta.pubkey)
        vault = self.deriver.vault_address(pool_address, mint)
        verify_derived_address("vault", vault, vault_meta.pubkey)
        if ctx.store.exists(pool_address):
            raise PoolAlreadyExistsError(f"pool for phase {phase} and mint {mint} already exists")

        ensure_associated_token_account(ctx.store, pool_address, mint, self.deriver.token_program_id)
        ctx.store.put(
            pool_address,
            PoolRecord(
                phase=phase,
                mint=mint,
                merkle_root=root,
                vault=vault,
                admin=admin_meta.pubkey,
                bump=bump,
            ),
        )
        log_pool_operation(logger, "init_merkle_root", phase, str(mint), merkle_root=root.hex())

    def _update_merkle_root(self, ctx, accounts, decoder: Decoder) -> None:
        phase = self._read_phase(decoder)
        root = decoder.read_fixed(HASH_SIZE)
        decoder.finish()
        expect_accounts(accounts, 4, "update_merkle_root")
        config_meta, pool_meta, mint_meta, admin_meta = accounts[:4]
        self._require_admin(ctx, config_meta, admin_meta)
        require_writable(pool_meta, "pool")
        pool = self._load_pool(ctx, phase, mint_meta.pubkey, pool_meta)
        if pool.drained:
            raise PoolDrainedError(f"pool for phase {phase} has been drained")
        ctx.store.update(pool_meta.pubkey, PoolRecord, merkle_root=root)
        log_pool_operation(
            logger,
            "update_merkle_root",
            phase,
            str(mint_meta.pubkey),
            previous_root=pool.merkle_root.hex(),
            merkle_root=root.hex(),
        )

    def _deposit(self, ctx, accounts, decoder: Decoder) -> None:
        phase = self._read_phase(decoder)
        amount = decoder.read_u64()
        decoder.finish()
        expect_accounts(accounts, 7, "deposit")
        config_meta, pool_meta, vault_meta, mint_meta, source_meta, admin_meta, token_meta = accounts[:7]
        self._require_admin(ctx, config_meta, admin_meta)
        self._check_token_program(token_meta)
        require_writable(vault_meta, "vault")
        require_writable(source_meta, "source")
        pool = self._load_pool(ctx, phase, mint_meta.pubkey, pool_meta)
        verify_derived_address("vault", pool.vault, vault_meta.pubkey)
        if pool.drained:
            raise PoolDrainedError(f"pool for phase {phase} has been drained")
        if amount == 0:
            raise MalformedInputError("deposit amount must be positive")

        source = ctx.store.require(source_meta.pubkey, TokenAccount)
        if source.owner != admin_meta.pubkey:
            raise UnauthorizedError(f"{admin_meta.pubkey} does not own token account {source_meta.pubkey}")
        transfer_tokens(ctx.store, source_meta.pubkey, pool.vault, amount)
        log_pool_operation(logger, "deposit", phase, str(pool.mint), amount=str(amount))

    def _withdraw_unclaimed_tokens(self, ctx, accounts, decoder: Decoder) -> None:
        phase = self._read_phase(decoder)
        decoder.finish()
        expect_accounts(accounts, 7, "withdraw_unclaimed_tokens")
        config_meta, pool_meta, vault_meta, mint_meta, dest_meta, admin_meta, token_meta = accounts[:7]
        self._require_admin(ctx, config_meta, admin_meta)
        self._check_token_program(token_meta)
        require_writable(pool_meta, "pool")
        require_writable(vault_meta, "vault")
        require_writable(dest_meta, "destination")
        pool = self._load_pool(ctx, phase, mint_meta.pubkey, pool_meta)
        verify_derived_address("vault", pool.vault, vault_meta.pubkey)
        verify_derived_address(
            "destination", self.deriver.token_account(admin_meta.pubkey, pool.mint), dest_meta.pubkey
        )
        if pool.drained:
            raise PoolDrainedError(f"pool for phase {phase} has already been drained")

        ensure_associated_token_account(ctx.store, admin_meta.pubkey, pool.mint, self.deriver.token_program_id)
        residual = ctx.store.require(pool.vault, TokenAccount).amount
        transfer_tokens(ctx.store, pool.vault, dest_meta.pubkey, residual)
        ctx.store.update(pool_meta.pubkey, PoolRecord, drained=True)
        log_pool_operation(logger, "withdraw_unclaimed_tokens", phase, str(pool.mint), amount=str(residual))

    # Claims

    def _claim_airdrop(self, ctx, accounts, decoder: Decoder) -> None:
        phase = self._read_phase(decoder)
        amount = decoder.read_u64()
        proof = decoder.read_hash_vec()
        decoder.finish()
        expect_accounts(accounts, 7, "claim_airdrop")
        claimer, pool_meta, vault_meta, record_meta, token_account_meta, mint_meta, token_meta = accounts[:7]
        require_signer(claimer, "claimer")
        self._settle_claim(
            ctx,
            phase=phase,
            owner=claimer.pubkey,
            receiver=claimer.pubkey,
            amount=amount,
            proof=proof,
            pool_meta=pool_meta,
            vault_meta=vault_meta,
            record_meta=record_meta,
            token_account_meta=token_account_meta,
            mint=mint_meta.pubkey,
            token_meta=token_meta,
        )

    def _claim_airdrop_with_receiver(self, ctx, accounts, decoder: Decoder) -> None:
        phase = self._read_phase(decoder)
        owner = decoder.read_pubkey()
        amount = decoder.read_u64()
        proof = decoder.read_hash_vec()
        expire_at = decoder.read_i64()
        signature = decoder.read_fixed(SIGNATURE_LENGTH)
        verify_ix_index = decoder.read_u8()
        decoder.finish()
        expect_accounts(accounts, 8, "claim_airdrop_with_receiver")
        (receiver, pool_meta, vault_meta, record_meta,
         token_account_meta, mint_meta, sysvar_meta, token_meta) = accounts[:8]
        require_signer(receiver, "receiver")
        verify_derived_address("instructions sysvar", SYSVAR_INSTRUCTIONS_ID, sysvar_meta.pubkey)
        self._check_claim_signature(
            ctx, owner, receiver.pubkey, proof, expire_at, signature, verify_ix_index
        )
        self._settle_claim(
            ctx,
            phase=phase,
            owner=owner,
            receiver=receiver.pubkey,
            amount=amount,
            proof=proof,
            pool_meta=pool_meta,
            vault_meta=vault_meta,
            record_meta=record_meta,
            token_account_meta=token_account_meta,
            mint=mint_meta.pubkey,
            token_meta=token_meta,
        )

    def _check_claim_signature(
        self,
        ctx: InvokeContext,
        owner: Pubkey,
        receiver: Pubkey,
        proof: List[bytes],
        expire_at: int,
        signature: bytes,
        verify_ix_index: int,
    ) -> None:
        """
        Require a verified ed25519 instruction in which owner signed the claim message.

        Raises:
            InvalidClaimSignatureError: If no matching verified signature exists
            ClaimSignatureExpiredError: If expire_at is not in the future
        """
        if verify_ix_index >= len(ctx.instructions):
            raise InvalidClaimSignatureError(f"no instruction at index {verify_ix_index}")
        verify_ix = ctx.instruction_at(verify_ix_index)
        if verify_ix.program_id != ED25519_PROGRAM_ID:
            raise InvalidClaimSignatureError(
                f"instruction {verify_ix_index} is not an ed25519 verification"
            )
        try:
            entries = parse_ed25519_instruction(verify_ix.data, ctx.instructions)
        except InvalidInstructionError as e:
            raise InvalidClaimSignatureError(f"malformed ed25519 instruction: {e}") from e

        expected = claim_reward_message(proof, receiver, expire_at)
        if not any(
            e.pubkey == owner and e.signature == signature and e.message == expected
            for e in entries
        ):
            raise InvalidClaimSignatureError(
                f"no verified signature by {owner} authorizes {receiver} to claim"
            )
        if expire_at <= ctx.unix_timestamp:
            raise ClaimSignatureExpiredError(
                f"claim signature expired at {expire_at} (now {ctx.unix_timestamp})"
            )

    def _settle_claim(
        self,
        ctx: InvokeContext,
        phase: int,
        owner: Pubkey,
        receiver: Pubkey,
        amount: int,
        proof: List[bytes],
        pool_meta: AccountMeta,
        vault_meta: AccountMeta,
        record_meta: AccountMeta,
        token_account_meta: AccountMeta,
        mint: Pubkey,
        token_meta: AccountMeta,
    ) -> None:
        self._check_token_program(token_meta)
        pool_address, _ = self.deriver.pool_address(phase, mint)
        verify_derived_address("pool", pool_address, pool_meta.pubkey)
        verify_derived_address("vault", self.deriver.vault_address(pool_address, mint), vault_meta.pubkey)
        record_address, _ = self.deriver.claim_record_address(phase, owner, mint)
        verify_derived_address("claim record", record_address, record_meta.pubkey)
        verify_derived_address(
            "recipient token account", self.deriver.token_account(receiver, mint), token_account_meta.pubkey
        )
        require_writable(vault_meta, "vault")
        require_writable(record_meta, "claim record")
        require_writable(token_account_meta, "recipient token account")

        pool = self._load_pool(ctx, phase, mint, pool_meta)
        require_valid_proof(phase, bytes(owner), amount, proof, pool.merkle_root)

        record = ClaimRecord(
            phase=phase, recipient=owner, mint=mint, amount=amount, claimed_at=ctx.unix_timestamp
        )
        if not ctx.store.create_if_absent(record_address, record):
            raise AlreadyClaimedError(f"{owner} has already claimed phase {phase}")

        vault = ctx.store.require(pool.vault, TokenAccount)
        if vault.amount < amount:
            raise InsufficientVaultBalanceError(
                f"vault for phase {phase} holds {vault.amount}, claim needs {amount}"
            )
        ensure_associated_token_account(ctx.store, receiver, mint, self.deriver.token_program_id)
        transfer_tokens(ctx.store, pool.vault, token_account_meta.pubkey, amount)
        logger.debug(f"Settled claim phase={phase} owner={owner} receiver={receiver} amount={amount}")


class AirdropInstructions:
    """
    Builds airdrop program instructions with every account derived.

    Example:
        >>> builder = AirdropInstructions(AddressDeriver(program_id))
        >>> ix = builder.claim_airdrop(claimer, phase=1, mint=mint, amount=10, proof=proof)
    """

    def __init__(self, deriver: AddressDeriver):
        self.deriver = deriver

    @property
    def program_id(self) -> Pubkey:
        return self.deriver.program_id

    def _instruction(self, accounts: List[AccountMeta], data: bytes) -> Instruction:
        return Instruction(self.program_id, accounts, data)

    def initialize(self, admin: Pubkey) -> Instruction:
        config, _ = self.deriver.global_config_address()
        return self._instruction(
            [
                AccountMeta(config, is_writable=True),
                AccountMeta(admin, is_signer=True, is_writable=True),
                AccountMeta(SYSTEM_PROGRAM_ID),
            ],
            INITIALIZE,
        )

    def init_merkle_root(self, admin: Pubkey, phase: int, mint: Pubkey, root: bytes) -> Instruction:
        addresses = self.deriver.phase_addresses(phase, mint)
        config, _ = self.deriver.global_config_address()
        return self._instruction(
            [
                AccountMeta(config),
                AccountMeta(addresses.pool, is_writable=True),
                AccountMeta(addresses.vault, is_writable=True),
                AccountMeta(mint),
                AccountMeta(admin, is_signer=True, is_writable=True),
                AccountMeta(self.deriver.token_program_id),
                AccountMeta(ASSOCIATED_TOKEN_PROGRAM_ID),
                AccountMeta(SYSTEM_PROGRAM_ID),
            ],
            INIT_MERKLE_ROOT + encode_u8(validate_phase(phase)) + _root_bytes(root),
        )

    def update_merkle_root(self, admin: Pubkey, phase: int, mint: Pubkey, root: bytes) -> Instruction:
        pool, _ = self.deriver.pool_address(phase, mint)
        config, _ = self.deriver.global_config_address()
        return self._instruction(
            [
                AccountMeta(config),
                AccountMeta(pool, is_writable=True),
                AccountMeta(mint),
                AccountMeta(admin, is_signer=True),
            ],
            UPDATE_MERKLE_ROOT + encode_u8(validate_phase(phase)) + _root_bytes(root),
        )

    def deposit(
        self, admin: Pubkey, phase: int, mint: Pubkey, amount: int, source: Optional[Pubkey] = None
    ) -> Instruction:
        addresses = self.deriver.phase_addresses(phase, mint)
        config, _ = self.deriver.global_config_address()
        return self._instruction(
            [
                AccountMeta(config),
                AccountMeta(addresses.pool),
                AccountMeta(addresses.vault, is_writable=True),
                AccountMeta(mint),
                AccountMeta(source or self.deriver.token_account(admin, mint), is_writable=True),
                AccountMeta(admin, is_signer=True),
                AccountMeta(self.deriver.token_program_id),
            ],
            DEPOSIT + encode_u8(validate_phase(phase)) + encode_u64(amount),
        )

    def withdraw_unclaimed_tokens(self, admin: Pubkey, phase: int, mint: Pubkey) -> Instruction:
        addresses = self.deriver.phase_addresses(phase, mint)
        config, _ = self.deriver.global_config_address()
        return self._instruction(
            [
                AccountMeta(config),
                AccountMeta(addresses.pool, is_writable=True),
                AccountMeta(addresses.vault, is_writable=True),
                AccountMeta(mint),
                AccountMeta(self.deriver.token_account(admin, mint), is_writable=True),
                AccountMeta(admin, is_signer=True, is_writable=True),
                AccountMeta(self.deriver.token_program_id),
                AccountMeta(ASSOCIATED_TOKEN_PROGRAM_ID),
                AccountMeta(SYSTEM_PROGRAM_ID),
            ],
            WITHDRAW_UNCLAIMED_TOKENS + encode_u8(validate_phase(phase)),
        )

    def claim_airdrop(
        self, claimer: Pubkey, phase: int, mint: Pubkey, amount: int, proof: Sequence[bytes]
    ) -> Instruction:
        addresses = self.deriver.phase_addresses(phase, mint)
        record, _ = self.deriver.claim_record_address(phase, claimer, mint)
        return self._instruction(
            [
                AccountMeta(claimer, is_signer=True, is_writable=True),
                AccountMeta(addresses.pool),
                AccountMeta(addresses.vault, is_writable=True),
                AccountMeta(record, is_writable=True),
                AccountMeta(self.deriver.token_account(claimer, mint), is_writable=True),
                AccountMeta(mint),
                AccountMeta(self.deriver.token_program_id),
                AccountMeta(ASSOCIATED_TOKEN_PROGRAM_ID),
                AccountMeta(SYSTEM_PROGRAM_ID),
            ],
            CLAIM_AIRDROP
            + encode_u8(validate_phase(phase))
            + encode_u64(amount)
            + encode_hash_vec(proof),
        )

    def claim_airdrop_with_receiver(
        self,
        receiver: Pubkey,
        owner: Pubkey,
        phase: int,
        mint: Pubkey,
        amount: int,
        proof: Sequence[bytes],
        expire_at: int,
        signature: bytes,
        verify_ix_index: int,
    ) -> Instruction:
        if len(signature) != SIGNATURE_LENGTH:
            raise MalformedInputError(f"claim signature must be {SIGNATURE_LENGTH} bytes")
        addresses = self.deriver.phase_addresses(phase, mint)
        record, _ = self.deriver.claim_record_address(phase, owner, mint)
        return self._instruction(
            [
                AccountMeta(receiver, is_signer=True, is_writable=True),
                AccountMeta(addresses.pool),
                AccountMeta(addresses.vault, is_writable=True),
                AccountMeta(record, is_writable=True),
                AccountMeta(self.deriver.token_account(receiver, mint), is_writable=True),
                AccountMeta(mint),
                AccountMeta(SYSVAR_INSTRUCTIONS_ID),
                AccountMeta(self.deriver.token_program_id),
                AccountMeta(ASSOCIATED_TOKEN_PROGRAM_ID),
                AccountMeta(SYSTEM_PROGRAM_ID),
            ],
            CLAIM_AIRDROP_WITH_RECEIVER
            + encode_u8(validate_phase(phase))
            + bytes(owner)
            + encode_u64(amount)
            + encode_hash_vec(proof)
            + encode_i64(expire_at)
            + bytes(signature)
            + encode_u8(verify_ix_index),
        )


def _root_bytes(root: bytes) -> bytes:
    if len(root) != HASH_SIZE:
        raise MalformedInputError(f"merkle root must be {HASH_SIZE} bytes, got {len(root)}")
    return bytes(root)
