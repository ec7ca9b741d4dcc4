"""
Copyright (C) 2026 Garudex Labs.  All Rights Reserved.
Merkle Airdrop, a product of Garudex Labs

Token and associated-token-account programs.

Only the subset the airdrop needs: mint initialization, minting, transfers
and canonical (associated) token account creation. Other programs move tokens
through ``transfer_tokens`` after doing their own authority checks.
"""

from typing import Sequence

from airdrop.chain.accounts import AccountStore, Mint, TokenAccount
from airdrop.chain.address import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    SYSTEM_PROGRAM_ID,
    TOKEN_2022_PROGRAM_ID,
    get_associated_token_address,
    verify_derived_address,
)
from airdrop.chain.codec import Decoder, encode_u8, encode_u64
from airdrop.chain.keys import Pubkey
from airdrop.chain.programs.base import (
    InvokeContext,
    Program,
    expect_accounts,
    require_signer,
    require_writable,
)
from airdrop.chain.transaction import AccountMeta, Instruction
from airdrop.exceptions import (
    InsufficientFundsError,
    InvalidInstructionError,
    UnauthorizedError,
)
from airdrop.logging_config import get_logger
from airdrop.merkle.leaf import MAX_AMOUNT

logger = get_logger(__name__)

# Instruction tags
TRANSFER = 3
MINT_TO = 7
INITIALIZE_MINT = 20

CREATE_ASSOCIATED = 0
CREATE_ASSOCIATED_IDEMPOTENT = 1


def transfer_tokens(store: AccountStore, source: Pubkey, destination: Pubkey, amount: int) -> None:
    """
    Move amount between two token accounts of the same mint.

    Raises:
        InsufficientFundsError: If source holds less than amount
        InvalidInstructionError: If the accounts belong to different mints
    """
    src = store.require(source, TokenAccount)
    dst = store.require(destination, TokenAccount)
    if src.mint != dst.mint:
        raise InvalidInstructionError(
            f"token accounts {source} and {destination} hold different mints"
        )
    if src.amount < amount:
        raise InsufficientFundsError(
            f"token account {source} holds {src.amount}, cannot transfer {amount}"
        )
    if source == destination:
        return
    store.put(source, TokenAccount(mint=src.mint, owner=src.owner, amount=src.amount - amount))
    store.put(destination, TokenAccount(mint=dst.mint, owner=dst.owner, amount=dst.amount + amount))


def ensure_associated_token_account(
    store: AccountStore, owner: Pubkey, mint: Pubkey, token_program_id: Pubkey
) -> Pubkey:
    """Create owner's canonical token account for mint if it does not exist yet."""
    mint_record = store.require(mint, Mint)
    if mint_record.token_program != token_program_id:
        raise InvalidInstructionError(
            f"mint {mint} is owned by {mint_record.token_program}, not {token_program_id}"
        )
    address = get_associated_token_address(owner, mint, token_program_id)
    existing = store.get(address)
    if existing is None:
        store.create_if_absent(address, TokenAccount(mint=mint, owner=owner))
        logger.debug(f"Created token account {address} for owner={owner} mint={mint}")
    elif not isinstance(existing, TokenAccount) or existing.mint != mint:
        raise InvalidInstructionError(f"address {address} is not a token account of {mint}")
    return address


class TokenProgram(Program):
    """Mint, mint-to and transfer for one token program identity."""

    def __init__(self, program_id: Pubkey = TOKEN_2022_PROGRAM_ID):
        self.program_id = program_id

    def process(self, ctx: InvokeContext, accounts: Sequence[AccountMeta], data: bytes) -> None:
        decoder = Decoder(data)
        tag = decoder.read_u8()
        if tag == INITIALIZE_MINT:
            self._initialize_mint(ctx, accounts, decoder)
        elif tag == MINT_TO:
            self._mint_to(ctx, accounts, decoder)
        elif tag == TRANSFER:
            self._transfer(ctx, accounts, decoder)
        else:
            raise InvalidInstructionError(f"unknown token instruction tag {tag}")

    def _initialize_mint(self, ctx, accounts, decoder: Decoder) -> None:
        expect_accounts(accounts, 1, "initialize_mint")
        mint_meta = accounts[0]
        require_writable(mint_meta, "mint")
        decimals = decoder.read_u8()
        authority = decoder.read_pubkey()
        if decoder.read_u8():
            decoder.read_pubkey()
        decoder.finish()
        mint = Mint(authority=authority, decimals=decimals, token_program=self.program_id)
        if not ctx.store.create_if_absent(mint_meta.pubkey, mint):
            raise InvalidInstructionError(f"account {mint_meta.pubkey} is already in use")
        logger.debug(f"Initialized mint {mint_meta.pubkey} with {decimals} decimals")

    def _mint_to(self, ctx, accounts, decoder: Decoder) -> None:
        expect_accounts(accounts, 3, "mint_to")
        mint_meta, dest_meta, authority_meta = accounts[:3]
        require_writable(mint_meta, "mint")
        require_writable(dest_meta, "destination")
        require_signer(authority_meta, "mint authority")
        amount = decoder.read_u64()
        decoder.finish()

        mint = ctx.store.require(mint_meta.pubkey, Mint)
        if mint.authority != authority_meta.pubkey:
            raise UnauthorizedError(f"{authority_meta.pubkey} is not the authority of mint {mint_meta.pubkey}")
        dest = ctx.store.require(dest_meta.pubkey, TokenAccount)
        if dest.mint != mint_meta.pubkey:
            raise InvalidInstructionError(f"token account {dest_meta.pubkey} does not hold {mint_meta.pubkey}")
        if mint.supply + amount > MAX_AMOUNT:
            raise InvalidInstructionError("mint supply would overflow u64")

        ctx.store.update(mint_meta.pubkey, Mint, supply=mint.supply + amount)
        ctx.store.update(dest_meta.pubkey, TokenAccount, amount=dest.amount + amount)

    def _transfer(self, ctx, accounts, decoder: Decoder) -> None:
        expect_accounts(accounts, 3, "transfer")
        source_meta, dest_meta, owner_meta = accounts[:3]
        require_writable(source_meta, "source")
        require_writable(dest_meta, "destination")
        require_signer(owner_meta, "owner")
        amount = decoder.read_u64()
        decoder.finish()

        source = ctx.store.require(source_meta.pubkey, TokenAccount)
        if source.owner != owner_meta.pubkey:
            raise UnauthorizedError(f"{owner_meta.pubkey} does not own token account {source_meta.pubkey}")
        transfer_tokens(ctx.store, source_meta.pubkey, dest_meta.pubkey, amount)


class AssociatedTokenProgram(Program):
    """Creates canonical token accounts at their derived addresses."""

    program_id = ASSOCIATED_TOKEN_PROGRAM_ID

    def process(self, ctx: InvokeContext, accounts: Sequence[AccountMeta], data: bytes) -> None:
        decoder = Decoder(data)
        tag = decoder.read_u8() if data else CREATE_ASSOCIATED
        decoder.finish()
        if tag not in (CREATE_ASSOCIATED, CREATE_ASSOCIATED_IDEMPOTENT):
            raise InvalidInstructionError(f"unknown associated token instruction tag {tag}")

        expect_accounts(accounts, 6, "create_associated_token_account")
        payer, account, owner, mint, _system, token_program = accounts[:6]
        require_signer(payer, "payer")
        require_writable(account, "associated token account")
        verify_derived_address(
            "associated token account",
            get_associated_token_address(owner.pubkey, mint.pubkey, token_program.pubkey),
            account.pubkey,
        )
        if tag == CREATE_ASSOCIATED and ctx.store.exists(account.pubkey):
            raise InvalidInstructionError(f"account {account.pubkey} already exists")
        ensure_associated_token_account(ctx.store, owner.pubkey, mint.pubkey, token_program.pubkey)


def initialize_mint_instruction(
    mint: Pubkey, decimals: int, authority: Pubkey, program_id: Pubkey = TOKEN_2022_PROGRAM_ID
) -> Instruction:
    return Instruction(
        program_id=program_id,
        accounts=[AccountMeta(mint, is_signer=True, is_writable=True)],
        data=encode_u8(INITIALIZE_MINT) + encode_u8(decimals) + bytes(authority) + encode_u8(0),
    )


def mint_to_instruction(
    mint: Pubkey,
    destination: Pubkey,
    authority: Pubkey,
    amount: int,
    program_id: Pubkey = TOKEN_2022_PROGRAM_ID,
) -> Instruction:
    return Instruction(
        program_id=program_id,
        accounts=[
            AccountMeta(mint, is_writable=True),
            AccountMeta(destination, is_writable=True),
            AccountMeta(authority, is_signer=True),
        ],
        data=encode_u8(MINT_TO) + encode_u64(amount),
    )


def transfer_instruction(
    source: Pubkey,
    destination: Pubkey,
    owner: Pubkey,
    amount: int,
    program_id: Pubkey = TOKEN_2022_PROGRAM_ID,
) -> Instruction:
    return Instruction(
        program_id=program_id,
        accounts=[
            AccountMeta(source, is_writable=True),
            AccountMeta(destination, is_writable=True),
            AccountMeta(owner, is_signer=True),
        ],
        data=encode_u8(TRANSFER) + encode_u64(amount),
    )


def create_associated_token_account_idempotent(
    payer: Pubkey, owner: Pubkey, mint: Pubkey, token_program_id: Pubkey = TOKEN_2022_PROGRAM_ID
) -> Instruction:
    return Instruction(
        program_id=ASSOCIATED_TOKEN_PROGRAM_ID,
        accounts=[
            AccountMeta(payer, is_signer=True, is_writable=True),
            AccountMeta(get_associated_token_address(owner, mint, token_program_id), is_writable=True),
            AccountMeta(owner),
            AccountMeta(mint),
            AccountMeta(SYSTEM_PROGRAM_ID),
            AccountMeta(token_program_id),
        ],
        data=encode_u8(CREATE_ASSOCIATED_IDEMPOTENT),
    )
