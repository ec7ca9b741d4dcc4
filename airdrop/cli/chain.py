"""
Copyright (C) 2026 Garudex Labs.  All Rights Reserved.
Merkle Airdrop, a product of Garudex Labs

CLI commands for the local ledger.
"""

from typing import Optional

import click

from airdrop.chain.keys import Pubkey
from airdrop.cli.context import CLIContext, fail, fail_with, load_keypair, pass_context
from airdrop.core.admin import AirdropAdmin
from airdrop.exceptions import AirdropError
from airdrop.merkle.leaf import scale_amount

keypair_option = click.option(
    '--keypair',
    '-k',
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help='Signing keypair file',
)


@click.group()
def chain():
    """Inspect and drive the local ledger."""
    pass


@chain.command('initialize')
@keypair_option
@pass_context
def initialize(ctx: CLIContext, keypair: str):
    """Initialize the airdrop program with this keypair as admin."""
    try:
        runtime = ctx.open_runtime()
        admin = AirdropAdmin(runtime, load_keypair(keypair), assembler=ctx.assembler(runtime))
        signature = admin.initialize()
        ctx.save_runtime(runtime)
    except AirdropError as e:
        fail_with(e)
    click.echo(f"✓ Program {runtime.program_id} initialized with admin {admin.pubkey}")
    click.echo(f"Signature: {signature}")


@chain.command('create-mint')
@keypair_option
@click.option(
    '--decimals',
    '-d',
    type=click.IntRange(0, 18),
    default=None,
    help='Token decimals (default: defaults.token_decimals)',
)
@pass_context
def create_mint(ctx: CLIContext, keypair: str, decimals: Optional[int]):
    """Create a token mint whose authority is the keypair."""
    if decimals is None:
        decimals = ctx.config.defaults.token_decimals
    try:
        runtime = ctx.open_runtime()
        mint = runtime.create_mint(load_keypair(keypair), decimals)
        ctx.save_runtime(runtime)
    except AirdropError as e:
        fail_with(e)
    click.echo(f"✓ Created mint {mint} ({decimals} decimals)")


@chain.command('mint-to')
@keypair_option
@click.option('--mint', '-m', default=None, help='Token mint (default: program.token_mint)')
@click.option('--owner', required=True, help='Recipient wallet address')
@click.option('--amount', required=True, help='Display amount to mint')
@pass_context
def mint_to(ctx: CLIContext, keypair: str, mint: Optional[str], owner: str, amount: str):
    """Mint tokens into a wallet's token account."""
    try:
        runtime = ctx.open_runtime()
        token_mint = ctx.resolve_mint(mint)
        mint_record = runtime.get_mint(token_mint)
        if mint_record is None:
            fail(f"AccountNotFound: mint {token_mint} does not exist")
        scaled = scale_amount(amount, mint_record.decimals)
        owner_key = Pubkey.from_string(owner)
        runtime.mint_to(load_keypair(keypair), token_mint, owner_key, scaled)
        ctx.save_runtime(runtime)
        balance = runtime.get_owner_balance(owner_key, token_mint)
    except AirdropError as e:
        fail_with(e)
    click.echo(f"✓ Minted {scaled} to {owner}; balance {balance}")


@chain.command('advance-slot')
@click.option('--count', '-n', type=click.IntRange(min=1), default=1, help='Slots to advance')
@click.option('--seconds', type=click.IntRange(min=0), default=0, help='Also advance the clock')
@pass_context
def advance_slot(ctx: CLIContext, count: int, seconds: int):
    """Advance the ledger's slot (activates pending lookup tables) and clock."""
    try:
        runtime = ctx.open_runtime()
        slot = runtime.advance_slot(count)
        if seconds:
            runtime.advance_clock(seconds)
        ctx.save_runtime(runtime)
    except AirdropError as e:
        fail_with(e)
    click.echo(f"Slot: {slot}")
    click.echo(f"Unix timestamp: {runtime.unix_timestamp}")


@chain.command('balance')
@click.option('--owner', required=True, help='Wallet address')
@click.option('--mint', '-m', default=None, help='Token mint (default: program.token_mint)')
@pass_context
def balance(ctx: CLIContext, owner: str, mint: Optional[str]):
    """Show a wallet's token balance in smallest units."""
    try:
        runtime = ctx.open_runtime()
        amount = runtime.get_owner_balance(Pubkey.from_string(owner), ctx.resolve_mint(mint))
    except AirdropError as e:
        fail_with(e)
    click.echo(str(amount))
