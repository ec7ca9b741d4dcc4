"""
Copyright (C) 2026 Garudex Labs.  All Rights Reserved.
Merkle Airdrop, a product of Garudex Labs

CLI commands for pool administration.
"""

import json
from decimal import Decimal
from pathlib import Path
from typing import Optional

import click

from airdrop.cli.context import CLIContext, fail, fail_with, load_keypair, pass_context
from airdrop.core.admin import AirdropAdmin
from airdrop.exceptions import AirdropError
from airdrop.merkle.artifact import ProofArtifact
from airdrop.merkle.leaf import scale_amount

keypair_option = click.option(
    '--keypair',
    '-k',
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help='Admin keypair file',
)
mint_option = click.option('--mint', '-m', default=None, help='Token mint (default: program.token_mint)')


@click.group()
def pool():
    """Create and manage phase pools."""
    pass


@pool.command('create')
@click.option(
    '--artifact',
    '-a',
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help='Proof artifact of the phase',
)
@click.option('--deposit', 'deposit_amount', default=None, help='Display amount to deposit (e.g. 1350.5)')
@click.option(
    '--output',
    '-o',
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help='Pool artifact path (default: <artifacts_dir>/pool-phase-<phase>.json)',
)
@keypair_option
@mint_option
@pass_context
def create(
    ctx: CLIContext,
    artifact: Path,
    deposit_amount: Optional[str],
    output: Optional[Path],
    keypair: str,
    mint: Optional[str],
):
    """
    Create a phase's pool and lookup table, optionally funding it.

    The lookup table becomes usable for claims after the next slot
    (see `airdrop chain advance-slot`).

    Examples:

        airdrop pool create -a proofs-phase-1.json -k admin.json --deposit 1350.5
    """
    try:
        proofs = ProofArtifact.load(artifact)
        runtime = ctx.open_runtime()
        admin = AirdropAdmin(runtime, load_keypair(keypair), assembler=ctx.assembler(runtime))
        token_mint = ctx.resolve_mint(mint)
        created = admin.create_pool(proofs.phase, token_mint, proofs.merkle_root, deposit_amount=deposit_amount)
        ctx.save_runtime(runtime)
        path = created.save(output or ctx.artifacts_dir / f"pool-phase-{proofs.phase}.json")
    except AirdropError as e:
        fail_with(e)

    click.echo("✓ Pool created")
    click.echo()
    click.echo(f"Phase:        {created.phase}")
    click.echo(f"Mint:         {created.token_mint}")
    click.echo(f"Merkle root:  {created.merkle_root}")
    click.echo(f"Deposited:    {created.deposit_amount}")
    click.echo(f"Lookup table: {created.lookup_table_address}")
    click.echo(f"Signature:    {created.transaction_signature}")
    click.echo(f"Artifact:     {path}")


@pool.command('update-root')
@click.option(
    '--artifact',
    '-a',
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help='Proof artifact carrying the new root',
)
@keypair_option
@mint_option
@pass_context
def update_root(ctx: CLIContext, artifact: Path, keypair: str, mint: Optional[str]):
    """Replace a pool's Merkle root. Proofs against the old root stop verifying."""
    try:
        proofs = ProofArtifact.load(artifact)
        runtime = ctx.open_runtime()
        admin = AirdropAdmin(runtime, load_keypair(keypair), assembler=ctx.assembler(runtime))
        signature = admin.update_merkle_root(proofs.phase, ctx.resolve_mint(mint), proofs.merkle_root)
        ctx.save_runtime(runtime)
    except AirdropError as e:
        fail_with(e)
    click.echo(f"✓ Phase {proofs.phase} root set to {proofs.merkle_root.hex()}")
    click.echo(f"Signature: {signature}")


@pool.command('deposit')
@click.option('--phase', '-p', required=True, type=click.IntRange(1, 255), help='Phase number')
@click.option('--amount', required=True, help='Display amount to deposit')
@keypair_option
@mint_option
@pass_context
def deposit(ctx: CLIContext, phase: int, amount: str, keypair: str, mint: Optional[str]):
    """Move tokens from the admin's token account into a pool's vault."""
    try:
        runtime = ctx.open_runtime()
        admin = AirdropAdmin(runtime, load_keypair(keypair), assembler=ctx.assembler(runtime))
        token_mint = ctx.resolve_mint(mint)
        mint_record = runtime.get_mint(token_mint)
        decimals = mint_record.decimals if mint_record else ctx.config.defaults.token_decimals
        scaled = scale_amount(amount, decimals)
        signature = admin.deposit(phase, token_mint, scaled)
        ctx.save_runtime(runtime)
        balance = admin.pool_balance(phase, token_mint)
    except AirdropError as e:
        fail_with(e)
    click.echo(f"✓ Deposited {scaled} into phase {phase}")
    click.echo(f"Vault balance: {balance}")
    click.echo(f"Signature:     {signature}")


@pool.command('withdraw')
@click.option('--phase', '-p', required=True, type=click.IntRange(1, 255), help='Phase number')
@keypair_option
@mint_option
@click.confirmation_option(prompt='Draining a pool ends its claims. Continue?')
@pass_context
def withdraw(ctx: CLIContext, phase: int, keypair: str, mint: Optional[str]):
    """Withdraw a pool's unclaimed tokens and mark it drained."""
    try:
        runtime = ctx.open_runtime()
        admin = AirdropAdmin(runtime, load_keypair(keypair), assembler=ctx.assembler(runtime))
        token_mint = ctx.resolve_mint(mint)
        residual = admin.pool_balance(phase, token_mint)
        signature = admin.withdraw_unclaimed_tokens(phase, token_mint)
        ctx.save_runtime(runtime)
    except AirdropError as e:
        fail_with(e)
    click.echo(f"✓ Withdrew {residual} from phase {phase}; the pool is drained")
    click.echo(f"Signature: {signature}")


@pool.command('show')
@click.option('--phase', '-p', required=True, type=click.IntRange(1, 255), help='Phase number')
@mint_option
@click.option(
    '--format',
    '-f',
    type=click.Choice(['table', 'json'], case_sensitive=False),
    default='table',
    help='Output format (default: table)',
)
@pass_context
def show(ctx: CLIContext, phase: int, mint: Optional[str], format: str):
    """Show a pool's root, vault balance and state."""
    try:
        runtime = ctx.open_runtime()
        token_mint = ctx.resolve_mint(mint)
        record = runtime.get_pool(phase, token_mint)
        if record is None:
            fail(f"PoolNotFound: no pool for phase {phase} and mint {token_mint}")
        balance = runtime.get_token_balance(record.vault)
    except AirdropError as e:
        fail_with(e)

    if format.lower() == 'json':
        click.echo(json.dumps({**record.to_dict(), "vault_balance": str(balance)}, indent=2))
        return
    mint_record = runtime.get_mint(token_mint)
    display = (
        Decimal(balance).scaleb(-mint_record.decimals) if mint_record else Decimal(balance)
    )
    click.echo(f"Phase:         {record.phase}")
    click.echo(f"Mint:          {record.mint}")
    click.echo(f"Merkle root:   {record.merkle_root.hex()}")
    click.echo(f"Vault:         {record.vault}")
    click.echo(f"Vault balance: {balance} ({display})")
    click.echo(f"Admin:         {record.admin}")
    click.echo(f"Drained:       {'yes' if record.drained else 'no'}")
