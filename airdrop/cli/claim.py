"""
Copyright (C) 2026 Garudex Labs.  All Rights Reserved.
Merkle Airdrop, a product of Garudex Labs

CLI commands for recipients.

Provides commands for checking claim status across phases and submitting
one claim transaction per unclaimed phase.
"""

from pathlib import Path
from typing import Dict, Optional, Tuple

import click

from airdrop.chain.keys import Pubkey
from airdrop.cli.context import CLIContext, fail, fail_with, load_keypair, pass_context
from airdrop.core.claims import AirdropClaimClient, ClaimStatus
from airdrop.exceptions import AirdropError
from airdrop.merkle.artifact import PoolCreationArtifact, ProofArtifact, collect_phase_claims

artifact_option = click.option(
    '--artifact',
    '-a',
    'artifacts',
    required=True,
    multiple=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help='Proof artifact (repeat for several phases)',
)
mint_option = click.option('--mint', '-m', default=None, help='Token mint (default: program.token_mint)')


@click.group()
def claim():
    """Check and claim allocations."""
    pass


@claim.command('status')
@click.option('--address', required=True, help='Recipient address (base58)')
@artifact_option
@mint_option
@pass_context
def status(ctx: CLIContext, address: str, artifacts: Tuple[Path, ...], mint: Optional[str]):
    """
    Show a recipient's allocation and claim status in each phase.

    Examples:

        airdrop claim status --address <ADDR> -a proofs-phase-1.json -a proofs-phase-2.json
    """
    try:
        owner = Pubkey.from_string(address)
        claims = collect_phase_claims(owner, [ProofArtifact.load(path) for path in artifacts])
        runtime = ctx.open_runtime()
        client = AirdropClaimClient(runtime, ctx.resolve_mint(mint), lookup_tables={})
        rows = [(c, client.check_claimed(c.phase, owner)) for c in claims]
    except AirdropError as e:
        fail_with(e)

    if not rows:
        click.echo(f"{address} has no allocation in the given phases.")
        return
    click.echo(f"{'Phase':<6}  {'Amount':>22}  Status")
    for phase_claim, claimed in rows:
        click.echo(
            f"{phase_claim.phase:<6}  {phase_claim.amount:>22}  {'claimed' if claimed else 'unclaimed'}"
        )


@claim.command('submit')
@click.option(
    '--keypair',
    '-k',
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help='Recipient keypair file',
)
@artifact_option
@click.option(
    '--pool-artifact',
    '-P',
    'pool_artifacts',
    multiple=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help='Pool creation artifact supplying the lookup table (default: program.lookup_tables)',
)
@mint_option
@pass_context
def submit(
    ctx: CLIContext,
    keypair: str,
    artifacts: Tuple[Path, ...],
    pool_artifacts: Tuple[Path, ...],
    mint: Optional[str],
):
    """
    Claim every unclaimed phase, one transaction per phase.

    Phases fail independently; the command exits with status 1 if any phase
    failed for a reason other than already being claimed.

    Examples:

        airdrop claim submit -k me.json -a proofs-phase-1.json -P pool-phase-1.json
    """
    try:
        claimer = load_keypair(keypair)
        claims = collect_phase_claims(claimer.pubkey, [ProofArtifact.load(path) for path in artifacts])
        lookup_tables: Dict[int, Pubkey] = ctx.config.program.lookup_table_pubkeys()
        pool_mint = None
        for path in pool_artifacts:
            created = PoolCreationArtifact.load(path)
            lookup_tables[created.phase] = Pubkey.from_string(created.lookup_table_address)
            pool_mint = pool_mint or created.token_mint
        token_mint = ctx.resolve_mint(mint or pool_mint)

        runtime = ctx.open_runtime()
        client = AirdropClaimClient(runtime, token_mint, lookup_tables, assembler=ctx.assembler(runtime))
        outcomes = client.claim(claimer, claims)
        ctx.save_runtime(runtime)
    except AirdropError as e:
        fail_with(e)

    if not outcomes:
        click.echo(f"{claimer.pubkey} has no allocation in the given phases.")
        return

    failed = 0
    for outcome in outcomes:
        if outcome.status == ClaimStatus.CLAIMED:
            click.echo(f"✓ Phase {outcome.phase}: claimed ({outcome.signature})")
        elif outcome.status == ClaimStatus.ALREADY_CLAIMED:
            click.echo(f"- Phase {outcome.phase}: already claimed")
        else:
            failed += 1
            click.echo(f"✗ Phase {outcome.phase}: {outcome.error_kind}: {outcome.message}", err=True)
    if failed:
        fail(f"{failed} of {len(outcomes)} phases failed")
