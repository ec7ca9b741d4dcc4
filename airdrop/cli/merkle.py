"""
Copyright (C) 2026 Garudex Labs.  All Rights Reserved.
Merkle Airdrop, a product of Garudex Labs

CLI commands for distribution artifacts.

Provides commands for:
- Generating a phase's root and proofs from an allocation table
- Looking up one recipient's proof
- Re-verifying an artifact
"""

import csv
import json
from pathlib import Path
from typing import Dict, Optional

import click

from airdrop.cli.context import CLIContext, fail, fail_with, pass_context
from airdrop.exceptions import AirdropError, MalformedInputError
from airdrop.logging_config import get_logger
from airdrop.merkle.artifact import ProofArtifact, generate_distribution
from airdrop.merkle.verifier import verify_allocation, verify_artifact

logger = get_logger(__name__)


def read_allocations(path: Path) -> Dict[str, str]:
    """
    Read recipient -> amount rows from JSON or CSV.

    JSON files hold an object {address: amount}. CSV files hold
    ``address,amount`` rows; a header row is skipped.

    Raises:
        MalformedInputError: If the file is unreadable, malformed or repeats
            an address
    """
    try:
        text = path.read_text()
    except OSError as e:
        raise MalformedInputError(f"cannot read allocations from {path}: {e}") from e

    if path.suffix.lower() == ".json":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise MalformedInputError(f"invalid JSON in {path}: {e}") from e
        if not isinstance(data, dict):
            raise MalformedInputError(f"{path} must contain an object of address -> amount")
        return {str(address): str(amount) for address, amount in data.items()}

    allocations: Dict[str, str] = {}
    for line_number, row in enumerate(csv.reader(text.splitlines()), start=1):
        if not row or not "".join(row).strip():
            continue
        if len(row) != 2:
            raise MalformedInputError(f"{path}:{line_number}: expected address,amount")
        address, amount = row[0].strip(), row[1].strip()
        if line_number == 1 and address.lower() in ("address", "recipient"):
            continue
        if address in allocations:
            raise MalformedInputError(f"{path}:{line_number}: duplicate recipient {address}")
        allocations[address] = amount
    return allocations


@click.group()
def merkle():
    """Distribution roots and proofs."""
    pass


@merkle.command('generate')
@click.option('--phase', '-p', required=True, type=click.IntRange(1, 255), help='Phase number (1-255)')
@click.option(
    '--input',
    '-i',
    'input_path',
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help='Allocation table (.json object or .csv address,amount rows)',
)
@click.option(
    '--decimals',
    '-d',
    type=click.IntRange(0, 18),
    default=None,
    help='Treat amounts as display amounts with this many decimals (default: smallest units)',
)
@click.option(
    '--output',
    '-o',
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help='Artifact path (default: <artifacts_dir>/proofs-phase-<phase>.json)',
)
@pass_context
def generate(ctx: CLIContext, phase: int, input_path: Path, decimals: Optional[int], output: Optional[Path]):
    """
    Build a phase's Merkle root and every recipient's proof.

    Examples:

        airdrop merkle generate -p 1 -i phase1.csv -d 9

        airdrop merkle generate -p 2 -i phase2.json -o proofs2.json
    """
    try:
        allocations = read_allocations(input_path)
        if decimals is None:
            try:
                allocations = {address: int(amount) for address, amount in allocations.items()}
            except ValueError as e:
                raise MalformedInputError(
                    f"amounts must be integers in smallest units unless --decimals is given: {e}"
                ) from e
        artifact = generate_distribution(phase, allocations, decimals=decimals)
        path = artifact.save(output or ctx.artifacts_dir / f"proofs-phase-{phase}.json")
    except AirdropError as e:
        fail_with(e)

    click.echo("✓ Distribution generated")
    click.echo()
    click.echo(f"Phase:        {artifact.phase}")
    click.echo(f"Recipients:   {len(artifact.entries)}")
    click.echo(f"Total amount: {artifact.total_amount}")
    click.echo(f"Merkle root:  {artifact.merkle_root.hex()}")
    click.echo(f"Artifact:     {path}")


@merkle.command('proof')
@click.option(
    '--artifact',
    '-a',
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help='Proof artifact',
)
@click.option('--address', required=True, help='Recipient address (base58)')
@click.option('--json', 'as_json', is_flag=True, help='Print the entry as JSON')
def proof(artifact: Path, address: str, as_json: bool):
    """Show one recipient's amount and proof."""
    try:
        loaded = ProofArtifact.load(artifact)
    except AirdropError as e:
        fail_with(e)
    entry = loaded.get(address)
    if entry is None:
        fail(f"{address} has no allocation in phase {loaded.phase}")

    if as_json:
        click.echo(json.dumps({"phase": loaded.phase, **entry.to_dict()}, indent=2))
        return
    click.echo(f"Phase:  {loaded.phase}")
    click.echo(f"Amount: {entry.amount}")
    click.echo(f"Proof ({len(entry.proof)} hashes):")
    for sibling in entry.proof:
        click.echo(f"  {sibling.hex()}")


@merkle.command('verify')
@click.option(
    '--artifact',
    '-a',
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help='Proof artifact',
)
@click.option('--address', default=None, help='Verify only this recipient')
def verify(artifact: Path, address: Optional[str]):
    """
    Re-verify proofs against the artifact's root.

    Exits with status 1 if any proof fails.
    """
    try:
        loaded = ProofArtifact.load(artifact)
        if address is not None:
            entry = loaded.get(address)
            if entry is None:
                fail(f"{address} has no allocation in phase {loaded.phase}")
            if not verify_allocation(
                loaded.phase, loaded.recipient_bytes(address), entry.amount, entry.proof, loaded.merkle_root
            ):
                fail(f"ProofInvalid: proof for {address} does not match the phase {loaded.phase} root")
            click.echo(f"✓ Proof for {address} verifies against phase {loaded.phase}")
            return
        summary = verify_artifact(loaded)
    except AirdropError as e:
        fail_with(e)

    if not summary.ok:
        for result in summary.verification_errors:
            click.echo(f"✗ {result.address}: {result.error_message}", err=True)
        fail(f"{summary.failed_entries} of {summary.total_entries} proofs failed verification")
    click.echo(f"✓ All {summary.verified_entries} proofs verify against phase {loaded.phase}")
