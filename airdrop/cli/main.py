"""
Copyright (C) 2026 Garudex Labs.  All Rights Reserved.
Merkle Airdrop, a product of Garudex Labs

CLI entry point for Merkle Airdrop.

Provides command-line interface for distribution generation, pool
administration, claiming and the local ledger.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import click

from airdrop._version import __version__
from airdrop.chain.keys import Keypair
from airdrop.cli.context import CLIContext, fail, fail_with, pass_context
from airdrop.config.settings import get_default_config_path, load_config
from airdrop.exceptions import AirdropError, InvalidConfigurationError
from airdrop.logging_config import setup_logging


@click.group()
@click.option(
    '--config',
    '-c',
    type=click.Path(exists=False, dir_okay=False, path_type=Path),
    default=None,
    help=f'Path to configuration file (default: {get_default_config_path()})',
)
@click.option(
    '--log-level',
    '-l',
    type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'], case_sensitive=False),
    default=None,
    help='Set logging level (default: from configuration)',
)
@click.option(
    '--verbose',
    '-v',
    is_flag=True,
    help='Enable verbose output',
)
@click.version_option(version=__version__, prog_name='airdrop')
@pass_context
def cli(ctx: CLIContext, config: Optional[Path], log_level: Optional[str], verbose: bool):
    """
    Merkle Airdrop - phased token distribution with Merkle proofs.

    Generate per-phase proof artifacts, create and fund pools, and claim
    allocations against a local ledger.
    """
    ctx.verbose = verbose
    ctx.config_path = str(config) if config else None

    try:
        ctx.config = load_config(ctx.config_path)
    except InvalidConfigurationError as e:
        click.echo(f"Error: Invalid configuration: {e}", err=True)
        sys.exit(1)

    effective_log_level = log_level.upper() if log_level else ctx.config.logging.level
    if verbose and not log_level:
        effective_log_level = "DEBUG"
    log_file = Path(ctx.config.logging.file) if ctx.config.logging.file else None
    setup_logging(
        level=effective_log_level,
        log_file=log_file,
        json_format=ctx.config.logging.format == "json",
    )

    if verbose:
        logger = logging.getLogger("airdrop")
        logger.info(f"Loaded configuration from: {ctx.config_path or 'defaults'}")
        logger.info(f"Log level: {effective_log_level}")


@cli.command()
@click.option(
    '--workspace',
    '-w',
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help='Workspace directory (default: ~/.airdrop/)',
)
def init(workspace: Optional[Path]):
    """
    Initialize the Merkle Airdrop directory structure and configuration.

    Creates the workspace directory, an artifacts directory and a default
    config.yaml pointing at them.
    """
    root = (workspace or Path(get_default_config_path()).parent).expanduser()
    artifacts_dir = root / "artifacts"
    try:
        artifacts_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        fail(f"cannot create workspace {root}: {e}")
    click.echo(f"Created directory: {root}")

    config_path = root / "config.yaml"
    if config_path.exists():
        click.echo(f"Configuration already exists: {config_path}")
        return

    config_path.write_text(f"""# Merkle Airdrop Configuration

storage:
  state_file: {root / 'state.json'}
  artifacts_dir: {artifacts_dir}
  backup_count: 3

program:
  token_program: token-2022  # or "token"
  # token_mint: <base58 mint address>
  # lookup_tables:
  #   1: <base58 lookup table address>

transaction:
  compute_unit_limit: 1000000
  compute_unit_price: 30000

defaults:
  token_decimals: 9
  claim_signature_ttl_seconds: 3600

logging:
  level: INFO
  file: {root / 'airdrop.log'}
  format: console
""")
    click.echo(f"Created configuration: {config_path}")


@cli.command()
@click.option(
    '--output',
    '-o',
    required=True,
    type=click.Path(dir_okay=False, path_type=Path),
    help='Path to write the keypair file',
)
@click.option('--force', is_flag=True, help='Overwrite an existing keypair file')
def keygen(output: Path, force: bool):
    """
    Generate a new ed25519 keypair file.

    Examples:

        airdrop keygen -o ~/.airdrop/admin.json
    """
    if output.expanduser().exists() and not force:
        fail(f"keypair file already exists: {output} (use --force to overwrite)")
    keypair = Keypair.generate()
    try:
        keypair.save(output)
    except OSError as e:
        fail(f"cannot write keypair to {output}: {e}")
    except AirdropError as e:
        fail_with(e)
    click.echo(f"Public key: {keypair.pubkey}")
    click.echo(f"Saved to:   {output}")


from airdrop.cli.chain import chain
from airdrop.cli.claim import claim
from airdrop.cli.merkle import merkle
from airdrop.cli.pool import pool

cli.add_command(merkle)
cli.add_command(pool)
cli.add_command(claim)
cli.add_command(chain)


if __name__ == '__main__':
    cli()
