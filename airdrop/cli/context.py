"""
Copyright (C) 2026 Garudex Labs.  All Rights Reserved.
Merkle Airdrop, a product of Garudex Labs

CLI context for Merkle Airdrop.

Provides shared context object and decorators for CLI commands.
"""

import sys
from pathlib import Path
from typing import Optional

import click

from airdrop.chain.keys import Keypair, Pubkey
from airdrop.chain.runtime import Runtime
from airdrop.core.assembler import TransactionAssembler
from airdrop.exceptions import AirdropError


class CLIContext:
    """Context object for CLI commands."""

    def __init__(self):
        self.config = None
        self.config_path = None
        self.verbose = False

    @property
    def state_path(self) -> Path:
        return Path(self.config.storage.state_file).expanduser()

    @property
    def artifacts_dir(self) -> Path:
        return Path(self.config.storage.artifacts_dir).expanduser()

    def open_runtime(self) -> Runtime:
        """Load the local ledger, or start one with the configured programs."""
        return Runtime.open(
            self.state_path,
            program_id=self.config.program.program_pubkey(),
            token_program_id=self.config.program.token_program_pubkey(),
        )

    def save_runtime(self, runtime: Runtime) -> None:
        runtime.save(self.state_path, backup_count=self.config.storage.backup_count)

    def assembler(self, runtime: Runtime) -> TransactionAssembler:
        tx = self.config.transaction
        return TransactionAssembler(
            runtime,
            compute_unit_limit=tx.compute_unit_limit,
            compute_unit_price=tx.compute_unit_price,
            max_transaction_size=tx.max_transaction_size,
        )

    def resolve_mint(self, mint: Optional[str]) -> Pubkey:
        """The --mint option, falling back to program.token_mint from the configuration."""
        if mint:
            return Pubkey.from_string(mint)
        configured = self.config.program.mint_pubkey()
        if configured is None:
            fail("no token mint given; pass --mint or set program.token_mint in the configuration")
        return configured


def load_keypair(path: str) -> Keypair:
    return Keypair.load(path)


def fail(message: str) -> None:
    """Print a one-line error and exit with status 1."""
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


def fail_with(error: AirdropError) -> None:
    fail(f"{error.kind}: {error}")


pass_context = click.make_pass_decorator(CLIContext, ensure=True)
