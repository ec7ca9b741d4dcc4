"""
Pytest configuration and shared fixtures for Merkle Airdrop tests.
"""

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Generator, List, Optional

import pytest

from airdrop.chain.keys import Keypair, Pubkey
from airdrop.chain.runtime import Runtime
from airdrop.core.admin import AirdropAdmin
from airdrop.core.assembler import TransactionAssembler
from airdrop.merkle.artifact import PoolCreationArtifact, ProofArtifact, generate_distribution

# Fixed clock for every test runtime
GENESIS_TIMESTAMP = 1_700_000_000
TOKEN_DECIMALS = 9


def keypair_from_byte(value: int) -> Keypair:
    """Deterministic keypair whose seed is 32 copies of value."""
    return Keypair.from_seed(bytes([value]) * 32)


def create_test_config_content(temp_dir: Path, **program) -> str:
    """
    Generate test configuration YAML content rooted in temp_dir.

    Args:
        temp_dir: Temporary directory for storage paths.
        **program: Values for the program section (e.g. token_mint).

    Returns:
        YAML configuration content as string.
    """
    program_lines = "".join(f"  {key}: {value}\n" for key, value in program.items())
    return f"""
storage:
  state_file: {temp_dir}/state.json
  artifacts_dir: {temp_dir}/artifacts
  backup_count: 2

program:
  token_program: token-2022
{program_lines}
defaults:
  token_decimals: {TOKEN_DECIMALS}

logging:
  level: WARNING
  file: {temp_dir}/airdrop.log
  format: console
"""


@dataclass
class AirdropEnvironment:
    """An initialized program with a funded admin and one mint."""
    runtime: Runtime
    admin_keypair: Keypair
    admin: AirdropAdmin
    mint: Pubkey

    def fund_phase(
        self,
        phase: int,
        allocations: Dict[str, int],
        deposit: Optional[int] = None,
    ) -> "FundedPhase":
        """
        Generate the phase's artifact, create its pool with a deposit of the
        total (or ``deposit`` smallest units) and activate its lookup table.
        """
        proofs = generate_distribution(phase, allocations)
        amount = proofs.total_amount if deposit is None else deposit
        created = self.admin.create_pool(phase, self.mint, proofs.merkle_root)
        if amount:
            self.admin.deposit(phase, self.mint, amount)
        self.runtime.advance_slot()
        return FundedPhase(proofs=proofs, pool=created)


@dataclass
class FundedPhase:
    proofs: ProofArtifact
    pool: PoolCreationArtifact

    @property
    def lookup_table(self) -> Pubkey:
        return Pubkey.from_string(self.pool.lookup_table_address)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """
    Create a temporary directory for test files.

    Yields:
        Path to temporary directory that is cleaned up after test.
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sample_config_path(temp_dir: Path) -> Path:
    """Write a configuration file whose paths live in temp_dir."""
    config_path = temp_dir / "config.yaml"
    config_path.write_text(create_test_config_content(temp_dir))
    return config_path


@pytest.fixture
def runtime() -> Runtime:
    return Runtime(unix_timestamp=GENESIS_TIMESTAMP)


@pytest.fixture
def admin_keypair() -> Keypair:
    return keypair_from_byte(0xAA)


@pytest.fixture
def make_keypair():
    """Factory for deterministic keypairs: make_keypair(0x42)."""
    return keypair_from_byte


@pytest.fixture
def recipients() -> List[Keypair]:
    """Three recipient wallets."""
    return [keypair_from_byte(0x10 + i) for i in range(3)]


@pytest.fixture
def env(runtime: Runtime, admin_keypair: Keypair) -> AirdropEnvironment:
    """
    Initialized airdrop program, a 9-decimal mint and 1,000,000 tokens in
    the admin's token account.
    """
    admin = AirdropAdmin(runtime, admin_keypair)
    admin.initialize()
    mint = runtime.create_mint(admin_keypair, TOKEN_DECIMALS)
    runtime.mint_to(admin_keypair, mint, admin_keypair.pubkey, 1_000_000 * 10**TOKEN_DECIMALS)
    return AirdropEnvironment(runtime=runtime, admin_keypair=admin_keypair, admin=admin, mint=mint)


@pytest.fixture
def allocations(recipients: List[Keypair]) -> Dict[str, int]:
    """Smallest-unit allocations for the three recipients."""
    amounts = [100 * 10**9, 250_500_000_000, 1000 * 10**9]
    return {str(kp.pubkey): amount for kp, amount in zip(recipients, amounts)}


@pytest.fixture
def assembler(runtime: Runtime) -> TransactionAssembler:
    return TransactionAssembler(runtime)


# Hypothesis settings for property-based tests
from hypothesis import settings, Verbosity

# Register custom profile for Merkle Airdrop tests
settings.register_profile("airdrop", max_examples=100, verbosity=Verbosity.normal)
settings.register_profile("airdrop-ci", max_examples=1000, verbosity=Verbosity.verbose)
settings.register_profile("airdrop-dev", max_examples=10, verbosity=Verbosity.verbose)

# Load profile from environment or use default
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "airdrop"))
