"""
Unit tests for configuration management.

Tests configuration loading, validation, environment variable expansion
and default values.
"""

import os
from pathlib import Path

import pytest
import yaml

from airdrop.chain.address import DEFAULT_AIRDROP_PROGRAM_ID, TOKEN_PROGRAM_ID
from airdrop.config import (
    AirdropConfig,
    DefaultsConfig,
    LoggingConfig,
    ProgramConfig,
    StorageConfig,
    TransactionConfig,
    get_default_config,
    get_default_config_path,
    load_config,
)
from airdrop.config.settings import _expand_env_vars
from airdrop.exceptions import InvalidConfigurationError


def write_config(temp_dir: Path, data) -> str:
    path = temp_dir / "config.yaml"
    path.write_text(yaml.safe_dump(data))
    return str(path)


class TestDefaultConfiguration:
    """Test default configuration generation."""

    def test_get_default_config_returns_valid_config(self):
        """Test that get_default_config returns a valid AirdropConfig object."""
        config = get_default_config()

        assert isinstance(config, AirdropConfig)
        assert isinstance(config.storage, StorageConfig)
        assert isinstance(config.program, ProgramConfig)
        assert isinstance(config.transaction, TransactionConfig)
        assert isinstance(config.defaults, DefaultsConfig)
        assert isinstance(config.logging, LoggingConfig)

    def test_default_config_has_sensible_values(self):
        config = get_default_config()

        assert config.storage.state_file.endswith("state.json")
        assert config.storage.backup_count == 3
        assert config.program.program_id == str(DEFAULT_AIRDROP_PROGRAM_ID)
        assert config.program.token_program == "token-2022"
        assert config.program.mint_pubkey() is None
        assert config.transaction.compute_unit_limit == 1_000_000
        assert config.transaction.compute_unit_price == 30_000
        assert config.transaction.max_transaction_size == 1232
        assert config.defaults.token_decimals == 9
        assert config.logging.level == "INFO"

    def test_default_config_path(self):
        assert get_default_config_path() == os.path.expanduser("~/.airdrop/config.yaml")


class TestConfigurationLoading:
    """Test configuration loading from YAML files."""

    def test_load_config_returns_defaults_when_file_missing(self, temp_dir):
        config = load_config(str(temp_dir / "nonexistent.yaml"))
        assert config.defaults.token_decimals == 9

    def test_empty_file_returns_defaults(self, temp_dir):
        path = temp_dir / "config.yaml"
        path.write_text("")
        assert load_config(str(path)).program.token_program == "token-2022"

    def test_load_sample_config(self, sample_config_path, temp_dir):
        config = load_config(str(sample_config_path))

        assert config.storage.state_file == f"{temp_dir}/state.json"
        assert config.storage.backup_count == 2
        assert config.logging.level == "WARNING"

    def test_partial_sections_merge_with_defaults(self, temp_dir, make_keypair):
        """Test that omitted keys fall back to defaults."""
        mint = str(make_keypair(0x01).pubkey)
        table = str(make_keypair(0x02).pubkey)
        path = write_config(temp_dir, {
            "program": {"token_program": "token", "token_mint": mint, "lookup_tables": {"3": table}},
            "transaction": {"compute_unit_price": 0},
        })

        config = load_config(path)

        assert config.program.token_program_pubkey() == TOKEN_PROGRAM_ID
        assert str(config.program.mint_pubkey()) == mint
        assert config.program.lookup_table_pubkeys() == {3: make_keypair(0x02).pubkey}
        assert config.transaction.compute_unit_price == 0
        assert config.transaction.compute_unit_limit == 1_000_000
        assert config.storage.backup_count == 3

    def test_malformed_yaml(self, temp_dir):
        path = temp_dir / "config.yaml"
        path.write_text("storage: [unclosed")
        with pytest.raises(InvalidConfigurationError, match="parse"):
            load_config(str(path))

    def test_top_level_must_be_mapping(self, temp_dir):
        with pytest.raises(InvalidConfigurationError, match="mapping"):
            load_config(write_config(temp_dir, ["a", "b"]))


class TestConfigurationValidation:
    """Test rejected configuration values."""

    @pytest.mark.parametrize(
        "data",
        [
            {"program": {"token_program": "spl"}},
            {"program": {"token_mint": "not-base58!"}},
            {"program": {"program_id": "short"}},
            {"program": {"lookup_tables": {0: "11111111111111111111111111111111"}}},
            {"transaction": {"compute_unit_limit": 0}},
            {"transaction": {"compute_unit_limit": 1_400_001}},
            {"transaction": {"compute_unit_price": -1}},
            {"transaction": {"max_transaction_size": 0}},
            {"defaults": {"token_decimals": 19}},
            {"defaults": {"claim_signature_ttl_seconds": 0}},
            {"logging": {"level": "LOUD"}},
            {"logging": {"format": "xml"}},
            {"storage": {"backup_count": -1}},
            {"storage": {"state_file": ""}},
            {"transaction": {"compute_unit_limit": "many"}},
        ],
    )
    def test_invalid_values(self, temp_dir, data):
        with pytest.raises(InvalidConfigurationError):
            load_config(write_config(temp_dir, data))


class TestEnvironmentExpansion:
    """Test ${VAR} and ${VAR:default} substitution."""

    def test_variable_is_expanded(self, monkeypatch):
        monkeypatch.setenv("AIRDROP_TEST_STATE", "/srv/state.json")
        assert _expand_env_vars("${AIRDROP_TEST_STATE}") == "/srv/state.json"

    def test_default_used_when_unset(self, monkeypatch):
        monkeypatch.delenv("AIRDROP_TEST_UNSET", raising=False)
        assert _expand_env_vars("${AIRDROP_TEST_UNSET:fallback}") == "fallback"
        assert _expand_env_vars("${AIRDROP_TEST_UNSET}") == ""

    def test_nested_structures(self, monkeypatch):
        monkeypatch.setenv("AIRDROP_TEST_LEVEL", "DEBUG")
        data = {"logging": {"level": "${AIRDROP_TEST_LEVEL}"}, "list": ["${AIRDROP_TEST_LEVEL}", 3]}

        assert _expand_env_vars(data) == {"logging": {"level": "DEBUG"}, "list": ["DEBUG", 3]}

    def test_expanded_in_loaded_config(self, temp_dir, monkeypatch):
        monkeypatch.setenv("AIRDROP_TEST_DIR", str(temp_dir))
        path = write_config(temp_dir, {"storage": {"state_file": "${AIRDROP_TEST_DIR}/ledger.json"}})

        assert load_config(path).storage.state_file == f"{temp_dir}/ledger.json"
