"""
Copyright (C) 2026 Garudex Labs.  All Rights Reserved.
Merkle Airdrop, a product of Garudex Labs

Configuration management for Merkle Airdrop.

Loads YAML configuration from file with sensible defaults and validation.
Supports environment variable substitution using ${ENV_VAR} syntax.
"""

import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import yaml

from airdrop.chain.address import DEFAULT_AIRDROP_PROGRAM_ID, TOKEN_PROGRAMS
from airdrop.chain.keys import Pubkey
from airdrop.chain.transaction import MAX_TRANSACTION_SIZE
from airdrop.exceptions import AirdropError, InvalidConfigurationError
from airdrop.logging_config import get_logger

logger = get_logger(__name__)


def _expand_env_vars(value: Any) -> Any:
    """
    Recursively expand environment variables in configuration values.

    Supports ${ENV_VAR} syntax with optional default values: ${ENV_VAR:default}

    Args:
        value: Configuration value (string, dict, list, or other)

    Returns:
        Value with environment variables expanded

    Examples:
        "${AIRDROP_STATE}" -> value of AIRDROP_STATE env var
        "${AIRDROP_STATE:~/.airdrop/state.json}" -> value of AIRDROP_STATE or the default
    """
    if isinstance(value, str):
        # Pattern matches ${VAR} or ${VAR:default}
        pattern = r'\$\{([^}:]+)(?::([^}]*))?\}'

        def replace_env_var(match):
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) is not None else ""
            return os.environ.get(var_name, default_value)

        return re.sub(pattern, replace_env_var, value)
    elif isinstance(value, dict):
        return {k: _expand_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_expand_env_vars(item) for item in value]
    else:
        return value


@dataclass
class StorageConfig:
    """Storage configuration for file paths."""

    state_file: str
    artifacts_dir: str
    backup_count: int = 3


@dataclass
class ProgramConfig:
    """On-chain program and token configuration."""

    program_id: str = str(DEFAULT_AIRDROP_PROGRAM_ID)
    token_program: str = "token-2022"  # "token" or "token-2022"
    token_mint: str = ""
    # phase -> lookup table address
    lookup_tables: Dict[int, str] = field(default_factory=dict)

    def program_pubkey(self) -> Pubkey:
        return Pubkey.from_string(self.program_id)

    def token_program_pubkey(self) -> Pubkey:
        return TOKEN_PROGRAMS[self.token_program]

    def mint_pubkey(self) -> Optional[Pubkey]:
        return Pubkey.from_string(self.token_mint) if self.token_mint else None

    def lookup_table_pubkeys(self) -> Dict[int, Pubkey]:
        return {phase: Pubkey.from_string(address) for phase, address in self.lookup_tables.items()}


@dataclass
class TransactionConfig:
    """Transaction assembly configuration."""

    compute_unit_limit: int = 1_000_000
    compute_unit_price: int = 30_000
    max_transaction_size: int = MAX_TRANSACTION_SIZE


@dataclass
class DefaultsConfig:
    """Default values configuration."""

    token_decimals: int = 9
    claim_signature_ttl_seconds: int = 3600


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    file: str = ""
    format: str = "console"  # "console" or "json"


@dataclass
class AirdropConfig:
    """Main Merkle Airdrop configuration."""

    storage: StorageConfig
    program: ProgramConfig = field(default_factory=ProgramConfig)
    transaction: TransactionConfig = field(default_factory=TransactionConfig)
    defaults: DefaultsConfig = field(default_factory=DefaultsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def get_default_config_path() -> str:
    """Get the default configuration file path."""
    return os.path.expanduser("~/.airdrop/config.yaml")


def get_default_config() -> AirdropConfig:
    """
    Get default configuration with sensible defaults.

    Returns:
        AirdropConfig: Default configuration object
    """
    home_dir = os.path.expanduser("~/.airdrop")

    storage = StorageConfig(
        state_file=os.path.join(home_dir, "state.json"),
        artifacts_dir=os.path.join(home_dir, "artifacts"),
        backup_count=3,
    )

    return AirdropConfig(
        storage=storage,
        program=ProgramConfig(),
        transaction=TransactionConfig(),
        defaults=DefaultsConfig(),
        logging=LoggingConfig(level="INFO", file="", format="console"),
    )


def load_config(config_path: Optional[str] = None) -> AirdropConfig:
    """
    Load configuration from YAML file with validation.

    If config file is not found, returns default configuration.
    If config file is malformed or invalid, raises InvalidConfigurationError.

    Args:
        config_path: Path to configuration file. If None, uses default path.

    Returns:
        AirdropConfig: Loaded and validated configuration

    Raises:
        InvalidConfigurationError: If configuration is invalid or malformed
    """
    if config_path is None:
        config_path = get_default_config_path()

    config_path = os.path.expanduser(config_path)

    if not os.path.exists(config_path):
        logger.info(f"Configuration file not found at {config_path}, using defaults")
        return get_default_config()

    try:
        with open(config_path, 'r') as f:
            config_data = yaml.safe_load(f)
        logger.debug(f"Loaded configuration from {config_path}")
    except yaml.YAMLError as e:
        logger.error(f"Failed to parse YAML configuration file '{config_path}': {e}", exc_info=True)
        raise InvalidConfigurationError(
            f"Failed to parse YAML configuration file '{config_path}': {e}"
        )
    except OSError as e:
        logger.error(f"Failed to read configuration file '{config_path}': {e}", exc_info=True)
        raise InvalidConfigurationError(
            f"Failed to read configuration file '{config_path}': {e}"
        )

    if config_data is None:
        logger.info(f"Configuration file {config_path} is empty, using defaults")
        return get_default_config()

    if not isinstance(config_data, dict):
        raise InvalidConfigurationError(
            f"Configuration file '{config_path}' must contain a mapping at the top level"
        )

    config_data = _expand_env_vars(config_data)
    logger.debug("Expanded environment variables in configuration")

    try:
        config = _build_config_from_dict(config_data)
        _validate_config(config)
        logger.info(f"Successfully loaded and validated configuration from {config_path}")
        return config
    except (AirdropError, KeyError, TypeError, ValueError, AttributeError) as e:
        logger.error(f"Invalid configuration in '{config_path}': {e}", exc_info=True)
        raise InvalidConfigurationError(
            f"Invalid configuration in '{config_path}': {e}"
        )


def _build_config_from_dict(config_data: Dict[str, Any]) -> AirdropConfig:
    """
    Build AirdropConfig from dictionary loaded from YAML.

    Merges user configuration with defaults. Every section is optional.

    Args:
        config_data: Dictionary loaded from YAML file

    Returns:
        AirdropConfig: Configuration object
    """
    default_config = get_default_config()

    storage_data = config_data.get('storage') or {}
    storage = StorageConfig(
        state_file=os.path.expanduser(
            storage_data.get('state_file', default_config.storage.state_file)
        ),
        artifacts_dir=os.path.expanduser(
            storage_data.get('artifacts_dir', default_config.storage.artifacts_dir)
        ),
        backup_count=int(storage_data.get('backup_count', default_config.storage.backup_count)),
    )

    program_data = config_data.get('program') or {}
    lookup_tables = program_data.get('lookup_tables') or {}
    program = ProgramConfig(
        program_id=program_data.get('program_id', default_config.program.program_id),
        token_program=program_data.get('token_program', default_config.program.token_program),
        token_mint=program_data.get('token_mint', default_config.program.token_mint) or "",
        lookup_tables={int(phase): str(address) for phase, address in lookup_tables.items()},
    )

    transaction_data = config_data.get('transaction') or {}
    transaction = TransactionConfig(
        compute_unit_limit=int(transaction_data.get(
            'compute_unit_limit', default_config.transaction.compute_unit_limit
        )),
        compute_unit_price=int(transaction_data.get(
            'compute_unit_price', default_config.transaction.compute_unit_price
        )),
        max_transaction_size=int(transaction_data.get(
            'max_transaction_size', default_config.transaction.max_transaction_size
        )),
    )

    defaults_data = config_data.get('defaults') or {}
    defaults = DefaultsConfig(
        token_decimals=int(defaults_data.get('token_decimals', default_config.defaults.token_decimals)),
        claim_signature_ttl_seconds=int(defaults_data.get(
            'claim_signature_ttl_seconds', default_config.defaults.claim_signature_ttl_seconds
        )),
    )

    logging_data = config_data.get('logging') or {}
    logging = LoggingConfig(
        level=logging_data.get('level', default_config.logging.level),
        file=os.path.expanduser(logging_data.get('file', default_config.logging.file) or ""),
        format=logging_data.get('format', default_config.logging.format),
    )

    return AirdropConfig(
        storage=storage,
        program=program,
        transaction=transaction,
        defaults=defaults,
        logging=logging,
    )


def _validate_config(config: AirdropConfig) -> None:
    """
    Validate configuration values.

    Args:
        config: Configuration to validate

    Raises:
        InvalidConfigurationError: If configuration is invalid
    """
    if not config.storage.state_file:
        logger.error("Configuration validation failed: state_file path cannot be empty")
        raise InvalidConfigurationError("state_file path cannot be empty")
    if not config.storage.artifacts_dir:
        logger.error("Configuration validation failed: artifacts_dir path cannot be empty")
        raise InvalidConfigurationError("artifacts_dir path cannot be empty")
    if config.storage.backup_count < 0:
        raise InvalidConfigurationError(
            f"backup_count must be non-negative, got {config.storage.backup_count}"
        )

    # Addresses must be valid base58 public keys
    config.program.program_pubkey()
    if config.program.token_program not in TOKEN_PROGRAMS:
        raise InvalidConfigurationError(
            f"token_program must be one of {sorted(TOKEN_PROGRAMS)}, "
            f"got '{config.program.token_program}'"
        )
    config.program.mint_pubkey()
    for phase in config.program.lookup_tables:
        if not 1 <= phase <= 255:
            raise InvalidConfigurationError(f"lookup table phase must be 1-255, got {phase}")
    config.program.lookup_table_pubkeys()

    if not 0 < config.transaction.compute_unit_limit <= 1_400_000:
        raise InvalidConfigurationError(
            f"compute_unit_limit must be between 1 and 1400000, "
            f"got {config.transaction.compute_unit_limit}"
        )
    if config.transaction.compute_unit_price < 0:
        raise InvalidConfigurationError(
            f"compute_unit_price must be non-negative, got {config.transaction.compute_unit_price}"
        )
    if config.transaction.max_transaction_size <= 0:
        raise InvalidConfigurationError(
            f"max_transaction_size must be positive, got {config.transaction.max_transaction_size}"
        )

    if not 0 <= config.defaults.token_decimals <= 18:
        raise InvalidConfigurationError(
            f"token_decimals must be between 0 and 18, got {config.defaults.token_decimals}"
        )
    if config.defaults.claim_signature_ttl_seconds <= 0:
        raise InvalidConfigurationError(
            f"claim_signature_ttl_seconds must be positive, "
            f"got {config.defaults.claim_signature_ttl_seconds}"
        )

    valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    if config.logging.level.upper() not in valid_log_levels:
        raise InvalidConfigurationError(
            f"logging level must be one of {valid_log_levels}, "
            f"got '{config.logging.level}'"
        )
    valid_formats = ["console", "json"]
    if config.logging.format not in valid_formats:
        raise InvalidConfigurationError(
            f"logging format must be one of {valid_formats}, got '{config.logging.format}'"
        )
