"""
Copyright (C) 2026 Garudex Labs.  All Rights Reserved.
Merkle Airdrop, a product of Garudex Labs

Configuration management for Merkle Airdrop.

Handles loading and validation of configuration files.
"""

from airdrop.config.settings import (
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

__all__ = [
    "AirdropConfig",
    "DefaultsConfig",
    "LoggingConfig",
    "ProgramConfig",
    "StorageConfig",
    "TransactionConfig",
    "get_default_config",
    "get_default_config_path",
    "load_config",
]
