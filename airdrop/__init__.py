"""
Copyright (C) 2026 Garudex Labs.  All Rights Reserved.
Merkle Airdrop, a product of Garudex Labs

Merkle Airdrop - Merkle-committed token distribution with exactly-once claims.

Provides leaf encoding, sorted-pair Merkle trees and proofs, deterministic
address derivation, the claim state machine and compact claim transactions.
"""

from airdrop._version import __version__

__all__ = ["__version__"]
