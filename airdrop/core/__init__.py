"""
Copyright (C) 2026 Garudex Labs.  All Rights Reserved.
Merkle Airdrop, a product of Garudex Labs

Off-chain clients for Merkle Airdrop.

This package contains:
- TransactionAssembler: compact, signed claim transactions (assembler)
- AirdropClaimClient: multi-phase recipient claims (claims)
- AirdropAdmin: pool creation and maintenance (admin)
- Persistence retry helpers (retry)
"""

from airdrop.core.retry import retry_on_transient_failure, retry_write_operation

__all__ = [
    "retry_on_transient_failure",
    "retry_write_operation",
]
