"""
Copyright (C) 2026 Garudex Labs.  All Rights Reserved.
Merkle Airdrop, a product of Garudex Labs

Execution environment for the claim protocol: keys and addresses, account
records, the transaction wire format, programs and the runtime.
"""

from airdrop.chain.address import AddressDeriver, verify_derived_address
from airdrop.chain.keys import Keypair, Pubkey

__all__ = [
    "AddressDeriver",
    "Keypair",
    "Pubkey",
    "verify_derived_address",
]
