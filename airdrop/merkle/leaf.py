"""
Copyright (C) 2026 Garudex Labs.  All Rights Reserved.
Merkle Airdrop, a product of Garudex Labs

Leaf encoding for airdrop allocations.

A leaf commits one recipient's allocation within one phase:

    sha256(phase:u8 || recipient:32 bytes || amount:u64 little-endian)

The preimage is exactly 41 bytes. Field order and widths are fixed; changing
either changes every leaf hash and invalidates every published proof.
"""

import hashlib
import struct
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Union

from airdrop.exceptions import MalformedInputError

LEAF_PREIMAGE_SIZE = 41
MAX_PHASE = 255
MAX_AMOUNT = 2**64 - 1

_LEAF_STRUCT = struct.Struct("<B32sQ")


def sha256(data: bytes) -> bytes:
    """Return the raw SHA-256 digest of data."""
    return hashlib.sha256(data).digest()


def validate_phase(phase: int) -> int:
    """
    Validate a phase number.

    Raises:
        MalformedInputError: If phase is not an integer in [1, 255]
    """
    if isinstance(phase, bool) or not isinstance(phase, int):
        raise MalformedInputError(f"phase must be an integer, got {phase!r}")
    if phase < 1 or phase > MAX_PHASE:
        raise MalformedInputError(f"phase must be between 1 and {MAX_PHASE}, got {phase}")
    return phase


def validate_amount(amount: int) -> int:
    """
    Validate a smallest-unit amount.

    Raises:
        MalformedInputError: If amount is negative, not integral, or does not fit in u64
    """
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise MalformedInputError(
            f"amount must be an integer in smallest units, got {amount!r}"
        )
    if amount < 0:
        raise MalformedInputError(f"amount must be non-negative, got {amount}")
    if amount > MAX_AMOUNT:
        raise MalformedInputError(f"amount {amount} does not fit in 64 bits")
    return amount


def encode_leaf(phase: int, recipient: bytes, amount: int) -> bytes:
    """
    Serialize (phase, recipient, amount) into the fixed 41-byte preimage.

    Args:
        phase: Phase number (1-255)
        recipient: Recipient public key (32 bytes)
        amount: Allocation in the token's smallest unit

    Returns:
        41-byte leaf preimage

    Raises:
        MalformedInputError: If any field is out of range
    """
    validate_phase(phase)
    validate_amount(amount)
    recipient = bytes(recipient)
    if len(recipient) != 32:
        raise MalformedInputError(
            f"recipient must be 32 bytes, got {len(recipient)}"
        )
    return _LEAF_STRUCT.pack(phase, recipient, amount)


def leaf_hash(phase: int, recipient: bytes, amount: int) -> bytes:
    """Hash of the encoded leaf preimage (32 bytes)."""
    return sha256(encode_leaf(phase, recipient, amount))


@dataclass(frozen=True)
class Leaf:
    """
    One recipient's allocation within one phase.

    Attributes:
        phase: Phase number
        recipient: Recipient public key bytes
        amount: Allocation in smallest units
    """
    phase: int
    recipient: bytes
    amount: int

    def preimage(self) -> bytes:
        return encode_leaf(self.phase, self.recipient, self.amount)

    def hash(self) -> bytes:
        return sha256(self.preimage())


def scale_amount(display_amount: Union[str, int, Decimal], decimals: int) -> int:
    """
    Convert a display amount into the token's smallest unit.

    Uses exact decimal arithmetic, e.g. ``scale_amount("250.5", 9)`` returns
    ``250_500_000_000``.

    Args:
        display_amount: Amount as shown to users (string, int or Decimal)
        decimals: Token decimals

    Returns:
        Integer amount in smallest units

    Raises:
        MalformedInputError: If the amount is non-finite, negative, more precise
            than ``decimals`` allows, or overflows u64
    """
    if isinstance(display_amount, float):
        raise MalformedInputError(
            "display amounts must be given as str, int or Decimal, not float"
        )
    if decimals < 0:
        raise MalformedInputError(f"decimals must be non-negative, got {decimals}")

    try:
        value = Decimal(str(display_amount).strip())
    except (InvalidOperation, ValueError) as e:
        raise MalformedInputError(f"invalid amount {display_amount!r}") from e

    if not value.is_finite():
        raise MalformedInputError(f"amount must be finite, got {display_amount!r}")
    if value < 0:
        raise MalformedInputError(f"amount must be non-negative, got {display_amount!r}")

    scaled = value.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise MalformedInputError(
            f"amount {display_amount!r} has more than {decimals} decimal places"
        )

    return validate_amount(int(scaled))
