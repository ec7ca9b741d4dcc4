"""
Copyright (C) 2026 Garudex Labs.  All Rights Reserved.
Merkle Airdrop, a product of Garudex Labs

Public keys, keypairs and signatures.

Addresses are 32-byte ed25519 public keys (or program-derived addresses that
deliberately lie off the curve) rendered as base58 text. Keypairs wrap
``cryptography``'s Ed25519 implementation.
"""

import json
from functools import total_ordering
from pathlib import Path
from typing import List, Union

import base58
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from airdrop.exceptions import FileReadError, MalformedInputError

PUBKEY_LENGTH = 32
SIGNATURE_LENGTH = 64

# Curve25519 field prime and twisted Edwards constant d
_P = 2**255 - 19
_D = (-121665 * pow(121666, _P - 2, _P)) % _P


def is_on_curve(data: bytes) -> bool:
    """
    Check whether 32 bytes decompress to a point on the ed25519 curve.

    The encoding holds y (255 bits) and the sign of x. A point exists iff
    x^2 = (y^2 - 1) / (d*y^2 + 1) has a square root modulo p.
    """
    if len(data) != PUBKEY_LENGTH:
        return False
    y = (int.from_bytes(data, "little") & ((1 << 255) - 1)) % _P
    y2 = y * y % _P
    u = (y2 - 1) % _P
    v = (_D * y2 + 1) % _P
    if u == 0:
        return True
    x2 = u * pow(v, _P - 2, _P) % _P
    return pow(x2, (_P - 1) // 2, _P) == 1


@total_ordering
class Pubkey:
    """
    A 32-byte account address.

    Example:
        >>> key = Pubkey.from_string("11111111111111111111111111111111")
        >>> bytes(key) == bytes(32)
        True
    """

    __slots__ = ("_bytes",)

    def __init__(self, value: Union[bytes, bytearray, List[int]]):
        raw = bytes(value)
        if len(raw) != PUBKEY_LENGTH:
            raise MalformedInputError(
                f"public key must be {PUBKEY_LENGTH} bytes, got {len(raw)}"
            )
        self._bytes = raw

    @classmethod
    def from_string(cls, text: str) -> "Pubkey":
        """
        Parse a base58 address.

        Raises:
            MalformedInputError: If the text is not base58 or not 32 bytes
        """
        try:
            raw = base58.b58decode(text.strip())
        except ValueError as e:
            raise MalformedInputError(f"invalid base58 address {text!r}") from e
        return cls(raw)

    @classmethod
    def default(cls) -> "Pubkey":
        return cls(bytes(PUBKEY_LENGTH))

    def is_on_curve(self) -> bool:
        return is_on_curve(self._bytes)

    def __bytes__(self) -> bytes:
        return self._bytes

    def __str__(self) -> str:
        return base58.b58encode(self._bytes).decode("ascii")

    def __repr__(self) -> str:
        return f"Pubkey({self})"

    def __eq__(self, other) -> bool:
        if not isinstance(other, Pubkey):
            return NotImplemented
        return self._bytes == other._bytes

    def __lt__(self, other: "Pubkey") -> bool:
        return self._bytes < other._bytes

    def __hash__(self) -> int:
        return hash(self._bytes)


def as_pubkey(value: Union["Pubkey", str, bytes]) -> Pubkey:
    """Coerce a base58 string, raw bytes or Pubkey into a Pubkey."""
    if isinstance(value, Pubkey):
        return value
    if isinstance(value, str):
        return Pubkey.from_string(value)
    return Pubkey(value)


def verify_signature(pubkey: Pubkey, message: bytes, signature: bytes) -> bool:
    """Verify an ed25519 signature; returns False on any mismatch."""
    if len(signature) != SIGNATURE_LENGTH:
        return False
    try:
        Ed25519PublicKey.from_public_bytes(bytes(pubkey)).verify(bytes(signature), bytes(message))
    except (InvalidSignature, ValueError):
        return False
    return True


class Keypair:
    """
    An ed25519 signing keypair.

    Keypair files use the common 64-integer JSON array layout: the 32-byte
    seed followed by the 32-byte public key.
    """

    def __init__(self, private_key: Ed25519PrivateKey):
        self._private_key = private_key
        self._pubkey = Pubkey(
            private_key.public_key().public_bytes(
                encoding=serialization.Encoding.Raw,
                format=serialization.PublicFormat.Raw,
            )
        )

    @classmethod
    def generate(cls) -> "Keypair":
        return cls(Ed25519PrivateKey.generate())

    @classmethod
    def from_seed(cls, seed: bytes) -> "Keypair":
        if len(seed) != 32:
            raise MalformedInputError(f"keypair seed must be 32 bytes, got {len(seed)}")
        return cls(Ed25519PrivateKey.from_private_bytes(bytes(seed)))

    @classmethod
    def from_bytes(cls, secret: Union[bytes, List[int]]) -> "Keypair":
        """
        Load from the 64-byte seed||pubkey layout.

        Raises:
            MalformedInputError: If the layout is wrong or the halves disagree
        """
        raw = bytes(secret)
        if len(raw) != 64:
            raise MalformedInputError(f"keypair must be 64 bytes, got {len(raw)}")
        keypair = cls.from_seed(raw[:32])
        if bytes(keypair.pubkey) != raw[32:]:
            raise MalformedInputError("keypair public half does not match its seed")
        return keypair

    @property
    def pubkey(self) -> Pubkey:
        return self._pubkey

    def seed(self) -> bytes:
        return self._private_key.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption(),
        )

    def to_bytes(self) -> bytes:
        return self.seed() + bytes(self._pubkey)

    def sign(self, message: bytes) -> bytes:
        return self._private_key.sign(bytes(message))

    def save(self, path: Union[str, Path]) -> None:
        path = Path(path).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(list(self.to_bytes())))
        path.chmod(0o600)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "Keypair":
        """
        Read a keypair file.

        Raises:
            FileReadError: If the file is missing or not a 64-integer array
        """
        path = Path(path).expanduser()
        try:
            data = json.loads(path.read_text())
            return cls.from_bytes(bytes(data))
        except (OSError, ValueError, TypeError, MalformedInputError) as e:
            raise FileReadError(f"Failed to load keypair from {path}: {e}") from e

    def __repr__(self) -> str:
        return f"Keypair({self._pubkey})"
