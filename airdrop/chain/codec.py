"""
Copyright (C) 2026 Garudex Labs.  All Rights Reserved.
Merkle Airdrop, a product of Garudex Labs

Binary encoding helpers for instruction data and the transaction wire format.

Integers are little-endian. Variable-length vectors of instruction arguments
carry a u32 length prefix; vectors in the transaction wire format use the
compact-u16 ("shortvec") length encoding.
"""

import struct
from typing import List, Sequence

from airdrop.chain.keys import PUBKEY_LENGTH, Pubkey
from airdrop.exceptions import InvalidInstructionError
from airdrop.merkle.leaf import sha256

DISCRIMINATOR_SIZE = 8

_U16 = struct.Struct("<H")
_U32 = struct.Struct("<I")
_U64 = struct.Struct("<Q")
_I64 = struct.Struct("<q")


def instruction_discriminator(name: str) -> bytes:
    """First 8 bytes of sha256("global:<name>")."""
    return sha256(f"global:{name}".encode("utf-8"))[:DISCRIMINATOR_SIZE]


def encode_u8(value: int) -> bytes:
    return bytes([value])


def encode_u16(value: int) -> bytes:
    return _U16.pack(value)


def encode_u32(value: int) -> bytes:
    return _U32.pack(value)


def encode_u64(value: int) -> bytes:
    return _U64.pack(value)


def encode_i64(value: int) -> bytes:
    return _I64.pack(value)


def encode_bytes(value: bytes) -> bytes:
    """u32 length prefix followed by the raw bytes."""
    return encode_u32(len(value)) + bytes(value)


def encode_hash_vec(hashes: Sequence[bytes]) -> bytes:
    """u32 element count followed by fixed 32-byte elements."""
    return encode_u32(len(hashes)) + b"".join(bytes(h) for h in hashes)


def encode_shortvec_length(length: int) -> bytes:
    """Compact-u16 encoding: 7 bits per byte, high bit set on continuation."""
    if length < 0 or length > 0xFFFF:
        raise InvalidInstructionError(f"shortvec length {length} out of range")
    out = bytearray()
    remaining = length
    while True:
        byte = remaining & 0x7F
        remaining >>= 7
        if remaining:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


class Decoder:
    """
    Sequential reader over instruction data.

    Every read past the end of the buffer raises InvalidInstructionError, as
    does ``finish()`` when unread bytes remain.
    """

    def __init__(self, data: bytes):
        self._data = bytes(data)
        self._offset = 0

    def _take(self, size: int) -> bytes:
        end = self._offset + size
        if size < 0 or end > len(self._data):
            raise InvalidInstructionError(
                f"instruction data too short: need {size} bytes at offset {self._offset}"
            )
        chunk = self._data[self._offset:end]
        self._offset = end
        return chunk

    def read_u8(self) -> int:
        return self._take(1)[0]

    def read_u16(self) -> int:
        return _U16.unpack(self._take(2))[0]

    def read_u32(self) -> int:
        return _U32.unpack(self._take(4))[0]

    def read_u64(self) -> int:
        return _U64.unpack(self._take(8))[0]

    def read_i64(self) -> int:
        return _I64.unpack(self._take(8))[0]

    def read_fixed(self, size: int) -> bytes:
        return self._take(size)

    def read_pubkey(self) -> Pubkey:
        return Pubkey(self._take(PUBKEY_LENGTH))

    def read_bytes(self) -> bytes:
        return self._take(self.read_u32())

    def read_hash_vec(self) -> List[bytes]:
        count = self.read_u32()
        return [self._take(32) for _ in range(count)]

    def read_shortvec_length(self) -> int:
        length = 0
        for position in range(3):
            byte = self.read_u8()
            length |= (byte & 0x7F) << (7 * position)
            if not byte & 0x80:
                return length
        raise InvalidInstructionError("shortvec length longer than 3 bytes")

    @property
    def remaining(self) -> int:
        return len(self._data) - self._offset

    def finish(self) -> None:
        if self.remaining:
            raise InvalidInstructionError(f"{self.remaining} trailing bytes in instruction data")
