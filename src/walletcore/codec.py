"""
Byte-level codec primitives: varints, fixed-width integers, Bitcoin hashes,
Base58Check and BIP173 bech32.
"""

from __future__ import annotations

import hashlib
import struct

import base58
import bech32
from Crypto.Hash import RIPEMD160

from walletcore.errors import MalformedSerialization


def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def hash256(data: bytes) -> bytes:
    """SHA256(SHA256(data))"""
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


def hash160(data: bytes) -> bytes:
    """RIPEMD160(SHA256(data))"""
    h = RIPEMD160.new()
    h.update(hashlib.sha256(data).digest())
    return h.digest()


def encode_varint(value: int) -> bytes:
    """Encode integer as Bitcoin CompactSize."""
    if value < 0:
        raise ValueError(f"varint cannot be negative: {value}")
    if value < 0xFD:
        return bytes([value])
    if value <= 0xFFFF:
        return b"\xfd" + struct.pack("<H", value)
    if value <= 0xFFFFFFFF:
        return b"\xfe" + struct.pack("<I", value)
    return b"\xff" + struct.pack("<Q", value)


def read_varint(data: bytes, offset: int) -> tuple[int, int]:
    """Read a CompactSize at offset, returning (value, new_offset)."""
    try:
        first = data[offset]
        offset += 1

        if first < 0xFD:
            return first, offset
        if first == 0xFD:
            width = 2
        elif first == 0xFE:
            width = 4
        else:
            width = 8
        if offset + width > len(data):
            raise IndexError("truncated varint")
        value = int.from_bytes(data[offset : offset + width], "little")
        return value, offset + width
    except IndexError as e:
        raise MalformedSerialization(f"Failed to read varint at offset {offset}: {e}") from e


def uint32_le(value: int) -> bytes:
    return struct.pack("<I", value)


def int32_le(value: int) -> bytes:
    return struct.pack("<i", value)


def uint64_le(value: int) -> bytes:
    return struct.pack("<Q", value)


def uint32_be(value: int) -> bytes:
    return struct.pack(">I", value)


def push_data(data: bytes) -> bytes:
    """Minimal script push for data up to 520 bytes."""
    length = len(data)
    if length < 0x4C:
        return bytes([length]) + data
    if length <= 0xFF:
        return b"\x4c" + bytes([length]) + data
    if length <= 520:
        return b"\x4d" + struct.pack("<H", length) + data
    raise ValueError(f"Push data too large: {length} bytes")


def base58check_encode(payload: bytes) -> str:
    return base58.b58encode_check(payload).decode("ascii")


def base58check_decode(text: str) -> bytes:
    """Decode Base58Check, raising MalformedSerialization on a bad checksum."""
    try:
        return base58.b58decode_check(text)
    except ValueError as e:
        raise MalformedSerialization(f"Invalid base58check string: {e}") from e


def bech32_encode_segwit(hrp: str, witness_version: int, program: bytes) -> str:
    """Encode a segwit address (BIP173 checksum over hrp and 5-bit data)."""
    address = bech32.encode(hrp, witness_version, list(program))
    if address is None:
        raise MalformedSerialization(
            f"Cannot bech32-encode witness v{witness_version} program of {len(program)} bytes"
        )
    return address


def bech32_decode_segwit(hrp: str, address: str) -> tuple[int, bytes]:
    """Decode and checksum-verify a segwit address for the given hrp."""
    witness_version, program = bech32.decode(hrp, address)
    if witness_version is None or program is None:
        raise MalformedSerialization(f"Invalid bech32 address for hrp '{hrp}': {address}")
    return witness_version, bytes(program)


def bech32_hrp(address: str) -> str:
    """Human-readable part of a bech32 string (everything before the last '1')."""
    pos = address.rfind("1")
    if pos < 1:
        raise MalformedSerialization(f"Missing bech32 separator: {address}")
    return address[:pos].lower()
