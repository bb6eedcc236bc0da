"""Primitive readers for the point-cloud fragment format.

Every reader returns ``(value, ok)``. ``ok`` is False when the stream ran out
before the value was complete; the caller checks it after each call and
abandons the fragment on the first failure.

Compressed integers carry 7 bits per byte, most significant group first.
A set high bit means another byte follows.
"""

from __future__ import annotations

import struct
from typing import BinaryIO

# Five groups already cover the full 32-bit range.
MAX_COMPRESSED_INT_BYTES = 5

_BE_FLOAT32 = struct.Struct(">f")
_BE_UINT16 = struct.Struct(">H")


def _read_exact(stream: BinaryIO, n: int) -> bytes | None:
    data = stream.read(n)
    if data is None or len(data) != n:
        return None
    return data


def read_compressed_int(stream: BinaryIO) -> tuple[int, bool]:
    """Decode a variable-length integer. Returns (value, ok)."""
    value = 0
    for _ in range(MAX_COMPRESSED_INT_BYTES):
        data = _read_exact(stream, 1)
        if data is None:
            return value, False
        byte = data[0]
        value = (value << 7) | (byte & 0x7F)
        if not byte & 0x80:
            return value, True
    # Still continuing after five bytes: treat like a stream that never
    # terminated so the caller sees a read failure, not a wrapped value.
    return value, False


def read_big_endian_float32(stream: BinaryIO) -> tuple[float, bool]:
    data = _read_exact(stream, 4)
    if data is None:
        return 0.0, False
    return _BE_FLOAT32.unpack(data)[0], True


def read_big_endian_uint16(stream: BinaryIO) -> tuple[int, bool]:
    data = _read_exact(stream, 2)
    if data is None:
        return 0, False
    return _BE_UINT16.unpack(data)[0], True


def read_uint8(stream: BinaryIO) -> tuple[int, bool]:
    data = _read_exact(stream, 1)
    if data is None:
        return 0, False
    return data[0], True


# -- Encoders (fixtures, round-trip checks) --

def encode_compressed_int(value: int) -> bytes:
    """Encode a non-negative integer in the compressed-int layout."""
    if value < 0:
        raise ValueError(f"Compressed ints are unsigned, got {value}")
    groups = [value & 0x7F]
    value >>= 7
    while value:
        groups.append(value & 0x7F)
        value >>= 7
    groups.reverse()
    # Continuation bit on every group except the last.
    return bytes([g | 0x80 for g in groups[:-1]] + [groups[-1]])


def encode_big_endian_float32(value: float) -> bytes:
    return _BE_FLOAT32.pack(value)


def encode_big_endian_uint16(value: int) -> bytes:
    return _BE_UINT16.pack(value)
