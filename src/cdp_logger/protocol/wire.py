"""Protobuf wire-format primitives.

Only the subset the envelope needs: varints (with 64-bit two's complement for
negative integers), little-endian fixed64 doubles, fixed32 floats and
length-delimited payloads.
"""

from __future__ import annotations

import struct
from collections.abc import Iterator

from cdp_logger.protocol.exceptions import MessageDecodeError

WIRE_VARINT = 0
WIRE_FIXED64 = 1
WIRE_LENGTH_DELIMITED = 2
WIRE_FIXED32 = 5

MAX_VARINT_BYTES = 10
_UINT64_MASK = (1 << 64) - 1

_DOUBLE = struct.Struct("<d")
_FLOAT = struct.Struct("<f")


def encode_varint(value: int) -> bytes:
    """Encode an integer as a base-128 varint.

    Negative values are encoded as their 64-bit two's complement, which is how
    protobuf writes ``int64``.

    Example:
        >>> encode_varint(300)
        b'\\xac\\x02'
        >>> len(encode_varint(-1))
        10

    """
    value &= _UINT64_MASK
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def decode_varint(data: bytes, pos: int) -> tuple[int, int]:
    """Decode a varint starting at ``pos``.

    Returns:
        Tuple of (value, position after the varint)

    Raises:
        MessageDecodeError: If the varint runs past the end of data or is too long

    """
    result = 0
    shift = 0
    for index in range(MAX_VARINT_BYTES):
        if pos + index >= len(data):
            raise MessageDecodeError("truncated_varint", data)
        byte = data[pos + index]
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return result & _UINT64_MASK, pos + index + 1
        shift += 7
    raise MessageDecodeError("varint_too_long", data)


def to_signed64(value: int) -> int:
    """Reinterpret an unsigned 64-bit varint value as two's complement."""
    return value - (1 << 64) if value & (1 << 63) else value


def encode_key(tag: int, wire_type: int) -> bytes:
    return encode_varint((tag << 3) | wire_type)


def encode_length_delimited(tag: int, payload: bytes) -> bytes:
    return encode_key(tag, WIRE_LENGTH_DELIMITED) + encode_varint(len(payload)) + payload


def encode_double(value: float) -> bytes:
    return _DOUBLE.pack(value)


def encode_float(value: float) -> bytes:
    return _FLOAT.pack(value)


def decode_double(raw: bytes) -> float:
    return _DOUBLE.unpack(raw)[0]


def decode_float(raw: bytes) -> float:
    return _FLOAT.unpack(raw)[0]


def iter_fields(data: bytes) -> Iterator[tuple[int, int, int | bytes]]:
    """Iterate over ``(tag, wire_type, value)`` triples of a serialized message.

    Varint values are yielded as unsigned ints, every other wire type as the raw
    payload bytes.

    Raises:
        MessageDecodeError: On truncated data or unsupported wire types

    """
    pos = 0
    end = len(data)
    while pos < end:
        key, pos = decode_varint(data, pos)
        tag, wire_type = key >> 3, key & 0x07
        if tag == 0:
            raise MessageDecodeError("invalid_field_number", data)
        if wire_type == WIRE_VARINT:
            value, pos = decode_varint(data, pos)
            yield tag, wire_type, value
        elif wire_type == WIRE_FIXED64:
            if pos + 8 > end:
                raise MessageDecodeError("truncated_fixed64", data)
            yield tag, wire_type, data[pos : pos + 8]
            pos += 8
        elif wire_type == WIRE_FIXED32:
            if pos + 4 > end:
                raise MessageDecodeError("truncated_fixed32", data)
            yield tag, wire_type, data[pos : pos + 4]
            pos += 4
        elif wire_type == WIRE_LENGTH_DELIMITED:
            length, pos = decode_varint(data, pos)
            if pos + length > end:
                raise MessageDecodeError("truncated_length_delimited", data)
            yield tag, wire_type, data[pos : pos + length]
            pos += length
        else:
            raise MessageDecodeError(f"unsupported_wire_type_{wire_type}", data)


def iter_packed_varints(payload: bytes) -> Iterator[int]:
    pos = 0
    while pos < len(payload):
        value, pos = decode_varint(payload, pos)
        yield value


def iter_packed_fixed(payload: bytes, width: int) -> Iterator[bytes]:
    if len(payload) % width:
        raise MessageDecodeError("misaligned_packed_field", payload)
    for pos in range(0, len(payload), width):
        yield payload[pos : pos + width]
