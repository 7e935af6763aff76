"""
Protobuf wire format reader.

Only what is needed to read etcd and Kubernetes envelopes: varints,
fixed 32/64 bit values and length-delimited fields. Groups are rejected.
"""
import struct
from typing import Iterator, Tuple, Union

VARINT = 0
FIXED64 = 1
LENGTH_DELIMITED = 2
START_GROUP = 3
END_GROUP = 4
FIXED32 = 5

_MAX_VARINT_BYTES = 10


class WireError(ValueError):
    """Raised when bytes do not follow the protobuf wire format."""


def read_varint(buf: bytes, pos: int) -> Tuple[int, int]:
    """
    Read a base-128 varint.

    Args:
        buf: Buffer to read from
        pos: Offset of the first varint byte

    Returns:
        Tuple of (value, offset just past the varint)
    """
    result = 0
    shift = 0
    for i in range(_MAX_VARINT_BYTES):
        if pos >= len(buf):
            raise WireError("unexpected end of buffer inside varint")
        byte = buf[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return result & 0xFFFFFFFFFFFFFFFF, pos
        shift += 7
    raise WireError("varint overflows 64 bits")


def to_int64(value: int) -> int:
    """Reinterpret an unsigned 64 bit varint as a signed int64."""
    if value >= 1 << 63:
        return value - (1 << 64)
    return value


def iter_fields(buf: bytes) -> Iterator[Tuple[int, int, Union[int, bytes]]]:
    """
    Iterate over the fields of an encoded message.

    Yields:
        Tuples of (field number, wire type, value); values are ints for
        varint and fixed fields and bytes for length-delimited fields
    """
    pos = 0
    end = len(buf)
    while pos < end:
        tag, pos = read_varint(buf, pos)
        field_number = tag >> 3
        wire_type = tag & 0x07
        if field_number == 0:
            raise WireError("illegal tag 0")

        if wire_type == VARINT:
            value, pos = read_varint(buf, pos)
        elif wire_type == FIXED64:
            if pos + 8 > end:
                raise WireError(f"truncated fixed64 field {field_number}")
            value = struct.unpack_from("<Q", buf, pos)[0]
            pos += 8
        elif wire_type == FIXED32:
            if pos + 4 > end:
                raise WireError(f"truncated fixed32 field {field_number}")
            value = struct.unpack_from("<I", buf, pos)[0]
            pos += 4
        elif wire_type == LENGTH_DELIMITED:
            length, pos = read_varint(buf, pos)
            if pos + length > end:
                raise WireError(
                    f"field {field_number} length {length} runs past end of buffer"
                )
            value = bytes(buf[pos:pos + length])
            pos += length
        else:
            raise WireError(f"unsupported wire type {wire_type} for field {field_number}")

        yield field_number, wire_type, value
