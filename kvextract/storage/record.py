"""
Decoder for the etcd mvcc key-value envelope stored in the 'key' bucket.
"""
import struct

from kvextract.core.dto import VersionedRecord
from kvextract.core.errors import DecodeError
from kvextract.storage.wire import (
    LENGTH_DELIMITED,
    VARINT,
    WireError,
    iter_fields,
    to_int64,
)

# mvccpb.KeyValue field numbers and the attribute each one fills
_FIELDS = {
    1: ("key", LENGTH_DELIMITED),
    2: ("create_revision", VARINT),
    3: ("mod_revision", VARINT),
    4: ("version", VARINT),
    5: ("value", LENGTH_DELIMITED),
    6: ("lease", VARINT),
}

_REVISION = struct.Struct(">QcQ")
_TOMBSTONE_MARK = ord("t")


def decode_record(raw: bytes) -> VersionedRecord:
    """
    Decode one etcd key-value envelope.

    Args:
        raw: Bytes of a single mvccpb.KeyValue message

    Returns:
        The decoded record

    Raises:
        DecodeError: If the bytes are not a valid envelope
    """
    attrs = {"key": b"", "value": b""}
    try:
        for number, wire_type, value in iter_fields(raw):
            field = _FIELDS.get(number)
            if field is None:
                continue
            name, expected = field
            if wire_type != expected:
                raise DecodeError(
                    f"wrong wire type {wire_type} for field {name}",
                    key=attrs["key"] or None,
                )
            attrs[name] = value if expected == LENGTH_DELIMITED else to_int64(value)
    except WireError as e:
        raise DecodeError(
            f"invalid key-value envelope: {e}", key=attrs["key"] or None
        ) from e
    return VersionedRecord(**attrs)


def format_revision(physical_key: bytes) -> str:
    """
    Render a physical bucket key for messages.

    etcd stores each write under ``<main:8 BE>_<sub:8 BE>``, with a trailing
    ``t`` for deletions; anything else is shown as hex.
    """
    if len(physical_key) >= _REVISION.size and physical_key[8:9] == b"_":
        main, _, sub = _REVISION.unpack_from(physical_key)
        text = f"{main}_{sub}"
        if len(physical_key) == _REVISION.size + 1 and physical_key[-1] == _TOMBSTONE_MARK:
            text += " (tombstone)"
        return text
    return physical_key.hex()
