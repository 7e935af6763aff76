"""
Object encodings of the values Kubernetes stores in etcd.

Values are JSON, YAML or the Kubernetes storage protobuf format: the
magic prefix ``k8s\\x00`` followed by a runtime.Unknown message wrapping the
object's TypeMeta and its raw bytes.
"""
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Tuple

import yaml

from kvextract.core.dto import TypeMeta
from kvextract.core.errors import ConversionError
from kvextract.storage.wire import LENGTH_DELIMITED, WireError, iter_fields

PROTOBUF_MAGIC = b"k8s\x00"


class MediaType(Enum):
    """Supported object encodings."""
    JSON = "application/json"
    YAML = "application/yaml"
    PROTOBUF = "application/vnd.kubernetes.protobuf"


OUTPUT_FORMATS = {
    "json": MediaType.JSON,
    "yaml": MediaType.YAML,
    "proto": MediaType.PROTOBUF,
}


def to_media_type(name: str) -> MediaType:
    """Map an output format name (json|yaml|proto) to its media type."""
    try:
        return OUTPUT_FORMATS[name]
    except KeyError:
        raise ValueError(
            f"unsupported output format {name!r}, must be one of: {'|'.join(OUTPUT_FORMATS)}"
        ) from None


@dataclass(frozen=True)
class Unknown:
    """A decoded runtime.Unknown envelope."""
    type_meta: TypeMeta
    raw: bytes
    content_encoding: str = ""
    content_type: str = ""


def _string_fields(buf: bytes) -> dict:
    return {
        number: value.decode("utf-8", "replace")
        for number, wire_type, value in iter_fields(buf)
        if wire_type == LENGTH_DELIMITED
    }


def decode_unknown(data: bytes) -> Unknown:
    """
    Decode a Kubernetes protobuf envelope.

    Args:
        data: Bytes starting with the protobuf magic prefix

    Raises:
        ConversionError: If the envelope cannot be read
    """
    if not data.startswith(PROTOBUF_MAGIC):
        raise ConversionError("protobuf value is missing the k8s magic prefix")

    type_meta = TypeMeta()
    raw = b""
    strings = {}
    try:
        for number, wire_type, value in iter_fields(data[len(PROTOBUF_MAGIC):]):
            if wire_type != LENGTH_DELIMITED:
                continue
            if number == 1:
                meta = _string_fields(value)
                type_meta = TypeMeta(api_version=meta.get(1, ""), kind=meta.get(2, ""))
            elif number == 2:
                raw = value
            elif number in (3, 4):
                strings[number] = value.decode("utf-8", "replace")
    except WireError as e:
        raise ConversionError(f"invalid protobuf envelope: {e}") from e

    return Unknown(
        type_meta=type_meta,
        raw=raw,
        content_encoding=strings.get(3, ""),
        content_type=strings.get(4, ""),
    )


def _find_json(data: bytes) -> Optional[bytes]:
    start = data.find(b"{")
    if start < 0:
        return None
    try:
        text = data[start:].decode("utf-8")
        _, end = json.JSONDecoder().raw_decode(text)
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None
    except RecursionError:
        raise ConversionError("JSON value is nested too deeply to decode") from None
    return text[:end].encode("utf-8")


def _is_yaml_mapping(data: bytes) -> bool:
    try:
        return isinstance(yaml.safe_load(data), dict)
    except yaml.YAMLError:
        return False
    except RecursionError:
        raise ConversionError("YAML value is nested too deeply to decode") from None


def detect_and_extract(data: bytes) -> Tuple[MediaType, bytes]:
    """
    Detect the encoding of a stored value and strip anything around it.

    Protobuf is recognized by its magic prefix anywhere in the value, JSON by
    the first complete object, YAML by parsing to a mapping.

    Returns:
        Tuple of (media type, object bytes)

    Raises:
        ConversionError: If no supported encoding is found
    """
    idx = data.find(PROTOBUF_MAGIC)
    if idx >= 0:
        return MediaType.PROTOBUF, data[idx:]

    raw_json = _find_json(data)
    if raw_json is not None:
        return MediaType.JSON, raw_json

    if _is_yaml_mapping(data):
        return MediaType.YAML, data

    raise ConversionError(
        "value does not appear to contain valid JSON, YAML or Kubernetes protobuf data"
    )


def _load(media_type: MediaType, data: bytes) -> Any:
    if media_type is MediaType.PROTOBUF:
        unknown = decode_unknown(data)
        if unknown.content_encoding:
            raise ConversionError(
                f"cannot decode protobuf object {str(unknown.type_meta) or 'of unknown type'}: "
                f"unsupported content encoding {unknown.content_encoding!r}"
            )
        if not unknown.content_type.startswith(MediaType.JSON.value):
            raise ConversionError(
                f"cannot decode protobuf object {str(unknown.type_meta) or 'of unknown type'}: "
                f"no schema available for its fields"
            )
        media_type, data = MediaType.JSON, unknown.raw

    try:
        if media_type is MediaType.JSON:
            return json.loads(data)
        return yaml.safe_load(data)
    except (ValueError, yaml.YAMLError) as e:
        raise ConversionError(f"cannot decode {media_type.value} value: {e}") from e
    except RecursionError:
        raise ConversionError(f"cannot decode {media_type.value} value: nested too deeply") from None


def _type_meta_of(value: Any) -> Optional[TypeMeta]:
    if isinstance(value, dict) and ("apiVersion" in value or "kind" in value):
        return TypeMeta(
            api_version=str(value.get("apiVersion", "")),
            kind=str(value.get("kind", "")),
        )
    return None


def decode_structured(data: bytes) -> Tuple[Any, Optional[TypeMeta]]:
    """
    Decode a stored value into a tree of dicts, lists and scalars.

    Returns:
        Tuple of (decoded value, its TypeMeta if it has one)

    Raises:
        ConversionError: If the value cannot be detected or decoded
    """
    media_type, payload = detect_and_extract(data)
    value = _load(media_type, payload)
    type_meta = _type_meta_of(value)
    if type_meta is None and media_type is MediaType.PROTOBUF:
        type_meta = decode_unknown(payload).type_meta
    return value, type_meta


def decode_best_effort(data: bytes) -> Tuple[Any, Optional[TypeMeta]]:
    """
    Like decode_structured, but a value that cannot be decoded gives None.

    The TypeMeta of a protobuf envelope is still returned when only its
    fields cannot be decoded.
    """
    try:
        return decode_structured(data)
    except ConversionError:
        pass
    idx = data.find(PROTOBUF_MAGIC)
    if idx < 0:
        return None, None
    try:
        return None, decode_unknown(data[idx:]).type_meta
    except ConversionError:
        return None, None


def dump(value: Any, media_type: MediaType) -> bytes:
    """Serialize a decoded value as JSON (indented) or YAML (block style)."""
    if media_type not in (MediaType.JSON, MediaType.YAML):
        raise ConversionError(f"cannot serialize a decoded value as {media_type.value}")
    try:
        if media_type is MediaType.JSON:
            text = json.dumps(value, indent=2, ensure_ascii=False, default=str) + "\n"
        else:
            text = yaml.safe_dump(value, default_flow_style=False, sort_keys=False, allow_unicode=True)
    except RecursionError:
        raise ConversionError(f"cannot serialize value as {media_type.value}: nested too deeply") from None
    return text.encode("utf-8")


def _json_key(key: Any) -> str:
    if isinstance(key, str):
        return key
    if key is None or isinstance(key, (bool, int, float)):
        return json.dumps(key)
    return str(key)


def _string_keys(value: Any) -> Any:
    # YAML mappings may mix key types, which sort_keys cannot order
    if isinstance(value, dict):
        return {_json_key(k): _string_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_string_keys(v) for v in value]
    return value


def compact_json(value: Any) -> str:
    """
    Single line JSON with sorted keys, as used in field listings.

    Raises:
        ConversionError: If the value is nested too deeply to serialize
    """
    try:
        return json.dumps(_string_keys(value), separators=(",", ":"), sort_keys=True,
                          ensure_ascii=False, default=str)
    except RecursionError:
        raise ConversionError("cannot serialize value: nested too deeply") from None


def convert(data: bytes, out_type: MediaType) -> bytes:
    """
    Convert a stored value to the requested encoding.

    Args:
        data: Value bytes as stored
        out_type: Target media type

    Returns:
        Converted bytes, newline terminated for text formats

    Raises:
        ConversionError: If the value cannot be detected or converted
    """
    in_type, payload = detect_and_extract(data)
    if in_type is out_type:
        if out_type is not MediaType.PROTOBUF and not payload.endswith(b"\n"):
            payload += b"\n"
        return payload
    if out_type is MediaType.PROTOBUF:
        raise ConversionError(
            f"cannot convert {in_type.value} to {out_type.value}: no schema available"
        )
    return dump(_load(in_type, payload), out_type)
