"""
Rendering of extracted values, record metadata and key summaries.

Everything is written to a binary sink: keys are raw bytes and protobuf
output is binary.
"""
from enum import Enum
from typing import BinaryIO, Iterable, Sequence, Tuple

import jinja2

from kvextract.core.dto import KeySummary, VersionedRecord, resolve_path
from kvextract.core.errors import ConversionError, TemplateError, UnknownFieldError, UsageError
from kvextract.storage.encoding import MediaType, compact_json, convert


def _encode(text: str) -> bytes:
    return text.encode("utf-8", "surrogateescape")


def _write_line(out: BinaryIO, text: str):
    out.write(_encode(text) + b"\n")


class SummaryField(Enum):
    """Fields a key listing can project."""
    KEY = "key"
    VERSION = "version"
    VALUE_SIZE = "value-size"
    ALL_VERSIONS_KEY_SIZE = "all-versions-key-size"
    ALL_VERSIONS_VALUE_SIZE = "all-versions-value-size"
    VERSION_COUNT = "version-count"
    VALUE = "value"

    @classmethod
    def parse(cls, name: str) -> "SummaryField":
        """
        Look up a field by its command line name.

        Raises:
            UnknownFieldError: If no field has this name
        """
        try:
            return cls(name)
        except ValueError:
            raise UnknownFieldError(name, [f.value for f in cls]) from None

    def render(self, summary: KeySummary) -> str:
        return _FIELD_RENDERERS[self](summary)


def _render_value(summary: KeySummary) -> str:
    if summary.value is None:
        return ""
    try:
        return compact_json(summary.value)
    except ConversionError:
        return ""


_FIELD_RENDERERS = {
    SummaryField.KEY: lambda s: s.key,
    SummaryField.VERSION: lambda s: str(s.version),
    SummaryField.VALUE_SIZE: lambda s: str(s.stats.value_size),
    SummaryField.ALL_VERSIONS_KEY_SIZE: lambda s: str(s.stats.all_versions_key_size),
    SummaryField.ALL_VERSIONS_VALUE_SIZE: lambda s: str(s.stats.all_versions_value_size),
    SummaryField.VERSION_COUNT: lambda s: str(s.stats.version_count),
    SummaryField.VALUE: _render_value,
}


def parse_fields(names: Iterable[str]) -> Tuple[SummaryField, ...]:
    """Parse field names, failing on the first unknown one."""
    fields = tuple(SummaryField.parse(name) for name in names)
    if not fields:
        raise UsageError("no fields provided, nothing to output")
    return fields


def summarize(summary: KeySummary, fields: Sequence[SummaryField]) -> str:
    """Space separated values of the selected fields."""
    return " ".join(field.render(summary) for field in fields)


def print_key_summaries(summaries: Iterable[KeySummary], fields: Sequence[SummaryField], out: BinaryIO):
    """Write one line of selected fields per summary."""
    for summary in summaries:
        _write_line(out, summarize(summary, fields))


# Missing attributes and keys render empty instead of failing the listing
_environment = jinja2.Environment(
    autoescape=False,
    keep_trailing_newline=True,
    undefined=jinja2.ChainableUndefined,
)
_environment.filters["field"] = resolve_path

TEMPLATE_FIELDS = ("key", "version", "value", "type_meta", "stats")


def compile_template(text: str) -> jinja2.Template:
    """
    Parse a summary template.

    Raises:
        UsageError: If the template is empty
        TemplateError: If the template does not parse
    """
    if not text:
        raise UsageError("no template provided, nothing to output")
    try:
        return _environment.from_string(text)
    except jinja2.TemplateSyntaxError as e:
        raise TemplateError(f"invalid template at line {e.lineno}: {e.message}") from e


def render_summaries(summaries: Iterable[KeySummary], template: jinja2.Template, out: BinaryIO):
    """
    Render the template once per summary, each followed by a newline.

    Raises:
        TemplateError: On the first summary that fails to render
    """
    for summary in summaries:
        try:
            text = template.render(**summary.template_context())
        except (jinja2.TemplateError, ArithmeticError, LookupError, TypeError, ValueError) as e:
            raise TemplateError(f"failed to render template for key {summary.key}: {e}") from e
        _write_line(out, text)


def print_versions(versions: Iterable[int], out: BinaryIO):
    for version in versions:
        _write_line(out, str(version))


def print_value(value: bytes, out: BinaryIO, media_type: MediaType = MediaType.YAML, raw: bool = False):
    """
    Write a stored value converted to the requested format.

    Args:
        value: Value bytes as stored
        out: Output sink
        media_type: Target format
        raw: Write the bytes undecoded instead

    Raises:
        ConversionError: If the value is empty or cannot be converted
    """
    if not value:
        raise ConversionError("0 byte value")
    if raw:
        out.write(value + b"\n")
        return
    out.write(convert(value, media_type))


def print_record_key(record: VersionedRecord, out: BinaryIO):
    out.write(record.key + b"\n")


def print_record_summary(record: VersionedRecord, out: BinaryIO):
    """Write the etcd metadata of a record, one field per line."""
    _write_line(out, f"Key: {record.key_text}")
    _write_line(out, f"Version: {record.version}")
    _write_line(out, f"CreateRevision: {record.create_revision}")
    _write_line(out, f"ModRevision: {record.mod_revision}")
    _write_line(out, f"Lease: {record.lease}")
