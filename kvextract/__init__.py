"""
kvextract - Extract and summarize Kubernetes data from etcd bolt db files.
"""

from kvextract.core.dto import VersionedRecord, KeySummary, KeySummaryStats, TypeMeta
from kvextract.core.errors import (
    ExtractError,
    UsageError,
    OpenError,
    DecodeError,
    NotFoundError,
    ConversionError,
    UnknownFieldError,
    TemplateError,
)
from kvextract.core.options import ExtractOptions, Operation, select_operation
from kvextract.core.walker import walk
from kvextract.core.resolver import list_versions, latest_version, get_value, resolve_value
from kvextract.core.aggregator import list_key_summaries
from kvextract.core.extractor import run
from kvextract.storage.record import decode_record
from kvextract.storage.encoding import MediaType

__version__ = "0.1.0"
__all__ = [
    "VersionedRecord",
    "KeySummary",
    "KeySummaryStats",
    "TypeMeta",
    "ExtractError",
    "UsageError",
    "OpenError",
    "DecodeError",
    "NotFoundError",
    "ConversionError",
    "UnknownFieldError",
    "TemplateError",
    "ExtractOptions",
    "Operation",
    "select_operation",
    "walk",
    "list_versions",
    "latest_version",
    "get_value",
    "resolve_value",
    "list_key_summaries",
    "run",
    "decode_record",
    "MediaType",
]
