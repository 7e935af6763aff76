"""
Runs the operation selected by a set of extraction options.
"""
import logging
from typing import BinaryIO, Optional

from kvextract.core.aggregator import list_key_summaries
from kvextract.core.errors import DecodeError, OpenError
from kvextract.core.options import ExtractOptions, Operation, select_operation
from kvextract.core.presentation import (
    compile_template,
    parse_fields,
    print_key_summaries,
    print_record_key,
    print_record_summary,
    print_value,
    print_versions,
    render_summaries,
)
from kvextract.core.resolver import list_versions, resolve_value
from kvextract.storage.record import decode_record

logger = logging.getLogger(__name__)


def read_input(filename: Optional[str], stdin: Optional[BinaryIO]) -> bytes:
    """Read a whole file, or standard input when no file is given."""
    if not filename:
        if stdin is None:
            raise OpenError("no input: pass a file or pipe the leaf item on stdin")
        return stdin.read()
    try:
        with open(filename, "rb") as f:
            return f.read()
    except OSError as e:
        raise OpenError(f"unable to read input {filename}: {e.strerror}") from e


def run(options: ExtractOptions, out: BinaryIO, stdin: Optional[BinaryIO] = None):
    """
    Validate the options and run the operation they select.

    Field lists and templates are checked before the store is opened, so a
    bad field name or template produces no output at all.

    Args:
        options: Extraction options
        out: Binary output sink
        stdin: Source of leaf item bytes when no file is given

    Raises:
        ExtractError: Any of its subclasses, see kvextract.core.errors
    """
    operation = select_operation(options)
    logger.debug("Running %s", operation.value)

    if operation is Operation.LEAF_ITEM:
        raw = read_input(options.filename, stdin)
        try:
            record = decode_record(raw)
        except DecodeError as e:
            raise DecodeError(
                f"failed to extract etcd key-value record from boltdb leaf item: {e.reason}",
                key=e.key,
            ) from e
        if options.meta_summary:
            print_record_summary(record, out)
        elif options.print_key:
            print_record_key(record, out)
        else:
            print_value(record.value, out, options.output, options.raw)

    elif operation is Operation.LIST_VERSIONS:
        print_versions(list_versions(options.filename, options.key, options), out)

    elif operation is Operation.PRINT_VALUE:
        version, value = resolve_value(options.filename, options.key, options.version, options)
        logger.debug("Resolved %s to version %d", options.key, version)
        print_value(value, out, options.output, options.raw)

    elif operation is Operation.TEMPLATE_SUMMARIES:
        template = compile_template(options.template)
        summaries = list_key_summaries(options.filename, options.key_prefix, options)
        render_summaries(summaries, template, out)

    else:
        fields = parse_fields(options.field_names)
        summaries = list_key_summaries(options.filename, options.key_prefix, options)
        print_key_summaries(summaries, fields, out)
