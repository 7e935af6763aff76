"""
Key aggregator: one summary per logical key across all of its versions.
"""
import logging
from typing import Tuple

from kvextract.core.dto import KeySummary
from kvextract.core.options import DEFAULT_OPTIONS, ExtractOptions
from kvextract.core.resolver import encode_key
from kvextract.core.walker import walk
from kvextract.storage.encoding import decode_best_effort
from kvextract.storage.summary_table import SummaryTable

logger = logging.getLogger(__name__)


def list_key_summaries(filename: str, prefix: str = "",
                       options: ExtractOptions = DEFAULT_OPTIONS) -> Tuple[KeySummary, ...]:
    """
    Summarize every key starting with a prefix.

    A single forward walk accumulates version counts and sizes; the latest
    version is tracked by comparing versions, since physical order says
    nothing about version order. Values that cannot be decoded leave the
    summary's value empty.

    Args:
        filename: Path to the bolt '.db' file
        prefix: Key prefix; empty matches every key
        options: Walk options

    Returns:
        Summaries sorted by key, byte-wise
    """
    prefix_bytes = encode_key(prefix)
    table = SummaryTable(capacity=options.summary_capacity)

    def visit(record):
        if record.key.startswith(prefix_bytes):
            table.observe(record)
        return False

    walk(filename, visit, options)
    logger.debug("Aggregated %d keys with prefix %r from %s", len(table), prefix, filename)
    return table.freeze(decode_best_effort)
