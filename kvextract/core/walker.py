"""
Store walker: visits every etcd record of a bolt file in physical order.
"""
import logging
from typing import Callable

from kvextract.core.dto import VersionedRecord
from kvextract.core.errors import DecodeError
from kvextract.core.options import DEFAULT_OPTIONS, ExtractOptions
from kvextract.storage.boltdb import BoltReader
from kvextract.storage.record import decode_record, format_revision

logger = logging.getLogger(__name__)

# Returns True to stop the walk
Visitor = Callable[[VersionedRecord], bool]


def walk(filename: str, visit: Visitor, options: ExtractOptions = DEFAULT_OPTIONS) -> int:
    """
    Decode every record of the key bucket and hand it to a visitor.

    Records come in physical key order, which is etcd revision order and not
    logical key order. The file is opened read-only for the duration of the
    walk and released on every exit path. An exception raised by the visitor
    ends the walk and propagates unchanged.

    Args:
        filename: Path to the bolt '.db' file
        visit: Called with each record; returning True stops the walk
        options: Bucket, lock timeout and corrupt record policy

    Returns:
        Number of records visited

    Raises:
        OpenError: If the file cannot be opened as a bolt store
        DecodeError: If a record cannot be decoded and skip_corrupt is off
    """
    visited = 0
    skipped = 0
    with BoltReader(filename, lock_timeout=options.lock_timeout) as db:
        for physical_key, raw in db.iter_bucket(options.bucket_name):
            try:
                record = decode_record(raw)
            except DecodeError as e:
                revision = format_revision(physical_key)
                if not options.skip_corrupt:
                    raise DecodeError(
                        f"{filename}: {e.reason}", key=e.key, revision=revision
                    ) from e
                logger.warning("Skipping undecodable record at revision %s: %s", revision, e)
                skipped += 1
                continue

            visited += 1
            if visit(record):
                logger.debug("Walk of %s stopped after %d records", filename, visited)
                break

    if skipped:
        logger.warning("Skipped %d undecodable records in %s", skipped, filename)
    logger.debug("Walked %d records in %s", visited, filename)
    return visited
