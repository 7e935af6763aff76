"""
Version resolution for a single logical key.

The bucket is indexed by revision, not by key, so every lookup is a walk:
finding the latest value of a key takes one walk to enumerate its versions
and a second one to fetch the value.
"""
from typing import List, Optional, Tuple

from kvextract.core.errors import NotFoundError
from kvextract.core.options import DEFAULT_OPTIONS, ExtractOptions
from kvextract.core.walker import walk


def encode_key(key: str) -> bytes:
    return key.encode("utf-8", "surrogateescape")


def list_versions(filename: str, key: str, options: ExtractOptions = DEFAULT_OPTIONS) -> List[int]:
    """
    List the versions of a key in the order they appear in the store.

    Returns:
        Versions in physical order, not necessarily sorted; empty if the key
        is absent
    """
    target = encode_key(key)
    versions = []

    def visit(record):
        if record.key == target:
            versions.append(record.version)
        return False

    walk(filename, visit, options)
    return versions


def latest_version(filename: str, key: str, options: ExtractOptions = DEFAULT_OPTIONS) -> int:
    """
    Highest version of a key.

    Raises:
        NotFoundError: If the key has no versions
    """
    versions = list_versions(filename, key, options)
    if not versions:
        raise NotFoundError(key)
    return max(versions)


def get_value(filename: str, key: str, version: int, options: ExtractOptions = DEFAULT_OPTIONS) -> bytes:
    """
    Value of one version of a key; the walk stops at the first match.

    Raises:
        NotFoundError: If no record has this key and version
    """
    target = encode_key(key)
    found = []

    def visit(record):
        if record.key == target and record.version == version:
            found.append(record.value)
            return True
        return False

    walk(filename, visit, options)
    if not found:
        raise NotFoundError(key, version)
    return found[0]


def resolve_value(filename: str, key: str, version: Optional[int] = None,
                  options: ExtractOptions = DEFAULT_OPTIONS) -> Tuple[int, bytes]:
    """
    Value of a key at a version, defaulting to the latest one.

    Returns:
        Tuple of (resolved version, value bytes)
    """
    if version is None:
        version = latest_version(filename, key, options)
    return version, get_value(filename, key, version, options)
