"""
Key-sorted working table of per-key summaries, built during a store walk.
"""
from typing import Any, Callable, Dict, List, Optional, Tuple

from skiplistcollections import SkipListDict

from kvextract.core.dto import KeySummary, KeySummaryStats, TypeMeta, VersionedRecord

Decoder = Callable[[bytes], Tuple[Any, Optional[TypeMeta]]]


class SummaryBuilder:
    """Mutable accumulator for one logical key; only lives during a walk."""

    __slots__ = (
        "key", "version", "latest_value", "version_count", "key_size",
        "value_size", "all_versions_key_size", "all_versions_value_size",
    )

    def __init__(self, record: VersionedRecord):
        self.key = record.key
        self.version = record.version
        self.latest_value = record.value
        self.version_count = 1
        self.key_size = len(record.key)
        self.value_size = len(record.value)
        self.all_versions_key_size = len(record.key)
        self.all_versions_value_size = len(record.value)

    def add(self, record: VersionedRecord):
        """
        Account for another version of the key.

        Records arrive in physical (revision) order, not version order, so the
        latest value is only replaced by a strictly higher version.
        """
        self.version_count += 1
        self.all_versions_key_size += len(record.key)
        self.all_versions_value_size += len(record.value)
        if record.version > self.version:
            self.version = record.version
            self.latest_value = record.value
            self.value_size = len(record.value)

    def build(self, decode: Decoder) -> KeySummary:
        """Freeze into a KeySummary, decoding the latest value."""
        value, type_meta = decode(self.latest_value)
        return KeySummary(
            key=self.key.decode("utf-8", "surrogateescape"),
            version=self.version,
            value=value,
            type_meta=type_meta,
            stats=KeySummaryStats(
                version_count=self.version_count,
                key_size=self.key_size,
                value_size=self.value_size,
                all_versions_key_size=self.all_versions_key_size,
                all_versions_value_size=self.all_versions_value_size,
            ),
        )


class SummaryTable:
    """Summaries keyed by raw key bytes, iterated in byte-wise key order."""

    def __init__(self, capacity: int = 1 << 20):
        """
        Initialize the table.

        Args:
            capacity: Expected number of distinct keys, sizes the skiplist
        """
        # SkipListDict keeps keys sorted, the dict answers lookups
        self.skiplist = SkipListDict(capacity=max(capacity, 16))
        self.key_map: Dict[bytes, SummaryBuilder] = {}

    def observe(self, record: VersionedRecord):
        """Create or update the summary of the record's key."""
        builder = self.key_map.get(record.key)
        if builder is None:
            builder = SummaryBuilder(record)
            self.skiplist[record.key] = builder
            self.key_map[record.key] = builder
        else:
            builder.add(record)

    def get(self, key: bytes) -> Optional[SummaryBuilder]:
        return self.key_map.get(key)

    def __len__(self) -> int:
        return len(self.key_map)

    def get_all_builders(self) -> List[SummaryBuilder]:
        """All builders, sorted by key."""
        return list(self.skiplist.values())

    def freeze(self, decode: Decoder) -> Tuple[KeySummary, ...]:
        """Build the immutable, key-sorted result of the walk."""
        return tuple(builder.build(decode) for builder in self.get_all_builders())
