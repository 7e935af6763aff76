#!/usr/bin/env python3
"""
Comprehensive unit tests for SummaryTable.
Tests skiplist ordering, version selection, accumulated sizes.
"""
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from kvextract.core.dto import TypeMeta, VersionedRecord
from kvextract.storage.summary_table import SummaryBuilder, SummaryTable


def no_decode(value):
    return None, None


def record(key, version, value):
    return VersionedRecord(key=key, value=value, version=version)


class TestSummaryTable:
    """Test suite for SummaryTable."""

    passed = 0
    failed = 0

    def assert_true(self, condition, message):
        """Assert condition is true."""
        if condition:
            print(f"  ✓ {message}")
            self.passed += 1
        else:
            print(f"  ✗ {message}")
            self.failed += 1
            raise AssertionError(message)

    def test_table_creation(self):
        """Test SummaryTable creation."""
        print("\nTest 1: Table Creation")
        print("-" * 60)

        table = SummaryTable(capacity=4)
        self.assert_true(len(table) == 0, "New table is empty")
        self.assert_true(table.get(b"/a") is None, "Lookup on empty table")
        self.assert_true(table.freeze(no_decode) == (), "Empty table freezes to nothing")

    def test_observe_and_get(self):
        """Test observing records and looking them up."""
        print("\nTest 2: Observe and Get")
        print("-" * 60)

        table = SummaryTable()
        table.observe(record(b"/a", 1, b"x"))
        builder = table.get(b"/a")

        self.assert_true(len(table) == 1, "Size is 1 after observe")
        self.assert_true(builder.version == 1 and builder.latest_value == b"x", "Builder holds the record")
        self.assert_true(builder.version_count == 1, "One version counted")
        self.assert_true(table.get(b"/b") is None, "Unseen key returns None")

    def test_latest_version_selection(self):
        """Test the highest version wins regardless of arrival order."""
        print("\nTest 3: Latest Version Selection")
        print("-" * 60)

        table = SummaryTable()
        for version, value in ((2, b"two!"), (3, b"three"), (1, b"1")):
            table.observe(record(b"/a", version, value))
        builder = table.get(b"/a")

        self.assert_true(builder.version == 3, "Highest version kept")
        self.assert_true(builder.latest_value == b"three", "Value of highest version kept")
        self.assert_true(builder.value_size == 5, "Value size of highest version")
        self.assert_true(builder.version_count == 3, "Every version counted")

        table.observe(record(b"/a", 3, b"dup"))
        self.assert_true(table.get(b"/a").latest_value == b"three", "Equal version does not replace")

    def test_accumulated_sizes(self):
        """Test sizes summed over all versions."""
        print("\nTest 4: Accumulated Sizes")
        print("-" * 60)

        builder = SummaryBuilder(record(b"/key", 1, b"ab"))
        builder.add(record(b"/key", 2, b"abcd"))

        self.assert_true(builder.key_size == 4, "Key size")
        self.assert_true(builder.all_versions_key_size == 8, "Key size over all versions")
        self.assert_true(builder.all_versions_value_size == 6, "Value size over all versions")

    def test_sorted_order(self):
        """Test byte-wise key ordering of builders."""
        print("\nTest 5: Sorted Order")
        print("-" * 60)

        table = SummaryTable()
        for key in (b"/c", b"/a/b", b"/a", b"/B", b"/a\xff"):
            table.observe(record(key, 1, b"v"))
        keys = [builder.key for builder in table.get_all_builders()]

        self.assert_true(keys == sorted(keys), "Builders iterate in byte order")
        self.assert_true(keys[0] == b"/B", "Upper case sorts first")
        self.assert_true(len(keys) == 5, "One builder per distinct key")

    def test_freeze(self):
        """Test freezing builders into summaries."""
        print("\nTest 6: Freeze")
        print("-" * 60)

        decoded = []

        def decode(value):
            decoded.append(value)
            return {"v": value.decode()}, TypeMeta("v1", "ConfigMap")

        table = SummaryTable()
        table.observe(record(b"/b", 1, b"old"))
        table.observe(record(b"/a", 1, b"only"))
        table.observe(record(b"/b", 2, b"new"))
        summaries = table.freeze(decode)

        self.assert_true([s.key for s in summaries] == ["/a", "/b"], "Summaries sorted by key")
        self.assert_true(summaries[1].value == {"v": "new"}, "Latest value decoded")
        self.assert_true(sorted(decoded) == [b"new", b"only"], "Only latest values decoded")
        self.assert_true(summaries[1].type_meta == TypeMeta("v1", "ConfigMap"), "TypeMeta kept")
        self.assert_true(summaries[1].stats.version_count == 2, "Stats frozen")

    def run_all_tests(self):
        """Run all tests."""
        print("=" * 70)
        print("SUMMARY TABLE - COMPREHENSIVE TEST SUITE")
        print("=" * 70)

        self.test_table_creation()
        self.test_observe_and_get()
        self.test_latest_version_selection()
        self.test_accumulated_sizes()
        self.test_sorted_order()
        self.test_freeze()

        print("\n" + "=" * 70)
        print(f"RESULTS: {self.passed} passed, {self.failed} failed")
        print("=" * 70)

        return self.failed == 0


if __name__ == "__main__":
    tester = TestSummaryTable()
    success = tester.run_all_tests()
    sys.exit(0 if success else 1)
