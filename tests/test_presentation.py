#!/usr/bin/env python3
"""
Tests for field projection, templates and value rendering.
"""
import io
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from kvextract.core.dto import KeySummary, KeySummaryStats, TypeMeta, VersionedRecord
from kvextract.core.errors import ConversionError, TemplateError, UnknownFieldError, UsageError
from kvextract.core.presentation import (
    SummaryField,
    compile_template,
    parse_fields,
    print_key_summaries,
    print_record_key,
    print_record_summary,
    print_value,
    print_versions,
    render_summaries,
    summarize,
)
from kvextract.storage.encoding import MediaType


def make_summary(key="/a", version=2, value=None, type_meta=None, **stats):
    defaults = dict(version_count=2, key_size=2, value_size=2,
                    all_versions_key_size=4, all_versions_value_size=3)
    defaults.update(stats)
    return KeySummary(key=key, version=version, value=value, type_meta=type_meta,
                      stats=KeySummaryStats(**defaults))


POD = make_summary(
    key="/registry/pods/default/web",
    version=7,
    value={"kind": "Pod", "metadata": {"name": "web", "labels": {"app": "x"}},
           "spec": {"containers": [{"image": "nginx"}]}},
    type_meta=TypeMeta("v1", "Pod"),
    version_count=3, value_size=120, all_versions_value_size=300,
)


def test_parse_fields():
    """Test parsing of field names."""
    print("Test 1: Parse Fields")
    print("-" * 40)

    fields = parse_fields(["key", "version-count", "value-size"])
    assert fields == (SummaryField.KEY, SummaryField.VERSION_COUNT, SummaryField.VALUE_SIZE)
    print("✓ Known fields parsed in order")

    try:
        parse_fields(["key", "bogus"])
        assert False, "expected UnknownFieldError"
    except UnknownFieldError as e:
        assert e.field == "bogus"
        assert "bogus" in str(e) and "value-size" in str(e)
    print("✓ Unknown field rejected with the field name")

    try:
        parse_fields([])
        assert False, "expected UsageError"
    except UsageError:
        pass
    print("✓ Empty field list rejected")

    print("✓ Test 1 passed!\n")


def test_summarize():
    """Test rendering of every field."""
    print("Test 2: Summarize")
    print("-" * 40)

    all_fields = list(SummaryField)
    line = summarize(POD, all_fields)
    assert line.split(" ")[:6] == ["/registry/pods/default/web", "7", "120", "4", "300", "3"]
    assert line.endswith(
        '{"kind":"Pod","metadata":{"labels":{"app":"x"},"name":"web"},'
        '"spec":{"containers":[{"image":"nginx"}]}}'
    )
    print("✓ All fields rendered")

    assert summarize(make_summary(), [SummaryField.KEY, SummaryField.VALUE]) == "/a "
    print("✓ Undecoded value renders empty")

    mixed = make_summary(value={1: "a", "b": "c"})
    assert summarize(mixed, [SummaryField.KEY, SummaryField.VALUE]) == '/a {"1":"a","b":"c"}'
    print("✓ Mixed key types render as JSON")

    deep = []
    for _ in range(100000):
        deep = [deep]
    assert summarize(make_summary(value=deep), [SummaryField.KEY, SummaryField.VALUE]) == "/a "
    print("✓ Value too deep to serialize renders empty")

    print("✓ Test 2 passed!\n")


def test_print_key_summaries():
    """Test one line per summary."""
    print("Test 3: Print Key Summaries")
    print("-" * 40)

    out = io.BytesIO()
    summaries = [make_summary("/a"), make_summary("/b", version_count=5)]
    print_key_summaries(summaries, parse_fields(["key", "version-count"]), out)
    assert out.getvalue() == b"/a 2\n/b 5\n"
    print("✓ Lines written")

    print("✓ Test 3 passed!\n")


def test_templates():
    """Test template rendering."""
    print("Test 4: Templates")
    print("-" * 40)

    out = io.BytesIO()
    template = compile_template(
        "{{ key }} {{ value.metadata.name }} {{ stats.version_count }} {{ type_meta.kind }}"
    )
    render_summaries([POD], template, out)
    assert out.getvalue() == b"/registry/pods/default/web web 3 Pod\n"
    print("✓ Fields and nested values rendered")

    out = io.BytesIO()
    render_summaries([POD], compile_template('{{ value | field("spec.containers.0.image") }}'), out)
    assert out.getvalue() == b"nginx\n"
    print("✓ Field path filter follows lists")

    out = io.BytesIO()
    template = compile_template("[{{ value.metadata.name }}][{{ value.missing.deeper }}]")
    render_summaries([POD, make_summary("/b")], template, out)
    assert out.getvalue() == b"[web][]\n[][]\n"
    print("✓ Missing values render empty, newline after each")

    out = io.BytesIO()
    render_summaries([make_summary("/a"), make_summary("/b")], compile_template("{{ key }}\n"), out)
    assert out.getvalue() == b"/a\n\n/b\n\n"
    print("✓ Newline appended even after template newline")

    print("✓ Test 4 passed!\n")


def test_template_errors():
    """Test template parse and render failures."""
    print("Test 5: Template Errors")
    print("-" * 40)

    try:
        compile_template("{{ key ")
        assert False, "expected TemplateError"
    except TemplateError as e:
        assert "line 1" in str(e)
    print("✓ Syntax error reported")

    try:
        compile_template("")
        assert False, "expected UsageError"
    except UsageError:
        pass
    print("✓ Empty template rejected")

    out = io.BytesIO()
    template = compile_template("{{ key }}{{ stats.version_count / 0 }}")
    try:
        render_summaries([make_summary("/a"), make_summary("/b")], template, out)
        assert False, "expected TemplateError"
    except TemplateError as e:
        assert "/a" in str(e)
    assert out.getvalue() == b""
    print("✓ Render error aborts remaining output")

    print("✓ Test 5 passed!\n")


def test_print_value():
    """Test value extraction output."""
    print("Test 6: Print Value")
    print("-" * 40)

    out = io.BytesIO()
    print_value(b'{"kind":"Pod"}', out, MediaType.YAML)
    assert out.getvalue() == b"kind: Pod\n"

    out = io.BytesIO()
    print_value(b"not an object", out, MediaType.JSON, raw=True)
    assert out.getvalue() == b"not an object\n"
    print("✓ Converted and raw values written")

    for value, media_type in ((b"", MediaType.YAML), (b"text", MediaType.JSON)):
        try:
            print_value(value, io.BytesIO(), media_type)
            assert False, "expected ConversionError"
        except ConversionError:
            pass
    print("✓ Empty and undetectable values rejected")

    print("✓ Test 6 passed!\n")


def test_print_records_and_versions():
    """Test leaf item and version output."""
    print("Test 7: Records and Versions")
    print("-" * 40)

    record = VersionedRecord(key=b"/registry/a", value=b"{}", version=4,
                             create_revision=10, mod_revision=12, lease=0)
    out = io.BytesIO()
    print_record_key(record, out)
    assert out.getvalue() == b"/registry/a\n"

    out = io.BytesIO()
    print_record_summary(record, out)
    assert out.getvalue().decode().splitlines() == [
        "Key: /registry/a",
        "Version: 4",
        "CreateRevision: 10",
        "ModRevision: 12",
        "Lease: 0",
    ]
    print("✓ Key and metadata summary written")

    out = io.BytesIO()
    print_versions([3, 1, 2], out)
    assert out.getvalue() == b"3\n1\n2\n"
    print("✓ Versions written one per line")

    print("✓ Test 7 passed!\n")


def main():
    """Run all tests."""
    print("\n" + "=" * 40)
    print("Presentation Test Suite")
    print("=" * 40 + "\n")

    try:
        test_parse_fields()
        test_summarize()
        test_print_key_summaries()
        test_templates()
        test_template_errors()
        test_print_value()
        test_print_records_and_versions()

        print("=" * 40)
        print("All tests passed! ✓")
        print("=" * 40)

    except AssertionError as e:
        print(f"\n✗ Test failed: {e}")
        return 1

    return 0


if __name__ == "__main__":
    exit(main())
