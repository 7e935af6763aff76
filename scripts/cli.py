#!/usr/bin/env python3
"""
Command-Line Interface for kvextract.
"""
import argparse
import logging
import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from kvextract import ExtractError, ExtractOptions, UsageError, run
from kvextract.core.options import DEFAULT_BUCKET, DEFAULT_FIELDS
from kvextract.core.presentation import TEMPLATE_FIELDS, SummaryField
from kvextract.storage.encoding import OUTPUT_FORMATS

DESCRIPTION = """
Extracts kubernetes data stored by etcd into boltdb '.db' files.

May be used both to inspect the contents of a boltdb file and to
extract specific data entries. Data may be looked up either by etcd
key and version, or from a single boltdb leaf page item.

Etcd must be stopped when using this tool; a locked '.db' file fails
immediately unless --lock-timeout is given.
"""

EXAMPLES = """
examples:
  # Find an etcd value by its key and extract it from a boltdb file:
  kvextract -f <boltdb-file> -k /registry/pods/default/<pod-name>

  # List the keys and size of all entries in etcd
  kvextract -f <boltdb-file> --fields=key,value-size

  # Extract a specific field from each kubernetes object
  kvextract -f <boltdb-file> --template="{{ value.metadata.creationTimestamp }}"

  # Extract the etcd value stored in page 10, item 0 of a boltdb file:
  bolt page --item 0 --value-only <boltdb-file> 10 | kvextract --leaf-item

  # Extract the etcd key stored in page 10, item 0 of a boltdb file:
  bolt page --item 0 --value-only <boltdb-file> 10 | kvextract --leaf-item --print-key
"""


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="kvextract",
        description=DESCRIPTION,
        epilog=EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-o", "--output", default="yaml",
                        help=f"Output format. One of: {'|'.join(OUTPUT_FORMATS)}")
    parser.add_argument("-f", "--file", default="",
                        help="Bolt DB '.db' filename")
    parser.add_argument("-k", "--key", default="",
                        help="Etcd object key to find in boltdb file")
    parser.add_argument("-v", "--version", default="",
                        help="Version of etcd key to find, defaults to latest version")
    parser.add_argument("--keys-by-prefix", default="",
                        help="List out all keys with the given prefix")
    parser.add_argument("--list-versions", action="store_true",
                        help="List out all versions of the key, requires --key")
    parser.add_argument("--leaf-item", action="store_true",
                        help="Read the input as a boltdb leaf page item")
    parser.add_argument("--print-key", action="store_true",
                        help="Print the key of the matching entry")
    parser.add_argument("--meta-summary", action="store_true",
                        help="Print a summary of the metadata of the matching entry")
    parser.add_argument("--raw", action="store_true",
                        help="Don't attempt to decode the etcd value")
    parser.add_argument("--fields", default=None,
                        help=f"Fields to include when listing entries, comma separated list of: "
                             f"{', '.join(f.value for f in SummaryField)} "
                             f"(default: {','.join(DEFAULT_FIELDS)})")
    parser.add_argument("--template", default=None,
                        help=f"Jinja2 template to use when listing entries, rendered once per key "
                             f"with: {', '.join(TEMPLATE_FIELDS)}. 'value' holds the decoded "
                             f"kubernetes object; dotted paths work directly or through the "
                             f"'field' filter")
    parser.add_argument("--bucket", default=DEFAULT_BUCKET,
                        help="Bolt bucket holding the etcd key-value records")
    parser.add_argument("--lock-timeout", type=float, default=0.0,
                        help="Seconds to wait for a locked '.db' file, 0 fails immediately")
    parser.add_argument("--skip-corrupt", action="store_true",
                        help="Skip records that fail to decode instead of aborting")
    parser.add_argument("--verbose", action="store_true",
                        help="Log progress to stderr")
    return parser


def main(argv=None, out=None, stdin=None) -> int:
    """Main entry point for the CLI."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        stream=sys.stderr,
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s [%(name)s] %(message)s",
    )
    if out is None:
        out = sys.stdout.buffer
    if stdin is None:
        stdin = sys.stdin.buffer

    try:
        options = ExtractOptions.from_args(args)
        run(options, out, stdin=stdin)
    except UsageError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except ExtractError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted. Exiting...", file=sys.stderr)
        return 130
    finally:
        out.flush()
    return 0


if __name__ == "__main__":
    sys.exit(main())
