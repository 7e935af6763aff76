"""
Immutable extraction options and operation selection.

Options are built once from the command line and passed down to every
operation; select_operation validates combinations before any I/O happens.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from kvextract.core.errors import UsageError
from kvextract.storage.encoding import MediaType, to_media_type

DEFAULT_FIELDS = ("key",)
# See etcd mvcc/backend keyBucketName
DEFAULT_BUCKET = "key"
INT64_MAX = (1 << 63) - 1


class Operation(Enum):
    """What an invocation does, chosen from the options."""
    LEAF_ITEM = "leaf-item"
    LIST_VERSIONS = "list-versions"
    PRINT_VALUE = "print-value"
    TEMPLATE_SUMMARIES = "template-summaries"
    FIELD_SUMMARIES = "field-summaries"


@dataclass(frozen=True)
class ExtractOptions:
    """Everything an operation needs to know; never mutated once built."""
    output: MediaType = MediaType.YAML
    filename: Optional[str] = None
    key: Optional[str] = None
    version: Optional[int] = None
    key_prefix: str = ""
    list_versions: bool = False
    leaf_item: bool = False
    print_key: bool = False
    meta_summary: bool = False
    raw: bool = False
    fields: Optional[Tuple[str, ...]] = None
    template: Optional[str] = None
    bucket: str = DEFAULT_BUCKET
    lock_timeout: float = 0.0
    skip_corrupt: bool = False
    summary_capacity: int = 1 << 20

    @property
    def field_names(self) -> Tuple[str, ...]:
        return self.fields if self.fields is not None else DEFAULT_FIELDS

    @property
    def bucket_name(self) -> bytes:
        return self.bucket.encode("utf-8")

    @staticmethod
    def from_args(args) -> "ExtractOptions":
        """
        Build options from parsed command line arguments.

        Args:
            args: argparse namespace produced by the CLI parser

        Raises:
            UsageError: If --output or --version cannot be parsed
        """
        try:
            output = to_media_type(args.output)
        except ValueError as e:
            raise UsageError(f"invalid --output {args.output}: {e}") from None

        version = None
        if args.version:
            try:
                version = int(args.version, 10)
            except ValueError:
                raise UsageError(
                    f"--version must be an int64, but got {args.version}"
                ) from None

        fields = None
        if args.fields is not None:
            fields = tuple(f.strip() for f in args.fields.split(",") if f.strip())

        if args.lock_timeout < 0:
            raise UsageError("--lock-timeout may not be negative")

        return ExtractOptions(
            output=output,
            filename=args.file or None,
            key=args.key or None,
            version=version,
            key_prefix=args.keys_by_prefix or "",
            list_versions=args.list_versions,
            leaf_item=args.leaf_item,
            print_key=args.print_key,
            meta_summary=args.meta_summary,
            raw=args.raw,
            fields=fields,
            template=args.template,
            bucket=args.bucket,
            lock_timeout=args.lock_timeout,
            skip_corrupt=args.skip_corrupt,
        )


DEFAULT_OPTIONS = ExtractOptions()


def select_operation(options: ExtractOptions) -> Operation:
    """
    Validate option combinations and pick the operation to run.

    Raises:
        UsageError: If options are combined incorrectly
    """
    has_key = options.key is not None
    has_version = options.version is not None
    has_prefix = bool(options.key_prefix)
    has_fields = options.fields is not None
    has_template = options.template is not None

    if has_version and not 0 <= options.version <= INT64_MAX:
        raise UsageError(f"--version must be a non-negative int64, but got {options.version}")
    if options.print_key and options.meta_summary:
        raise UsageError("--print-key and --meta-summary may not be used together")

    if options.leaf_item:
        conflicts = [
            flag for flag, present in (
                ("--key", has_key),
                ("--version", has_version),
                ("--keys-by-prefix", has_prefix),
                ("--list-versions", options.list_versions),
                ("--fields", has_fields),
                ("--template", has_template),
            ) if present
        ]
        if conflicts:
            raise UsageError(f"--leaf-item may not be used with {', '.join(conflicts)}")
        return Operation.LEAF_ITEM

    if options.print_key or options.meta_summary:
        raise UsageError("--print-key and --meta-summary may only be used with --leaf-item")
    if has_key and has_prefix:
        raise UsageError("--keys-by-prefix and --key may not be used together")
    if options.list_versions and has_version:
        raise UsageError("--list-versions and --version may not be used together")
    if options.list_versions and not has_key:
        raise UsageError("--list-versions may only be used with --key")
    if has_version and not has_key:
        raise UsageError("--version may only be used with --key")
    if has_key and (has_fields or has_template):
        raise UsageError("--fields and --template may not be used with --key")
    if has_template and has_fields:
        raise UsageError("--template and --fields may not be used together")
    if has_template and not options.template:
        raise UsageError("no template provided, nothing to output")
    if has_fields and not options.fields:
        raise UsageError("no fields provided, nothing to output")
    if not options.filename:
        raise UsageError("--file is required to read a bolt db file")

    if has_key:
        return Operation.LIST_VERSIONS if options.list_versions else Operation.PRINT_VALUE
    if has_template:
        return Operation.TEMPLATE_SUMMARIES
    return Operation.FIELD_SUMMARIES
