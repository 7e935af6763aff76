"""
Error kinds raised while extracting data from an etcd bolt store.
"""


class ExtractError(Exception):
    """Base class for every error surfaced by kvextract."""


class UsageError(ExtractError):
    """Options were combined incorrectly; raised before any I/O."""


class OpenError(ExtractError):
    """The store file is missing, locked, or not a valid bolt store."""


class DecodeError(ExtractError):
    """A physical entry does not parse as an etcd key-value envelope."""

    def __init__(self, message: str, key: bytes = None, revision: str = None):
        self.reason = message
        self.key = key
        self.revision = revision
        details = []
        if key is not None:
            details.append(f"key {key.decode('utf-8', 'surrogateescape')}")
        if revision is not None:
            details.append(f"revision {revision}")
        if details:
            message = f"{message} ({', '.join(details)})"
        super().__init__(message)


class NotFoundError(ExtractError):
    """The requested key/version was never observed during a full walk."""

    def __init__(self, key: str, version: int = None):
        self.key = key
        self.version = version
        if version is None:
            super().__init__(f"key not found: {key}")
        else:
            super().__init__(f"key not found: {key} (version {version})")


class ConversionError(ExtractError):
    """A value cannot be detected or converted to the requested format."""


class UnknownFieldError(ExtractError):
    """A field projection named a field that does not exist."""

    def __init__(self, field: str, known):
        self.field = field
        super().__init__(
            f"unrecognized field: {field} (expected one of: {', '.join(known)})"
        )


class TemplateError(ExtractError):
    """A summary template failed to parse or to render."""
