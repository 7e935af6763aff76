"""
Data Transfer Objects for kvextract.
"""
from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class VersionedRecord:
    """One physical entry of the store, decoded from its envelope."""
    key: bytes
    value: bytes
    version: int = 0
    create_revision: int = 0
    mod_revision: int = 0
    lease: int = 0

    @property
    def key_text(self) -> str:
        """The logical key as text; undecodable bytes survive a round trip."""
        return self.key.decode("utf-8", "surrogateescape")


@dataclass(frozen=True)
class TypeMeta:
    """apiVersion/kind of a decoded Kubernetes object."""
    api_version: str = ""
    kind: str = ""

    def __str__(self):
        if self.api_version:
            return f"{self.api_version}/{self.kind}"
        return self.kind


@dataclass(frozen=True)
class KeySummaryStats:
    """Statistics accumulated over every version of a key."""
    version_count: int
    key_size: int
    value_size: int
    all_versions_key_size: int
    all_versions_value_size: int


@dataclass(frozen=True)
class KeySummary:
    """Aggregated view of one logical key after a full walk."""
    key: str
    version: int
    value: Any
    type_meta: Optional[TypeMeta]
    stats: KeySummaryStats

    def template_context(self) -> dict:
        """Names visible to a summary template."""
        return {
            "key": self.key,
            "version": self.version,
            "value": self.value,
            "type_meta": self.type_meta,
            "stats": self.stats,
        }


def resolve_path(value: Any, path: str) -> Any:
    """
    Follow a dot separated path through a decoded value.

    Mapping segments are looked up by name, list segments by index.

    Args:
        value: Tree of dicts, lists and scalars
        path: Path such as ``metadata.labels.app`` or ``spec.containers.0.image``

    Returns:
        The value at the path, or None if any segment is missing
    """
    current = value
    for segment in path.split("."):
        if not segment:
            continue
        if isinstance(current, dict):
            if segment not in current:
                return None
            current = current[segment]
        elif isinstance(current, list):
            # Plain non-negative indices only
            if not segment.isdigit():
                return None
            try:
                current = current[int(segment)]
            except (ValueError, IndexError):
                return None
        else:
            return None
    return current
