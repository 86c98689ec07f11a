"""Core data models for manifest reconciliation."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from .errors import ValidationError
from .version import parse_version

# Tagged union of the values a JSON document can hold.
JsonValue = Union[None, bool, int, float, str, list["JsonValue"], dict[str, "JsonValue"]]


def is_json_value(value: Any) -> bool:
    """Check recursively that a value is representable as JSON."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return True
    if isinstance(value, list):
        return all(is_json_value(item) for item in value)
    if isinstance(value, dict):
        return all(isinstance(key, str) and is_json_value(item) for key, item in value.items())
    return False


class Requirement:
    """A package name and its currently selected version constraint."""

    def __init__(self, name: str, version: str):
        if not isinstance(name, str) or not name.strip():
            raise ValidationError(f"Requirement name must be a non-empty string, got {name!r}")
        self._name = name
        self.version = version

    @property
    def name(self) -> str:
        return self._name

    def is_greater_than(self, version: str) -> bool:
        """True if the held version orders strictly above ``version``."""
        return parse_version(self.version) > parse_version(version)

    def is_less_than(self, version: str) -> bool:
        """True if the held version orders strictly below ``version``."""
        return parse_version(self.version) < parse_version(version)

    def set_version_if_greater(self, incoming: str) -> bool:
        """Replace the held version only if ``incoming`` is strictly greater.

        Args:
            incoming: Candidate version or constraint string

        Returns:
            True if the held version was replaced
        """
        if self.is_less_than(incoming):
            self.version = incoming
            return True
        return False

    def __str__(self) -> str:
        return self.version

    def __repr__(self) -> str:
        return f"Requirement({self._name!r}, {self.version!r})"

    def __eq__(self, other):
        if not isinstance(other, Requirement):
            return NotImplemented
        return (self._name, self.version) == (other._name, other.version)


class ChangeKind(str, Enum):
    """How a single manifest entry differs from the original."""

    ADDED = "added"
    CHANGED = "changed"
    REMOVED = "removed"


@dataclass(frozen=True)
class Change:
    """A single difference between the original and current manifest."""

    section: str  # require, extra, or another top-level key
    key: str
    kind: ChangeKind
    old: JsonValue = None
    new: JsonValue = None

    def __str__(self) -> str:
        if self.kind is ChangeKind.ADDED:
            return f"+ {self.section} {self.key}: {_display(self.new)}"
        if self.kind is ChangeKind.REMOVED:
            return f"- {self.section} {self.key}: {_display(self.old)}"
        return f"~ {self.section} {self.key}: {_display(self.old)} -> {_display(self.new)}"


def _display(value: JsonValue) -> str:
    return value if isinstance(value, str) else repr(value)


@dataclass(frozen=True)
class ManifestDiff:
    """Structural difference between two manifest snapshots."""

    changes: tuple[Change, ...] = field(default_factory=tuple)

    @property
    def added(self) -> list[Change]:
        return [c for c in self.changes if c.kind is ChangeKind.ADDED]

    @property
    def changed(self) -> list[Change]:
        return [c for c in self.changes if c.kind is ChangeKind.CHANGED]

    @property
    def removed(self) -> list[Change]:
        return [c for c in self.changes if c.kind is ChangeKind.REMOVED]

    def for_section(self, section: str) -> list[Change]:
        return [c for c in self.changes if c.section == section]

    def to_dict(self) -> dict[str, dict[str, dict[str, Any]]]:
        """Group changes as ``{section: {kind: {key: value}}}`` for display.

        Added and removed entries map to their value; changed entries map to
        ``{"from": old, "to": new}``.
        """
        grouped: dict[str, dict[str, dict[str, Any]]] = {}
        for change in self.changes:
            bucket = grouped.setdefault(change.section, {}).setdefault(change.kind.value, {})
            if change.kind is ChangeKind.ADDED:
                bucket[change.key] = change.new
            elif change.kind is ChangeKind.REMOVED:
                bucket[change.key] = change.old
            else:
                bucket[change.key] = {"from": change.old, "to": change.new}
        return grouped

    def __bool__(self) -> bool:
        return bool(self.changes)

    def __len__(self) -> int:
        return len(self.changes)

    def __iter__(self):
        return iter(self.changes)

    def __str__(self) -> str:
        if not self.changes:
            return "No changes"
        return "\n".join(str(change) for change in self.changes)
