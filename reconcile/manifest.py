"""Composer manifest loading, merging and persistence."""

import copy
import json
import logging
import os
import tempfile
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from .config import ReconcileSettings, get_settings
from .diff import EXTRA, REQUIRE, diff_manifests
from .errors import ManifestIOError, ParseError, ValidationError
from .models import JsonValue, ManifestDiff, Requirement, is_json_value
from .version import parse_version

logger = logging.getLogger(__name__)

REPOSITORIES = "repositories"


def _dedupe(values: Iterable[JsonValue]) -> list[JsonValue]:
    """Remove duplicates, keeping the first occurrence of each value.

    Values are compared structurally so unhashable entries (mappings) work.
    """
    seen: set[str] = set()
    unique = []
    for value in values:
        marker = json.dumps(value, sort_keys=True)
        if marker not in seen:
            seen.add(marker)
            unique.append(value)
    return unique


@dataclass
class ManifestDocument:
    """Live state of a destination manifest."""

    requirements: dict[str, Requirement] = field(default_factory=dict)
    repositories: list[JsonValue] | dict[str, JsonValue] = field(default_factory=list)
    extra: dict[str, JsonValue] = field(default_factory=dict)
    original: dict[str, JsonValue] = field(default_factory=dict)
    path: Path | None = None

    @classmethod
    def from_data(cls, data: Any, path: Path | None = None) -> "ManifestDocument":
        """Build a document from parsed JSON content.

        Raises:
            ParseError: If the content does not have a manifest's shape
        """
        where = path or "<memory>"
        if not isinstance(data, dict):
            raise ParseError(f"Manifest {where} must be a JSON object, got {type(data).__name__}")

        require = data.get(REQUIRE, {})
        if require == []:
            require = {}
        if not isinstance(require, dict):
            raise ParseError(f"Manifest {where}: 'require' must be an object")
        requirements = {}
        for name, version in require.items():
            if not isinstance(version, str):
                raise ParseError(f"Manifest {where}: version for {name!r} must be a string")
            requirements[name] = Requirement(name, version)

        extra = data.get(EXTRA, {})
        if extra == []:
            extra = {}
        if not isinstance(extra, dict):
            raise ParseError(f"Manifest {where}: 'extra' must be an object")

        repositories = data.get(REPOSITORIES, [])
        if not isinstance(repositories, (list, dict)):
            raise ParseError(f"Manifest {where}: 'repositories' must be an array or object")

        return cls(
            requirements=requirements,
            repositories=copy.deepcopy(repositories),
            extra=copy.deepcopy(extra),
            original=copy.deepcopy(data),
            path=path,
        )

    def to_data(self) -> dict[str, JsonValue]:
        """Serialize the live state, keeping the original top-level key order."""
        sections: dict[str, JsonValue] = {
            REQUIRE: {name: req.version for name, req in self.requirements.items()},
            REPOSITORIES: copy.deepcopy(self.repositories),
            EXTRA: copy.deepcopy(self.extra),
        }
        data: dict[str, JsonValue] = {}
        for key, value in self.original.items():
            if key in sections and (sections[key] or value not in ([], {})):
                data[key] = sections.pop(key)
            else:
                sections.pop(key, None)
                data[key] = copy.deepcopy(value)
        for key, value in sections.items():
            if value:
                data[key] = value
        return data


def parse_manifest_text(text: str, path: Path | None = None) -> ManifestDocument:
    """Parse manifest JSON text into a document.

    Raises:
        ParseError: If the text is not valid JSON or not manifest-shaped
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ParseError(f"Invalid JSON in manifest {path or '<memory>'}: {e}") from e
    return ManifestDocument.from_data(data, path=path)


def load_manifest(path: Path | str) -> ManifestDocument:
    """Load a manifest file from disk.

    Args:
        path: Path to a composer.json style file

    Returns:
        Parsed ManifestDocument with ``original`` retained for diffing

    Raises:
        ManifestIOError: If the file cannot be read
        ParseError: If the content is not a valid manifest
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ManifestIOError("read", path, e) from e
    document = parse_manifest_text(text, path=path)
    logger.debug("Loaded %s with %d requirements", path, len(document.requirements))
    return document


class ManifestReconciler:
    """Merges discovered dependencies and metadata into a manifest."""

    def __init__(self, document: ManifestDocument, settings: ReconcileSettings | None = None):
        self.document = document
        self.settings = settings or get_settings()

    @classmethod
    def load(cls, path: Path | str, settings: ReconcileSettings | None = None) -> "ManifestReconciler":
        return cls(load_manifest(path), settings)

    @classmethod
    def from_text(cls, text: str, settings: ReconcileSettings | None = None) -> "ManifestReconciler":
        return cls(parse_manifest_text(text), settings)

    @classmethod
    def from_data(cls, data: Any, settings: ReconcileSettings | None = None) -> "ManifestReconciler":
        return cls(ManifestDocument.from_data(data), settings)

    @property
    def path(self) -> Path | None:
        return self.document.path

    @property
    def requirements(self) -> dict[str, Requirement]:
        return self.document.requirements

    @property
    def original(self) -> dict[str, JsonValue]:
        """A copy of the manifest content as loaded."""
        return copy.deepcopy(self.document.original)

    def add_requirement(self, name: str, version: str) -> Requirement:
        """Insert a requirement or ratchet an existing one upward.

        Args:
            name: Package identifier, e.g. ``drupal/views_bulk_operations``
            version: Version constraint, e.g. ``^4.0``

        Returns:
            The stored Requirement after the merge

        Raises:
            ValidationError: If the name is empty
            ComparisonError: If either version cannot be ordered
        """
        if not isinstance(name, str) or not name.strip():
            raise ValidationError(f"Cannot add requirement with empty package name (version {version!r})")
        parse_version(version)

        existing = self.document.requirements.get(name)
        if existing is None:
            requirement = Requirement(name, version)
            self.document.requirements[name] = requirement
            logger.debug("Added requirement %s: %s", name, version)
            return requirement

        previous = existing.version
        if existing.set_version_if_greater(version):
            logger.info("Raised %s from %s to %s", name, previous, version)
        return existing

    def set_repositories(self, repositories: list[JsonValue] | dict[str, JsonValue]) -> None:
        """Replace the repository list wholesale."""
        if not isinstance(repositories, (list, dict)) or not is_json_value(repositories):
            raise ValidationError(
                f"Repositories must be a JSON list or mapping, got {type(repositories).__name__}"
            )
        if isinstance(repositories, list):
            self.document.repositories = _dedupe(copy.deepcopy(repositories))
        else:
            self.document.repositories = copy.deepcopy(repositories)
        logger.debug("Set %d repositories", len(self.document.repositories))

    def get_extra_property(self, key: str, *path: str, default: JsonValue = None) -> JsonValue:
        """Read an entry from ``extra``, descending into nested mappings.

        Missing keys (at any depth) return ``default``.
        """
        value: Any = self.document.extra
        for part in (key, *path):
            if not isinstance(value, dict) or part not in value:
                return default
            value = value[part]
        return copy.deepcopy(value)

    def set_extra_property(self, key: str, value: JsonValue) -> None:
        if not isinstance(key, str) or not key:
            raise ValidationError(f"Extra property key must be a non-empty string, got {key!r}")
        if not is_json_value(value):
            raise ValidationError(f"Extra property {key!r} must be a JSON value, got {type(value).__name__}")
        self.document.extra[key] = copy.deepcopy(value)

    def merge_extra_list(self, key: str, values: Iterable[JsonValue], subkey: str | None = None) -> list[JsonValue]:
        """Union ``values`` into a list-valued extra entry without duplicates.

        Existing elements keep their order; new ones are appended in the order
        given. With ``subkey`` the list lives one level down, inside the
        mapping stored under ``key`` (e.g. ``installer-paths``).

        Returns:
            The merged list as stored

        Raises:
            ValidationError: If the stored value is not a list, or the
                container for ``subkey`` is not a mapping
        """
        values = list(values)
        if not is_json_value(values):
            raise ValidationError(f"Values merged into extra {key!r} must be JSON values")
        if subkey is None:
            current = self.get_extra_property(key, default=[])
            if not isinstance(current, list):
                raise ValidationError(
                    f"Cannot merge list into extra {key!r}: existing value is {type(current).__name__}"
                )
            merged = _dedupe([*current, *values])
            self.set_extra_property(key, merged)
            return merged

        container = self.get_extra_property(key, default={})
        if container == []:
            container = {}
        if not isinstance(container, dict):
            raise ValidationError(
                f"Cannot merge list into extra {key!r}[{subkey!r}]: {key!r} is {type(container).__name__}"
            )
        current = container.get(subkey, [])
        if not isinstance(current, list):
            raise ValidationError(
                f"Cannot merge list into extra {key!r}[{subkey!r}]: existing value is {type(current).__name__}"
            )
        container[subkey] = _dedupe([*current, *values])
        self.set_extra_property(key, container)
        return container[subkey]

    def snapshot(self) -> dict[str, JsonValue]:
        """Detached copy of the manifest as it would be written."""
        return self.document.to_data()

    def get_diff(self) -> ManifestDiff:
        return diff_manifests(self.document.original, self.snapshot())

    def to_json(self) -> str:
        return json.dumps(self.snapshot(), indent=self.settings.json_indent, ensure_ascii=False) + "\n"

    def backup_file(self, now: datetime | None = None) -> Path:
        """Copy the on-disk manifest to a timestamped sibling file.

        Returns:
            Path of the backup, e.g. ``backup-20240101120000-composer.json``

        Raises:
            ManifestIOError: If the manifest cannot be read or the backup written
        """
        path = self._require_path("back up")
        stamp = (now or datetime.now()).strftime(self.settings.backup_timestamp_format)
        base = f"{self.settings.backup_prefix}-{stamp}"
        backup = path.with_name(f"{base}-{path.name}")
        counter = 1
        while backup.exists():
            backup = path.with_name(f"{base}-{counter}-{path.name}")
            counter += 1

        try:
            content = path.read_bytes()
        except OSError as e:
            raise ManifestIOError("read", path, e) from e
        try:
            with open(backup, "xb") as handle:
                handle.write(content)
        except OSError as e:
            raise ManifestIOError("write backup", backup, e) from e

        logger.info("Backed up %s to %s", path, backup)
        return backup

    def write(self) -> Path:
        """Write the merged manifest over the original file.

        Content goes to a temporary sibling first and is renamed into place,
        so the previous file survives a failed write.

        Raises:
            ManifestIOError: If the file cannot be written
        """
        path = self._require_path("write")
        try:
            content = self.to_json().encode("utf-8")
        except UnicodeEncodeError as e:
            raise ManifestIOError("encode", path, e) from e

        tmp_name = None
        try:
            with tempfile.NamedTemporaryFile(
                "wb", dir=path.parent, prefix=f".{path.name}.", suffix=".tmp", delete=False
            ) as handle:
                tmp_name = handle.name
                handle.write(content)
            if path.exists():
                os.chmod(tmp_name, path.stat().st_mode & 0o777)
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as e:
            raise ManifestIOError("write", path, e) from e
        finally:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)

        logger.info("Wrote %s (%d requirements)", path, len(self.document.requirements))
        return path

    def _require_path(self, operation: str) -> Path:
        if self.document.path is None:
            raise ManifestIOError(operation, None)
        return self.document.path
