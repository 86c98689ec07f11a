"""Translate discovered project descriptors into manifest requirements.

Callers locate descriptor files (module ``.info.yml`` files,
``libraries/*/package.json``). These helpers read the package.json files
they are given, turn descriptor content into ``(name, constraint)`` pairs and
apply the installer metadata that front-end asset packages need.
"""

import json
import logging
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from .errors import ManifestIOError, ParseError, ValidationError
from .manifest import REPOSITORIES, ManifestDocument, ManifestReconciler

logger = logging.getLogger(__name__)

LIBRARY_INSTALL_PATH = "web/libraries/{$name}"
ASSET_INSTALLER_PATHS = ["type:bower-asset", "type:npm-asset"]
ASSET_INSTALLER_TYPES = ["bower-asset", "npm-asset", "library"]

_CORE_PREFIX_RE = re.compile(r"^\d+\.x-(?=\d)", re.IGNORECASE)


def drupal_requirement(project: str | None, version: str | None) -> tuple[str, str]:
    """Build a requirement from an info file's ``project`` and ``version``.

    Args:
        project: Project machine name, e.g. ``views_bulk_operations``
        version: Packaged version, e.g. ``8.x-3.9``

    Returns:
        Tuple of ``("drupal/<project>", "^<version>")`` with the core prefix
        dropped, e.g. ``("drupal/views_bulk_operations", "^3.9")``
    """
    if not project or not isinstance(project, str):
        raise ValidationError(f"Info file has no project name (version {version!r})")
    if not version or not isinstance(version, str):
        raise ValidationError(f"Info file for drupal/{project} has no version")
    return f"drupal/{project}", "^" + _CORE_PREFIX_RE.sub("", version.strip())


def _library_name(package: Mapping[str, Any]) -> str:
    name = package.get("name")
    if not name:
        repository = package.get("repository")
        if isinstance(repository, Mapping):
            repository = repository.get("url")
        name = repository
    if not name or not isinstance(name, str):
        return ""
    return name.rstrip("/").split("/")[-1]


def library_requirement(
    package: Mapping[str, Any], source_repositories: Any = None
) -> tuple[str, str] | None:
    """Build a requirement for a front-end library from its package.json.

    A keyed ``package`` repository in the source manifest that matches the
    library name wins; otherwise the library is assumed to be published as
    ``npm-asset/<library>``.

    Args:
        package: Parsed package.json content
        source_repositories: ``repositories`` of the source manifest

    Returns:
        ``(name, constraint)`` or None when the package.json has neither a
        usable name nor a version to pin
    """
    library = _library_name(package)
    if not library:
        logger.warning(
            "Skipping library without a 'name' or 'repository'; add it by hand as npm-asset/<name>"
        )
        return None

    if isinstance(source_repositories, Mapping):
        repository = source_repositories.get(library)
        if isinstance(repository, Mapping) and isinstance(repository.get("package"), Mapping):
            declared = repository["package"]
            if declared.get("name") and declared.get("version"):
                return declared["name"], declared["version"]

    version = package.get("version")
    if not version or not isinstance(version, str):
        logger.warning("Skipping library %s: package.json has no version", library)
        return None
    return f"npm-asset/{library}", f"^{version}"


def register_asset_installers(reconciler: ManifestReconciler) -> None:
    """Route bower/npm asset packages into the web libraries folder."""
    reconciler.merge_extra_list("installer-paths", ASSET_INSTALLER_PATHS, subkey=LIBRARY_INSTALL_PATH)
    reconciler.merge_extra_list("installer-types", ASSET_INSTALLER_TYPES)


def copy_repositories(source: ManifestDocument, reconciler: ManifestReconciler) -> None:
    """Give the destination the repositories declared by the source manifest."""
    reconciler.set_repositories(source.original.get(REPOSITORIES) or [])


def read_package(path: Path | str) -> dict[str, Any]:
    """Read a library's package.json.

    Raises:
        ManifestIOError: If the file cannot be read
        ParseError: If it is not a JSON object
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ManifestIOError("read", path, e) from e
    try:
        package = json.loads(text)
    except json.JSONDecodeError as e:
        raise ParseError(f"Invalid JSON in {path}: {e}") from e
    if not isinstance(package, dict):
        raise ParseError(f"{path} must be a JSON object, got {type(package).__name__}")
    return package


def merge_libraries(
    reconciler: ManifestReconciler, packages: list[Mapping[str, Any]], source_repositories: Any = None
) -> list[tuple[str, str]]:
    """Require each front-end library and route asset packages to web/libraries.

    Args:
        reconciler: Destination manifest
        packages: Parsed package.json contents
        source_repositories: ``repositories`` of the source manifest

    Returns:
        The ``(name, constraint)`` pairs that were merged; skipped libraries
        are logged and left out
    """
    merged = []
    for package in packages:
        requirement = library_requirement(package, source_repositories)
        if requirement is None:
            continue
        reconciler.add_requirement(*requirement)
        merged.append(requirement)
    register_asset_installers(reconciler)
    return merged
