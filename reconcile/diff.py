"""Structural diff between two manifest snapshots."""

import json
from collections.abc import Iterator, Mapping
from typing import Any

from .models import Change, ChangeKind, ManifestDiff

REQUIRE = "require"
EXTRA = "extra"
MANIFEST = "manifest"


def _as_mapping(value: Any) -> Mapping[str, Any]:
    """Treat anything that is not a mapping as empty (e.g. composer's ``[]``)."""
    return value if isinstance(value, Mapping) else {}


def _same(left: Any, right: Any) -> bool:
    """Compare as JSON, so true and 1 or 1 and 1.0 differ."""
    return json.dumps(left, sort_keys=True) == json.dumps(right, sort_keys=True)


def _compare_entries(section: str, old: Mapping[str, Any], new: Mapping[str, Any]) -> Iterator[Change]:
    for key, value in new.items():
        if key not in old:
            yield Change(section, key, ChangeKind.ADDED, new=value)
        elif not _same(old[key], value):
            yield Change(section, key, ChangeKind.CHANGED, old=old[key], new=value)
    for key, value in old.items():
        if key not in new:
            yield Change(section, key, ChangeKind.REMOVED, old=value)


def diff_manifests(original: Any, current: Any) -> ManifestDiff:
    """Compute the difference between an original and a current manifest.

    Requirements and extra metadata are compared entry by entry; every other
    top-level key (repositories included) is compared as a whole value.
    Either side may have any shape; non-mapping sections count as empty.

    Args:
        original: Manifest content as it was loaded from disk
        current: Serialized form of the manifest after merging

    Returns:
        ManifestDiff with changes ordered by section, then by the current
        document's key order, with removals last
    """
    original = _as_mapping(original)
    current = _as_mapping(current)

    changes = list(
        _compare_entries(REQUIRE, _as_mapping(original.get(REQUIRE)), _as_mapping(current.get(REQUIRE)))
    )
    changes.extend(
        _compare_entries(EXTRA, _as_mapping(original.get(EXTRA)), _as_mapping(current.get(EXTRA)))
    )

    others_old = {k: v for k, v in original.items() if k not in (REQUIRE, EXTRA)}
    others_new = {k: v for k, v in current.items() if k not in (REQUIRE, EXTRA)}
    changes.extend(_compare_entries(MANIFEST, others_old, others_new))

    return ManifestDiff(changes=tuple(changes))
