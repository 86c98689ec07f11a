"""Version ordering for composer-style constraint strings."""

import re
from dataclasses import dataclass
from functools import lru_cache, total_ordering

from packaging.version import InvalidVersion
from packaging.version import Version as PackagingVersion

from .errors import ComparisonError

# Alternatives ("^1.2 || ^2.0") and AND ranges (">=1.2 <2.0", ">=1.2,<2.0")
_ALTERNATIVES_RE = re.compile(r"\s*\|\|?\s*")
_RANGE_SPLIT_RE = re.compile(r"\s*,\s*|\s+")
_OPERATOR_RE = re.compile(r"^(?:\^|~|>=|<=|>|<|==|=|!=)\s*")
_OPERATOR_SPACE_RE = re.compile(r"(\^|~|>=|<=|>|<|==|=|!=)\s+")
_STABILITY_FLAG_RE = re.compile(r"@(?:dev|alpha|beta|rc|stable)$", re.IGNORECASE)
_CORE_PREFIX_RE = re.compile(r"^\d+\.x-(?=\d)", re.IGNORECASE)  # drupal "8.x-1.5", not "2.x-dev"
_WILDCARD_RE = re.compile(r"(?:\.(?:x|\*))+(?=-|$)", re.IGNORECASE)
_STABLE_SUFFIX_RE = re.compile(r"[-_.]?stable$", re.IGNORECASE)
_PATCH_SUFFIX_RE = re.compile(r"[-_.]?(?:patch|pl|p)(\d*)$", re.IGNORECASE)
_NUMERIC_CORE_RE = re.compile(r"^(\d+(?:\.\d+)*)(.*)$")


@total_ordering
@dataclass(frozen=True)
class Version:
    """A parsed, comparable version.

    ``release`` holds the PEP 440 interpretation of the constraint's numeric
    part. ``remainder`` is only set when the text had a numeric core followed
    by something PEP 440 does not understand; it then breaks ties as a plain
    string.
    """

    raw: str
    release: PackagingVersion
    remainder: str = ""

    @property
    def _key(self) -> tuple[PackagingVersion, str]:
        return (self.release, self.remainder)

    def __eq__(self, other):
        if not isinstance(other, Version):
            return NotImplemented
        return self._key == other._key

    def __lt__(self, other):
        if not isinstance(other, Version):
            return NotImplemented
        return self._key < other._key

    def __hash__(self):
        return hash(self._key)

    def __str__(self) -> str:
        return self.raw


def _normalize(term: str) -> str:
    """Strip composer constraint decoration down to a bare version."""
    text = _STABILITY_FLAG_RE.sub("", term.strip())
    text = _OPERATOR_RE.sub("", text)
    if text[:1] in ("v", "V"):
        text = text[1:]
    text = _CORE_PREFIX_RE.sub("", text)
    text = _WILDCARD_RE.sub("", text)
    text = _STABLE_SUFFIX_RE.sub("", text)
    return _PATCH_SUFFIX_RE.sub(lambda m: f".post{m.group(1) or 0}", text)


def _parse_term(raw: str, term: str) -> Version:
    text = _normalize(term)
    try:
        return Version(raw=raw, release=PackagingVersion(text))
    except InvalidVersion:
        pass

    match = _NUMERIC_CORE_RE.match(text)
    if not match:
        raise ComparisonError(raw)
    return Version(raw=raw, release=PackagingVersion(match.group(1)), remainder=match.group(2))


def parse_version(text: str) -> Version:
    """Parse a version or constraint string into a comparable ``Version``.

    Args:
        text: A version such as ``1.2.0`` or a constraint such as ``^8.3``,
            ``~1.0@beta`` or ``8.x-1.5``

    Returns:
        Parsed Version; the original text is kept in ``raw``

    Raises:
        ComparisonError: If no numeric version can be found
    """
    if not isinstance(text, str):
        raise ComparisonError(str(text), f"expected a string, got {type(text).__name__}")
    if not text.strip():
        raise ComparisonError(text, "empty version")
    return _parse_constraint(text)


@lru_cache(maxsize=2048)
def _parse_constraint(text: str) -> Version:
    alternatives = [alt for alt in _ALTERNATIVES_RE.split(text.strip()) if alt]
    candidates = []
    for alternative in alternatives:
        first_term = _RANGE_SPLIT_RE.split(_OPERATOR_SPACE_RE.sub(r"\1", alternative))[0]
        candidates.append(_parse_term(text, first_term))
    if not candidates:
        raise ComparisonError(text)
    return max(candidates)


def compare_versions(left: str, right: str) -> int:
    """Compare two version strings, returning -1, 0 or 1."""
    a, b = parse_version(left), parse_version(right)
    if a > b:
        return 1
    if a < b:
        return -1
    return 0
