"""Error taxonomy for manifest reconciliation."""

from pathlib import Path


class ReconcileError(Exception):
    """Base class for every error raised by the reconciliation engine."""


class ParseError(ReconcileError, ValueError):
    """Manifest content or a version string could not be interpreted."""


class ComparisonError(ParseError):
    """A version string has no form the comparator can order."""

    def __init__(self, version: str, reason: str = "no numeric version found"):
        self.version = version
        super().__init__(f"Cannot compare version {version!r}: {reason}")


class ManifestIOError(ReconcileError, OSError):
    """Reading, backing up or writing a manifest file failed."""

    def __init__(self, operation: str, path: Path | str | None, cause: Exception | None = None):
        self.operation = operation
        self.path = path
        message = f"Failed to {operation} {path}" if path else f"Cannot {operation}: manifest has no file path"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


class ValidationError(ReconcileError, ValueError):
    """A merge was requested with structurally invalid input."""
