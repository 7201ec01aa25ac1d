"""
Exception hierarchy for the migration toolkit.

Setup errors abort the run before any record is touched. Transform errors
are caught per record by the engine and written to the report. Store
errors are caught per batch (writes) or per asset (uploads).
"""

from __future__ import annotations


class MigrationError(Exception):
    """Base class for every error raised by the toolkit."""


class SetupError(MigrationError):
    """Unrecoverable configuration problem (e.g. missing API token)."""


class SourceFileError(SetupError):
    """A source CSV/SQL file is missing or cannot be read."""

    def __init__(self, path: object, reason: str = "") -> None:
        self.path = str(path)
        self.reason = reason
        message = f"Source file not readable: {self.path}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class TransformError(MigrationError):
    """A single source record could not be turned into a target document."""


class RecordSkipped(MigrationError):
    """A source record is intentionally not migrated (e.g. unpublished dealer)."""


class SanityError(MigrationError):
    """The target store rejected a request."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)
