"""
taxdash.errors — Error kinds raised across the dataset pipeline.

    ValidationError  → missing / invalid field; caller re-renders the form
    StorageError     → file unreadable / unwritable; operation aborted
    ParseError       → malformed JSON or CSV input; skipped during load
    BuildError       → dataset build produced nothing usable; exit 1
    AuthError        → dataset update token absent, mismatched or disabled
"""

from __future__ import annotations

from typing import Any


class DatasetError(Exception):
    """Base class for all taxdash errors."""


class ValidationError(DatasetError):
    """Raised when a record or submission fails validation.

    ``values`` carries the submitted form values (token blanked) so the
    caller can present them again for correction.
    """

    def __init__(self, message: str, values: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.values = values or {}


class StorageError(DatasetError):
    """Raised when a dataset file cannot be read or written."""

    def __init__(self, message: str, path: Any = None, values: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.path = path
        self.values = values or {}


class ParseError(DatasetError):
    """Raised when a source file or entry cannot be decoded."""

    def __init__(self, source: str, detail: str) -> None:
        super().__init__(f"{source}: {detail}")
        self.source = source
        self.detail = detail


class BuildError(DatasetError):
    """Raised when the dataset build cannot produce any record."""


class AuthError(DatasetError):
    """Raised when a dataset update is not authorised.

    The message never includes the configured token.
    """

    DISABLED = "disabled"
    MISSING = "missing"
    INVALID = "invalid"

    def __init__(self, reason: str, message: str, values: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.reason = reason
        self.message = message
        self.values = values or {}
