"""
Error taxonomy for staff imports and queries.

``Unauthenticated`` and a batch-level ``Forbidden`` abort a batch before any
row is touched. ``ValidationSkip``, a row-level ``Forbidden`` and
``StoreError`` are caught per row and reported in the import result.
"""

from __future__ import annotations


class StaffImportError(Exception):
    """Base class for staff importer failures."""


class Unauthenticated(StaffImportError):
    """No valid caller identity could be resolved from the credential."""

    def __init__(self, message: str = "Authentication required.") -> None:
        super().__init__(message)


class Forbidden(StaffImportError):
    """The caller may not act on the requested unit or record."""


class ValidationSkip(StaffImportError):
    """A single row cannot be normalized into a staff record."""

    def __init__(self, reason: str, *, row_number: int | None = None, name: str | None = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.row_number = row_number
        self.name = name


class StoreError(StaffImportError):
    """The store rejected the write for one row or one deactivation."""


def describe_row_error(row_number: int, name: str | None, error: Exception) -> str:
    """Format a per-row error so a human can find the spreadsheet row."""

    label = (name or "").strip() or "Unknown"
    return f"Row {row_number} ({label}): {error}"


__all__ = [
    "StaffImportError",
    "Unauthenticated",
    "Forbidden",
    "ValidationSkip",
    "StoreError",
    "describe_row_error",
]
