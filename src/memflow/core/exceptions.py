"""Exception hierarchy for memflow."""

from __future__ import annotations


class MemflowError(Exception):
    """Base class for memflow exceptions."""


class PersistenceError(MemflowError):
    """Raised when a key-value read or write fails."""


class MalformedSnapshotError(PersistenceError):
    """Raised when a persisted payload cannot be decoded."""


class InvalidSearchParamsError(MemflowError, ValueError):
    """Raised when search parameters are rejected."""
