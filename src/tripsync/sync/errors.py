"""Sync error types."""

from __future__ import annotations


class SyncError(Exception):
    """Base class for sync failures."""


class DocumentFormatError(SyncError, ValueError):
    """Raised when a stored document cannot be decoded into a plan."""


class PushError(SyncError):
    """Raised when a backend write fails.

    The operation has already been marked failed when this is raised.  The
    backend exception is chained as ``__cause__``.
    """

    def __init__(self, message: str, *, operation_id: str, document_id: str, kind: str) -> None:
        super().__init__(message)
        self.operation_id = operation_id
        self.document_id = document_id
        self.kind = kind


class BackendError(SyncError):
    """Raised by backends when a write is rejected or the transport fails."""
