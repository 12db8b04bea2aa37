"""Exceptions raised by session-recall.

Search and read failures propagate to the caller. Sync and indexing
failures are caught per file, logged, and aggregated into reports.
"""


class SessionRecallError(Exception):
    """Base exception for all session-recall errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InputValidationError(SessionRecallError, ValueError):
    """Raised for a malformed query, out-of-range limit, or unparsable date."""

    def __init__(self, message: str, field: str | None = None):
        details = {"field": field} if field else {}
        super().__init__(message, details)
        self.field = field


class SourceReadError(SessionRecallError):
    """Raised when a single transcript file cannot be read."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Cannot read {path}: {reason}", {"path": path})
        self.path = path


class EmbeddingCapabilityError(SessionRecallError):
    """Raised when the embedding model cannot be loaded or fails to encode."""


class PathResolutionError(SessionRecallError):
    """Raised when a read request points outside the archive or at a missing file."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"{reason}: {path}", {"path": path})
        self.path = path


class ConcurrentWriteConflict(SessionRecallError):
    """Raised when another process is already writing the same file."""

    def __init__(self, path: str):
        super().__init__(f"Another process is already writing {path}", {"path": path})
        self.path = path
