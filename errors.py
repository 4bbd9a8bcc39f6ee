"""Error taxonomy shared by the export, import and sync pipelines.

Every failure raised by this tool derives from ``SyncToolError`` so the run
orchestrator can catch it once, record it in the run log and report it.
"""

from typing import Any, Dict, Optional


class SyncToolError(Exception):
    """Base class for all errors raised by the tool."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def describe(self) -> str:
        """Return a one-line ``ErrorClass: message`` description."""
        return f"{self.__class__.__name__}: {self.message}"


class UserInputError(SyncToolError):
    """Bad upload or unsupported input supplied by the operator."""


class PreconditionError(SyncToolError):
    """The run cannot start because something it needs is missing."""


class NoContentError(PreconditionError):
    """An export filter matched zero content items."""

    def __init__(self, message: str = "No content items matched the export filters",
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class RemoteSyncError(SyncToolError):
    """A push to or pull from a remote store failed."""

    def __init__(
        self,
        message: str,
        target: Optional[str] = None,
        path: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, details)
        self.target = target
        self.path = path
        self.status_code = status_code

    def describe(self) -> str:
        parts = [f"{self.__class__.__name__}: {self.message}"]
        if self.target:
            parts.append(f"target={self.target}")
        if self.path:
            parts.append(f"path={self.path}")
        if self.status_code is not None:
            parts.append(f"status={self.status_code}")
        return ' | '.join(parts)


class PersistenceError(SyncToolError):
    """The content repository refused a write, or a local file could not be written."""

    def __init__(self, message: str, filename: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.filename = filename

    def describe(self) -> str:
        base = super().describe()
        if self.filename:
            return f"{base} ({self.filename})"
        return base


__all__ = [
    'SyncToolError',
    'UserInputError',
    'PreconditionError',
    'NoContentError',
    'RemoteSyncError',
    'PersistenceError'
]
