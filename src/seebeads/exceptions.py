"""Custom exceptions for seebeads."""

from typing import List, Optional


class SeeBeadsError(Exception):
    """Base exception for all seebeads errors."""

    pass


class SourceError(SeeBeadsError):
    """Raised when a beads source cannot be read at all.

    Aborts the single ``load`` or ``rebuild`` call that hit it. Per-record
    problems are reported as ``ParseError`` diagnostics instead.
    """

    def __init__(self, message: str, path: Optional[str] = None):
        """
        Initialize source error.

        Args:
            message: Error message
            path: Optional path of the source that failed
        """
        super().__init__(message)
        self.path = path


class NoTableFoundError(SourceError):
    """Raised when a SQLite source has no table that can hold issues."""

    def __init__(self, message: str, path: Optional[str] = None, available: Optional[List[str]] = None):
        super().__init__(message, path=path)
        self.available = available or []


class WatcherError(SeeBeadsError):
    """Raised when the filesystem watch cannot be set up."""

    pass
