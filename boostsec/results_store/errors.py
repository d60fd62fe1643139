"""Exceptions raised by the results store and the history log."""


class ResultsStoreError(Exception):
    """Base class for all results store errors."""


class InvalidHistoryLimitError(ResultsStoreError, ValueError):
    """Raised when a history limit is negative."""

    def __init__(self, limit: int) -> None:
        """Initialize error with the rejected limit."""
        super().__init__(
            f"Invalid history limit {limit}. "
            "A history limit must be a positive integer number"
        )
        self.limit = limit


class HistoryIntegrityError(ResultsStoreError):
    """Raised when the history file can't be read or rotated consistently."""


class HistoryModifiedExternallyError(HistoryIntegrityError):
    """Raised when the history file changes while it's being read or rotated."""

    def __init__(self, path: str) -> None:
        """Initialize error with the history file path."""
        super().__init__(
            f"The history file {path} was modified externally. "
            "Make sure the file doesn't change while the report is generated"
        )
        self.path = path


class HistoryShortReadError(HistoryIntegrityError):
    """Raised when a read returns fewer bytes than requested."""

    def __init__(self, path: str, expected: int, actual: int) -> None:
        """Initialize error with the expected and actual byte counts."""
        super().__init__(
            f"Can't read the history file {path}: the expected number of bytes "
            f"to read {expected} doesn't match the actual number {actual}"
        )
        self.path = path
        self.expected = expected
        self.actual = actual


class SessionStateError(ResultsStoreError, RuntimeError):
    """Raised when a session operation is called in the wrong stage."""
