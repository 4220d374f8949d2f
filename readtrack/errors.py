"""Exception types for the reading tracker."""

from typing import Any


class ReadTrackError(Exception):
    """Base exception for all tracker errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class StoreError(ReadTrackError):
    """A storage operation failed. `cause` is the underlying driver error."""

    def __init__(self, message: str, cause: BaseException | None = None,
                 details: dict[str, Any] | None = None):
        super().__init__(message, details)
        self.cause = cause

    def __str__(self) -> str:
        if self.cause is not None:
            return f"{self.message}: {self.cause}"
        return self.message


class StoreUnavailable(StoreError):
    """The backing store could not be opened."""
    pass


class StoreWriteFailed(StoreError):
    """A put failed, usually mid-aggregation."""
    pass


class StoreReadFailed(StoreError):
    """A get failed while loading an existing record."""
    pass
