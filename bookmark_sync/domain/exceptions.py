"""Engine exceptions.

Lock contention is not represented here: a refresh that cannot take the lock
returns ``None``. Missing derived objects are cache misses, not errors.
"""

from __future__ import annotations


class BookmarkEngineError(Exception):
    """Base exception for all engine errors."""

    def __init__(self, message: str, details: dict | None = None) -> None:
        """Initialize engine exception.

        Args:
            message: Human-readable error message.
            details: Optional dictionary with additional error context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class StoreFailureError(BookmarkEngineError):
    """Object storage failed in a way the caller must know about."""


class StoreReadError(StoreFailureError):
    """Reading the index or the full dataset failed."""


class StoreWriteError(StoreFailureError):
    """Persisting refresh output failed part way through."""


class UpstreamFetchError(BookmarkEngineError):
    """The injected fetch callback raised."""


class SlugMappingError(BookmarkEngineError):
    """A bookmark could not be given a slug."""
