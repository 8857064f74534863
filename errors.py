#!/usr/bin/env python3
"""Common error types shared across modules.

Provides shared lightweight exceptions to avoid circular imports.
"""

from typing import Optional


class FeedIngestError(Exception):
    """Base class for per-request ingestion failures."""


class InvalidInputError(FeedIngestError):
    """Raised when the caller supplies an empty or blank feed URL."""

    def __init__(self, message: str = "url is required"):
        super().__init__(message)


class FetchError(FeedIngestError):
    """Raised when a single HTTP attempt fails.

    Attributes:
        status: HTTP status code for non-200 responses, None for network errors.
        cause: The underlying exception, if any.
    """

    def __init__(self, message: str, status: Optional[int] = None, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.status = status
        self.cause = cause


class ParseError(FeedIngestError):
    """Raised when no supported feed format yields any items."""

    def __init__(self, message: str = "failed to parse feed"):
        super().__init__(message)

__all__ = ["FeedIngestError", "InvalidInputError", "FetchError", "ParseError"]
