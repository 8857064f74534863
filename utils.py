#!/usr/bin/env python3
"""
Utility classes and functions for the feed ingestion pipeline.

This module contains shared helpers used by the parser, fetcher, cache and
scheduler: snippet normalization, a reader/writer lock, and small formatting
helpers for logs.
"""

from threading import Condition, Lock
from contextlib import contextmanager
from typing import Iterator, Optional
from urllib.parse import urlparse

from config import get_logger

# Module-specific logger
logger = get_logger("utils")

SNIPPET_MAX_LENGTH = 100
ELLIPSIS = "..."
CDATA_OPEN = "<![CDATA["
CDATA_CLOSE = "]]>"


def truncate_string(text: str, max_length: int, suffix: str = ELLIPSIS) -> str:
    """Truncate a string to at most max_length code points, appending suffix if cut.

    Args:
        text: The text to potentially truncate
        max_length: Maximum number of characters kept from the original text
        suffix: Marker appended after the kept characters when truncating

    Returns:
        The original text, or its first max_length characters followed by suffix
    """
    if not text or len(text) <= max_length:
        return text
    return text[:max_length] + suffix


def clean_description(text: Optional[str]) -> str:
    """Turn a raw description field into a short plain snippet.

    Only the CDATA wrapper and literal <br>/<br/> are handled; any other
    markup is passed through as-is. The result is at most 100 characters
    plus an ellipsis.
    """
    if not text:
        return ""
    if text.startswith(CDATA_OPEN) and text.endswith(CDATA_CLOSE) and len(text) >= len(CDATA_OPEN) + len(CDATA_CLOSE):
        text = text[len(CDATA_OPEN):-len(CDATA_CLOSE)]
    text = text.replace("<br>", " ").replace("<br/>", " ")
    return truncate_string(text, SNIPPET_MAX_LENGTH)


class ReadWriteLock:
    """A shared-read / exclusive-write lock.

    Any number of readers may hold the lock at once; a writer waits until
    all readers have left and blocks new readers while it is waiting, so
    writers are not starved by a steady stream of reads.
    """

    def __init__(self):
        self._cond = Condition(Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True

    def release_write(self) -> None:
        with self._cond:
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()


def summarize_proxy(proxy_url: Optional[str]) -> Optional[str]:
    """Provide a redacted proxy identifier (scheme://host:port) for logging."""
    if not proxy_url:
        return None
    try:
        parsed = urlparse(proxy_url)
        if parsed.scheme and parsed.hostname:
            host = parsed.hostname
            if parsed.port:
                host = f"{host}:{parsed.port}"
            return f"{parsed.scheme}://{host}"
    except ValueError:
        return "<invalid proxy>"
    return "<proxy>"


def format_duration(seconds: float) -> str:
    """Format a duration in seconds to a human-readable string.

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted duration string (e.g., "1h 23m 45s")
    """
    if seconds < 0:
        return "0s"

    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)

    parts = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    if secs > 0 or not parts:
        parts.append(f"{secs}s")

    return " ".join(parts)
