#!/usr/bin/env python3
"""
Data types for the feed ingestion pipeline.

UnifiedItem is the only shape handed to callers regardless of whether the
source was RSS 2.0, Atom or RDF. CacheEntry is owned by the cache store, and
ClientConfig/FetchAttempt describe one way of retrieving a URL.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple


@dataclass(frozen=True)
class UnifiedItem:
    title: str = ""
    link: str = ""
    published_at: str = ""
    snippet: str = ""

    def to_dict(self) -> Dict[str, str]:
        """Wire representation used by the real-time transport."""
        return {
            "title": self.title,
            "link": self.link,
            "pubDate": self.published_at,
            "contentSnippet": self.snippet,
        }


@dataclass(frozen=True)
class CacheEntry:
    items: Tuple[UnifiedItem, ...]
    expires_at: float


@dataclass(frozen=True)
class ClientConfig:
    """HTTP client settings for one attempt; proxy_url is None for direct fetches."""

    timeout: float = 10.0
    proxy_url: Optional[str] = None

    @property
    def proxied(self) -> bool:
        return self.proxy_url is not None


@dataclass(frozen=True)
class FetchAttempt:
    client: ClientConfig
    headers: Dict[str, str] = field(default_factory=dict)
    label: str = ""
