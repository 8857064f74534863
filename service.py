#!/usr/bin/env python3
"""
Ingestion service.

The outward-facing operations: fetch_one for on-demand requests and
warm_batch for proactive cache population. Both consult the cache first and
write successful, non-empty results back to it.
"""

from asyncio import Semaphore, gather
from time import time
from typing import Callable, Iterable, List, Optional

from cache import CacheStore
from config import config, get_logger
from errors import FeedIngestError, InvalidInputError
from fetcher import FeedFetcher
from models import UnifiedItem
from telemetry import trace_span

# Module-specific logger
logger = get_logger("service")


class IngestionService:
    """Cache-fronted feed fetching.

    The cache and fetcher are created by the caller (usually at startup) and
    shared by every request for the lifetime of the process.
    """

    def __init__(self, cache: CacheStore, fetcher: FeedFetcher, clock: Callable[[], float] = time) -> None:
        self.cache = cache
        self.fetcher = fetcher
        self.clock = clock

    @trace_span(
        "fetch_one",
        tracer_name="service",
        attr_from_args=lambda self, url: {"feed.url": url or ""},
    )
    async def fetch_one(self, url: str) -> List[UnifiedItem]:
        """Return items for url, from cache when fresh, else from the network.

        Failures propagate unchanged and are never cached; a stale entry is
        not used as a fallback.
        """
        url = (url or "").strip()
        if not url:
            raise InvalidInputError()

        entry = self.cache.get_fresh(url, self.clock())
        if entry is not None:
            logger.debug(f"Cache hit for {url}")
            return list(entry.items)

        items = await self.fetcher.fetch(url)
        self.cache.put(url, items, self.clock())
        return items

    async def _warm_one(self, url: str) -> None:
        if self.cache.get_fresh(url, self.clock()) is not None:
            logger.debug(f"Warm-up skipping fresh entry {url}")
            return
        try:
            items = await self.fetcher.fetch(url)
        except FeedIngestError as e:
            logger.warning(f"RSS warmup failed: url={url} error={e}")
            return
        except Exception as e:
            logger.error(f"Unexpected error warming {url}: {e}", exc_info=True)
            return
        if not items:
            return
        self.cache.put(url, items, self.clock())

    @trace_span(
        "warm_batch",
        tracer_name="service",
        attr_from_args=lambda self, urls, concurrency=1: {"warmup.concurrency": int(concurrency)},
    )
    async def warm_batch(self, urls: Iterable[str], concurrency: int = 1) -> None:
        """Pre-populate the cache for urls.

        Blank entries are skipped and per-URL failures are logged and
        ignored. URLs are processed in order, one at a time, unless
        concurrency is greater than one.
        """
        targets = [u.strip() for u in urls if u and u.strip()]
        if not targets:
            return
        logger.info(f"Warming cache for {len(targets)} feeds (concurrency={concurrency})")

        if concurrency <= 1:
            for url in targets:
                await self._warm_one(url)
            return

        semaphore = Semaphore(concurrency)

        async def _bounded(url: str) -> None:
            async with semaphore:
                await self._warm_one(url)

        await gather(*(_bounded(url) for url in targets))


def create_service(ttl_seconds: Optional[float] = None, proxy_url: Optional[str] = None,
                   timeout: Optional[float] = None) -> IngestionService:
    """Build a service with a fresh cache and fetcher from configuration defaults."""
    cache = CacheStore(ttl_seconds if ttl_seconds is not None else config.CACHE_TTL_SECONDS)
    fetcher = FeedFetcher(
        proxy_url=proxy_url if proxy_url is not None else config.get_proxy_url(),
        timeout=timeout,
    )
    return IngestionService(cache, fetcher)
