#!/usr/bin/env python3
"""
Feed fetcher.

This module turns a caller-supplied feed URL into a list of unified items. A
scheme-less URL is expanded into https:// and http:// candidates, and each
candidate is tried with a small, ordered set of attempts: two browser-like
header sets over a direct connection, then the second header set through the
configured proxy. The first attempt whose body parses into at least one item
wins.
"""

from asyncio import TimeoutError, get_event_loop
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from aiohttp import ClientError, ClientSession, ClientTimeout

from config import config, get_logger
from errors import FetchError, InvalidInputError, ParseError
from models import ClientConfig, FetchAttempt, UnifiedItem
from parser import parse_feed_items
from telemetry import trace_span
from utils import summarize_proxy

# Module-specific logger
logger = get_logger("fetcher")

HTTP_OK = 200
DEFAULT_TIMEOUT_SECONDS = 10

USER_AGENT_WINDOWS_CHROME = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
USER_AGENT_MAC_SAFARI = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.3 Safari/605.1.15"
)
ACCEPT_FEEDS = "application/rss+xml, application/xml, text/xml, */*"
ACCEPT_LANGUAGE = "zh-CN,zh;q=0.9,en;q=0.8"


def resolve_candidates(url: str) -> List[str]:
    """Expand a possibly scheme-less URL into the ordered list of URLs to try."""
    if "://" in url:
        return [url]
    return [f"https://{url}", f"http://{url}"]


def build_referer(url: str) -> str:
    """Return "scheme://host/" for a parseable URL, or "" otherwise."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return ""
    host = parsed.netloc.rsplit("@", 1)[-1]
    if not parsed.scheme or not host:
        return ""
    return f"{parsed.scheme}://{host}/"


def build_headers(referer: str, user_agent: str) -> Dict[str, str]:
    headers = {
        "User-Agent": user_agent,
        "Accept": ACCEPT_FEEDS,
        "Accept-Language": ACCEPT_LANGUAGE,
        "Cache-Control": "no-cache",
    }
    if referer:
        headers["Referer"] = referer
    return headers


def build_attempts(url: str, proxy_url: Optional[str] = None, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> List[FetchAttempt]:
    """Plan the ordered fetch attempts for one resolved URL.

    Identity is rotated over direct connections first; the proxy, when one is
    available, is only used as the last resort.
    """
    referer = build_referer(url)
    headers_a = build_headers(referer, USER_AGENT_WINDOWS_CHROME)
    headers_b = build_headers(referer, USER_AGENT_MAC_SAFARI)
    direct = ClientConfig(timeout=timeout)
    attempts = [
        FetchAttempt(client=direct, headers=headers_a, label="direct-chrome"),
        FetchAttempt(client=direct, headers=headers_b, label="direct-safari"),
    ]
    if proxy_url:
        attempts.append(
            FetchAttempt(client=ClientConfig(timeout=timeout, proxy_url=proxy_url), headers=headers_b, label="proxy-safari")
        )
    return attempts


def format_client_error(error: BaseException) -> str:
    """Describe aiohttp client errors with any available status/errno."""
    parts: List[str] = [error.__class__.__name__]
    status = getattr(error, 'status', None)
    if status is not None:
        parts.append(f"status={status}")
    os_error = getattr(error, 'os_error', None)
    if os_error is not None:
        errno = getattr(os_error, 'errno', None)
        strerror = getattr(os_error, 'strerror', None)
        if errno is not None:
            parts.append(f"errno={errno}")
        if strerror:
            parts.append(str(strerror))
    message = str(error)
    if message:
        parts.append(message)
    return " ".join(parts)


async def fetch_body(session: ClientSession, url: str, attempt: FetchAttempt) -> bytes:
    """Perform one GET for url using attempt's client settings and headers.

    Returns the full body on HTTP 200.

    Raises:
        FetchError: on any non-200 status or network failure.
    """
    request_kwargs: Dict[str, Any] = {
        'headers': attempt.headers,
        'timeout': ClientTimeout(total=attempt.client.timeout),
    }
    if attempt.client.proxy_url:
        request_kwargs['proxy'] = attempt.client.proxy_url
    try:
        async with session.get(url, **request_kwargs) as response:
            if response.status != HTTP_OK:
                raise FetchError(f"HTTP status {response.status}", status=response.status)
            return await response.read()
    except TimeoutError as e:
        raise FetchError(f"timed out after {attempt.client.timeout:g}s", cause=e) from e
    except ClientError as e:
        raise FetchError(format_client_error(e), cause=e) from e
    except (OSError, ValueError) as e:
        # Malformed URLs surface here rather than at candidate resolution
        raise FetchError(f"{e.__class__.__name__} {e}".strip(), cause=e) from e


class FeedFetcher:
    """Fetches and normalizes one feed URL with candidate and attempt fallback."""

    def __init__(self, proxy_url: Optional[str] = None, timeout: Optional[float] = None,
                 session: Optional[ClientSession] = None) -> None:
        self.proxy_url = proxy_url
        self.timeout = timeout if timeout is not None else config.HTTP_TIMEOUT
        self.session = session
        self._owns_session = session is None
        self.executor: Optional[ThreadPoolExecutor] = None

    async def initialize(self) -> None:
        """Open the HTTP session (if one was not supplied) and the parse executor."""
        if self.session is None:
            self.session = ClientSession()
            self._owns_session = True
        if self.executor is None:
            self.executor = ThreadPoolExecutor(thread_name_prefix="feed-parse")
        logger.info(
            "FeedFetcher initialized (timeout=%ss, proxy=%s)",
            self.timeout,
            summarize_proxy(self.proxy_url) or "none",
        )

    async def close(self) -> None:
        """Close the owned HTTP session and the parse executor."""
        if self.session is not None and self._owns_session:
            await self.session.close()
        self.session = None
        if self.executor is not None:
            self.executor.shutdown(wait=False)
            self.executor = None
        logger.info("FeedFetcher closed")

    async def __aenter__(self) -> "FeedFetcher":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def run_in_executor(self, func, *args) -> Any:
        """Run a blocking function in the parse thread pool."""
        loop = get_event_loop()
        return await loop.run_in_executor(self.executor, partial(func, *args))

    @trace_span(
        "fetch_feed",
        tracer_name="fetcher",
        attr_from_args=lambda self, url: {"feed.url": url or ""},
    )
    async def fetch(self, url: str) -> List[UnifiedItem]:
        """Fetch url and return its items.

        Candidates are tried in order (https before http for bare hosts) and,
        for each, every planned attempt in order.

        Raises:
            InvalidInputError: url is empty or blank.
            FetchError: no attempt ever got an HTTP 200; this is the last one seen.
            ParseError: at least one body was fetched but none yielded items.
        """
        url = (url or "").strip()
        if not url:
            raise InvalidInputError()
        if self.session is None or self.executor is None:
            await self.initialize()

        last_fetch_error: Optional[FetchError] = None
        fetched_any = False

        for candidate in resolve_candidates(url):
            for attempt in build_attempts(candidate, self.proxy_url, self.timeout):
                logger.debug(f"Fetching {candidate} ({attempt.label})")
                try:
                    body = await fetch_body(self.session, candidate, attempt)
                except FetchError as e:
                    logger.debug(f"Attempt {attempt.label} failed for {candidate}: {e}")
                    last_fetch_error = e
                    continue

                fetched_any = True
                try:
                    items = await self.run_in_executor(parse_feed_items, body)
                except ParseError:
                    logger.debug(f"Attempt {attempt.label} for {candidate} returned an unparseable document ({len(body)} bytes)")
                    continue
                if items:
                    logger.info(f"Fetched {len(items)} items from {candidate} via {attempt.label}")
                    return items

        if fetched_any or last_fetch_error is None:
            raise ParseError()
        raise last_fetch_error
