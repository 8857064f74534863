#!/usr/bin/env python3
"""
Feed Ingest command-line entry point.

Modes:
- fetch: fetch and normalize one feed URL and print its items
- warm: warm the in-memory cache once for the given (or configured) URLs
- scheduled: keep the cache warm on the configured interval until interrupted
- status: print the effective configuration and warm-up schedule
"""

import argparse
import asyncio
import json
import sys
from typing import Any, Dict, List, Optional

from cache import CacheStore
from config import config, get_logger
from errors import FeedIngestError
from service import IngestionService, create_service
from scheduler import WarmupScheduler
from telemetry import init_telemetry

# Module-specific logger
logger = get_logger("main")


async def run_fetch(url: str, as_json: bool = False) -> bool:
    service = create_service()
    try:
        items = await service.fetch_one(url)
    except FeedIngestError as e:
        logger.error(f"Fetch failed for {url}: {e}")
        if as_json:
            print(json.dumps({"url": url.strip(), "error": str(e)}, ensure_ascii=False))
        return False
    finally:
        await service.fetcher.close()

    if as_json:
        print(json.dumps({"url": url.strip(), "items": [i.to_dict() for i in items]}, ensure_ascii=False, indent=2))
    else:
        for item in items:
            print(f"- {item.title}")
            if item.link:
                print(f"  {item.link}")
            if item.published_at:
                print(f"  {item.published_at}")
    return True


async def run_warm(urls: Optional[List[str]] = None) -> bool:
    service = create_service()
    targets = urls or config.WARMUP_URLS
    try:
        await service.warm_batch(targets, concurrency=config.WARMUP_CONCURRENCY)
    finally:
        await service.fetcher.close()
    logger.info(f"Warm-up complete: {len(service.cache)} of {len(targets)} feeds cached")
    return True


async def run_scheduled(service: Optional[IngestionService] = None) -> None:
    service = service or create_service()
    scheduler = WarmupScheduler(service)
    try:
        await scheduler.run_forever()
    finally:
        await service.fetcher.close()


def build_status(service: Optional[IngestionService] = None) -> Dict[str, Any]:
    """Effective configuration plus the warm-up schedule it implies."""
    scheduler = WarmupScheduler(service or IngestionService(CacheStore(config.CACHE_TTL_SECONDS), fetcher=None))
    return {
        "config": config.get_config_summary(),
        "scheduler": scheduler.get_status(),
    }


def print_status() -> None:
    print(json.dumps(build_status(), indent=2))


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description='Feed Ingest')
    subparsers = parser.add_subparsers(dest='mode', required=True)

    fetch_parser = subparsers.add_parser('fetch', help='Fetch and normalize a single feed')
    fetch_parser.add_argument('url', help='Feed URL (scheme optional)')
    fetch_parser.add_argument('--json', action='store_true', help='Print the transport payload as JSON')

    warm_parser = subparsers.add_parser('warm', help='Warm the cache once')
    warm_parser.add_argument('urls', nargs='*', help='URLs to warm (defaults to feeds.yaml)')

    subparsers.add_parser('scheduled', help='Keep the cache warm on an interval')
    subparsers.add_parser('status', help='Show effective configuration and warm-up schedule')

    args = parser.parse_args()
    init_telemetry("feed-ingest")

    try:
        if args.mode == 'fetch':
            success = asyncio.run(run_fetch(args.url, as_json=args.json))
            sys.exit(0 if success else 1)
        elif args.mode == 'warm':
            success = asyncio.run(run_warm(args.urls))
            sys.exit(0 if success else 1)
        elif args.mode == 'scheduled':
            asyncio.run(run_scheduled())
        elif args.mode == 'status':
            print_status()
    except KeyboardInterrupt:
        logger.info("Shutting down")


if __name__ == "__main__":
    main()
