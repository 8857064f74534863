#!/usr/bin/env python3
"""
Periodic cache warm-up.

Runs IngestionService.warm_batch over the configured URL list on a fixed
interval so that on-demand requests mostly hit a fresh cache. Per-URL
failures are handled inside warm_batch; the loop itself only stops when
cancelled.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

from config import config, get_logger
from service import IngestionService
from telemetry import trace_span
from utils import format_duration

# Module-specific logger
logger = get_logger("scheduler")

ERROR_RETRY_SECONDS = 60


class WarmupScheduler:
    """Interval scheduler for cache warm-up runs."""

    def __init__(
        self,
        service: IngestionService,
        urls: Optional[Sequence[str]] = None,
        interval_minutes: Optional[int] = None,
        concurrency: Optional[int] = None,
        run_immediately: Optional[bool] = None,
    ):
        self.service = service
        self.urls: List[str] = list(urls if urls is not None else config.WARMUP_URLS)
        self.interval_minutes = interval_minutes or config.WARMUP_INTERVAL_MINUTES
        self.concurrency = concurrency or config.WARMUP_CONCURRENCY
        self.run_immediately = config.WARMUP_RUN_IMMEDIATELY if run_immediately is None else run_immediately
        self.last_run: Optional[datetime] = None
        self.last_duration: Optional[float] = None
        self.runs = 0

    @property
    def interval_seconds(self) -> float:
        return self.interval_minutes * 60

    def next_run_time(self, from_time: Optional[datetime] = None) -> datetime:
        """Next scheduled run in UTC; immediately if nothing has run yet and run_immediately is set."""
        if from_time is None:
            from_time = datetime.now(timezone.utc)
        if self.last_run is None:
            if self.run_immediately:
                return from_time
            return from_time + timedelta(seconds=self.interval_seconds)
        return max(from_time, self.last_run + timedelta(seconds=self.interval_seconds))

    @trace_span("scheduler.warmup_run", tracer_name="scheduler")
    async def run_once(self) -> float:
        """Warm every configured URL once and return the elapsed seconds."""
        start = datetime.now(timezone.utc)
        await self.service.warm_batch(self.urls, concurrency=self.concurrency)
        end = datetime.now(timezone.utc)
        self.last_run = start
        self.last_duration = (end - start).total_seconds()
        self.runs += 1
        logger.info(
            f"Warm-up run {self.runs} finished in {format_duration(self.last_duration)} "
            f"({len(self.service.cache)} feeds cached)"
        )
        return self.last_duration

    async def run_forever(self) -> None:
        """Loop warm-up runs until cancelled."""
        if not self.urls:
            logger.warning("No warm-up URLs configured - scheduler has nothing to do")
            return

        logger.info(
            f"Starting warm-up scheduler for {len(self.urls)} feeds every {self.interval_minutes} minutes"
        )
        while True:
            try:
                now = datetime.now(timezone.utc)
                sleep_time = (self.next_run_time(now) - now).total_seconds()
                if sleep_time > 0:
                    logger.info(f"Sleeping {format_duration(sleep_time)} until next warm-up run")
                    await asyncio.sleep(sleep_time)
                await self.run_once()
            except asyncio.CancelledError:
                logger.info("Warm-up scheduler cancelled - shutting down")
                break
            except Exception as e:
                logger.error(f"Error in warm-up run: {e}", exc_info=True)
                await asyncio.sleep(ERROR_RETRY_SECONDS)

    def get_status(self) -> Dict[str, Any]:
        next_run = self.next_run_time()
        return {
            "url_count": len(self.urls),
            "interval_minutes": self.interval_minutes,
            "concurrency": self.concurrency,
            "runs": self.runs,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "last_duration_seconds": self.last_duration,
            "next_run": next_run.isoformat(),
        }
