import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from cache import CacheStore
from models import UnifiedItem
from scheduler import WarmupScheduler
from service import IngestionService


class RecordingService(IngestionService):
    def __init__(self):
        super().__init__(CacheStore(), fetcher=None)
        self.batches = []

    async def warm_batch(self, urls, concurrency=1):
        self.batches.append((list(urls), concurrency))
        for url in urls:
            self.cache.put(url, [UnifiedItem(title=url)], now=0)


@pytest.mark.asyncio
async def test_run_once_warms_configured_urls():
    service = RecordingService()
    scheduler = WarmupScheduler(service, urls=["a", "b"], interval_minutes=5, concurrency=2)

    await scheduler.run_once()

    assert service.batches == [(["a", "b"], 2)]
    assert scheduler.runs == 1
    assert scheduler.last_run is not None
    assert scheduler.get_status()["runs"] == 1


def test_next_run_time_immediate_then_interval():
    scheduler = WarmupScheduler(RecordingService(), urls=["a"], interval_minutes=10, run_immediately=True)
    now = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
    assert scheduler.next_run_time(now) == now

    scheduler.last_run = now
    assert scheduler.next_run_time(now + timedelta(minutes=1)) == now + timedelta(minutes=10)
    later = now + timedelta(minutes=30)
    assert scheduler.next_run_time(later) == later


def test_next_run_time_waits_when_not_immediate():
    scheduler = WarmupScheduler(RecordingService(), urls=["a"], interval_minutes=10, run_immediately=False)
    now = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
    assert scheduler.next_run_time(now) == now + timedelta(minutes=10)


@pytest.mark.asyncio
async def test_run_forever_without_urls_returns():
    scheduler = WarmupScheduler(RecordingService(), urls=[], interval_minutes=1)
    await asyncio.wait_for(scheduler.run_forever(), timeout=1)


@pytest.mark.asyncio
async def test_run_forever_stops_on_cancel():
    service = RecordingService()
    scheduler = WarmupScheduler(service, urls=["a"], interval_minutes=60, run_immediately=True)

    task = asyncio.create_task(scheduler.run_forever())
    for _ in range(50):
        if service.batches:
            break
        await asyncio.sleep(0.01)
    task.cancel()
    await asyncio.wait_for(task, timeout=1)

    assert service.batches == [(["a"], scheduler.concurrency)]
