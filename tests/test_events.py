import pytest

from cache import CacheStore
from errors import FetchError
from events import EVENT_DATA, EVENT_ERROR, RssEventHandler
from models import UnifiedItem
from service import IngestionService

ITEM = UnifiedItem(title="Hello", link="https://example.com/h", published_at="2024-01-01", snippet="hi")


class StubFetcher:
    def __init__(self, result):
        self.result = result

    async def fetch(self, url):
        if isinstance(self.result, Exception):
            raise self.result
        return list(self.result)


def make_handler(result):
    return RssEventHandler(IngestionService(CacheStore(), StubFetcher(result)))


@pytest.mark.asyncio
async def test_success_payload_uses_wire_field_names():
    event, body = await make_handler([ITEM]).handle({"url": " https://example.com/rss "})
    assert event == EVENT_DATA
    assert body == {
        "url": "https://example.com/rss",
        "items": [{
            "title": "Hello",
            "link": "https://example.com/h",
            "pubDate": "2024-01-01",
            "contentSnippet": "hi",
        }],
    }


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [{}, {"url": ""}, {"url": "   "}, {"url": 42}, "https://example.com", None])
async def test_invalid_payload_reports_error_without_url(payload):
    event, body = await make_handler([ITEM]).handle(payload)
    assert event == EVENT_ERROR
    assert body == {"error": "url is required"}


@pytest.mark.asyncio
async def test_fetch_failure_reports_url_and_message():
    event, body = await make_handler(FetchError("HTTP status 404", status=404)).handle({"url": "example.com"})
    assert event == EVENT_ERROR
    assert body == {"url": "example.com", "error": "HTTP status 404"}


@pytest.mark.asyncio
async def test_unexpected_failure_still_emits_error_event():
    handler = make_handler(RuntimeError("resolver exploded"))
    received = []

    def emit(event, body):
        received.append((event, body))

    await handler.dispatch({"url": "u"}, emit)

    assert received == [(EVENT_ERROR, {"url": "u", "error": "resolver exploded"})]


@pytest.mark.asyncio
async def test_unexpected_failure_without_message_reports_exception_type():
    event, body = await make_handler(KeyError()).handle({"url": "u"})
    assert event == EVENT_ERROR
    assert body == {"url": "u", "error": "KeyError"}


@pytest.mark.asyncio
async def test_dispatch_supports_sync_and_async_emit():
    handler = make_handler([ITEM])
    received = []

    def sync_emit(event, body):
        received.append(("sync", event))

    async def async_emit(event, body):
        received.append(("async", event))

    await handler.dispatch({"url": "u"}, sync_emit)
    await handler.dispatch({"url": ""}, async_emit)

    assert received == [("sync", EVENT_DATA), ("async", EVENT_ERROR)]
