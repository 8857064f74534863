import asyncio

import pytest
from aiohttp import ClientSession, web
from aiohttp.test_utils import TestServer

import fetcher as fetcher_module
from errors import FetchError, InvalidInputError, ParseError
from fetcher import FeedFetcher, build_attempts, fetch_body
from models import ClientConfig, FetchAttempt

RSS_BODY = b"""<?xml version="1.0"?>
<rss version="2.0"><channel>
  <item><title>One</title><link>https://example.com/1</link><pubDate>Tue, 02 Jan 2024 00:00:00 GMT</pubDate><description>first</description></item>
  <item><title>Two</title><link>https://example.com/2</link><description>second</description></item>
</channel></rss>"""


def make_app(seen):
    async def rss(request):
        seen.append(dict(request.headers))
        return web.Response(body=RSS_BODY, content_type="application/rss+xml")

    async def missing(request):
        seen.append(dict(request.headers))
        return web.Response(status=404)

    async def html(request):
        seen.append(dict(request.headers))
        return web.Response(text="<html><body>hello</body></html>", content_type="text/html")

    async def picky(request):
        # Rejects the first (Windows) identity, accepts the second
        seen.append(dict(request.headers))
        if "Windows" in request.headers.get("User-Agent", ""):
            return web.Response(status=403)
        return web.Response(body=RSS_BODY, content_type="application/xml")

    async def redirect(request):
        raise web.HTTPFound("/rss")

    async def slow(request):
        await asyncio.sleep(1)
        return web.Response(body=RSS_BODY, content_type="application/rss+xml")

    app = web.Application()
    app.router.add_get("/rss", rss)
    app.router.add_get("/missing", missing)
    app.router.add_get("/html", html)
    app.router.add_get("/picky", picky)
    app.router.add_get("/redirect", redirect)
    app.router.add_get("/slow", slow)
    return app


@pytest.mark.asyncio
async def test_fetch_body_returns_bytes_and_sends_headers():
    seen = []
    async with TestServer(make_app(seen)) as server:
        url = str(server.make_url("/rss"))
        attempt = build_attempts(url, timeout=5)[0]
        referer = f"http://{server.host}:{server.port}/"
        async with ClientSession() as session:
            body = await fetch_body(session, url, attempt)
    assert body == RSS_BODY
    assert seen[0]["User-Agent"] == attempt.headers["User-Agent"]
    assert seen[0]["Cache-Control"] == "no-cache"
    assert seen[0]["Referer"] == referer


@pytest.mark.asyncio
async def test_fetch_body_non_200_carries_status():
    async with TestServer(make_app([])) as server:
        url = str(server.make_url("/missing"))
        async with ClientSession() as session:
            with pytest.raises(FetchError) as excinfo:
                await fetch_body(session, url, FetchAttempt(client=ClientConfig(timeout=5)))
    assert excinfo.value.status == 404
    assert str(excinfo.value) == "HTTP status 404"


@pytest.mark.asyncio
async def test_fetch_body_follows_redirect_to_200():
    async with TestServer(make_app([])) as server:
        url = str(server.make_url("/redirect"))
        async with ClientSession() as session:
            body = await fetch_body(session, url, FetchAttempt(client=ClientConfig(timeout=5)))
    assert body == RSS_BODY


@pytest.mark.asyncio
async def test_fetch_body_timeout_is_fetch_error():
    async with TestServer(make_app([])) as server:
        url = str(server.make_url("/slow"))
        async with ClientSession() as session:
            with pytest.raises(FetchError) as excinfo:
                await fetch_body(session, url, FetchAttempt(client=ClientConfig(timeout=0.2)))
    assert excinfo.value.status is None
    assert excinfo.value.cause is not None


@pytest.mark.asyncio
async def test_fetch_body_connection_error_is_fetch_error(unused_tcp_port):
    url = f"http://127.0.0.1:{unused_tcp_port}/rss"
    async with ClientSession() as session:
        with pytest.raises(FetchError) as excinfo:
            await fetch_body(session, url, FetchAttempt(client=ClientConfig(timeout=5)))
    assert excinfo.value.status is None
    assert excinfo.value.cause is not None


@pytest.mark.asyncio
async def test_fetch_body_malformed_url_is_fetch_error():
    async with ClientSession() as session:
        with pytest.raises(FetchError):
            await fetch_body(session, "https://", FetchAttempt(client=ClientConfig(timeout=5)))


@pytest.mark.asyncio
async def test_feed_fetcher_returns_items_from_first_attempt():
    seen = []
    async with TestServer(make_app(seen)) as server:
        async with FeedFetcher(timeout=5) as feed_fetcher:
            items = await feed_fetcher.fetch(f"  {server.make_url('/rss')}  ")
    assert [i.title for i in items] == ["One", "Two"]
    assert items[0].published_at == "Tue, 02 Jan 2024 00:00:00 GMT"
    assert items[1].published_at == ""
    assert len(seen) == 1


@pytest.mark.asyncio
async def test_feed_fetcher_rotates_user_agent_after_rejection():
    seen = []
    async with TestServer(make_app(seen)) as server:
        async with FeedFetcher(timeout=5) as feed_fetcher:
            items = await feed_fetcher.fetch(str(server.make_url("/picky")))
    assert len(items) == 2
    assert len(seen) == 2
    assert "Windows" in seen[0]["User-Agent"]
    assert "Macintosh" in seen[1]["User-Agent"]


@pytest.mark.asyncio
async def test_feed_fetcher_all_fetches_fail_raises_last_fetch_error():
    seen = []
    async with TestServer(make_app(seen)) as server:
        async with FeedFetcher(timeout=5) as feed_fetcher:
            with pytest.raises(FetchError) as excinfo:
                await feed_fetcher.fetch(str(server.make_url("/missing")))
    assert excinfo.value.status == 404
    assert len(seen) == 2


@pytest.mark.asyncio
async def test_feed_fetcher_fetched_but_unparseable_is_parse_error():
    async with TestServer(make_app([])) as server:
        async with FeedFetcher(timeout=5) as feed_fetcher:
            with pytest.raises(ParseError) as excinfo:
                await feed_fetcher.fetch(str(server.make_url("/html")))
    assert str(excinfo.value) == "failed to parse feed"


@pytest.mark.asyncio
async def test_feed_fetcher_can_fetch_again_after_close():
    async with TestServer(make_app([])) as server:
        url = str(server.make_url("/rss"))
        feed_fetcher = FeedFetcher(timeout=5)
        await feed_fetcher.initialize()
        await feed_fetcher.close()

        items = await feed_fetcher.fetch(url)
        await feed_fetcher.close()
    assert [i.title for i in items] == ["One", "Two"]
    assert feed_fetcher.executor is None


@pytest.mark.asyncio
async def test_feed_fetcher_rejects_blank_url():
    feed_fetcher = FeedFetcher()
    with pytest.raises(InvalidInputError):
        await feed_fetcher.fetch("   ")
    await feed_fetcher.close()


@pytest.mark.asyncio
async def test_candidates_and_attempts_order_with_proxy(monkeypatch):
    calls = []

    async def fake_fetch_body(session, url, attempt):
        calls.append((url, attempt.label))
        raise FetchError(f"boom {len(calls)}")

    monkeypatch.setattr(fetcher_module, "fetch_body", fake_fetch_body)
    async with FeedFetcher(proxy_url="http://proxy.example:3128", timeout=5) as feed_fetcher:
        with pytest.raises(FetchError) as excinfo:
            await feed_fetcher.fetch("example.com/rss")

    assert calls == [
        ("https://example.com/rss", "direct-chrome"),
        ("https://example.com/rss", "direct-safari"),
        ("https://example.com/rss", "proxy-safari"),
        ("http://example.com/rss", "direct-chrome"),
        ("http://example.com/rss", "direct-safari"),
        ("http://example.com/rss", "proxy-safari"),
    ]
    assert str(excinfo.value) == "boom 6"


@pytest.mark.asyncio
async def test_parse_failure_then_fetch_failure_reports_parse_error(monkeypatch):
    async def fake_fetch_body(session, url, attempt):
        if attempt.label == "direct-chrome":
            return b"<html/>"
        raise FetchError("HTTP status 500", status=500)

    monkeypatch.setattr(fetcher_module, "fetch_body", fake_fetch_body)
    async with FeedFetcher(timeout=5) as feed_fetcher:
        with pytest.raises(ParseError):
            await feed_fetcher.fetch("http://example.com/rss")


@pytest.mark.asyncio
async def test_https_failure_falls_back_to_http_candidate(monkeypatch):
    calls = []

    async def fake_fetch_body(session, url, attempt):
        calls.append(url)
        if url.startswith("https://"):
            raise FetchError("ssl handshake failed")
        return RSS_BODY

    monkeypatch.setattr(fetcher_module, "fetch_body", fake_fetch_body)
    async with FeedFetcher(timeout=5) as feed_fetcher:
        items = await feed_fetcher.fetch("example.com/rss")

    assert len(items) == 2
    assert calls == ["https://example.com/rss", "https://example.com/rss", "http://example.com/rss"]
