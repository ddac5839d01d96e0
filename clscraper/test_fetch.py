"""
Tests for the retrying HTTP fetcher, driven through httpx.MockTransport.
"""
import asyncio

import httpx
import pytest

from clscraper.cache import ResponseCache
from clscraper.fetch import (
    ACCESS_DENIED_BODY,
    PERMANENT,
    SUCCESS,
    TRANSIENT,
    HttpFetcher,
    backoff_delay_ms,
)
from clscraper.utils import USER_AGENTS

URL = "https://sandiego.craigslist.org/search/sss?query=bike"


class Recorder:
    """MockTransport handler that replays a list of responses and records requests."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        nxt = self.responses[0] if len(self.responses) == 1 else self.responses.pop(0)
        if isinstance(nxt, Exception):
            raise nxt
        status, body = nxt
        return httpx.Response(status, text=body)


def fetch_all(handler, urls, method="GET", **kwargs):
    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            fetcher = HttpFetcher(client=client, cache=ResponseCache(), base_delay_ms=0, jitter_ms=0, **kwargs)
            return [await fetcher.fetch(u, method) for u in urls]
    return asyncio.run(go())


def test_second_fetch_within_ttl_hits_cache():
    handler = Recorder((200, "<html>ok</html>"))
    first, second = fetch_all(handler, [URL, URL])
    assert len(handler.requests) == 1
    assert second.body == first.body == "<html>ok</html>"
    assert second.status == 200


def test_cache_hit_reports_no_attempts_and_leaves_entry_intact():
    handler = Recorder((200, "<html>ok</html>"))
    cache = ResponseCache()

    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            fetcher = HttpFetcher(client=client, cache=cache, base_delay_ms=0, jitter_ms=0)
            first = await fetcher.fetch(URL)
            second = await fetcher.fetch(URL)
            second.headers["x-changed"] = "1"
            second.attempts.append(first.attempts[0])
            third = await fetcher.fetch(URL)
            return first, second, third

    first, second, third = asyncio.run(go())
    assert len(handler.requests) == 1
    assert [a.outcome for a in first.attempts] == [SUCCESS]
    assert second is not first
    assert third.attempts == []
    assert "x-changed" not in third.headers
    assert third.body == "<html>ok</html>"


def test_non_get_requests_are_not_cached():
    handler = Recorder((200, ""))
    fetch_all(handler, [URL, URL], method="HEAD")
    assert len(handler.requests) == 2


def test_blocked_target_yields_synthetic_403_after_exact_retry_count():
    handler = Recorder((403, "blocked"))
    (response,) = fetch_all(handler, [URL], retries=2)
    assert len(handler.requests) == 2
    assert response.status == 403
    assert "Access Denied" in response.body
    assert response.body == ACCESS_DENIED_BODY
    assert response.synthetic
    assert [a.outcome for a in response.attempts] == [TRANSIENT, TRANSIENT]


def test_retry_warnings_name_the_url(caplog):
    handler = Recorder((429, "slow down"))
    with caplog.at_level("WARNING", logger="clscraper.fetch"):
        fetch_all(handler, [URL], retries=2)
    messages = [r.getMessage() for r in caplog.records]
    assert f"Got 429 from {URL}, retrying with a different User-Agent..." in messages
    assert f"Failed to fetch {URL} after 2 attempts, returning access-denied response" in messages


def test_retry_count_is_exact_for_network_errors():
    handler = Recorder(httpx.ConnectError("connection refused"))
    (response,) = fetch_all(handler, [URL], retries=4)
    assert len(handler.requests) == 4
    assert response.status == 403
    assert response.synthetic
    assert all(a.error and "ConnectError" in a.error for a in response.attempts)


def test_throttled_then_ok():
    handler = Recorder((429, ""), (403, ""), (200, "<html>finally</html>"))
    (response,) = fetch_all(handler, [URL], retries=5)
    assert len(handler.requests) == 3
    assert response.ok
    assert response.body == "<html>finally</html>"
    assert [a.outcome for a in response.attempts] == [TRANSIENT, TRANSIENT, SUCCESS]


def test_other_errors_are_returned_without_retry_or_caching():
    handler = Recorder((404, "gone"))
    first, second = fetch_all(handler, [URL, URL], retries=5)
    assert len(handler.requests) == 2
    assert first.status == 404
    assert not first.synthetic
    assert first.attempts[-1].outcome == PERMANENT


def test_every_attempt_rotates_browser_headers():
    handler = Recorder((403, ""))
    fetch_all(handler, [URL], retries=3)
    for request in handler.requests:
        assert request.headers["User-Agent"] in USER_AGENTS
        assert request.headers["Cookie"].startswith("cl_b=")
        assert request.headers["Referer"].startswith("https://")


def test_caller_headers_win():
    handler = Recorder((200, ""))
    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            fetcher = HttpFetcher(client=client, cache=ResponseCache(), base_delay_ms=0, jitter_ms=0)
            await fetcher.fetch(URL, headers={"User-Agent": "custom-agent"})
    asyncio.run(go())
    assert handler.requests[0].headers["User-Agent"] == "custom-agent"


def test_backoff_schedule():
    assert backoff_delay_ms(0, 2000, 2000) == 0
    assert backoff_delay_ms(1, 2000, 0) == 2000
    assert backoff_delay_ms(3, 2000, 0) == 8000
    for _ in range(20):
        delay = backoff_delay_ms(2, 100, 50)
        assert 200 <= delay <= 250


def test_retries_must_be_positive():
    with pytest.raises(ValueError):
        HttpFetcher(retries=0)
