"""
Browser-mode tests with in-memory stand-ins for the Playwright browser, context and page.
"""
import asyncio

import pytest
from playwright.async_api import Error as PlaywrightError, TimeoutError as PlaywrightTimeout

from clscraper import browser as browser_module
from clscraper.browser import STEALTH_SCRIPT, BrowserFetcher, infinite_scroll, proxy_settings
from clscraper.cache import ResponseCache
from clscraper.errors import BrowserFetchError

SEARCH_URL = "https://sandiego.craigslist.org/search/sss?query=bike"
DETAIL_URL = "https://sandiego.craigslist.org/nsd/bik/d/road-bike/7700000001.html"


class FakeResponse:
    def __init__(self, status=200):
        self.status = status
        self.headers = {"content-type": "text/html"}


class FakePage:
    def __init__(self, heights=(1000,), html="<html></html>", goto_error=None, selector_found=True):
        self.heights = list(heights)
        self.html = html
        self.goto_error = goto_error
        self.selector_found = selector_found
        self.scrolls = 0
        self.goto_calls = []
        self.navigation_timeout = None

    def set_default_navigation_timeout(self, timeout):
        self.navigation_timeout = timeout

    async def goto(self, url, wait_until=None, timeout=None):
        self.goto_calls.append((url, wait_until, timeout))
        if self.goto_error:
            raise self.goto_error
        return FakeResponse()

    async def wait_for_selector(self, selector, timeout=None):
        if not self.selector_found:
            raise PlaywrightTimeout("Timeout exceeded")

    async def evaluate(self, expression):
        if expression == "document.body.scrollHeight":
            return self.heights.pop(0) if len(self.heights) > 1 else self.heights[0]
        self.scrolls += 1

    async def wait_for_function(self, expression, arg=None, timeout=None):
        raise PlaywrightTimeout("Timeout exceeded")

    async def content(self):
        return self.html


class FakeContext:
    def __init__(self, page):
        self.page = page
        self.closed = False
        self.init_scripts = []
        self.cookies = []

    async def add_init_script(self, script):
        self.init_scripts.append(script)

    async def add_cookies(self, cookies):
        self.cookies.extend(cookies)

    async def new_page(self):
        return self.page

    async def close(self):
        self.closed = True


class FakeBrowser:
    def __init__(self, page):
        self.page = page
        self.contexts = []

    async def new_context(self, **kwargs):
        ctx = FakeContext(self.page)
        ctx.kwargs = kwargs
        self.contexts.append(ctx)
        return ctx


def make_fetcher(page, **kwargs):
    browser = FakeBrowser(page)
    fetcher = BrowserFetcher(browser=browser, cache=ResponseCache(), max_scrolls=5,
                             scroll_delay_ms=0, **kwargs)
    return fetcher, browser


def test_infinite_scroll_stops_when_height_stabilizes():
    page = FakePage(heights=[1000, 2000, 2000, 3000])
    scrolls = asyncio.run(infinite_scroll(page, max_scrolls=10, scroll_delay_ms=0))
    assert scrolls == 2
    assert page.scrolls == 2


def test_infinite_scroll_respects_max_scrolls():
    page = FakePage(heights=[1000, 2000, 3000, 4000, 5000, 6000])
    scrolls = asyncio.run(infinite_scroll(page, max_scrolls=3, scroll_delay_ms=0))
    assert scrolls == 3


def test_search_fetch_uses_fresh_context_and_closes_it():
    page = FakePage(heights=[1000, 1000], html="<html><li class='result-row'></li></html>")
    fetcher, browser = make_fetcher(page)
    response = asyncio.run(fetcher.fetch(SEARCH_URL))

    assert response.status == 200
    assert "result-row" in response.body
    assert len(browser.contexts) == 1
    ctx = browser.contexts[0]
    assert ctx.closed
    assert ctx.init_scripts == [STEALTH_SCRIPT]
    assert ctx.cookies[0]["url"] == "https://sandiego.craigslist.org"
    assert ctx.kwargs["viewport"] == {"width": 1920, "height": 1080}
    assert "User-Agent" not in ctx.kwargs["extra_http_headers"]
    assert page.goto_calls[0][1] == "networkidle"


def test_missing_result_selector_is_not_fatal():
    page = FakePage(heights=[1000], selector_found=False, html="<html>empty</html>")
    fetcher, _ = make_fetcher(page)
    response = asyncio.run(fetcher.fetch(SEARCH_URL))
    assert response.ok
    assert response.body == "<html>empty</html>"


def test_detail_pages_are_settled_instead_of_scrolled(monkeypatch):
    settled = []

    async def fake_settle(page, pause_ms=1500):
        settled.append(page)

    monkeypatch.setattr(browser_module, "settle_detail_page", fake_settle)
    page = FakePage(html="<html>posting</html>")
    fetcher, _ = make_fetcher(page)
    asyncio.run(fetcher.fetch(DETAIL_URL))
    assert settled == [page]
    assert page.scrolls == 0


def test_responses_are_cached():
    page = FakePage(heights=[1000])
    fetcher, browser = make_fetcher(page)

    async def go():
        await fetcher.fetch(SEARCH_URL)
        return await fetcher.fetch(SEARCH_URL)

    asyncio.run(go())
    assert len(browser.contexts) == 1


def test_navigation_error_raises_and_closes_context():
    page = FakePage(goto_error=PlaywrightError("net::ERR_CONNECTION_RESET"))
    fetcher, browser = make_fetcher(page)
    with pytest.raises(BrowserFetchError):
        asyncio.run(fetcher.fetch(SEARCH_URL))
    assert browser.contexts[0].closed


def test_proxy_settings():
    assert proxy_settings(None) is None
    assert proxy_settings("http://user:pw@proxy.local:3128") == {
        "server": "http://proxy.local:3128",
        "username": "user",
        "password": "pw",
    }
    assert proxy_settings("socks5://proxy.local:1080") == {"server": "socks5://proxy.local:1080"}


def test_cached_page_is_a_copy_without_attempts():
    page = FakePage(heights=[1000])
    fetcher, browser = make_fetcher(page)

    async def go():
        first = await fetcher.fetch(SEARCH_URL)
        second = await fetcher.fetch(SEARCH_URL)
        return first, second

    first, second = asyncio.run(go())
    assert second is not first
    assert second.body == first.body
    assert second.attempts == []
