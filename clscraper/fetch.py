"""
Plain HTTP fetching with retries, header rotation, proxying and response caching.
"""
import asyncio
import logging
import random
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional

import httpx

from .cache import ResponseCache, shared_cache
from .config import config
from .parallel import RateLimiter
from .utils import build_request_headers, mask_proxy

logger = logging.getLogger(__name__)

ACCESS_DENIED_BODY = "<html><body><h1>Access Denied</h1></body></html>"

# Statuses that mean "blocked or throttled, try again with new headers"
RETRYABLE_STATUSES = frozenset({403, 429})

SUCCESS = "success"
TRANSIENT = "transient"
PERMANENT = "permanent"


@dataclass
class FetchAttempt:
    """One iteration of the retry loop."""
    index: int
    delay_ms: float
    outcome: str = ""
    status: Optional[int] = None
    error: Optional[str] = None


@dataclass
class FetchResponse:
    url: str
    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: str = ""
    attempts: List[FetchAttempt] = field(default_factory=list)
    synthetic: bool = False

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def cached_copy(self) -> "FetchResponse":
        """Copy handed out on a cache hit: no attempts were made, and the stored entry stays untouched."""
        return replace(self, headers=dict(self.headers), attempts=[])


def access_denied_response(url: str, attempts: List[FetchAttempt]) -> FetchResponse:
    return FetchResponse(
        url=url,
        status=403,
        headers={"content-type": "text/html"},
        body=ACCESS_DENIED_BODY,
        attempts=attempts,
        synthetic=True,
    )


def backoff_delay_ms(attempt: int, base_delay_ms: float, jitter_ms: float) -> float:
    """Delay before ``attempt`` (0-based): none for the first, then exponential plus jitter."""
    if attempt <= 0:
        return 0.0
    return base_delay_ms * (2 ** (attempt - 1)) + random.uniform(0, jitter_ms)


class HttpFetcher:
    """
    Issues GET/HEAD/POST requests the way a browser would and survives blocking.

    Never raises for target-side failures: once every attempt is used up the
    caller receives a synthetic 403 "Access Denied" response.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        cache: Optional[ResponseCache] = None,
        retries: int = config.FETCH_RETRIES,
        base_delay_ms: float = config.FETCH_BASE_DELAY_MS,
        jitter_ms: float = config.FETCH_JITTER_MS,
        proxy_url: Optional[str] = config.PROXY_URL,
        timeout: float = config.REQUEST_TIMEOUT,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        if retries < 1:
            raise ValueError("retries must be at least 1")
        self.cache = cache if cache is not None else shared_cache
        self.retries = retries
        self.base_delay_ms = base_delay_ms
        self.jitter_ms = jitter_ms
        self.proxy_url = proxy_url
        self.timeout = timeout
        self.rate_limiter = rate_limiter
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            if self.proxy_url:
                logger.info(f">>> Using proxy: {mask_proxy(self.proxy_url)}")
            else:
                logger.debug("No proxy configured; set SCRAPER_PROXY_URL to route requests through one")
            self._client = httpx.AsyncClient(
                proxy=self.proxy_url,
                timeout=self.timeout,
                follow_redirects=True,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "HttpFetcher":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def fetch(
        self,
        url: str,
        method: str = "GET",
        headers: Optional[Dict[str, str]] = None,
    ) -> FetchResponse:
        method = method.upper()
        if method == "GET":
            cached = self.cache.get(url, method)
            if cached is not None:
                logger.debug(f"Using cached response for {url}")
                return cached.cached_copy()

        client = self._get_client()
        attempts: List[FetchAttempt] = []

        for i in range(self.retries):
            attempt = FetchAttempt(index=i, delay_ms=backoff_delay_ms(i, self.base_delay_ms, self.jitter_ms))
            attempts.append(attempt)
            if attempt.delay_ms:
                logger.debug(f"Waiting {attempt.delay_ms:.0f}ms before attempt {i + 1}/{self.retries} for {url}")
                await asyncio.sleep(attempt.delay_ms / 1000)
            if self.rate_limiter is not None:
                await self.rate_limiter.wait()

            request_headers = build_request_headers(headers)
            logger.debug(f"Fetching {url} with User-Agent: {request_headers['User-Agent']}")

            try:
                response = await client.request(method, url, headers=request_headers)
            except httpx.HTTPError as exc:
                attempt.outcome = TRANSIENT
                attempt.error = f"{type(exc).__name__}: {exc}"
                logger.warning(f"Error fetching {url} (attempt {i + 1}/{self.retries}): {attempt.error}")
                continue

            attempt.status = response.status_code
            if response.status_code in RETRYABLE_STATUSES:
                attempt.outcome = TRANSIENT
                logger.warning(f"Got {response.status_code} from {url}, retrying with a different User-Agent...")
                continue

            result = FetchResponse(
                url=str(response.url),
                status=response.status_code,
                headers=dict(response.headers),
                body=response.text,
                attempts=attempts,
            )
            if result.ok:
                attempt.outcome = SUCCESS
                if method == "GET":
                    self.cache.set(url, method, result)
            else:
                attempt.outcome = PERMANENT
                logger.warning(f"Got {response.status_code} from {url}; not retrying")
            return result

        logger.warning(f"Failed to fetch {url} after {self.retries} attempts, returning access-denied response")
        return access_denied_response(url, attempts)
