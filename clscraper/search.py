"""
Search orchestration: single and multi-region searches, paginated walks and
detail-page enrichment.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Union

from .browser import BrowserFetcher
from .cache import ResponseCache
from .config import config
from .correlate import correlate, extract_structured_entries
from .dedupe import dedupe
from .errors import BrowserFetchError, BrowserUnavailableError, InvalidRegionError, UnusablePageError
from .fetch import FetchResponse, HttpFetcher
from .models import Listing
from .pagination import build_page_urls, estimate_total_pages
from .parallel import RateLimiter, process_details, process_regions, run_batched
from .parsing import extract_detail, extract_listings, is_error_page, make_soup
from .utils import build_search_url

logger = logging.getLogger(__name__)

REGION_PATTERN = re.compile(r"^[a-z0-9-]{2,50}$")

CATEGORIES = [
    {"code": "sss", "name": "for sale by owner"},
    {"code": "hhh", "name": "housing"},
    {"code": "jjj", "name": "jobs"},
    {"code": "ggg", "name": "gigs"},
    {"code": "rrr", "name": "resumes"},
    {"code": "ccc", "name": "community"},
    {"code": "eee", "name": "events"},
    {"code": "bbb", "name": "services"},
]


def available_categories() -> List[Dict[str, str]]:
    return [dict(c) for c in CATEGORIES]


def validate_region(region: str) -> str:
    if not isinstance(region, str) or not REGION_PATTERN.match(region):
        raise InvalidRegionError(region)
    return region


@dataclass
class SearchParams:
    query: str = ""
    category: str = config.DEFAULT_CATEGORY
    regions: Union[str, List[str]] = field(default_factory=lambda: [config.DEFAULT_REGION])
    subcategory: str = ""
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    limit: Optional[int] = None  # None or <= 0 keeps everything
    include_details: bool = False
    use_browser: bool = False
    max_pages: int = config.MAX_PAGES
    results_per_page: int = config.RESULTS_PER_PAGE

    def __post_init__(self):
        if isinstance(self.regions, str):
            self.regions = [self.regions]
        else:
            self.regions = list(self.regions)

    def search_url(self, region: str) -> str:
        return build_search_url(
            region,
            category=self.category,
            query=self.query,
            subcategory=self.subcategory,
            min_price=self.min_price,
            max_price=self.max_price,
        )

    def apply_limit(self, listings: List[Listing]) -> List[Listing]:
        if self.limit is not None and self.limit > 0:
            return listings[:self.limit]
        return listings


class ListingScraper:
    """
    Entry point for searches and detail lookups.

    Owns a plain HTTP fetcher and, when browser mode is requested, a Chromium
    fetcher that is only launched on first use. Target-side failures degrade
    to fewer records; invalid regions and unusable detail pages raise.
    """

    def __init__(
        self,
        http: Optional[HttpFetcher] = None,
        browser: Optional[BrowserFetcher] = None,
        cache: Optional[ResponseCache] = None,
        region_concurrency: int = config.MAX_CONCURRENT_REGIONS,
        detail_concurrency: int = config.MAX_CONCURRENT_DETAILS,
        page_concurrency: int = config.PAGE_CONCURRENCY,
        batch_delay_ms: float = config.BATCH_DELAY_MS,
        page_batch_delay_ms: float = config.PAGE_BATCH_DELAY_MS,
        request_delay_ms: float = config.REQUEST_DELAY_MS,
    ):
        if http is None:
            limiter = None
            if config.MAX_REQUESTS_PER_MINUTE > 0:
                limiter = RateLimiter(config.MAX_REQUESTS_PER_MINUTE, 60.0)
            http = HttpFetcher(cache=cache, rate_limiter=limiter)
            self._owns_http = True
        else:
            self._owns_http = False
        self.http = http
        self._browser = browser
        self._owns_browser = browser is None
        self._cache = cache
        self.region_concurrency = region_concurrency
        self.detail_concurrency = detail_concurrency
        self.page_concurrency = page_concurrency
        self.batch_delay_ms = batch_delay_ms
        self.page_batch_delay_ms = page_batch_delay_ms
        self.request_delay_ms = request_delay_ms

    @property
    def browser(self) -> BrowserFetcher:
        if self._browser is None:
            self._browser = BrowserFetcher(cache=self._cache)
        return self._browser

    async def aclose(self) -> None:
        if self._owns_http:
            await self.http.aclose()
        if self._browser is not None and self._owns_browser:
            await self._browser.aclose()

    async def __aenter__(self) -> "ListingScraper":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # --- fetching ---------------------------------------------------------

    async def fetch_page(self, url: str, use_browser: bool = False) -> FetchResponse:
        """Fetch through Chromium when asked, falling back to plain HTTP if that fails."""
        if use_browser:
            try:
                return await self.browser.fetch(url)
            except (BrowserUnavailableError, BrowserFetchError) as exc:
                logger.warning(f"Browser fetch failed for {url}, falling back to HTTP: {exc}")
        return await self.http.fetch(url)

    def records_from_page(self, html: str, region: str, category: str = config.DEFAULT_CATEGORY) -> List[Listing]:
        """DOM records, correlated with the page's structured data when it has any."""
        soup = make_soup(html)
        candidates = extract_listings(soup, region)
        entries = extract_structured_entries(soup)
        if entries:
            records = correlate(entries, candidates, region, category)
        else:
            records = candidates
        usable = [r for r in records if r.usable]
        if len(usable) < len(records):
            logger.debug(f"Dropped {len(records) - len(usable)} records without a URL")
        return usable

    async def _fetch_search_page(self, url: str, region: str, params: SearchParams) -> Optional[List[Listing]]:
        response = await self.fetch_page(url, params.use_browser)
        if not response.ok:
            logger.warning(f"Search page {url} returned HTTP {response.status}")
            return None
        if is_error_page(response.body):
            logger.warning(f"Page returned error: {url}")
            return None
        return self.records_from_page(response.body, region, params.category)

    # --- operations -------------------------------------------------------

    async def get_detail(self, url: str, use_browser: bool = False) -> Listing:
        """Fetch and parse one posting; raises UnusablePageError for removed or blocked pages."""
        response = await self.fetch_page(url, use_browser)
        if not response.ok:
            raise UnusablePageError(url, f"HTTP {response.status}")
        return extract_detail(response.body, url)

    async def enrich(self, listings: List[Listing], use_browser: bool = False) -> List[Listing]:
        logger.info(f">>> Fetching details for {len(listings)} listings...")

        async def fetch_detail(url: str) -> Listing:
            return await self.get_detail(url, use_browser)

        return await process_details(
            listings,
            fetch_detail,
            concurrency=self.detail_concurrency,
            inter_batch_delay_ms=self.batch_delay_ms,
            request_delay_ms=self.request_delay_ms,
        )

    async def search_region(self, params: SearchParams, region: str) -> List[Listing]:
        """One region, first page only."""
        url = params.search_url(region)
        logger.info(f">>> Search URL: {url}")
        records = await self._fetch_search_page(url, region, params)
        if not records:
            logger.warning(f"No search results found for {region}")
            return []
        logger.info(f">>> Found {len(records)} search results in {region}")

        records = params.apply_limit(records)
        if params.include_details:
            records = await self.enrich(records, params.use_browser)
        return records

    async def paginate_region(self, params: SearchParams, region: str) -> List[Listing]:
        """One region, walking every estimated page up to ``params.max_pages``."""
        first_url = params.search_url(region)
        response = await self.fetch_page(first_url, params.use_browser)
        if not response.ok or is_error_page(response.body):
            logger.warning(f"First page returned an error: {first_url}")
            return []

        records = self.records_from_page(response.body, region, params.category)
        total_pages = min(params.max_pages, estimate_total_pages(response.body, params.results_per_page))
        if total_pages <= 1:
            logger.info("Only one page of results available")
            return records

        remaining = build_page_urls(first_url, total_pages, params.results_per_page)[1:]

        async def page_worker(url: str) -> List[Listing]:
            return await self._fetch_search_page(url, region, params) or []

        pages = await run_batched(
            remaining,
            page_worker,
            concurrency=self.page_concurrency,
            inter_batch_delay_ms=self.page_batch_delay_ms,
            request_delay_ms=self.request_delay_ms,
        )
        for page in pages:
            if page:
                records.extend(page)
        logger.info(f">>> Collected {len(records)} total results from {total_pages} pages")
        return records

    async def _across_regions(self, params: SearchParams, per_region) -> List[Listing]:
        regions = [validate_region(r) for r in params.regions]
        if not regions:
            logger.info("Empty regions list provided, returning empty results")
            return []
        if len(regions) == 1:
            logger.info(f">>> Performing direct search for region: {regions[0]}")
            return await per_region(params, regions[0])

        logger.info(f">>> Searching {len(regions)} regions")

        async def search_one(region: str) -> List[Listing]:
            return await per_region(params, region)

        return await process_regions(
            regions,
            search_one,
            concurrency=self.region_concurrency,
            inter_batch_delay_ms=self.batch_delay_ms,
            request_delay_ms=self.request_delay_ms,
        )

    async def search(self, params: SearchParams) -> List[Listing]:
        logger.info(
            f">>> Starting search: query={params.query!r}, category={params.category!r}, "
            f"regions={params.regions}"
        )
        results = await self._across_regions(params, self.search_region)
        return params.apply_limit(dedupe(results))

    async def search_paginated(self, params: SearchParams) -> List[Listing]:
        logger.info(f">>> Starting paginated search with max {params.max_pages} pages")
        results = await self._across_regions(params, self.paginate_region)
        results = params.apply_limit(dedupe(results))
        if params.include_details:
            results = await self.enrich(results, params.use_browser)
        return results


async def run_search(params: SearchParams, paginate: bool = False,
                     scraper: Optional[ListingScraper] = None) -> List[Listing]:
    """Run one search with a scraper that is closed afterwards."""
    scraper = scraper or ListingScraper()
    async with scraper:
        if paginate:
            return await scraper.search_paginated(params)
        return await scraper.search(params)


async def run_detail(urls: Sequence[str], use_browser: bool = False,
                     scraper: Optional[ListingScraper] = None) -> List[Listing]:
    """Fetch detail pages; unusable pages are logged and skipped."""
    scraper = scraper or ListingScraper()
    results = []
    async with scraper:
        for url in urls:
            try:
                results.append(await scraper.get_detail(url, use_browser))
            except UnusablePageError as exc:
                logger.error(str(exc))
    return results
