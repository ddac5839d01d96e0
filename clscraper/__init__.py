"""
Classified Listings Scraper Package
"""
from .models import Listing, merge_listing
from .errors import (
    ScraperError,
    InvalidRegionError,
    UnusablePageError,
    BrowserUnavailableError,
    BrowserFetchError
)
from .cache import ResponseCache
from .fetch import HttpFetcher, FetchResponse
from .browser import BrowserFetcher
from .parsing import extract_listings, extract_detail
from .correlate import correlate, extract_structured_entries
from .parallel import run_batched, RateLimiter
from .pagination import estimate_total_pages, build_page_urls
from .dedupe import dedupe
from .search import ListingScraper, SearchParams, run_search
from .export import save_output_rows
from .utils import init_logger, now_iso

__version__ = "1.0.0"

__all__ = [
    "Listing",
    "merge_listing",
    "ScraperError",
    "InvalidRegionError",
    "UnusablePageError",
    "BrowserUnavailableError",
    "BrowserFetchError",
    "ResponseCache",
    "HttpFetcher",
    "FetchResponse",
    "BrowserFetcher",
    "extract_listings",
    "extract_detail",
    "correlate",
    "extract_structured_entries",
    "run_batched",
    "RateLimiter",
    "estimate_total_pages",
    "build_page_urls",
    "dedupe",
    "ListingScraper",
    "SearchParams",
    "run_search",
    "save_output_rows",
    "init_logger",
    "now_iso"
]
