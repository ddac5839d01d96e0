"""
Result-count estimation and page-offset URLs for search pages.
"""
import logging
import math
import re
from typing import List
from urllib.parse import urlsplit, urlunsplit

from .config import config

logger = logging.getLogger(__name__)

OFFSET_PARAM = "s"

RESULT_COUNT_PATTERNS = [
    re.compile(r"showing\s+[\d,]+\s*[-–]\s*[\d,]+\s+of\s+([\d,]+)", re.I),
    re.compile(r"([\d,]+)\s*results?\b", re.I),
    re.compile(r"([\d,]+)\s*listings?\b", re.I),
]

# Matched against raw markup, no parse tree needed
RESULT_ELEMENT_PATTERNS = [
    re.compile(r"<li[^>]*class=[\"'][^\"']*\bresult-row\b[^\"']*[\"']", re.I),
    re.compile(r"<div[^>]*class=[\"'][^\"']*\bcl-search-result\b[^\"']*[\"']", re.I),
    re.compile(r"<li[^>]*class=[\"'][^\"']*\bcl-search-result\b[^\"']*[\"']", re.I),
    re.compile(r"<li[^>]*class=[\"'][^\"']*\bcl-static-search-result\b[^\"']*[\"']", re.I),
]

_TAG = re.compile(r"<[^>]+>")


def count_results(html: str) -> int:
    """Total result count stated on the page, else the number of result rows in the markup."""
    if not html:
        return 0
    text = _TAG.sub(" ", html)
    for pattern in RESULT_COUNT_PATTERNS:
        m = pattern.search(text)
        if m:
            total = int(m.group(1).replace(",", "") or 0)
            if total > 0:
                return total

    for pattern in RESULT_ELEMENT_PATTERNS:
        matches = pattern.findall(html)
        if matches:
            return len(matches)
    return 0


def estimate_total_pages(html: str, results_per_page: int = config.RESULTS_PER_PAGE) -> int:
    """Pages needed to cover every result; never less than 1."""
    if results_per_page <= 0:
        raise ValueError("results_per_page must be positive")
    total_results = count_results(html)
    total_pages = max(1, math.ceil(total_results / results_per_page))
    logger.info(f">>> Estimated {total_pages} total pages based on {total_results} results")
    return total_pages


def build_page_urls(
    base_url: str,
    total_pages: int,
    results_per_page: int = config.RESULTS_PER_PAGE,
    param: str = OFFSET_PARAM,
) -> List[str]:
    """
    One URL per page. Page 0 is ``base_url`` without any offset; page k sets
    ``param=k*results_per_page``, replacing any offset already present.
    """
    if results_per_page <= 0:
        raise ValueError("results_per_page must be positive")

    parts = urlsplit(base_url)
    kept = [p for p in parts.query.split("&") if p and p.split("=", 1)[0] != param]

    urls = []
    for page in range(max(total_pages, 0)):
        offset = [f"{param}={page * results_per_page}"] if page else []
        query = "&".join(kept + offset)
        urls.append(urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment)))

    logger.info(f">>> Built {len(urls)} pagination URLs")
    return urls
