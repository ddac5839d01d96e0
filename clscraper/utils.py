"""
Utility functions for text processing, price/date parsing, URLs, request headers and logging.
"""
import logging
import random
import re
import string
from datetime import datetime, timezone
from typing import Dict, Optional, Tuple
from urllib.parse import quote, urlencode, urljoin, urlsplit

from .config import config


def init_logger(
    name: str = "clscraper",
    console_level: str = "INFO",
    file_level: str = "DEBUG",
    log_file: Optional[str] = "clscraper.log"
) -> logging.Logger:
    """Initialize logger with console and optional file handlers."""
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    if logger.handlers:
        return logger

    console_level_num = getattr(logging, console_level.upper(), logging.INFO)
    ch = logging.StreamHandler()
    ch.setLevel(console_level_num)

    fmt = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    ch.setFormatter(fmt)
    logger.addHandler(ch)

    if log_file:  # Create file handler only if log_file is provided
        file_level_num = getattr(logging, file_level.upper(), logging.DEBUG)
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(file_level_num)
        fh.setFormatter(fmt)
        logger.addHandler(fh)

    return logger


def now_iso() -> str:
    """Return current UTC timestamp in ISO format."""
    return datetime.now(timezone.utc).isoformat()


def clean_text(s: Optional[str]) -> str:
    """Clean and normalize text by removing extra whitespace."""
    if not s:
        return ""
    s = re.sub(r"\s+", " ", s)
    return s.strip()


def parse_price(price_text: str) -> Tuple[Optional[float], Optional[str]]:
    """
    Parse price text to extract numeric value and currency.

    Supports various formats and currencies (USD $, EUR €, GBP £, THB ฿).
    Returns (None, None) for anything that carries no number.
    """
    if not price_text:
        return (None, None)

    s = price_text.replace(",", "").replace("\xa0", " ")
    m = re.search(r"(฿|\$|€|£)?\s?(\d+(?:\.\d+)?)", s)
    cur = None
    val = None

    if m:
        cur = m.group(1)
        try:
            val = float(m.group(2))
        except ValueError:
            val = None

    if not cur:
        m2 = re.search(r"\b(USD|EUR|GBP|CAD|THB)\b", s, re.I)
        if m2:
            cur = m2.group(1).upper()

    symbol_map = {"฿": "THB", "$": "USD", "€": "EUR", "£": "GBP"}
    if cur in symbol_map:
        cur = symbol_map[cur]

    return (val, cur)


def to_float(text: Optional[str]) -> Optional[float]:
    """Safely convert text to float."""
    if not text:
        return None
    try:
        return float(text)
    except (TypeError, ValueError):
        return None


_DATE_FORMATS = (
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%dT%H:%M%z",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y",
)


def parse_date(value: Optional[str]) -> Optional[datetime]:
    """Parse a posting timestamp; anything unparseable resolves to None."""
    if not value or not isinstance(value, str):
        return None
    s = clean_text(value)
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(s)
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(s, fmt)
        except ValueError:
            continue
    return None


def title_similarity(first: Optional[str], second: Optional[str]) -> float:
    """
    Word-overlap similarity between two titles.

    Words of two characters or fewer are ignored. A word of ``first`` counts as
    matched when it is a substring of some word of ``second`` or vice versa.
    The result is divided by the word count of ``first`` only, so the measure
    is not symmetric.
    """
    if not first or not second:
        return 0.0
    words1 = [w for w in first.split() if len(w) > 2]
    words2 = [w for w in second.split() if len(w) > 2]

    matches = 0
    for word in words1:
        if any(other in word or word in other for other in words2):
            matches += 1

    return matches / max(len(words1), 1)


# --- URLs -------------------------------------------------------------------

def region_base_url(region: str, base_url: Optional[str] = None) -> str:
    return (base_url or config.BASE_URL).replace("{region}", region)


def resolve_url(href: Optional[str], base: str) -> str:
    """Make ``href`` absolute against ``base``; protocol-relative links get https."""
    if not href:
        return ""
    href = href.strip()
    if href.startswith("//"):
        return "https:" + href
    return urljoin(base.rstrip("/") + "/", href)


def extract_posting_id(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    m = re.search(r"/(\d+)\.html", url)
    return m.group(1) if m else None


def is_posting_url(url: Optional[str]) -> bool:
    """True for absolute detail-page URLs (``.../d/<slug>/<id>.html``)."""
    if not url or not url.startswith("http"):
        return False
    return "/d/" in url and bool(re.search(r"/\d+\.html", url))


def region_from_url(url: Optional[str], base_url: Optional[str] = None) -> Optional[str]:
    """Extract the site/city segment of the host, using the configured base URL as template."""
    if not url:
        return None
    template = base_url or config.BASE_URL
    prefix, _, suffix = template.partition("{region}")
    host_pattern = re.escape(prefix) + r"([a-z0-9-]+)" + re.escape(suffix)
    pattern = re.sub(r"^https", "https?", host_pattern)
    m = re.match(pattern, url, re.I)
    return m.group(1).lower() if m else None


def extract_subregion(url: Optional[str]) -> Optional[str]:
    """
    Extract the three-letter area code that precedes the category segment.

    Format: https://chicago.craigslist.org/chc/bik/d/slug/123.html -> "chc"
    """
    if not url:
        return None
    segments = [s for s in urlsplit(url).path.split("/") if s]
    if len(segments) >= 3 and segments[2] == "d" and re.fullmatch(r"[a-z]{3}", segments[0]):
        return segments[0]
    return None


def extract_image_id(image_url: Optional[str]) -> Optional[str]:
    """
    Canonical image key: the file name without its size suffix.

    https://images.craigslist.org/00101_3kHkVAcfZtu_0bC0pa_600x450.jpg -> "00101_3kHkVAcfZtu_0bC0pa"
    """
    if not image_url:
        return None
    m = re.search(r"/([A-Za-z0-9]+_[A-Za-z0-9]+(?:_[A-Za-z0-9]+)?)_\d+x\d+c?\.[a-z]+", image_url)
    return m.group(1) if m else None


def upscale_image_url(image_url: str, size: str = "600x450") -> str:
    """Rewrite a thumbnail size suffix (``_50x50c.jpg``) to a larger variant."""
    return re.sub(r"_\d+x\d+c?\.(jpe?g|png|gif|webp)", rf"_{size}.\1", image_url)


def build_search_url(
    region: str,
    category: str = "sss",
    query: str = "",
    subcategory: str = "",
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    base_url: Optional[str] = None,
) -> str:
    """Build a search URL for one region."""
    path = f"/search/{category}"
    if subcategory:
        path += f"/{subcategory}"

    params = {}
    if query:
        params["query"] = query
    if min_price is not None and min_price > 0:
        params["min_price"] = _format_number(min_price)
    if max_price is not None and max_price > 0:
        params["max_price"] = _format_number(max_price)
    params["sort"] = "rel"
    params["bundleDuplicates"] = "1"
    if query.strip().lower() == "free":
        params["is_free"] = "yes"

    return region_base_url(region, base_url) + path + "?" + urlencode(params, quote_via=quote)


def _format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def mask_proxy(proxy_url: str) -> str:
    """Hide the password part of a proxy URL for logging."""
    return re.sub(r":[^:@/]*@", ":****@", proxy_url)


# --- Request headers ----------------------------------------------------------

USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.4 Safari/605.1.15",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:125.0) Gecko/20100101 Firefox/125.0",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/123.0.0.0 Safari/537.36",
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_4 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.4 Mobile/15E148 Safari/604.1",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36 Edg/124.0.2478.51",
]

REFERRERS = [
    "https://www.google.com/search?q=craigslist+listings",
    "https://www.bing.com/search?q=apartments+for+rent",
    "https://duckduckgo.com/?q=used+bikes+for+sale",
    "https://www.facebook.com/marketplace/",
    "https://www.reddit.com/r/apartments",
]

BROWSER_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,image/apng,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "max-age=0",
    "Upgrade-Insecure-Requests": "1",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "cross-site",
    "Sec-Fetch-User": "?1",
    "Sec-Ch-Ua": '"Chromium";v="124", "Google Chrome";v="124", "Not-A.Brand";v="99"',
    "Sec-Ch-Ua-Mobile": "?0",
    "Sec-Ch-Ua-Platform": '"Windows"',
}

VISITOR_COOKIE = "cl_b"


def random_user_agent() -> str:
    return random.choice(USER_AGENTS)


def random_referrer() -> str:
    return random.choice(REFERRERS)


def visitor_cookie_value() -> str:
    return "".join(random.choices(string.ascii_lowercase + string.digits, k=13))


def build_request_headers(extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """Browser-like request headers with a rotated user agent and referrer; ``extra`` wins."""
    headers = dict(BROWSER_HEADERS)
    headers["User-Agent"] = random_user_agent()
    headers["Referer"] = random_referrer()
    headers["Cookie"] = f"{VISITOR_COOKIE}={visitor_cookie_value()}"
    if extra:
        headers.update(extra)
    return headers
