"""
HTML extraction of listings from search-results and detail pages.
"""
import logging
import re
from typing import Callable, Iterable, List, Optional, Sequence, Tuple, Union

from bs4 import BeautifulSoup
from bs4.element import Tag

from .errors import UnusablePageError
from .models import AttributeValue, Listing
from .utils import (
    clean_text,
    extract_posting_id,
    extract_subregion,
    parse_date,
    parse_price,
    region_base_url,
    region_from_url,
    resolve_url,
    to_float,
    upscale_image_url,
)

logger = logging.getLogger(__name__)

Strategy = Callable[[BeautifulSoup], Optional[List[Tag]]]

ERROR_PHRASES = [
    "Page Not Found",
    "This posting has been deleted",
    "This posting has expired",
    "This posting has been flagged for removal",
    "blocked for unusual activity",
    "Access Denied",
]

# Checked case-insensitively against whole search pages
ERROR_PAGE_MARKERS = ERROR_PHRASES + [
    "HTTP Error 403",
    "HTTP Error 404",
    "HTTP Error 500",
]

RESULT_SELECTORS = [
    ".cl-search-result",
    ".result-row",
    ".result-data",
    ".search-result",
    "li.cl-search-result",
    "li.result-row",
    ".cl-static-search-result",
    ".gallery-card",
    ".maptable .result-row",
    "ul.rows li.result-row",
    ".content ul.rows li",
    "li[data-pid]",
    "a[data-id]",
]

TITLE_LINK_SELECTORS = [
    "a.cl-app-anchor",
    "a.titlestring",
    "a.posting-title",
    "a.result-title",
    ".result-title a",
    ".cl-search-result-title a",
    "a.main",
    "a[data-id]",
    "a[href]",
]
TITLE_TEXT_SELECTORS = [".title", ".label", ".titlestring", ".result-title", ".posting-title"]
PRICE_SELECTORS = [".price", ".result-price", ".priceinfo", ".cl-price"]
LOCATION_SELECTORS = [".result-hood", ".cl-search-result-neighborhood", ".neighborhood", ".location", ".meta .nearby"]
DATE_SELECTORS = [".result-date", "time", ".cl-search-result-date", ".date"]
IMAGE_SELECTORS = [
    ".cl-search-result-image img",
    ".result-image img",
    ".gallery img",
    "img[src*='craigslist']",
    "img[data-src*='craigslist']",
    ".swipe img",
    ".thumb img",
    "img",
]
IMAGE_ATTRS = ("src", "data-src", "data-lazy-src")

PLACEHOLDER_MARKERS = ("empty.png", "placeholder", "no_image", "noimage")
IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp")
IMAGE_HOST = "https://images.craigslist.org"

DETAIL_TITLE_SELECTORS = ["#titletextonly", ".postingtitletext #titletextonly", "h1.postingtitle", "h1"]
DETAIL_PRICE_SELECTORS = [".postingtitletext .price", ".price", ".postinginfo .price"]
DETAIL_DESCRIPTION_SELECTORS = ["#postingbody", ".postingbody", ".userbody"]
DETAIL_IMAGE_SELECTORS = "#thumbs a, #thumbs img, .gallery img, .slide img, .swipe img"
DETAIL_LOCATION_SELECTORS = [".postingtitletext small", ".postinginfo .location", ".mapaddress"]
DETAIL_DATE_SELECTORS = [".postinginfos time", ".postinginfo time", "time.date", "time"]


# --- selector helpers ---------------------------------------------------------

def first_text(element: Tag, selectors: Iterable[str]) -> str:
    """Text of the first selector that yields a non-empty string."""
    for sel in selectors:
        found = element.select_one(sel)
        if found is not None:
            text = clean_text(found.get_text(" "))
            if text:
                return text
    return ""


def first_attr(element: Tag, selectors: Iterable[str], attrs: Sequence[str],
               accept: Callable[[str], bool] = bool) -> str:
    """Value of the first selector/attribute pair that ``accept`` agrees with."""
    for sel in selectors:
        for found in element.select(sel):
            for attr in attrs:
                value = found.get(attr)
                if isinstance(value, list):
                    value = " ".join(value)
                if value and accept(value.strip()):
                    return value.strip()
    return ""


def is_usable_image_url(src: Optional[str]) -> bool:
    """Reject placeholder graphics and anything that does not look like an image file."""
    if not src or len(src) <= 10:
        return False
    lowered = src.lower()
    if any(marker in lowered for marker in PLACEHOLDER_MARKERS):
        return False
    path = lowered.split("?", 1)[0]
    return path.endswith(IMAGE_EXTENSIONS)


def _css_strategy(selector: str) -> Strategy:
    def strategy(soup: BeautifulSoup) -> Optional[List[Tag]]:
        found = soup.select(selector)
        return found or None
    strategy.__name__ = f"select({selector})"
    return strategy


_POSTING_HREF = re.compile(r"/\d+\.html(?:[?#].*)?$")


def posting_link_strategy(soup: BeautifulSoup) -> Optional[List[Tag]]:
    """Last resort: every anchor whose href looks like a posting URL."""
    links = []
    for a in soup.select("a[href]"):
        href = a.get("href") or ""
        if "/d/" in href or _POSTING_HREF.search(href):
            links.append(a)
    return links or None


SEARCH_STRATEGIES: List[Strategy] = [_css_strategy(s) for s in RESULT_SELECTORS] + [posting_link_strategy]


def first_matching(soup: BeautifulSoup, strategies: Sequence[Strategy]) -> Tuple[List[Tag], Optional[str]]:
    """Run strategies in order and return the first non-empty element list with its name."""
    for strategy in strategies:
        found = strategy(soup)
        if found:
            return found, strategy.__name__
    return [], None


def make_soup(html: Union[str, BeautifulSoup]) -> BeautifulSoup:
    if isinstance(html, BeautifulSoup):
        return html
    return BeautifulSoup(html, "html.parser")


# --- search results -----------------------------------------------------------

def extract_listings(html: Union[str, BeautifulSoup], region: str, base_url: Optional[str] = None) -> List[Listing]:
    """
    Parse a search-results page into listings.

    Never raises: empty or unrecognizable markup gives an empty list.
    """
    if isinstance(html, str) and not html.strip():
        logger.warning("Empty HTML content provided to extract_listings")
        return []

    soup = make_soup(html)
    elements, strategy = first_matching(soup, SEARCH_STRATEGIES)
    if not elements:
        logger.warning("No search results found with any selector")
        return []
    logger.info(f">>> Found {len(elements)} results using {strategy}")

    site = region_base_url(region, base_url)
    listings: List[Listing] = []
    for element in elements:
        try:
            listing = parse_result_element(element, region, site)
        except Exception as exc:
            logger.error(f"Error parsing individual result: {exc}")
            continue
        if listing is not None:
            listings.append(listing)

    logger.info(f">>> Successfully parsed {len(listings)} search results")
    return listings


def parse_result_element(element: Tag, region: str, site: str) -> Optional[Listing]:
    """Convert one result element to a Listing, or None when it has neither title nor URL."""
    if element.name == "a" and element.get("href"):
        link = element
    else:
        link = element.select_one(", ".join(TITLE_LINK_SELECTORS[:-1])) or element.select_one("a[href]")

    href = link.get("href", "") if link is not None else ""
    url = resolve_url(href, site) if href else ""

    title = first_text(element, TITLE_TEXT_SELECTORS)
    if not title and link is not None:
        title = clean_text(link.get_text(" ")) or clean_text(link.get("title") or link.get("aria-label"))

    if not title and not url:
        return None

    price_text = first_text(element, PRICE_SELECTORS)
    price_value, price_currency = parse_price(price_text)

    location = first_text(element, LOCATION_SELECTORS).replace("(", "").replace(")", "").strip()

    posted_at = None
    date_raw = first_attr(element, DATE_SELECTORS, ("datetime", "title")) or first_text(element, DATE_SELECTORS)
    if date_raw:
        posted_at = parse_date(date_raw)

    images = result_images(element, site)

    posting_id = extract_posting_id(url) or element.get("data-pid") or (link.get("data-id") if link is not None else None)

    return Listing(
        id=posting_id or None,
        title=title,
        url=url,
        price=price_text,
        price_numeric=price_value,
        price_currency=price_currency,
        location=location,
        posted_at=posted_at,
        image_url=images[0] if images else None,
        images=images,
        source_region=region_from_url(url) or region,
        subregion=extract_subregion(url),
    )


def result_images(element: Tag, site: str) -> List[str]:
    """Usable image URLs of a result card, upscaled from thumbnail size."""
    images: List[str] = []
    src = first_attr(element, IMAGE_SELECTORS, IMAGE_ATTRS, accept=is_usable_image_url)
    if src:
        images.append(upscale_image_url(resolve_url(src, site)))

    # Gallery cards list their images as "1:00a0a_key,1:00b0b_key"
    data_ids = element.get("data-ids") or ""
    for part in data_ids.split(","):
        key = part.split(":", 1)[-1].strip()
        if key:
            candidate = f"{IMAGE_HOST}/{key}_600x450.jpg"
            if candidate not in images:
                images.append(candidate)
    return images


# --- detail pages -------------------------------------------------------------

def is_error_page(html: Optional[str]) -> bool:
    """True for empty markup or pages carrying a removal/blocking marker."""
    if not html or not html.strip():
        return True
    lowered = html.lower()
    return any(marker.lower() in lowered for marker in ERROR_PAGE_MARKERS)


def parse_attribute_line(text: str) -> Optional[Tuple[str, AttributeValue]]:
    """
    Split ``"key: value"`` at the first colon; a line without one is a flag.

    "condition: excellent" -> ("condition", "excellent")
    "furnished"            -> ("furnished", True)
    """
    text = clean_text(text)
    if not text:
        return None
    idx = text.find(":")
    if idx > 0:
        key = text[:idx].strip()
        value = text[idx + 1:].strip()
        return (key, value if value else True)
    return (text, True)


def extract_detail(html: str, url: str) -> Listing:
    """Parse a posting detail page; raises UnusablePageError for removed or blocked pages."""
    if not html or not html.strip():
        raise UnusablePageError(url, "empty body")

    soup = make_soup(html)
    body = soup.body if soup.body is not None else soup
    page_text = body.get_text(" ")
    for phrase in ERROR_PHRASES:
        if phrase in page_text:
            raise UnusablePageError(url, phrase)

    region = region_from_url(url)
    site = region_base_url(region) if region else url

    title = first_text(soup, DETAIL_TITLE_SELECTORS)
    price_text = first_text(soup, DETAIL_PRICE_SELECTORS)
    price_value, price_currency = parse_price(price_text)

    description = ""
    desc_el = None
    for sel in DETAIL_DESCRIPTION_SELECTORS:
        desc_el = soup.select_one(sel)
        if desc_el is not None:
            break
    if desc_el is not None:
        for boilerplate in desc_el.select(".print-information, .print-qrcode-container"):
            boilerplate.decompose()
        description = clean_text(desc_el.get_text(" "))
        description = re.sub(r"^QR Code Link to This Post\s*", "", description)

    attributes = {}
    # Newer markup wraps each label/value pair in div.attr; older markup uses bare spans
    attr_nodes = soup.select(".attrgroup .attr") or soup.select(".attrgroup span")
    for node in attr_nodes:
        pair = parse_attribute_line(node.get_text(" "))
        if pair:
            attributes[pair[0]] = pair[1]

    images: List[str] = []
    for node in soup.select(DETAIL_IMAGE_SELECTORS):
        src = node.get("href") if node.name == "a" else (node.get("src") or node.get("data-src"))
        if not is_usable_image_url(src):
            continue
        full = upscale_image_url(resolve_url(src, site), "1200x900")
        if full not in images:
            images.append(full)

    latitude = longitude = None
    map_el = soup.select_one("#map")
    if map_el is not None:
        latitude = to_float(map_el.get("data-latitude"))
        longitude = to_float(map_el.get("data-longitude"))

    location = first_text(soup, DETAIL_LOCATION_SELECTORS).replace("(", "").replace(")", "").strip()

    posted_at = parse_date(first_attr(soup, DETAIL_DATE_SELECTORS, ("datetime",)))

    return Listing(
        id=extract_posting_id(url),
        title=title,
        url=url,
        price=price_text,
        price_numeric=price_value,
        price_currency=price_currency,
        location=location,
        posted_at=posted_at,
        image_url=images[0] if images else None,
        images=images,
        attributes=attributes,
        source_region=region,
        subregion=extract_subregion(url),
        description=description,
        latitude=latitude,
        longitude=longitude,
    )
