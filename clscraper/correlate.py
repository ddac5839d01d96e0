"""
Pairing of JSON-LD search-page entries with the records scraped from the DOM.

Search pages carry an ``itemListElement`` block whose titles, prices and dates
are reliable but which lacks posting URLs. The DOM has URLs but noisier text.
Each structured entry is matched to the DOM record that scores highest and the
two are merged.
"""
import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Union

from bs4 import BeautifulSoup

from .models import AttributeValue, Listing
from .utils import (
    build_search_url,
    clean_text,
    extract_image_id,
    extract_posting_id,
    extract_subregion,
    is_posting_url,
    parse_date,
    parse_price,
    title_similarity,
)

logger = logging.getLogger(__name__)

TITLE_WEIGHT = 10
PRICE_WEIGHT = 5
LOCATION_WEIGHT = 3
IMAGE_WEIGHT = 8

STRUCTURED_SELECTORS = ["script#ld_searchpage_results", 'script[type="application/ld+json"]']


@dataclass
class StructuredEntry:
    """One item of a page's JSON-LD ``itemListElement`` list."""
    title: str = ""
    price: str = ""
    price_numeric: Optional[float] = None
    price_currency: Optional[str] = None
    location: str = ""
    posted_at: Optional[datetime] = None
    description: str = ""
    images: List[str] = field(default_factory=list)
    url: Optional[str] = None
    id: Optional[str] = None
    position: Optional[int] = None
    attributes: Dict[str, AttributeValue] = field(default_factory=dict)


@dataclass
class CorrelationCandidate:
    entry: StructuredEntry
    match: Optional[Listing] = None
    score: float = 0.0


def _as_text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _as_list(value: Any) -> List[str]:
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [v for v in value if isinstance(v, str) and v]
    return []


def _find_structured_block(soup: BeautifulSoup) -> Optional[dict]:
    for selector in STRUCTURED_SELECTORS:
        for script in soup.select(selector):
            text = script.string or script.get_text()
            if "itemListElement" not in text:
                continue
            try:
                data = json.loads(text)
            except ValueError as exc:
                logger.error(f"Error parsing JSON-LD data: {exc}")
                return None
            if isinstance(data, dict) and isinstance(data.get("itemListElement"), list):
                logger.debug(f"Found JSON-LD script with itemListElement using selector: {selector}")
                return data
            logger.error(f"Invalid JSON-LD data structure: {text[:200]}")
            return None
    return None


def parse_structured_item(list_item: Dict[str, Any]) -> Optional[StructuredEntry]:
    item = list_item.get("item", list_item)
    if not isinstance(item, dict):
        return None

    url = item.get("url") if isinstance(item.get("url"), str) else None

    entry_id = item.get("identifier")
    entry_id = str(entry_id) if entry_id else extract_posting_id(url)

    images = _as_list(item.get("image"))
    offers = item.get("offers") if isinstance(item.get("offers"), dict) else {}
    images += [img for img in _as_list(offers.get("image")) if img not in images]

    if not entry_id:
        # e.g. https://images.craigslist.org/d/7844041038/00000_e7w60ipP7IX_0rR0kT_300x300.jpg
        for image in images:
            m = re.search(r"/d/(\d{8,})/", image)
            if m:
                entry_id = m.group(1)
                break

    price = ""
    price_numeric = None
    price_currency = None
    if offers.get("price") not in (None, ""):
        price_currency = offers.get("priceCurrency") or None
        symbol = "$" if price_currency in (None, "USD") else price_currency
        price = f"{symbol}{offers['price']}"
        price_numeric, parsed_currency = parse_price(str(offers["price"]))
        price_currency = price_currency or parsed_currency

    attributes: Dict[str, AttributeValue] = {}
    if price_currency:
        attributes["currency"] = price_currency

    location = ""
    place = offers.get("availableAtOrFrom") if isinstance(offers.get("availableAtOrFrom"), dict) else {}
    address = place.get("address") if isinstance(place.get("address"), dict) else {}
    if address.get("addressLocality"):
        location = str(address["addressLocality"])
        if address.get("addressRegion"):
            location += f", {address['addressRegion']}"
    for key, source in (("city", "addressLocality"), ("state", "addressRegion"), ("zip", "postalCode")):
        if address.get(source):
            attributes[key] = str(address[source])

    position = list_item.get("position")

    return StructuredEntry(
        title=clean_text(_as_text(item.get("name"))),
        price=price,
        price_numeric=price_numeric,
        price_currency=price_currency,
        location=clean_text(location),
        posted_at=parse_date(_as_text(item.get("datePosted"))),
        description=clean_text(_as_text(item.get("description"))),
        images=images,
        url=url,
        id=entry_id,
        position=position if isinstance(position, int) else None,
        attributes=attributes,
    )


def extract_structured_entries(html: Union[str, BeautifulSoup]) -> List[StructuredEntry]:
    """Entries of the page's JSON-LD item list; missing or malformed data gives []."""
    if isinstance(html, BeautifulSoup):
        soup = html
    elif not html:
        return []
    else:
        soup = BeautifulSoup(html, "html.parser")

    data = _find_structured_block(soup)
    if data is None:
        return []

    entries = []
    for list_item in data["itemListElement"]:
        if not isinstance(list_item, dict):
            continue
        entry = parse_structured_item(list_item)
        if entry is not None:
            entries.append(entry)
    logger.debug(f"Found {len(entries)} items in JSON-LD data")
    return entries


def _first_image_id(images: Sequence[str]) -> Optional[str]:
    for image in images:
        image_id = extract_image_id(image)
        if image_id:
            return image_id
    return None


def correlation_score(entry: StructuredEntry, candidate: Listing) -> float:
    score = title_similarity(entry.title.lower(), candidate.title.lower()) * TITLE_WEIGHT

    if entry.price_numeric is not None and entry.price_numeric == candidate.price_numeric:
        score += PRICE_WEIGHT

    if entry.location and candidate.location:
        a, b = entry.location.lower(), candidate.location.lower()
        if a in b or b in a:
            score += LOCATION_WEIGHT

    entry_image = _first_image_id(entry.images)
    candidate_image = _first_image_id(candidate.images or ([candidate.image_url] if candidate.image_url else []))
    if entry_image and entry_image == candidate_image:
        score += IMAGE_WEIGHT

    return score


def best_match(entry: StructuredEntry, candidates: Sequence[Listing]) -> CorrelationCandidate:
    """Highest-scoring DOM record; the earliest one wins ties and a zero score matches nothing."""
    best = CorrelationCandidate(entry=entry)
    for candidate in candidates:
        score = correlation_score(entry, candidate)
        if score > best.score:
            best = CorrelationCandidate(entry=entry, match=candidate, score=score)
    return best


def merge_entry(pairing: CorrelationCandidate, region: str, category: str = "sss") -> Listing:
    """
    Build the output record for one pairing.

    Title, price, date and description come from the structured entry. The
    matched DOM record supplies the URL and whatever the entry lacks.
    """
    entry, match = pairing.entry, pairing.match

    if match is not None and match.url:
        url = match.url
    elif is_posting_url(entry.url):
        url = entry.url
    else:
        url = build_search_url(region, category, query=entry.title)

    images = list(entry.images)
    attributes: Dict[str, AttributeValue] = dict(entry.attributes)
    if match is not None:
        for image in match.images:
            if image not in images:
                images.append(image)
        for key, value in match.attributes.items():
            attributes.setdefault(key, value)

    def pick(name: str, entry_value):
        if entry_value or match is None:
            return entry_value
        return getattr(match, name)

    return Listing(
        id=entry.id or (match.id if match is not None else None) or extract_posting_id(url),
        title=pick("title", entry.title),
        url=url,
        price=pick("price", entry.price),
        price_numeric=entry.price_numeric if entry.price_numeric is not None
        else (match.price_numeric if match is not None else None),
        price_currency=pick("price_currency", entry.price_currency),
        location=pick("location", entry.location),
        posted_at=pick("posted_at", entry.posted_at),
        image_url=images[0] if images else None,
        images=images,
        attributes=attributes,
        source_region=(match.source_region if match is not None else None) or region,
        subregion=(match.subregion if match is not None else None) or extract_subregion(url),
        description=pick("description", entry.description),
    )


def correlate(
    entries: Sequence[StructuredEntry],
    candidates: Sequence[Listing],
    region: str,
    category: str = "sss",
) -> List[Listing]:
    """One merged record per structured entry, in entry order."""
    merged = []
    matched = 0
    for entry in entries:
        pairing = best_match(entry, candidates)
        if pairing.match is not None:
            matched += 1
        merged.append(merge_entry(pairing, region, category))
    logger.info(f">>> Correlated {matched}/{len(entries)} structured entries with page records")
    return merged
