"""
Data models for the classified-listings scraper.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import List, Dict, Optional, Union

AttributeValue = Union[str, bool]


@dataclass
class Listing:
    """A classified-ad entry extracted from a search-results or detail page."""

    # Basic listing info
    id: Optional[str]
    title: str
    url: str
    price: str = ""
    price_numeric: Optional[float] = None
    price_currency: Optional[str] = None
    location: str = ""
    posted_at: Optional[datetime] = None

    # Media
    image_url: Optional[str] = None
    images: List[str] = field(default_factory=list)

    # Free-form posting metadata: "key: value" lines map to strings,
    # bare lines ("furnished") map to True. Keys are not fixed.
    attributes: Dict[str, AttributeValue] = field(default_factory=dict)

    # Site segments taken from the URL
    source_region: Optional[str] = None
    subregion: Optional[str] = None

    # Detailed info (populated from detail pages or structured data)
    description: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @property
    def usable(self) -> bool:
        return bool(self.url)


def merge_listing(base: Listing, detail: Listing) -> Listing:
    """Overlay the non-empty fields of a detail-page record onto a search result."""
    updates = {}
    for name in ("title", "price", "location", "description", "image_url"):
        value = getattr(detail, name)
        if value:
            updates[name] = value
    for name in ("id", "price_numeric", "price_currency", "posted_at",
                 "latitude", "longitude", "subregion"):
        value = getattr(detail, name)
        if value is not None:
            updates[name] = value
    if detail.images:
        updates["images"] = list(detail.images)
    if detail.attributes:
        attrs = dict(base.attributes)
        attrs.update(detail.attributes)
        updates["attributes"] = attrs
    return replace(base, **updates)
