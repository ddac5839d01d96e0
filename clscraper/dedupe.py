"""
Near-duplicate removal for listing result sets.
"""
import logging
import re
from typing import List, Optional, Sequence, Tuple

from .models import Listing
from .utils import extract_image_id, title_similarity

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.85


def normalize_title(title: Optional[str]) -> str:
    """Lowercase, drop punctuation, collapse whitespace."""
    if not title:
        return ""
    s = re.sub(r"[^\w\s]", "", title.lower())
    return re.sub(r"\s+", " ", s).strip()


def _image_key(listing: Listing) -> Optional[str]:
    for image in ([listing.image_url] if listing.image_url else []) + list(listing.images):
        image_id = extract_image_id(image)
        if image_id:
            return image_id
    return None


def is_same_posting(first: Listing, second: Listing) -> bool:
    """Same posting id, or the same photo offered at the same price."""
    if first.id and first.id == second.id:
        return True
    if first.price_numeric is None or first.price_numeric != second.price_numeric:
        return False
    image = _image_key(first)
    return image is not None and image == _image_key(second)


def dedupe(listings: Sequence[Listing], threshold: float = DEFAULT_THRESHOLD) -> List[Listing]:
    """
    Drop records whose title is more than ``threshold`` similar to one already
    kept, or that repeat a kept posting. The first occurrence survives and
    order is preserved. Records without a title are always kept.
    """
    kept: List[Tuple[Listing, str]] = []
    result: List[Listing] = []

    for listing in listings:
        norm = normalize_title(listing.title)
        if not norm:
            result.append(listing)
            continue

        duplicate = False
        for other, other_norm in kept:
            if title_similarity(norm, other_norm) > threshold or is_same_posting(listing, other):
                duplicate = True
                logger.debug(f"Dropping duplicate '{listing.title}' of '{other.title}'")
                break

        if not duplicate:
            kept.append((listing, norm))
            result.append(listing)

    if len(result) < len(listings):
        logger.info(f">>> Removed {len(listings) - len(result)} duplicate listings")
    return result
