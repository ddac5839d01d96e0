"""
Export utilities for scraped listings.
"""
import json
import logging
from typing import Dict, List, Sequence

import pandas as pd

from .models import Listing

logger = logging.getLogger(__name__)


def listing_row(x: Listing) -> Dict:
    """Flatten one listing into a spreadsheet-friendly row."""
    return {
        "id": x.id,
        "title": x.title,
        "price_text": x.price,
        "price_value": x.price_numeric,
        "price_currency": x.price_currency,
        "location_text": x.location,
        "posted_at": x.posted_at.isoformat() if x.posted_at else None,
        "thumbnail_url": x.image_url,
        "img_urls": "|".join(x.images) if x.images else "",
        "latitude": x.latitude,
        "longitude": x.longitude,
        "description": x.description,
        "attributes_json": json.dumps(x.attributes, ensure_ascii=False),
        "source_region": x.source_region,
        "subregion": x.subregion,
        "item_url": x.url,
    }


def listings_to_frame(listings: Sequence[Listing]) -> pd.DataFrame:
    rows: List[Dict] = [listing_row(x) for x in listings]
    if not rows:
        return pd.DataFrame(columns=list(listing_row(Listing(id=None, title="", url="")).keys()))
    return pd.DataFrame(rows)


def save_output_rows(listings: Sequence[Listing], out_path: str) -> pd.DataFrame:
    """Save listings to an Excel, JSON or CSV file, chosen by extension."""
    df = listings_to_frame(listings)
    lowered = out_path.lower()
    if lowered.endswith(".xlsx"):
        df.to_excel(out_path, index=False)
    elif lowered.endswith(".json"):
        df.to_json(out_path, orient="records", force_ascii=False, indent=2)
    else:
        df.to_csv(out_path, index=False)

    logger.info(f">>> Saved {len(df)} rows to {out_path}")
    return df
