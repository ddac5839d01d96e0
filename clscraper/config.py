"""
Scraper configuration and settings management.
"""
import os
from typing import Optional


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


class Config:
    """Pipeline configuration."""

    # Target site
    BASE_URL: str = os.getenv("SCRAPER_BASE_URL", "https://{region}.craigslist.org")
    DEFAULT_REGION: str = os.getenv("SCRAPER_DEFAULT_REGION", "sandiego")
    DEFAULT_CATEGORY: str = "sss"

    # Fetching
    PROXY_URL: Optional[str] = os.getenv("SCRAPER_PROXY_URL") or None
    FETCH_RETRIES: int = _env_int("FETCH_RETRIES", 5)
    FETCH_BASE_DELAY_MS: int = _env_int("FETCH_BASE_DELAY_MS", 2000)
    FETCH_JITTER_MS: int = _env_int("FETCH_JITTER_MS", 2000)
    REQUEST_TIMEOUT: float = float(_env_int("REQUEST_TIMEOUT", 30))
    CACHE_TTL_SECONDS: int = _env_int("CACHE_TTL_SECONDS", 3600)
    MAX_REQUESTS_PER_MINUTE: int = _env_int("MAX_REQUESTS_PER_MINUTE", 0)

    # Browser mode
    HEADLESS: bool = os.getenv("HEADLESS", "1").strip().lower() in ("1", "true", "yes")
    NAVIGATION_TIMEOUT_MS: int = _env_int("NAVIGATION_TIMEOUT_MS", 60_000)
    SELECTOR_TIMEOUT_MS: int = _env_int("SELECTOR_TIMEOUT_MS", 10_000)
    MAX_SCROLLS: int = _env_int("MAX_SCROLLS", 5)
    SCROLL_DELAY_MS: int = _env_int("SCROLL_DELAY_MS", 2000)

    # Batching
    MAX_CONCURRENT_REGIONS: int = _env_int("MAX_CONCURRENT_CITIES", 10)
    MAX_CONCURRENT_DETAILS: int = _env_int("MAX_CONCURRENT_DETAILS", 10)
    BATCH_DELAY_MS: int = _env_int("BATCH_DELAY", 1000)
    REQUEST_DELAY_MS: int = _env_int("REQUEST_DELAY", 500)

    # Pagination
    PAGE_CONCURRENCY: int = 3
    PAGE_BATCH_DELAY_MS: int = 2000
    RESULTS_PER_PAGE: int = 120
    MAX_PAGES: int = 5

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def validate(cls) -> None:
        """Validate configuration on startup."""
        if "{region}" not in cls.BASE_URL:
            raise ValueError(f"SCRAPER_BASE_URL must contain '{{region}}': {cls.BASE_URL}")
        if cls.FETCH_RETRIES < 1:
            raise ValueError("FETCH_RETRIES must be at least 1")
        for name in ("MAX_CONCURRENT_REGIONS", "MAX_CONCURRENT_DETAILS", "PAGE_CONCURRENCY"):
            if getattr(cls, name) < 1:
                raise ValueError(f"{name} must be at least 1")
        if cls.RESULTS_PER_PAGE < 1:
            raise ValueError("RESULTS_PER_PAGE must be at least 1")

# Global config instance
config = Config()
