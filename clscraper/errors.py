"""
Exception types raised by the listing pipeline.
"""


class ScraperError(Exception):
    """Base class for pipeline errors."""


class InvalidRegionError(ScraperError, ValueError):
    """Raised when a region code is not a valid site segment."""

    def __init__(self, region: str):
        super().__init__(f"Invalid region format: {region!r}")
        self.region = region


class UnusablePageError(ScraperError):
    """Raised when a detail page is empty, removed or blocked."""

    def __init__(self, url: str, reason: str = ""):
        msg = f"Invalid or empty content received for {url}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)
        self.url = url
        self.reason = reason


class BrowserUnavailableError(ScraperError):
    """Raised when no Chromium build can be launched."""


class BrowserFetchError(ScraperError):
    """Raised when a browser-driven navigation fails."""
