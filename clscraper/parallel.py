"""
Bounded-concurrency batch processing with inter-batch delays.
"""
import asyncio
import logging
import time
from collections import deque
from typing import Awaitable, Callable, Deque, List, Optional, Sequence, TypeVar

from .config import config
from .models import Listing, merge_listing

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


async def run_batched(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    concurrency: int = 5,
    inter_batch_delay_ms: float = config.BATCH_DELAY_MS,
    request_delay_ms: float = config.REQUEST_DELAY_MS,
) -> List[Optional[R]]:
    """
    Run ``worker`` over ``items`` in consecutive chunks of ``concurrency``.

    A chunk starts only after the previous one has settled and the inter-batch
    delay has elapsed. A failing item yields ``None`` in its slot; the result
    always has one entry per input item, in input order.
    """
    if concurrency < 1:
        raise ValueError("concurrency must be at least 1")

    items = list(items)
    batches = [items[i:i + concurrency] for i in range(0, len(items), concurrency)]
    logger.info(f">>> Processing {len(items)} items in {len(batches)} batches with concurrency {concurrency}")

    results: List[Optional[R]] = []
    for b, batch in enumerate(batches, 1):
        logger.info(f">>> Processing batch {b}/{len(batches)} ({len(batch)} items)")

        async def run_one(item: T, index: int) -> Optional[R]:
            if index > 0 and request_delay_ms:
                await asyncio.sleep(request_delay_ms / 1000)
            try:
                return await worker(item)
            except Exception as exc:
                logger.error(f"Error processing item in batch {b}: {exc}")
                return None

        batch_results = await asyncio.gather(*(run_one(item, i) for i, item in enumerate(batch)))
        results.extend(batch_results)

        done = sum(1 for r in results if r is not None)
        logger.info(f">>> Batch {b}/{len(batches)} completed. Total results: {done}/{len(results)}")

        if b < len(batches) and inter_batch_delay_ms:
            await asyncio.sleep(inter_batch_delay_ms / 1000)

    return results


async def process_regions(
    regions: Sequence[str],
    search_region: Callable[[str], Awaitable[List[Listing]]],
    concurrency: int = config.MAX_CONCURRENT_REGIONS,
    inter_batch_delay_ms: float = config.BATCH_DELAY_MS,
    request_delay_ms: float = config.REQUEST_DELAY_MS,
) -> List[Listing]:
    """Search many regions and flatten the results; a failed region contributes nothing."""
    if not regions:
        return []

    async def worker(region: str) -> List[Listing]:
        logger.info(f">>> Processing region: {region}")
        found = await search_region(region)
        logger.info(f">>> Region {region} completed with {len(found or [])} results")
        return found or []

    per_region = await run_batched(regions, worker, concurrency, inter_batch_delay_ms, request_delay_ms)
    flat = [listing for found in per_region if found for listing in found]
    logger.info(f">>> Total results from all regions: {len(flat)}")
    return flat


async def process_details(
    listings: Sequence[Listing],
    fetch_detail: Callable[[str], Awaitable[Listing]],
    concurrency: int = config.MAX_CONCURRENT_DETAILS,
    inter_batch_delay_ms: float = config.BATCH_DELAY_MS,
    request_delay_ms: float = config.REQUEST_DELAY_MS,
) -> List[Listing]:
    """Enrich listings with their detail pages; a failed detail keeps the original listing."""
    if not listings:
        return []
    logger.info(f">>> Processing details for {len(listings)} listings")

    async def worker(listing: Listing) -> Listing:
        detail = await fetch_detail(listing.url)
        return merge_listing(listing, detail)

    enriched = await run_batched(listings, worker, concurrency, inter_batch_delay_ms, request_delay_ms)
    return [new if new is not None else old for old, new in zip(listings, enriched)]


class RateLimiter:
    """Sliding-window limiter: at most ``max_requests`` per ``window_seconds``."""

    def __init__(self, max_requests: int = 10, window_seconds: float = 60.0,
                 clock: Callable[[], float] = time.monotonic):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._requests: Deque[float] = deque()
        self._lock = asyncio.Lock()

    async def wait(self) -> float:
        """Block until a slot is free; returns the seconds waited."""
        async with self._lock:
            now = self._clock()
            self._drop_expired(now)
            waited = 0.0
            if len(self._requests) >= self.max_requests:
                waited = self.window_seconds - (now - self._requests[0])
                if waited > 0:
                    logger.debug(f"Rate limit reached, waiting {waited:.2f}s")
                    await asyncio.sleep(waited)
                now = self._clock()
                self._drop_expired(now)
            self._requests.append(now)
            return max(waited, 0.0)

    def _drop_expired(self, now: float) -> None:
        while self._requests and now - self._requests[0] >= self.window_seconds:
            self._requests.popleft()
