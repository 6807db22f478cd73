"""Search quota tracking: block callers until the quota is safe, retry on quota errors."""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import httpx

from .errors import CatalogError, QuotaExceeded, SearchAborted
from .github_api import is_rate_limited

logger = logging.getLogger("bruno_catalog")


@dataclass(frozen=True)
class QuotaVerdict:
    is_quota_error: bool
    retry_after: Optional[float] = None


class QuotaTracker:
    """Guards every search call made by one crawl session.

    ``check_and_wait`` reads the quota and sleeps under a lock, so two
    searches from the same process never both proceed on one stale read.
    """

    def __init__(self, client, threshold: int = 2, buffer_seconds: float = 5.0,
                 max_retries: int = 3,
                 sleep: Callable[[float], Awaitable[None]] = None,
                 clock: Callable[[], float] = None):
        self.client = client
        self.threshold = threshold
        self.buffer_seconds = buffer_seconds
        self.max_retries = max(1, max_retries)
        self._sleep = sleep or asyncio.sleep
        self._clock = clock or time.time
        self._lock = asyncio.Lock()
        self.remaining: Optional[int] = None
        self.limit: Optional[int] = None
        self.reset_at: Optional[float] = None
        self.total_waited = 0.0

    async def refresh(self) -> dict:
        quota = await self.client.get_quota()
        self.remaining = quota["remaining"]
        self.limit = quota["limit"]
        self.reset_at = quota["reset"]
        return quota

    def wait_seconds(self, reset_at: float) -> float:
        return max(0.0, reset_at - self._clock() + self.buffer_seconds)

    async def _suspend(self, seconds: float, reason: str):
        if seconds <= 0:
            return
        logger.info(f"{reason}: waiting {seconds:.0f}s until quota reset")
        self.total_waited += seconds
        await self._sleep(seconds)

    async def check_and_wait(self):
        async with self._lock:
            try:
                quota = await self.refresh()
            except CatalogError as e:
                logger.warning(f"Could not read search quota: {e}")
                return

            logger.debug(f"Search quota: {quota['remaining']}/{quota['limit']}, "
                         f"resets at {quota['reset']:.0f}")
            if quota["remaining"] < self.threshold:
                await self._suspend(self.wait_seconds(quota["reset"]), "Search quota low")

    def classify_error(self, err: BaseException) -> QuotaVerdict:
        if isinstance(err, QuotaExceeded):
            retry_after = self.wait_seconds(err.reset_at) if err.reset_at else None
            return QuotaVerdict(True, retry_after)
        if isinstance(err, httpx.HTTPStatusError) and is_rate_limited(err.response):
            reset = err.response.headers.get("x-ratelimit-reset")
            return QuotaVerdict(True, self.wait_seconds(float(reset)) if reset else None)
        return QuotaVerdict(False)

    async def _wait_after_quota_error(self, verdict: QuotaVerdict):
        async with self._lock:
            try:
                quota = await self.refresh()
                wait = self.wait_seconds(quota["reset"])
            except CatalogError as e:
                logger.warning(f"Could not re-read search quota: {e}")
                wait = verdict.retry_after if verdict.retry_after is not None else self.buffer_seconds
            await self._suspend(wait, "Search quota exceeded")

    async def call_with_retry(self, fn: Callable[..., Awaitable], *args, **kwargs):
        """Run ``fn``; on quota errors wait for the reset and retry, then give up."""
        for attempt in range(1, self.max_retries + 1):
            try:
                return await fn(*args, **kwargs)
            except (QuotaExceeded, httpx.HTTPStatusError) as e:
                verdict = self.classify_error(e)
                if not verdict.is_quota_error:
                    raise
                if attempt == self.max_retries:
                    raise SearchAborted(
                        f"Gave up after {self.max_retries} quota-limited attempts: {e}"
                    ) from e
                logger.warning(f"Quota error (attempt {attempt}/{self.max_retries}): {e}")
                await self._wait_after_quota_error(verdict)

    async def pause(self, seconds: float):
        """Fixed delay for secondary rate limits the quota counter doesn't show."""
        if seconds > 0:
            await self._sleep(seconds)
