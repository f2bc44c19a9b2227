"""Async minimum-interval rate limiter, one per venue."""

import asyncio
import logging
import time

logger = logging.getLogger(__name__)


class RateLimiter:
    """Spaces signed requests at least ``1 / requests_per_second`` apart."""

    def __init__(self, requests_per_second: float):
        self.requests_per_second = requests_per_second
        self.min_interval = 1.0 / requests_per_second
        self._last_request: float | None = None
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        async with self._lock:
            now = time.monotonic()
            if self._last_request is not None:
                elapsed = now - self._last_request
                if elapsed < self.min_interval:
                    wait = self.min_interval - elapsed
                    logger.debug(f"Rate limit: waiting {wait:.3f}s")
                    await asyncio.sleep(wait)
            self._last_request = time.monotonic()

    async def __aenter__(self):
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return None


_limiters: dict[str, RateLimiter] = {}


def limiter_for(venue: str, requests_per_second: float) -> RateLimiter:
    """Process-wide limiter per venue, shared by every gateway instance."""
    limiter = _limiters.get(venue)
    if limiter is None:
        limiter = RateLimiter(requests_per_second)
        _limiters[venue] = limiter
    return limiter
