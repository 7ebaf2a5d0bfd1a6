import asyncio
import math
import time
from typing import Dict, Optional
from dataclasses import dataclass, field

from utils.clock import MonotonicClock
from utils.logger import get_logger

logger = get_logger("rate_limiter")


class RateLimitExceeded(Exception):
    """Raised by :class:`RequestWindowLimiter` when a request must not be sent."""

    def __init__(self, message: str, retry_after: float = 0.0):
        super().__init__(message)
        self.retry_after = max(0.0, retry_after)


@dataclass
class RateLimitConfig:
    """Rate limit configuration for an API endpoint"""

    requests_per_window: int
    window_seconds: float = 10.0
    burst_limit: Optional[int] = None  # Max burst if different from rate


@dataclass
class TokenBucket:
    """Token bucket for rate limiting"""

    capacity: float
    tokens: float
    refill_rate: float  # tokens per second
    last_refill: float = field(default_factory=time.monotonic)

    def refill(self):
        now = time.monotonic()
        elapsed = now - self.last_refill
        self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

    def consume(self, tokens: int = 1) -> bool:
        self.refill()
        if self.tokens >= tokens:
            self.tokens -= tokens
            return True
        return False

    def wait_time(self, tokens: int = 1) -> float:
        self.refill()
        if self.tokens >= tokens:
            return 0.0
        return (tokens - self.tokens) / self.refill_rate


class RateLimiter:
    """Waiting rate limiter (token bucket per provider endpoint)"""

    DEFAULT_LIMITS = {
        "dexscreener": RateLimitConfig(requests_per_window=1, window_seconds=1.0),
        "helius": RateLimitConfig(requests_per_window=10, window_seconds=1.0),
        "jupiter": RateLimitConfig(requests_per_window=600, window_seconds=60.0),
    }

    def __init__(self, limits: Optional[Dict[str, RateLimitConfig]] = None):
        self.limits = {**self.DEFAULT_LIMITS, **(limits or {})}
        self._buckets: Dict[str, TokenBucket] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _get_bucket(self, endpoint: str) -> TokenBucket:
        if endpoint not in self._buckets:
            config = self.limits.get(endpoint, RateLimitConfig(100, 10))
            capacity = config.burst_limit or config.requests_per_window
            refill_rate = config.requests_per_window / config.window_seconds
            self._buckets[endpoint] = TokenBucket(
                capacity=capacity, tokens=capacity, refill_rate=refill_rate
            )
        return self._buckets[endpoint]

    def _get_lock(self, endpoint: str) -> asyncio.Lock:
        if endpoint not in self._locks:
            self._locks[endpoint] = asyncio.Lock()
        return self._locks[endpoint]

    async def acquire(self, endpoint: str, tokens: int = 1) -> float:
        """Block until the endpoint has capacity. Returns the time waited."""
        async with self._get_lock(endpoint):
            bucket = self._get_bucket(endpoint)
            wait_time = bucket.wait_time(tokens)

            if wait_time > 0:
                logger.debug("Rate limit wait", endpoint=endpoint, wait_seconds=wait_time)
                await asyncio.sleep(wait_time)
                bucket.refill()

            bucket.consume(tokens)
            return wait_time

    def get_status(self) -> Dict[str, dict]:
        status = {}
        for endpoint, bucket in self._buckets.items():
            bucket.refill()
            config = self.limits.get(endpoint)
            status[endpoint] = {
                "available_tokens": round(bucket.tokens, 3),
                "capacity": bucket.capacity,
                "limit": f"{config.requests_per_window}/{config.window_seconds}s"
                if config
                else "default",
            }
        return status


class RequestWindowLimiter:
    """Rejecting limiter with a conservative per-window request cap.

    ``check()`` runs before a request is issued and raises
    :class:`RateLimitExceeded` when the window's counter already reached
    ``floor(max_requests * safety_factor)`` or when the previous request was
    less than ``min_interval_seconds`` ago. The counter itself only moves in
    ``record_request()``, which callers invoke when the request is sent, so the
    interval test sees the state left by the last *checked* call.
    """

    def __init__(
        self,
        max_requests_per_window: int,
        *,
        window_seconds: float = 60.0,
        safety_factor: float = 0.8,
        min_interval_seconds: float = 0.2,
        clock: MonotonicClock = time.monotonic,
    ):
        self.max_requests_per_window = max_requests_per_window
        self.window_seconds = window_seconds
        self.safety_factor = safety_factor
        self.min_interval_seconds = min_interval_seconds
        self._clock = clock
        self.request_count = 0
        self.window_started_at = clock()
        self.last_request_at = 0.0

    @property
    def conservative_limit(self) -> int:
        return int(math.floor(self.max_requests_per_window * self.safety_factor))

    def check(self) -> None:
        now = self._clock()
        elapsed = now - self.window_started_at

        if elapsed >= self.window_seconds:
            self.request_count = 0
            self.window_started_at = now

        limit = self.conservative_limit
        if self.request_count >= limit:
            retry_after = self.window_seconds - elapsed
            raise RateLimitExceeded(
                f"Rate limit exceeded ({self.request_count}/{limit}). "
                f"Wait {math.ceil(retry_after)} seconds.",
                retry_after=retry_after,
            )

        if self.request_count > 0:
            since_last = now - self.last_request_at
            if since_last < self.min_interval_seconds:
                raise RateLimitExceeded(
                    "Request too soon - rate limiting active",
                    retry_after=self.min_interval_seconds - since_last,
                )

        self.last_request_at = now

    def record_request(self) -> None:
        self.request_count += 1

    def get_status(self) -> dict:
        return {
            "request_count": self.request_count,
            "conservative_limit": self.conservative_limit,
            "window_seconds": self.window_seconds,
            "remaining": max(0, self.conservative_limit - self.request_count),
        }


def endpoint_for_url(url: str) -> str:
    """Map a provider URL to its rate limit bucket"""
    if "dexscreener" in url:
        return "dexscreener"
    if "helius" in url:
        return "helius"
    if "jup.ag" in url:
        return "jupiter"
    return "default"
