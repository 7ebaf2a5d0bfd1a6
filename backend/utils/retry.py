import asyncio
import random
from typing import Optional, Tuple, Type

import httpx

from utils.logger import get_logger
from utils.rate_limiter import RateLimiter, endpoint_for_url

logger = get_logger("retry")

DEFAULT_RETRYABLE_EXCEPTIONS: Tuple[Type[Exception], ...] = (
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
    ConnectionError,
    asyncio.TimeoutError,
)


class RetryConfig:
    """Configuration for provider HTTP retries"""

    def __init__(
        self,
        max_attempts: int = 2,
        base_delay: float = 0.5,
        max_delay: float = 10.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
        retryable_exceptions: Tuple[Type[Exception], ...] = DEFAULT_RETRYABLE_EXCEPTIONS,
        retryable_status_codes: Tuple[int, ...] = (429, 500, 502, 503, 504),
    ):
        self.max_attempts = max(1, max_attempts)
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.retryable_exceptions = retryable_exceptions
        self.retryable_status_codes = retryable_status_codes

    @classmethod
    def from_settings(cls, settings) -> "RetryConfig":
        return cls(
            max_attempts=settings.MAX_RETRY_ATTEMPTS,
            base_delay=settings.RETRY_BASE_DELAY,
        )


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Exponential backoff with optional jitter"""
    delay = min(config.base_delay * (config.exponential_base**attempt), config.max_delay)
    if config.jitter:
        delay = delay * (0.5 + random.random())
    return delay


def is_retryable_error(error: Exception, config: RetryConfig) -> bool:
    if isinstance(error, config.retryable_exceptions):
        return True
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code in config.retryable_status_codes
    return False


def _retry_after_seconds(error: Exception) -> Optional[float]:
    if not isinstance(error, httpx.HTTPStatusError) or error.response.status_code != 429:
        return None
    raw = error.response.headers.get("Retry-After")
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


class RetryableClient:
    """httpx client wrapper with rate limiting and automatic retry.

    Every attempt first waits on the provider's rate limit bucket, then
    sends the request and raises for non-2xx responses. Transport errors and
    429/5xx responses are retried with backoff; anything else propagates on
    the first attempt.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        config: Optional[RetryConfig] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        self.client = client
        self.config = config or RetryConfig()
        self.rate_limiter = rate_limiter

    async def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        last_error: Optional[Exception] = None

        for attempt in range(self.config.max_attempts):
            if self.rate_limiter is not None:
                await self.rate_limiter.acquire(endpoint_for_url(url))
            try:
                response = await self.client.request(method, url, **kwargs)
                response.raise_for_status()
                return response
            except Exception as e:
                last_error = e

                if not is_retryable_error(e, self.config):
                    raise

                if attempt < self.config.max_attempts - 1:
                    delay = calculate_delay(attempt, self.config)
                    retry_after = _retry_after_seconds(e)
                    if retry_after is not None:
                        delay = max(delay, retry_after)

                    logger.warning(
                        "Retrying provider request",
                        method=method,
                        url=url,
                        attempt=attempt + 1,
                        delay=round(delay, 3),
                        error=str(e) or repr(e),
                    )
                    await asyncio.sleep(delay)

        logger.warning(
            "Provider request retries exhausted",
            method=method,
            url=url,
            attempts=self.config.max_attempts,
            error=str(last_error) or repr(last_error),
        )
        raise last_error

    async def get(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def aclose(self) -> None:
        if not self.client.is_closed:
            await self.client.aclose()
