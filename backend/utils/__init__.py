from .logger import setup_logging, get_logger
from .retry import RetryConfig, RetryableClient
from .rate_limiter import RateLimiter, RequestWindowLimiter, RateLimitExceeded, endpoint_for_url

__all__ = [
    # Logger
    "setup_logging",
    "get_logger",

    # Retry
    "RetryConfig",
    "RetryableClient",

    # Rate Limiter
    "RateLimiter",
    "RequestWindowLimiter",
    "RateLimitExceeded",
    "endpoint_for_url",
]
