import sys
from pathlib import Path

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from utils.rate_limiter import (  # noqa: E402
    RateLimitConfig,
    RateLimiter,
    RateLimitExceeded,
    RequestWindowLimiter,
    endpoint_for_url,
)
from conftest import FakeClock  # noqa: E402


def test_conservative_limit_uses_safety_factor():
    limiter = RequestWindowLimiter(600, safety_factor=0.8)
    assert limiter.conservative_limit == 480


def test_rejects_when_window_counter_reaches_conservative_cap():
    clock = FakeClock()
    limiter = RequestWindowLimiter(10, safety_factor=0.5, min_interval_seconds=0.2, clock=clock)

    for _ in range(5):
        limiter.check()
        limiter.record_request()
        clock.advance(1.0)

    with pytest.raises(RateLimitExceeded) as exc_info:
        limiter.check()
    assert exc_info.value.retry_after > 0
    assert limiter.get_status()["remaining"] == 0


def test_window_resets_after_window_seconds():
    clock = FakeClock()
    limiter = RequestWindowLimiter(2, safety_factor=0.5, window_seconds=60, clock=clock)
    limiter.check()
    limiter.record_request()

    clock.advance(60)
    limiter.check()
    assert limiter.request_count == 0


def test_requests_closer_than_min_interval_are_rejected():
    clock = FakeClock()
    limiter = RequestWindowLimiter(600, min_interval_seconds=0.2, clock=clock)

    limiter.check()
    limiter.record_request()
    clock.advance(0.1)

    with pytest.raises(RateLimitExceeded, match="too soon"):
        limiter.check()

    clock.advance(0.2)
    limiter.check()


def test_interval_is_not_enforced_before_first_recorded_request():
    clock = FakeClock()
    limiter = RequestWindowLimiter(600, min_interval_seconds=0.2, clock=clock)

    limiter.check()
    limiter.check()
    assert limiter.request_count == 0


@pytest.mark.asyncio
async def test_token_bucket_acquire_without_wait_when_capacity_available():
    limiter = RateLimiter({"dexscreener": RateLimitConfig(requests_per_window=5, window_seconds=1.0)})

    waited = await limiter.acquire("dexscreener")

    assert waited == 0.0
    assert limiter.get_status()["dexscreener"]["capacity"] == 5


def test_endpoint_for_url_maps_providers():
    assert endpoint_for_url("https://api.dexscreener.com/latest/dex/tokens/x") == "dexscreener"
    assert endpoint_for_url("https://api.helius.xyz/v0/transactions/") == "helius"
    assert endpoint_for_url("https://lite-api.jup.ag/price/v2") == "jupiter"
    assert endpoint_for_url("https://example.org") == "default"
