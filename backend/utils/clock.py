"""Time helpers shared by the cache, pool and models.

Wall-clock values are naive UTC datetimes (``tzinfo=None``), which is what the
ledger tables store. Expiry arithmetic uses the monotonic clock so TTLs are not
affected by system clock adjustments.
"""

import time
from datetime import datetime, timezone
from typing import Callable

# Injected wherever TTLs are evaluated; tests swap in a fake.
MonotonicClock = Callable[[], float]


def utcnow() -> datetime:
    """Return the current UTC time as a naive (tzinfo=None) datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def monotonic() -> float:
    return time.monotonic()


def elapsed_ms(started: float) -> float:
    """Milliseconds since ``started`` (a :func:`monotonic` reading)."""
    return (time.monotonic() - started) * 1000.0
