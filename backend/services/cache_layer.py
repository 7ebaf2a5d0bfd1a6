"""
In-memory TTL cache shared by the market data, wallet and position services.

Each entry belongs to a data class with its own lifetime. Lookups past the
lifetime count as misses and move the entry to a shadow store, where it stays
available through ``get_stale`` until it is replaced or invalidated. Fetchers
use that copy when the upstream source fails. Classes in ``SWEEP_ON_SET`` are
not served stale; writing one of them drops its expired entries.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from utils.clock import MonotonicClock
from utils.logger import get_logger

logger = get_logger("cache_layer")


class DataClass(str, Enum):
    MARKET_DATA = "market_data"
    WALLET_BALANCE = "wallet_balance"
    TOKEN_INFO = "token_info"
    POSITIONS = "positions"
    PNL = "pnl"


# Keys of these classes embed the price; expired entries are never read again.
SWEEP_ON_SET = frozenset({DataClass.PNL})

DEFAULT_TTLS: Dict[DataClass, float] = {
    DataClass.MARKET_DATA: 30.0,
    DataClass.WALLET_BALANCE: 15.0,
    DataClass.TOKEN_INFO: 60.0,
    DataClass.POSITIONS: 20.0,
    DataClass.PNL: 10.0,
}


def ttls_from_settings(settings) -> Dict[DataClass, float]:
    return {
        DataClass.MARKET_DATA: settings.CACHE_TTL_MARKET_DATA,
        DataClass.WALLET_BALANCE: settings.CACHE_TTL_WALLET_BALANCE,
        DataClass.TOKEN_INFO: settings.CACHE_TTL_TOKEN_INFO,
        DataClass.POSITIONS: settings.CACHE_TTL_POSITIONS,
        DataClass.PNL: settings.CACHE_TTL_PNL,
    }


@dataclass(frozen=True)
class CacheEntry:
    key: str
    payload: Any
    inserted_at: float  # monotonic seconds
    data_class: DataClass


@dataclass(frozen=True)
class CacheLookup:
    """Result of a stale-tolerant lookup"""

    payload: Any
    stale: bool
    age_seconds: float


class CacheLayer:
    def __init__(
        self,
        ttls: Optional[Dict[DataClass, float]] = None,
        clock: MonotonicClock = time.monotonic,
    ):
        self.ttls = {**DEFAULT_TTLS, **(ttls or {})}
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._expired: Dict[str, CacheEntry] = {}
        self.hits = 0
        self.misses = 0
        self.stale_served = 0
        self.evictions = 0

    @staticmethod
    def _full_key(key: str, data_class: DataClass) -> str:
        return f"{data_class.value}:{key}"

    def ttl(self, data_class: DataClass) -> float:
        return self.ttls[data_class]

    def get(self, key: str, data_class: DataClass) -> Optional[Any]:
        """Return the live payload, or None once its lifetime has passed."""
        full_key = self._full_key(key, data_class)
        entry = self._entries.get(full_key)
        if entry is None:
            self.misses += 1
            return None

        if self._clock() - entry.inserted_at < self.ttl(data_class):
            self.hits += 1
            return entry.payload

        del self._entries[full_key]
        self._expired[full_key] = entry
        self.evictions += 1
        self.misses += 1
        return None

    def get_stale(self, key: str, data_class: DataClass) -> Optional[CacheLookup]:
        """Return whatever is held for the key, live or expired.

        Used by fetchers after an upstream failure. Serving counts towards
        ``stale_served``.
        """
        full_key = self._full_key(key, data_class)
        entry = self._entries.get(full_key) or self._expired.get(full_key)
        if entry is None:
            return None

        age = self._clock() - entry.inserted_at
        self.stale_served += 1
        logger.debug(
            "Serving cached copy after upstream failure",
            key=full_key,
            age_seconds=round(age, 3),
        )
        return CacheLookup(payload=entry.payload, stale=True, age_seconds=age)

    def set(self, key: str, payload: Any, data_class: DataClass) -> None:
        full_key = self._full_key(key, data_class)
        self._entries[full_key] = CacheEntry(
            key=full_key,
            payload=payload,
            inserted_at=self._clock(),
            data_class=data_class,
        )
        self._expired.pop(full_key, None)
        if data_class in SWEEP_ON_SET:
            self._sweep(data_class)

    def _sweep(self, data_class: DataClass) -> None:
        """Drop expired entries of one class from both stores."""
        now = self._clock()
        ttl = self.ttl(data_class)
        expired_live = [
            k
            for k, e in self._entries.items()
            if e.data_class == data_class and now - e.inserted_at >= ttl
        ]
        for full_key in expired_live:
            del self._entries[full_key]
        self.evictions += len(expired_live)
        for full_key in [k for k, e in self._expired.items() if e.data_class == data_class]:
            del self._expired[full_key]

    def invalidate(self, pattern: Optional[str] = None) -> int:
        """Drop entries whose key contains ``pattern``; all entries when None."""
        if pattern is None:
            removed = len(self._entries) + len(self._expired)
            self._entries.clear()
            self._expired.clear()
        else:
            removed = 0
            for store in (self._entries, self._expired):
                for full_key in [k for k in store if pattern in k]:
                    del store[full_key]
                    removed += 1

        logger.info("Cache invalidated", pattern=pattern, removed=removed)
        return removed

    @property
    def size(self) -> int:
        return len(self._entries)

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups * 100 if lookups else 0.0

    def stats(self) -> dict:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": round(self.hit_rate, 2),
            "stale_served": self.stale_served,
            "evictions": self.evictions,
            "size": self.size,
            "expired_retained": len(self._expired),
        }
