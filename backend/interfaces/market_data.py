"""Market data interface contracts.

The aggregator walks an ordered list of sources behind this protocol, so
providers can be added, reordered or faked in tests without touching the
fallback logic.
"""

from __future__ import annotations

from typing import Optional, Protocol

from models.market_data import MarketDataRecord


class MarketDataSource(Protocol):
    """One price / market-cap provider."""

    name: str

    async def fetch(self, contract_address: str) -> Optional[MarketDataRecord]:
        """Return a record, or None when the provider has no data for the token.

        Transport and HTTP failures raise ``ProviderError``.
        """
