from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from utils.clock import utcnow

FALLBACK_SOURCE = "fallback"


def to_float(raw: object, default: Optional[float] = 0.0) -> Optional[float]:
    """Parse provider numbers, which arrive as floats, ints or numeric strings."""
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except (TypeError, ValueError):
        return default


class MarketDataRecord(BaseModel):
    """Normalized price / market-cap snapshot for one token from one provider"""

    model_config = ConfigDict(frozen=True)

    contract_address: str
    symbol: str = "UNKNOWN"
    name: str = "Unknown Token"
    price: float = 0.0  # USD per unit
    market_cap: Optional[float] = None
    liquidity: float = 0.0
    volume_24h: float = 0.0
    price_change_24h: Optional[float] = None  # percent
    source: str
    fetched_at: datetime = Field(default_factory=utcnow)
    error: Optional[str] = None
    stale: bool = False

    @property
    def is_fallback(self) -> bool:
        return self.source == FALLBACK_SOURCE

    @property
    def has_market_cap(self) -> bool:
        return self.market_cap is not None and self.market_cap > 0

    @classmethod
    def fallback(cls, contract_address: str, error: str = "All data sources failed") -> "MarketDataRecord":
        """Zero-valued placeholder used when no provider has data"""
        return cls(
            contract_address=contract_address,
            price=0.0,
            market_cap=0.0,
            source=FALLBACK_SOURCE,
            error=error,
        )

    @classmethod
    def from_jupiter(
        cls, contract_address: str, data: dict, total_supply: Optional[float] = None
    ) -> "MarketDataRecord":
        """Parse one entry of a Jupiter ``/price`` response"""
        price = to_float(data.get("price"))
        market_cap = None
        if total_supply is not None and total_supply > 0 and price > 0:
            market_cap = price * total_supply
        return cls(
            contract_address=contract_address,
            price=price,
            market_cap=market_cap,
            source="jupiter",
        )

    @classmethod
    def from_dexscreener_pair(cls, contract_address: str, pair: dict) -> "MarketDataRecord":
        """Parse a DexScreener trading pair"""
        base_token = pair.get("baseToken") or {}
        liquidity = pair.get("liquidity") or {}
        volume = pair.get("volume") or {}
        price_change = pair.get("priceChange") or {}

        market_cap = to_float(pair.get("marketCap"), None)
        if market_cap is None:
            market_cap = to_float(pair.get("fdv"), None)

        return cls(
            contract_address=contract_address,
            symbol=base_token.get("symbol") or "UNKNOWN",
            name=base_token.get("name") or "Unknown Token",
            price=to_float(pair.get("priceUsd")),
            market_cap=market_cap,
            liquidity=to_float(liquidity.get("usd")),
            volume_24h=to_float(volume.get("h24")),
            price_change_24h=to_float(price_change.get("h24"), None),
            source="dexscreener",
        )
