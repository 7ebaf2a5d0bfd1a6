from typing import Optional

import httpx

from models.market_data import MarketDataRecord, to_float
from services.errors import ProviderError, exception_text
from utils.logger import get_logger
from utils.retry import RetryableClient

logger = get_logger("dexscreener")


def select_best_pair(contract_address: str, pairs: list) -> Optional[dict]:
    """Highest-USD-liquidity pair, preferring pairs where the token is the base."""
    candidates = [p for p in pairs if isinstance(p, dict)]
    if not candidates:
        return None

    as_base = [
        p for p in candidates if (p.get("baseToken") or {}).get("address") == contract_address
    ]
    pool = as_base or candidates
    return max(pool, key=lambda p: to_float((p.get("liquidity") or {}).get("usd")))


class DexScreenerSource:
    """Token-pair search on DexScreener (waits on a 1 req/s bucket)"""

    name = "dexscreener"

    def __init__(self, http: RetryableClient, base_url: str):
        self._http = http
        self.base_url = base_url.rstrip("/")

    async def fetch(self, contract_address: str) -> Optional[MarketDataRecord]:
        try:
            response = await self._http.get(f"{self.base_url}/dex/tokens/{contract_address}")
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise ProviderError(self.name, exception_text(e)) from e

        pairs = body.get("pairs") if isinstance(body, dict) else None
        if not pairs:
            logger.debug("No DexScreener pairs", contract=contract_address)
            return None

        pair = select_best_pair(contract_address, pairs)
        if pair is None:
            return None
        return MarketDataRecord.from_dexscreener_pair(contract_address, pair)
