"""Jupiter price API source.

Jupiter only reports a USD price. Market cap is derived from the mint's total
supply, read through the RPC connection pool; when that read fails the record
carries a price with no market cap.
"""

from typing import Optional

import httpx

from models.market_data import MarketDataRecord
from services.errors import ProviderError, exception_text
from services.rpc_pool import ConnectionPool
from utils.logger import get_logger
from utils.rate_limiter import RateLimitExceeded, RequestWindowLimiter
from utils.retry import RetryableClient

logger = get_logger("jupiter")


class JupiterPriceSource:
    name = "jupiter"

    def __init__(
        self,
        http: RetryableClient,
        base_url: str,
        limiter: RequestWindowLimiter,
        pool: Optional[ConnectionPool] = None,
    ):
        self._http = http
        self.base_url = base_url.rstrip("/")
        self.limiter = limiter
        self._pool = pool

    async def fetch(self, contract_address: str) -> Optional[MarketDataRecord]:
        try:
            self.limiter.check()
        except RateLimitExceeded as e:
            logger.warning(
                "Jupiter request skipped by rate limiter",
                contract=contract_address,
                retry_after=round(e.retry_after, 3),
                error=str(e),
            )
            return None

        self.limiter.record_request()
        try:
            response = await self._http.get(self.base_url, params={"ids": contract_address})
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise ProviderError(self.name, exception_text(e)) from e

        data = body.get("data") if isinstance(body, dict) else None
        price_data = data.get(contract_address) if isinstance(data, dict) else None
        if not isinstance(price_data, dict) or price_data.get("price") in (None, ""):
            return None

        total_supply = await self._read_total_supply(contract_address)
        record = MarketDataRecord.from_jupiter(contract_address, price_data, total_supply)
        if record.price <= 0:
            return None
        return record

    async def _read_total_supply(self, contract_address: str) -> Optional[float]:
        if self._pool is None:
            return None

        handle = None
        try:
            handle = await self._pool.acquire()
            return await handle.get_token_supply(contract_address)
        except Exception as e:
            if handle is not None:
                self._pool.mark_failed(handle)
            logger.info(
                "Token supply unavailable, market cap left empty",
                contract=contract_address,
                error_type=type(e).__name__,
                error=exception_text(e),
            )
            return None
