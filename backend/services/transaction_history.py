"""Wallet transaction history via the Helius enhanced transactions API."""

from typing import Optional

import httpx

from models.wallet import ParsedTransaction, TransactionSummary
from services.cache_layer import CacheLayer, DataClass
from services.errors import ProviderError, exception_text
from services.metrics import ServiceMetrics
from utils.clock import elapsed_ms, monotonic
from utils.logger import get_logger
from utils.retry import RetryableClient

logger = get_logger("transaction_history")


class TransactionHistoryService:
    name = "helius"

    def __init__(
        self,
        http: RetryableClient,
        base_url: str,
        api_key: Optional[str],
        cache: CacheLayer,
        metrics: Optional[ServiceMetrics] = None,
    ):
        self._http = http
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.cache = cache
        self.metrics = metrics or ServiceMetrics()

    def _require_key(self) -> str:
        if not self.api_key:
            raise ProviderError(self.name, "HELIUS_API_KEY is not configured")
        return self.api_key

    async def _call(self, method: str, url: str, **kwargs):
        started = monotonic()
        try:
            response = await self._http.request(method, url, **kwargs)
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            self.metrics.record_call(elapsed_ms(started), success=False)
            raise ProviderError(self.name, exception_text(e)) from e
        self.metrics.record_call(elapsed_ms(started))
        return body

    async def get_transaction_history(
        self, address: str, limit: int = 10, force_refresh: bool = False
    ) -> list[TransactionSummary]:
        cache_key = f"tx_history:{address}:{limit}"
        if not force_refresh:
            cached = self.cache.get(cache_key, DataClass.TOKEN_INFO)
            if cached is not None:
                return cached

        try:
            api_key = self._require_key()
            body = await self._call(
                "GET",
                f"{self.base_url}/addresses/{address}/transactions/",
                params={"api-key": api_key, "limit": limit},
            )
            if not isinstance(body, list):
                raise ProviderError(self.name, "transaction history is not a list")
        except ProviderError as e:
            lookup = self.cache.get_stale(cache_key, DataClass.TOKEN_INFO)
            logger.warning(
                "Transaction history unavailable",
                address=address,
                error=exception_text(e),
                served_stale=lookup is not None,
            )
            return lookup.payload if lookup is not None else []

        transactions = [TransactionSummary.from_helius(tx) for tx in body if isinstance(tx, dict)]
        self.cache.set(cache_key, transactions, DataClass.TOKEN_INFO)
        return transactions

    async def parse_transaction(
        self, signature: str, force_refresh: bool = False
    ) -> Optional[ParsedTransaction]:
        cache_key = f"parsed_tx:{signature}"
        if not force_refresh:
            cached = self.cache.get(cache_key, DataClass.TOKEN_INFO)
            if cached is not None:
                return cached

        try:
            api_key = self._require_key()
            body = await self._call(
                "POST",
                f"{self.base_url}/transactions/",
                params={"api-key": api_key},
                json={"transactions": [signature]},
            )
            if not isinstance(body, list) or not body or not isinstance(body[0], dict):
                raise ProviderError(self.name, "transaction not found or not parseable")
        except ProviderError as e:
            lookup = self.cache.get_stale(cache_key, DataClass.TOKEN_INFO)
            logger.warning(
                "Transaction parse failed",
                signature=signature,
                error=exception_text(e),
                served_stale=lookup is not None,
            )
            return lookup.payload if lookup is not None else None

        parsed = ParsedTransaction.from_helius(body[0])
        self.cache.set(cache_key, parsed, DataClass.TOKEN_INFO)
        return parsed
