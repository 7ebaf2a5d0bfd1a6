"""
Market data aggregation with provider fallback.

Lookup order: cache, then each source in list order, then a zero-valued
``fallback`` record. Every successful or fallback result is cached. When no
source produced a record, at least one of them raised, and an expired record
is still held, that record is returned flagged stale instead of the fallback.
"""

import asyncio
from typing import Optional, Sequence

from interfaces.market_data import MarketDataSource
from models.market_data import MarketDataRecord
from services.cache_layer import CacheLayer, DataClass
from services.errors import ProviderError, exception_text
from services.metrics import ServiceMetrics
from utils.clock import elapsed_ms, monotonic
from utils.logger import get_logger

logger = get_logger("market_data")


class MarketDataAggregator:
    def __init__(
        self,
        sources: Sequence[MarketDataSource],
        cache: CacheLayer,
        metrics: Optional[ServiceMetrics] = None,
    ):
        self.sources = list(sources)
        self.cache = cache
        self.metrics = metrics or ServiceMetrics()

    def _stale_copy(self, contract_address: str) -> Optional[MarketDataRecord]:
        lookup = self.cache.get_stale(contract_address, DataClass.MARKET_DATA)
        if lookup is None:
            return None
        return lookup.payload.model_copy(update={"stale": True})

    async def get_market_data(
        self, contract_address: str, force_refresh: bool = False
    ) -> MarketDataRecord:
        if not force_refresh:
            cached = self.cache.get(contract_address, DataClass.MARKET_DATA)
            if cached is not None:
                return cached

        try:
            record, failures = await self._query_sources(contract_address)
        except Exception as e:
            stale = self._stale_copy(contract_address)
            logger.error(
                "Market data lookup failed",
                contract=contract_address,
                error_type=type(e).__name__,
                error=exception_text(e),
                served_stale=stale is not None,
            )
            if stale is not None:
                return stale
            raise

        if record is None:
            if failures:
                stale = self._stale_copy(contract_address)
                if stale is not None:
                    logger.warning(
                        "Market data providers failed, serving cached record",
                        contract=contract_address,
                        source=stale.source,
                        failed_providers=failures,
                    )
                    return stale

            logger.warning("No market data available, using fallback", contract=contract_address)
            record = MarketDataRecord.fallback(contract_address)

        self.cache.set(contract_address, record, DataClass.MARKET_DATA)
        return record

    async def _query_sources(self, contract_address: str) -> tuple[Optional[MarketDataRecord], int]:
        """Walk the sources in order. Returns (record or None, provider failure count)."""
        failures = 0
        for source in self.sources:
            started = monotonic()
            try:
                record = await source.fetch(contract_address)
            except ProviderError as e:
                failures += 1
                self.metrics.record_call(elapsed_ms(started), success=False)
                logger.warning(
                    "Market data provider failed",
                    provider=source.name,
                    contract=contract_address,
                    error=exception_text(e),
                )
                continue

            self.metrics.record_call(elapsed_ms(started))
            if record is not None:
                logger.debug(
                    "Market data fetched",
                    provider=source.name,
                    contract=contract_address,
                    price=record.price,
                    market_cap=record.market_cap,
                )
                return record, failures

        return None, failures

    async def get_market_data_batch(
        self, contract_addresses: Sequence[str], force_refresh: bool = False
    ) -> dict[str, MarketDataRecord]:
        unique = list(dict.fromkeys(a for a in contract_addresses if a))
        records = await asyncio.gather(
            *(self.get_market_data(address, force_refresh=force_refresh) for address in unique)
        )
        return dict(zip(unique, records))
