"""
Service facade and composition root for the position engine.

``build_portfolio_service`` wires every collaborator from configuration.
Nothing here is a module-level singleton: each call builds its own cache,
pool, HTTP client and ledger reader, and ``aclose()`` releases them.
"""

import time
from typing import Optional, Sequence

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine

from config import settings as default_settings
from interfaces.ledger import LedgerReader
from models.database import create_ledger_engine, create_session_factory
from models.market_data import MarketDataRecord
from models.position import (
    EntryEvidence,
    PnLResult,
    Position,
    PositionsSnapshot,
    ProfitTakingReport,
)
from models.wallet import ParsedTransaction, TransactionSummary, WalletBalance
from services.cache_layer import CacheLayer, ttls_from_settings
from services.entry_price import EntryPriceResolver
from services.ledger import SqlLedgerReader
from services.market_data import MarketDataAggregator
from services.metrics import ServiceMetrics
from services.pnl_calculator import PnLCalculator
from services.position_reconciler import PositionReconciler
from services.providers import DexScreenerSource, JupiterPriceSource
from services.rpc_pool import ClientFactory, ConnectionPool
from services.transaction_history import TransactionHistoryService
from services.wallet_balance import WalletBalanceAggregator
from utils.clock import MonotonicClock
from utils.logger import get_logger
from utils.rate_limiter import RateLimitConfig, RateLimiter, RequestWindowLimiter
from utils.retry import RetryableClient, RetryConfig

logger = get_logger("portfolio_service")


class PortfolioService:
    def __init__(
        self,
        *,
        cache: CacheLayer,
        pool: ConnectionPool,
        market_data: MarketDataAggregator,
        wallet: WalletBalanceAggregator,
        reconciler: PositionReconciler,
        pnl_calculator: PnLCalculator,
        transactions: TransactionHistoryService,
        metrics: ServiceMetrics,
        http: Optional[RetryableClient] = None,
        rate_limiter: Optional[RateLimiter] = None,
        jupiter_limiter: Optional[RequestWindowLimiter] = None,
        ledger_engine: Optional[AsyncEngine] = None,
    ):
        self.cache = cache
        self.pool = pool
        self.market_data = market_data
        self.wallet = wallet
        self.reconciler = reconciler
        self.pnl_calculator = pnl_calculator
        self.transactions = transactions
        self.metrics = metrics
        self._http = http
        self._rate_limiter = rate_limiter
        self._jupiter_limiter = jupiter_limiter
        self._ledger_engine = ledger_engine

    async def get_market_data(self, contract_address: str, force_refresh: bool = False) -> MarketDataRecord:
        return await self.market_data.get_market_data(contract_address, force_refresh=force_refresh)

    async def get_wallet_balance(self, address: str, force_refresh: bool = False) -> WalletBalance:
        return await self.wallet.get_wallet_balance(address, force_refresh=force_refresh)

    async def get_active_positions(
        self, user_id: str, address: Optional[str] = None, force_refresh: bool = False
    ) -> PositionsSnapshot:
        return await self.reconciler.get_active_positions(user_id, address, force_refresh=force_refresh)

    async def calculate_pnl(
        self,
        position: Position,
        market_data: Optional[MarketDataRecord] = None,
        entry_evidence: Optional[EntryEvidence] = None,
        explicit_entry: Optional[float] = None,
        force_refresh: bool = False,
    ) -> PnLResult:
        return await self.pnl_calculator.calculate_pnl(
            position,
            market_data=market_data,
            entry_evidence=entry_evidence,
            explicit_entry=explicit_entry,
            force_refresh=force_refresh,
        )

    def check_profit_taking(
        self, positions: Sequence[Position], strategy: str = "moderate"
    ) -> ProfitTakingReport:
        return self.pnl_calculator.check_profit_taking(positions, strategy)

    async def sync_with_blockchain(self, user_id: str, address: str) -> list[Position]:
        return await self.reconciler.sync_with_blockchain(user_id, address)

    async def get_transaction_history(
        self, address: str, limit: int = 10, force_refresh: bool = False
    ) -> list[TransactionSummary]:
        return await self.transactions.get_transaction_history(address, limit, force_refresh)

    async def parse_transaction(self, signature: str, force_refresh: bool = False) -> Optional[ParsedTransaction]:
        return await self.transactions.parse_transaction(signature, force_refresh)

    def get_metrics(self) -> dict:
        rate_limits: dict = {}
        if self._rate_limiter is not None:
            rate_limits["buckets"] = self._rate_limiter.get_status()
        if self._jupiter_limiter is not None:
            rate_limits["jupiter_window"] = self._jupiter_limiter.get_status()

        cache_stats = self.cache.stats()
        return {
            "cache_hits": cache_stats["hits"],
            "cache_misses": cache_stats["misses"],
            "cache_hit_rate": cache_stats["hit_rate"],
            "stale_served": cache_stats["stale_served"],
            "cache_size": cache_stats["size"],
            **self.metrics.snapshot(),
            "current_endpoint": self.pool.current_endpoint,
            "pool": self.pool.status(),
            "rate_limits": rate_limits,
        }

    def clear_cache(self, pattern: Optional[str] = None) -> int:
        return self.cache.invalidate(pattern)

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
        await self.pool.aclose()
        if self._ledger_engine is not None:
            await self._ledger_engine.dispose()


def build_portfolio_service(
    settings=None,
    ledger: Optional[LedgerReader] = None,
    *,
    http_client: Optional[httpx.AsyncClient] = None,
    rpc_client_factory: Optional[ClientFactory] = None,
    clock: MonotonicClock = time.monotonic,
) -> PortfolioService:
    settings = settings or default_settings

    cache = CacheLayer(ttls_from_settings(settings), clock=clock)
    metrics = ServiceMetrics()
    pool = ConnectionPool(
        settings.SOLANA_RPC_URLS,
        client_factory=rpc_client_factory,
        health_ttl=settings.RPC_HEALTH_TTL_SECONDS,
        clock=clock,
        timeout=settings.RPC_TIMEOUT_SECONDS,
    )

    rate_limiter = RateLimiter(
        {
            "dexscreener": RateLimitConfig(
                requests_per_window=1,
                window_seconds=settings.DEXSCREENER_MIN_INTERVAL_SECONDS,
            )
        }
    )
    http = RetryableClient(
        http_client or httpx.AsyncClient(timeout=settings.API_TIMEOUT_SECONDS),
        RetryConfig.from_settings(settings),
        rate_limiter,
    )
    jupiter_limiter = RequestWindowLimiter(
        settings.JUPITER_MAX_REQUESTS_PER_MINUTE,
        window_seconds=60.0,
        safety_factor=settings.JUPITER_SAFETY_FACTOR,
        min_interval_seconds=settings.JUPITER_MIN_INTERVAL_MS / 1000.0,
        clock=clock,
    )

    market_data = MarketDataAggregator(
        [
            JupiterPriceSource(http, settings.JUPITER_PRICE_URL, jupiter_limiter, pool),
            DexScreenerSource(http, settings.DEXSCREENER_API_URL),
        ],
        cache,
        metrics,
    )
    wallet = WalletBalanceAggregator(
        pool,
        cache,
        settings.TOKEN_PROGRAM_IDS,
        settings.KNOWN_TOKEN_SYMBOLS,
        metrics,
    )
    transactions = TransactionHistoryService(
        http, settings.HELIUS_API_URL, settings.HELIUS_API_KEY, cache, metrics
    )

    ledger_engine = None
    if ledger is None:
        ledger_engine = create_ledger_engine(settings.LEDGER_DATABASE_URL)
        ledger = SqlLedgerReader(
            create_session_factory(ledger_engine),
            session_restart_user_id=settings.SESSION_RESTART_USER_ID,
            session_restart_contract=settings.SESSION_RESTART_CONTRACT,
            session_hidden_user_id=settings.SESSION_HIDDEN_USER_ID,
            bot_session_cache_seconds=settings.BOT_SESSION_CACHE_SECONDS,
            clock=clock,
        )

    pnl_calculator = PnLCalculator(
        market_data,
        EntryPriceResolver(ledger),
        cache,
        native_usd_rate=settings.NATIVE_USD_RATE,
        profit_taking_thresholds=settings.PROFIT_TAKING_THRESHOLDS,
        default_threshold=settings.DEFAULT_PROFIT_TAKING_THRESHOLD,
    )
    reconciler = PositionReconciler(
        wallet,
        market_data,
        pnl_calculator,
        cache,
        ledger,
        min_position_value_usd=settings.MIN_POSITION_VALUE_USD,
    )

    logger.info(
        "Portfolio service ready",
        rpc_endpoints=len(pool.endpoints),
        helius_enabled=bool(settings.HELIUS_API_KEY),
    )
    return PortfolioService(
        cache=cache,
        pool=pool,
        market_data=market_data,
        wallet=wallet,
        reconciler=reconciler,
        pnl_calculator=pnl_calculator,
        transactions=transactions,
        metrics=metrics,
        http=http,
        rate_limiter=rate_limiter,
        jupiter_limiter=jupiter_limiter,
        ledger_engine=ledger_engine,
    )
