"""
Profit & loss against the acquisition market cap.

A result is ``precise`` only when an entry market cap was resolved and the
current market cap is known. Without an entry the 24h price change is shown
as a reference figure, or the position is reported as plain holdings. USD
values are never negative and nothing is invented when inputs are missing.
"""

from typing import Mapping, Optional, Sequence

from models.market_data import MarketDataRecord
from models.position import (
    CalculationMethod,
    DisplayMeta,
    EntryEvidence,
    PnLResult,
    Position,
    PositionSource,
    ProfitTakingOpportunity,
    ProfitTakingReport,
    ProfitTakingStatus,
    ValueMethod,
)
from services.cache_layer import CacheLayer, DataClass
from services.entry_price import EntryPriceResolver
from services.errors import exception_text
from services.market_data import MarketDataAggregator
from utils.logger import get_logger

logger = get_logger("pnl_calculator")

# (minimum change percent, status), checked high to low
PROFIT_TAKING_TIERS = (
    (500.0, ProfitTakingStatus.URGENT_SELL),
    (300.0, ProfitTakingStatus.STRONG_SELL),
    (200.0, ProfitTakingStatus.TAKE_PROFIT),
    (100.0, ProfitTakingStatus.MONITOR),
    (0.0, ProfitTakingStatus.HOLD),
)

HOLDINGS_DISPLAY = DisplayMeta(color="blue", icon="📎", label="Holdings")
ERROR_DISPLAY = DisplayMeta(color="red", icon="❌", label="Error")


def profit_taking_status(change_percent: float) -> ProfitTakingStatus:
    for floor, status in PROFIT_TAKING_TIERS:
        if change_percent >= floor:
            return status
    return ProfitTakingStatus.LOSS


def change_display(change_percent: float) -> DisplayMeta:
    if change_percent > 0:
        return DisplayMeta(color="green", icon="▲", label=f"+{change_percent:.2f}%")
    if change_percent < 0:
        return DisplayMeta(color="red", icon="▼", label=f"{change_percent:.2f}%")
    return DisplayMeta(color="blue", icon="📎", label="0.00%")


class PnLCalculator:
    def __init__(
        self,
        market_data: MarketDataAggregator,
        entry_resolver: EntryPriceResolver,
        cache: CacheLayer,
        native_usd_rate: float = 150.0,
        profit_taking_thresholds: Optional[Mapping[str, float]] = None,
        default_threshold: float = 2.0,
    ):
        self.market_data = market_data
        self.entry_resolver = entry_resolver
        self.cache = cache
        self.native_usd_rate = native_usd_rate
        self.profit_taking_thresholds = dict(profit_taking_thresholds or {})
        self.default_threshold = default_threshold

    async def calculate_pnl(
        self,
        position: Position,
        market_data: Optional[MarketDataRecord] = None,
        entry_evidence: Optional[EntryEvidence] = None,
        explicit_entry: Optional[float] = None,
        force_refresh: bool = False,
    ) -> PnLResult:
        try:
            if market_data is None and position.contract_address:
                market_data = await self.market_data.get_market_data(
                    position.contract_address, force_refresh=force_refresh
                )

            price = market_data.price if market_data is not None else 0.0
            supplied_entry = entry_evidence.entry_market_cap if entry_evidence else explicit_entry
            cache_key = self._cache_key(position, price, supplied_entry)
            if not force_refresh:
                cached = self.cache.get(cache_key, DataClass.PNL)
                if cached is not None:
                    return cached

            if entry_evidence is None:
                entry_evidence = await self.entry_resolver.resolve_entry_market_cap(
                    position, explicit=explicit_entry
                )

            result = self._compute(position, market_data, entry_evidence)
        except Exception as e:
            logger.error(
                "P&L calculation failed",
                symbol=position.symbol,
                contract=position.contract_address,
                error_type=type(e).__name__,
                error=exception_text(e),
            )
            return PnLResult(
                current_value_usd=0.0,
                calculation_method=CalculationMethod.ERROR,
                display=ERROR_DISPLAY,
                error=exception_text(e),
            )

        self.cache.set(cache_key, result, DataClass.PNL)
        return result

    @staticmethod
    def _cache_key(position: Position, price: float, supplied_entry: Optional[float]) -> str:
        # The holding size feeds the USD figures, so it is part of the key.
        return ":".join(
            str(part)
            for part in (
                position.merge_key,
                position.source.value,
                position.balance or 0,
                position.native_amount or 0,
                price,
                supplied_entry or 0,
            )
        )

    def _native_entry_value(self, position: Position) -> Optional[float]:
        if position.source == PositionSource.LEDGER_ORDER and position.native_amount:
            return position.native_amount * self.native_usd_rate
        return None

    def _current_value(
        self,
        position: Position,
        price: float,
        entry_mcap: Optional[float],
        current_mcap: Optional[float],
    ) -> tuple[float, ValueMethod]:
        if position.balance and price > 0:
            return max(0.0, position.balance * price), ValueMethod.BALANCE

        native_value = self._native_entry_value(position)
        if native_value is not None:
            if entry_mcap and current_mcap:
                native_value = native_value * current_mcap / entry_mcap
            return max(0.0, native_value), ValueMethod.NATIVE_ESTIMATE

        return 0.0, ValueMethod.UNKNOWN

    def _compute(
        self,
        position: Position,
        market_data: Optional[MarketDataRecord],
        evidence: EntryEvidence,
    ) -> PnLResult:
        price = market_data.price if market_data is not None else 0.0
        current_mcap = market_data.market_cap if market_data is not None and market_data.has_market_cap else None
        entry_mcap = evidence.entry_market_cap if evidence.is_resolved else None

        value, value_method = self._current_value(position, price, entry_mcap, current_mcap)
        is_estimate = value_method == ValueMethod.NATIVE_ESTIMATE

        if entry_mcap is not None and current_mcap is not None:
            change = (current_mcap - entry_mcap) / entry_mcap * 100
            entry_value = self._native_entry_value(position)
            if entry_value is None:
                entry_value = value * entry_mcap / current_mcap
            return PnLResult(
                change_percent=change,
                pnl_usd=value - entry_value,
                current_value_usd=value,
                entry_value_usd=entry_value,
                entry_market_cap=entry_mcap,
                current_market_cap=current_mcap,
                market_cap_change=current_mcap - entry_mcap,
                is_profit=change > 0,
                entry_source=evidence.source,
                calculation_method=CalculationMethod.PRECISE,
                value_method=value_method,
                is_estimate=is_estimate,
                profit_taking=profit_taking_status(change),
                display=change_display(change),
            )

        if market_data is not None and market_data.price_change_24h is not None:
            change = market_data.price_change_24h
            pnl_usd = value * change / 100
            return PnLResult(
                change_percent=change,
                pnl_usd=pnl_usd,
                current_value_usd=value,
                entry_value_usd=value - pnl_usd,
                entry_market_cap=entry_mcap,
                current_market_cap=current_mcap,
                is_profit=change > 0,
                entry_source=evidence.source,
                calculation_method=CalculationMethod.REFERENCE_24H,
                value_method=value_method,
                is_estimate=is_estimate,
                display=change_display(change),
            )

        return PnLResult(
            current_value_usd=value,
            entry_market_cap=entry_mcap,
            current_market_cap=current_mcap,
            entry_source=evidence.source,
            calculation_method=CalculationMethod.HOLDINGS,
            value_method=value_method,
            is_estimate=is_estimate,
            display=HOLDINGS_DISPLAY,
        )

    def check_profit_taking(
        self, positions: Sequence[Position], strategy: str = "moderate"
    ) -> ProfitTakingReport:
        threshold = self.profit_taking_thresholds.get(strategy, self.default_threshold)
        opportunities = []

        for position in positions:
            pnl = position.pnl
            if pnl is None or pnl.calculation_method != CalculationMethod.PRECISE:
                continue
            if not pnl.entry_market_cap or not pnl.current_market_cap:
                continue

            multiplier = pnl.current_market_cap / pnl.entry_market_cap
            if multiplier < threshold:
                continue

            opportunities.append(
                ProfitTakingOpportunity(
                    symbol=position.symbol,
                    contract_address=position.contract_address,
                    entry_market_cap=pnl.entry_market_cap,
                    current_market_cap=pnl.current_market_cap,
                    multiplier=multiplier,
                    threshold=threshold,
                    urgency="HIGH" if multiplier >= threshold * 1.5 else "MEDIUM",
                    pnl_usd=pnl.pnl_usd,
                    message=f"{position.symbol} reached {multiplier:.2f}x (target: {threshold}x)",
                )
            )
            logger.info(
                "Profit taking opportunity",
                symbol=position.symbol,
                multiplier=round(multiplier, 2),
                threshold=threshold,
            )

        return ProfitTakingReport(strategy=strategy, threshold=threshold, opportunities=opportunities)
