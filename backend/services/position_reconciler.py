"""
Position reconciliation across chain holdings and the trading ledger.

One pass:
  1. read on-chain holdings and ledger candidates concurrently; a failing
     source contributes nothing and is listed in ``degraded_sources``
  2. merge by contract address (symbol when the contract is unknown), chain
     holdings first, ledger candidates only for keys not yet present
  3. fetch market data per contract and compute P&L per position, each item
     isolated so one failure does not sink the batch
  4. drop dust, sort, summarize and cache the snapshot
"""

import asyncio
from typing import Optional, Sequence

from interfaces.ledger import LedgerReader
from models.ledger import OrderRow, SignalRow
from models.market_data import MarketDataRecord
from models.position import Position, PositionSource, PositionsSnapshot
from services.cache_layer import CacheLayer, DataClass
from services.errors import LedgerError, PortfolioError, exception_text
from services.market_data import MarketDataAggregator
from services.pnl_calculator import ERROR_DISPLAY, PnLCalculator
from services.position_filter import filter_and_sort, summarize
from services.wallet_balance import WalletBalanceAggregator
from utils.logger import get_logger

logger = get_logger("position_reconciler")

ON_CHAIN_PRIORITY = 1
LEDGER_PRIORITY = 2

# Session id assumed when the ledger has no bot_sessions row
DEFAULT_BOT_SESSION_ID = 1


def merge_positions(on_chain: Sequence[Position], ledger: Sequence[Position]) -> list[Position]:
    """At most one position per key; chain holdings win."""
    merged: dict[str, Position] = {}
    for position in on_chain:
        merged.setdefault(
            position.merge_key,
            position.model_copy(
                update={"source": PositionSource.ON_CHAIN, "priority": ON_CHAIN_PRIORITY}
            ),
        )
    for position in ledger:
        if position.merge_key in merged:
            continue
        merged[position.merge_key] = position.model_copy(update={"priority": LEDGER_PRIORITY})
    return list(merged.values())


def _order_position(order: OrderRow) -> Position:
    return Position(
        symbol=order.token_symbol or "UNKNOWN",
        contract_address=order.contract_address,
        source=PositionSource.LEDGER_ORDER,
        priority=LEDGER_PRIORITY,
        ledger_id=order.id,
        native_amount=order.amount_sol,
        order_target_market_cap=order.target_market_cap,
        acquired_at=order.acquired_at,
        transaction_signature=order.transaction_signature,
    )


def _signal_position(signal: SignalRow) -> Position:
    return Position(
        symbol=signal.token_symbol or "UNKNOWN",
        contract_address=signal.token_contract,
        source=PositionSource.LEDGER_SIGNAL,
        priority=LEDGER_PRIORITY,
        ledger_id=signal.id,
        signal_entry_market_cap=signal.entry_mc,
        acquired_at=signal.created_at,
    )


class PositionReconciler:
    def __init__(
        self,
        wallet: WalletBalanceAggregator,
        market_data: MarketDataAggregator,
        pnl_calculator: PnLCalculator,
        cache: CacheLayer,
        ledger: Optional[LedgerReader] = None,
        min_position_value_usd: float = 1.0,
    ):
        self.wallet = wallet
        self.market_data = market_data
        self.pnl_calculator = pnl_calculator
        self.cache = cache
        self.ledger = ledger
        self.min_position_value_usd = min_position_value_usd

    async def get_active_positions(
        self, user_id: str, address: Optional[str] = None, force_refresh: bool = False
    ) -> PositionsSnapshot:
        cache_key = f"{user_id}:{address or ''}"
        if not force_refresh:
            cached = self.cache.get(cache_key, DataClass.POSITIONS)
            if cached is not None:
                return cached

        degraded: list[str] = []
        (on_chain, wallet_stale), ledger_candidates = await asyncio.gather(
            self._on_chain_positions(address, force_refresh, degraded),
            self._ledger_positions(user_id, degraded),
        )
        merged = merge_positions(on_chain, ledger_candidates)

        contracts = list(dict.fromkeys(p.contract_address for p in merged if p.contract_address))
        results = await asyncio.gather(
            *(self.market_data.get_market_data(c, force_refresh=force_refresh) for c in contracts),
            return_exceptions=True,
        )
        market_by_contract = dict(zip(contracts, results))

        enriched = await asyncio.gather(
            *(
                self._enrich(p, market_by_contract.get(p.contract_address), force_refresh)
                for p in merged
            )
        )
        positions = filter_and_sort(enriched, self.min_position_value_usd)

        market_stale = any(
            isinstance(r, MarketDataRecord) and r.stale for r in market_by_contract.values()
        )
        snapshot = PositionsSnapshot(
            user_id=user_id,
            address=address,
            positions=positions,
            summary=summarize(positions),
            degraded_sources=degraded,
            stale=wallet_stale or market_stale,
        )
        self.cache.set(cache_key, snapshot, DataClass.POSITIONS)

        logger.bind(user_id=user_id, address=address).info(
            "Positions reconciled",
            on_chain=len(on_chain),
            ledger=len(ledger_candidates),
            merged=len(merged),
            shown=len(positions),
            degraded_sources=degraded or None,
        )
        return snapshot

    async def sync_with_blockchain(self, user_id: str, address: str) -> list[Position]:
        """Bypass every cache and return freshly reconciled positions."""
        snapshot = await self.get_active_positions(user_id, address, force_refresh=True)
        return snapshot.positions

    async def _on_chain_positions(
        self, address: Optional[str], force_refresh: bool, degraded: list[str]
    ) -> tuple[list[Position], bool]:
        if not address:
            return [], False
        try:
            balance = await self.wallet.get_wallet_balance(address, force_refresh=force_refresh)
        except PortfolioError as e:
            degraded.append("on-chain")
            logger.warning(
                "On-chain holdings unavailable",
                address=address,
                error_type=type(e).__name__,
                error=exception_text(e),
            )
            return [], False

        positions = [
            Position(
                symbol=holding.symbol,
                contract_address=holding.mint,
                balance=holding.balance,
                decimals=holding.decimals,
                source=PositionSource.ON_CHAIN,
                priority=ON_CHAIN_PRIORITY,
            )
            for holding in balance.holdings
        ]
        return positions, balance.stale

    async def _ledger_positions(self, user_id: str, degraded: list[str]) -> list[Position]:
        if self.ledger is None:
            return []
        try:
            session = await self.ledger.get_latest_bot_session()
            min_session_id = session.id if session is not None else DEFAULT_BOT_SESSION_ID
            orders, signals, marker = await asyncio.gather(
                self.ledger.get_filled_orders(user_id),
                self.ledger.get_active_signals(user_id, min_session_id),
                self.ledger.get_session_restart_marker(),
            )
        except LedgerError as e:
            degraded.append("ledger")
            logger.warning("Ledger candidates unavailable", user_id=user_id, error=exception_text(e))
            return []

        candidates = [_order_position(o) for o in orders] + [_signal_position(s) for s in signals]

        if marker is not None and marker.hidden_at is not None:
            boundary = marker.hidden_at
            kept = [c for c in candidates if c.acquired_at is None or c.acquired_at >= boundary]
            if len(kept) != len(candidates):
                logger.info(
                    "Session restart marker excluded earlier ledger positions",
                    excluded=len(candidates) - len(kept),
                    boundary=boundary.isoformat(),
                )
            candidates = kept

        return candidates

    async def _enrich(self, position: Position, market, force_refresh: bool = False) -> Position:
        try:
            if isinstance(market, BaseException):
                raise market
            pnl = await self.pnl_calculator.calculate_pnl(
                position, market_data=market, force_refresh=force_refresh
            )
        except Exception as e:
            logger.warning(
                "Position valuation failed",
                symbol=position.symbol,
                contract=position.contract_address,
                error_type=type(e).__name__,
                error=exception_text(e),
            )
            return position.model_copy(
                update={
                    "current_value_usd": 0.0,
                    "display": ERROR_DISPLAY,
                    "error": exception_text(e),
                }
            )

        current_mcap = pnl.current_market_cap
        if current_mcap is None and market is not None and market.has_market_cap:
            current_mcap = market.market_cap
        return position.model_copy(
            update={
                "entry_market_cap": pnl.entry_market_cap,
                "current_market_cap": current_mcap,
                "current_value_usd": pnl.current_value_usd,
                "pnl_percent": pnl.change_percent,
                "pnl_usd": pnl.pnl_usd,
                "display": pnl.display,
                "pnl": pnl,
                "market_data": market,
                "error": pnl.error,
            }
        )
