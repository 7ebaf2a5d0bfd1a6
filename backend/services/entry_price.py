"""
Entry market-cap resolution.

Evidence is looked up in a fixed order and the first usable value wins:
caller-supplied value, latest recorded trade, the order's target market cap,
the signal's entry market cap. When none is found the result says so
explicitly; the current market cap is never used as a stand-in.
"""

from typing import Awaitable, Callable, Optional

from interfaces.ledger import LedgerReader
from models.position import EntryEvidence, EntrySource, Position
from services.errors import LedgerError, exception_text
from utils.logger import get_logger

logger = get_logger("entry_price")

Resolver = Callable[[Position, Optional[float]], Awaitable[Optional[EntryEvidence]]]


def _positive(value: Optional[float]) -> bool:
    return value is not None and value > 0


class EntryPriceResolver:
    def __init__(self, ledger: Optional[LedgerReader] = None):
        self.ledger = ledger
        self.resolvers: list[Resolver] = [
            self._from_explicit,
            self._from_recorded_trade,
            self._from_order_target,
            self._from_signal_record,
        ]

    async def resolve_entry_market_cap(
        self, position: Position, explicit: Optional[float] = None
    ) -> EntryEvidence:
        for resolver in self.resolvers:
            evidence = await resolver(position, explicit)
            if evidence is not None and evidence.is_resolved:
                return evidence

        logger.debug(
            "No entry market cap evidence",
            symbol=position.symbol,
            contract=position.contract_address,
        )
        return EntryEvidence.none(position.contract_address, position.symbol)

    def _evidence(self, position: Position, value: float, source: EntrySource, at=None) -> EntryEvidence:
        return EntryEvidence(
            contract_address=position.contract_address,
            symbol=position.symbol,
            entry_market_cap=value,
            source=source,
            evidence_at=at,
        )

    async def _from_explicit(self, position: Position, explicit: Optional[float]):
        if _positive(explicit):
            return self._evidence(position, explicit, EntrySource.EXPLICIT)
        return None

    async def _ledger_lookup(self, step: str, lookup, position: Position):
        if self.ledger is None:
            return None
        try:
            return await lookup(position.contract_address, position.symbol)
        except LedgerError as e:
            logger.warning(
                "Ledger lookup failed, treating as no evidence",
                step=step,
                symbol=position.symbol,
                contract=position.contract_address,
                error=exception_text(e),
            )
            return None

    async def _from_recorded_trade(self, position: Position, explicit: Optional[float]):
        if self.ledger is None:
            return None
        trade = await self._ledger_lookup("recorded-trade", self.ledger.get_latest_trade_entry, position)
        if trade is not None and _positive(trade.entry_mcap):
            return self._evidence(position, trade.entry_mcap, EntrySource.RECORDED_TRADE, trade.created_at)
        return None

    async def _from_order_target(self, position: Position, explicit: Optional[float]):
        if _positive(position.order_target_market_cap):
            return self._evidence(
                position, position.order_target_market_cap, EntrySource.ORDER_TARGET, position.acquired_at
            )
        if self.ledger is None:
            return None
        order = await self._ledger_lookup("order-target", self.ledger.find_order_target, position)
        if order is not None and _positive(order.target_market_cap):
            return self._evidence(position, order.target_market_cap, EntrySource.ORDER_TARGET, order.acquired_at)
        return None

    async def _from_signal_record(self, position: Position, explicit: Optional[float]):
        if _positive(position.signal_entry_market_cap):
            return self._evidence(
                position, position.signal_entry_market_cap, EntrySource.SIGNAL_RECORD, position.acquired_at
            )
        if self.ledger is None:
            return None
        signal = await self._ledger_lookup("signal-record", self.ledger.find_signal_entry, position)
        if signal is not None and _positive(signal.entry_mc):
            return self._evidence(position, signal.entry_mc, EntrySource.SIGNAL_RECORD, signal.created_at)
        return None
