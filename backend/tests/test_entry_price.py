import sys
from datetime import datetime
from pathlib import Path

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from models.ledger import OrderRow, SignalRow, TradeRow  # noqa: E402
from models.position import EntrySource, Position, PositionSource  # noqa: E402
from services.entry_price import EntryPriceResolver  # noqa: E402
from services.errors import LedgerError  # noqa: E402
from conftest import MINT_A  # noqa: E402

T0 = datetime(2025, 3, 1, 12, 0, 0)


class StubLedger:
    def __init__(self, trade=None, order=None, signal=None, error: Exception = None):
        self.trade = trade
        self.order = order
        self.signal = signal
        self.error = error
        self.lookups = []

    async def _answer(self, name, value):
        self.lookups.append(name)
        if self.error is not None:
            raise self.error
        return value

    async def get_latest_trade_entry(self, contract_address, symbol):
        return await self._answer("trade", self.trade)

    async def find_order_target(self, contract_address, symbol):
        return await self._answer("order", self.order)

    async def find_signal_entry(self, contract_address, symbol):
        return await self._answer("signal", self.signal)


def _position(**overrides) -> Position:
    fields = {
        "symbol": "SUISEI",
        "contract_address": MINT_A,
        "balance": 970.0,
        "current_market_cap": 97_000.0,
        "source": PositionSource.ON_CHAIN,
    }
    fields.update(overrides)
    return Position(**fields)


@pytest.mark.asyncio
async def test_recorded_trade_beats_signal_record():
    ledger = StubLedger(
        trade=TradeRow(id=1, entry_mcap=100_000, status="completed", created_at=T0),
        signal=SignalRow(id=2, entry_mc=50_000),
    )

    evidence = await EntryPriceResolver(ledger).resolve_entry_market_cap(_position())

    assert evidence.source == EntrySource.RECORDED_TRADE
    assert evidence.entry_market_cap == 100_000
    assert evidence.evidence_at == T0
    assert ledger.lookups == ["trade"]


@pytest.mark.asyncio
async def test_explicit_value_is_used_before_any_lookup():
    ledger = StubLedger(trade=TradeRow(id=1, entry_mcap=100_000))

    evidence = await EntryPriceResolver(ledger).resolve_entry_market_cap(_position(), explicit=80_000)

    assert evidence.source == EntrySource.EXPLICIT
    assert evidence.entry_market_cap == 80_000
    assert ledger.lookups == []


@pytest.mark.asyncio
async def test_non_positive_explicit_value_is_ignored():
    ledger = StubLedger(order=OrderRow(id=3, user_id="u", target_market_cap=90_000))

    evidence = await EntryPriceResolver(ledger).resolve_entry_market_cap(_position(), explicit=0)

    assert evidence.source == EntrySource.ORDER_TARGET
    assert evidence.entry_market_cap == 90_000


@pytest.mark.asyncio
async def test_position_provenance_fields_are_used_without_ledger():
    position = _position(
        source=PositionSource.LEDGER_SIGNAL,
        balance=None,
        signal_entry_market_cap=42_000,
        acquired_at=T0,
    )

    evidence = await EntryPriceResolver().resolve_entry_market_cap(position)

    assert evidence.source == EntrySource.SIGNAL_RECORD
    assert evidence.entry_market_cap == 42_000
    assert evidence.evidence_at == T0


@pytest.mark.asyncio
async def test_no_evidence_is_explicit_and_never_the_current_market_cap():
    evidence = await EntryPriceResolver(StubLedger()).resolve_entry_market_cap(_position())

    assert evidence.source == EntrySource.NONE
    assert evidence.entry_market_cap is None
    assert not evidence.is_resolved


@pytest.mark.asyncio
async def test_ledger_failure_counts_as_no_evidence():
    ledger = StubLedger(error=LedgerError("database is locked"))

    evidence = await EntryPriceResolver(ledger).resolve_entry_market_cap(_position())

    assert evidence.source == EntrySource.NONE
    assert ledger.lookups == ["trade", "order", "signal"]
