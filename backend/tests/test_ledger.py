import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from models.database import AutomatedTrade, BotSession, HiddenPosition, LimitOrder, Signal  # noqa: E402
from services.errors import LedgerError  # noqa: E402
from services.ledger import SqlLedgerReader  # noqa: E402
from conftest import MINT_A, MINT_B, MINT_C, FakeClock, add_rows  # noqa: E402

USER = "user-1"
T0 = datetime(2025, 3, 1, 12, 0, 0)


@pytest.mark.asyncio
async def test_filled_orders_exclude_hidden_contracts(ledger_session_factory, ledger_reader):
    await add_rows(
        ledger_session_factory,
        LimitOrder(user_id=USER, token_symbol="SUISEI", contract_address=MINT_A, status="filled",
                   target_market_cap=100_000, amount_sol=2.0, filled_at=T0),
        LimitOrder(user_id=USER, token_symbol="LEM", contract_address=MINT_B, status="filled",
                   target_market_cap=50_000, filled_at=T0 + timedelta(minutes=5)),
        LimitOrder(user_id=USER, token_symbol="CCC", contract_address=MINT_C, status="pending"),
        LimitOrder(user_id="someone-else", contract_address=MINT_C, status="filled"),
        HiddenPosition(user_id="auto-session", contract_address=MINT_B, hidden_at=T0),
    )

    orders = await ledger_reader.get_filled_orders(USER)

    assert [order.contract_address for order in orders] == [MINT_A]
    assert orders[0].amount_sol == 2.0
    assert orders[0].acquired_at == T0


@pytest.mark.asyncio
async def test_active_signals_respect_session_and_user_hides(ledger_session_factory, ledger_reader):
    await add_rows(
        ledger_session_factory,
        Signal(token_symbol="SUISEI", token_contract=MINT_A, entry_mc=100_000, status="active",
               bot_session_id=3, created_at=T0),
        Signal(token_symbol="OLD", token_contract=MINT_B, entry_mc=10_000, status="active",
               bot_session_id=2, created_at=T0),
        Signal(token_symbol="CCC", token_contract=MINT_C, entry_mc=5_000, status="active",
               bot_session_id=3, created_at=T0),
        Signal(token_symbol="DONE", token_contract="closed-mint", status="closed", bot_session_id=3),
        HiddenPosition(user_id=USER, contract_address=MINT_C),
    )

    signals = await ledger_reader.get_active_signals(USER, min_session_id=3)

    assert [signal.token_contract for signal in signals] == [MINT_A]


@pytest.mark.asyncio
async def test_latest_trade_entry_filters_status_and_orders_by_time(ledger_session_factory, ledger_reader):
    await add_rows(
        ledger_session_factory,
        AutomatedTrade(token_symbol="SUISEI", token_contract=MINT_A, entry_mcap=80_000,
                       status="completed", created_at=T0),
        AutomatedTrade(token_symbol="SUISEI", token_contract=MINT_A, entry_mcap=100_000,
                       status="pending", created_at=T0 + timedelta(hours=1)),
        AutomatedTrade(token_symbol="SUISEI", token_contract=MINT_A, entry_mcap=120_000,
                       status="failed", created_at=T0 + timedelta(hours=2)),
        AutomatedTrade(token_symbol="SUISEI", token_contract=MINT_A, entry_mcap=0,
                       status="completed", created_at=T0 + timedelta(hours=3)),
    )

    trade = await ledger_reader.get_latest_trade_entry(MINT_A, None)
    by_symbol = await ledger_reader.get_latest_trade_entry(None, "SUISEI")

    assert trade.entry_mcap == 100_000
    assert by_symbol.id == trade.id
    assert await ledger_reader.get_latest_trade_entry(None, None) is None


@pytest.mark.asyncio
async def test_order_target_and_signal_entry_lookups(ledger_session_factory, ledger_reader):
    await add_rows(
        ledger_session_factory,
        LimitOrder(user_id=USER, token_symbol="SUISEI", contract_address=MINT_A, status="filled",
                   target_market_cap=90_000, filled_at=T0),
        LimitOrder(user_id=USER, token_symbol="SUISEI", contract_address=MINT_A, status="cancelled",
                   target_market_cap=70_000, filled_at=T0 + timedelta(hours=1)),
        Signal(token_symbol="SUISEI", token_contract=MINT_A, entry_mc=60_000, created_at=T0),
        Signal(token_symbol="SUISEI", token_contract=MINT_A, entry_mc=None,
               created_at=T0 + timedelta(hours=1)),
    )

    order = await ledger_reader.find_order_target(MINT_A, "SUISEI")
    signal = await ledger_reader.find_signal_entry(MINT_A, None)

    assert order.target_market_cap == 90_000
    assert signal.entry_mc == 60_000
    assert await ledger_reader.find_signal_entry(MINT_B, "LEM") is None


@pytest.mark.asyncio
async def test_session_restart_marker_is_newest_marker_row(ledger_session_factory, ledger_reader):
    await add_rows(
        ledger_session_factory,
        HiddenPosition(user_id="auto-session-restart", contract_address="ALL_EXISTING_POSITIONS",
                       hidden_at=T0),
        HiddenPosition(user_id="auto-session-restart", contract_address="ALL_EXISTING_POSITIONS",
                       hidden_at=T0 + timedelta(days=1)),
        HiddenPosition(user_id=USER, contract_address=MINT_A, hidden_at=T0 + timedelta(days=2)),
    )

    marker = await ledger_reader.get_session_restart_marker()

    assert marker.hidden_at == T0 + timedelta(days=1)


@pytest.mark.asyncio
async def test_bot_session_is_cached_until_expiry(ledger_session_factory):
    clock = FakeClock()
    reader = SqlLedgerReader(ledger_session_factory, bot_session_cache_seconds=300, clock=clock)
    await add_rows(ledger_session_factory, BotSession(id=4, session_start=T0))

    assert (await reader.get_latest_bot_session()).id == 4

    await add_rows(ledger_session_factory, BotSession(id=5, session_start=T0 + timedelta(hours=1)))
    assert (await reader.get_latest_bot_session()).id == 4

    clock.advance(300)
    assert (await reader.get_latest_bot_session()).id == 5


@pytest.mark.asyncio
async def test_missing_tables_raise_ledger_error():
    from models.database import create_ledger_engine, create_session_factory

    engine = create_ledger_engine("sqlite+aiosqlite:///:memory:")
    try:
        reader = SqlLedgerReader(create_session_factory(engine))
        with pytest.raises(LedgerError):
            await reader.get_filled_orders(USER)
    finally:
        await engine.dispose()
