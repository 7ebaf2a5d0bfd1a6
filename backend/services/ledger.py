"""
Async SQLAlchemy reader over the trading ledger.

Read-only queries against the tables the signal bot, order executor and auto
trader write. Database errors are raised as :class:`LedgerError` so callers
can degrade one source without catching driver exceptions.
"""

import time
from typing import Optional, Sequence

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from models.database import AutomatedTrade, BotSession, HiddenPosition, LimitOrder, Signal
from models.ledger import BotSessionRow, HiddenPositionRow, OrderRow, SignalRow, TradeRow
from services.errors import LedgerError, exception_text
from utils.clock import MonotonicClock
from utils.logger import get_logger

logger = get_logger("ledger")

RECORDED_TRADE_STATUSES = ("completed", "pending")


def _match_token(contract_column, symbol_column, contract_address, symbol):
    """OR-condition on contract / symbol, or None when neither is known."""
    conditions = []
    if contract_address:
        conditions.append(contract_column == contract_address)
    if symbol:
        conditions.append(symbol_column == symbol)
    if not conditions:
        return None
    return or_(*conditions)


class SqlLedgerReader:
    def __init__(
        self,
        session_factory: sessionmaker,
        session_restart_user_id: str = "auto-session-restart",
        session_restart_contract: str = "ALL_EXISTING_POSITIONS",
        session_hidden_user_id: str = "auto-session",
        bot_session_cache_seconds: float = 300.0,
        clock: MonotonicClock = time.monotonic,
    ):
        self._session_factory = session_factory
        self.session_restart_user_id = session_restart_user_id
        self.session_restart_contract = session_restart_contract
        self.session_hidden_user_id = session_hidden_user_id
        self.bot_session_cache_seconds = bot_session_cache_seconds
        self._clock = clock
        self._bot_session: Optional[BotSessionRow] = None
        self._bot_session_expires_at = 0.0

    async def _fetch_all(self, statement, row_type) -> list:
        try:
            async with self._session_factory() as session:
                result = await session.execute(statement)
                return [row_type.model_validate(row) for row in result.scalars().all()]
        except SQLAlchemyError as e:
            logger.error(
                "Ledger query failed",
                row_type=row_type.__name__,
                error_type=type(e).__name__,
                error=exception_text(e),
            )
            raise LedgerError(exception_text(e)) from e

    async def _fetch_first(self, statement, row_type):
        rows = await self._fetch_all(statement.limit(1), row_type)
        return rows[0] if rows else None

    def _hidden_contracts(self, user_ids: Sequence[str]):
        return select(HiddenPosition.contract_address).where(HiddenPosition.user_id.in_(list(user_ids)))

    async def get_latest_bot_session(self) -> Optional[BotSessionRow]:
        now = self._clock()
        if self._bot_session is not None and now < self._bot_session_expires_at:
            return self._bot_session

        statement = select(BotSession).order_by(BotSession.session_start.desc())
        self._bot_session = await self._fetch_first(statement, BotSessionRow)
        self._bot_session_expires_at = now + self.bot_session_cache_seconds
        return self._bot_session

    async def get_session_restart_marker(self) -> Optional[HiddenPositionRow]:
        statement = (
            select(HiddenPosition)
            .where(
                HiddenPosition.user_id == self.session_restart_user_id,
                HiddenPosition.contract_address == self.session_restart_contract,
            )
            .order_by(HiddenPosition.hidden_at.desc())
        )
        return await self._fetch_first(statement, HiddenPositionRow)

    async def get_active_signals(self, user_id: str, min_session_id: int) -> list[SignalRow]:
        hidden = self._hidden_contracts([user_id, self.session_hidden_user_id])
        statement = (
            select(Signal)
            .where(
                Signal.status == "active",
                Signal.bot_session_id >= min_session_id,
                or_(Signal.token_contract.is_(None), Signal.token_contract.not_in(hidden)),
            )
            .order_by(Signal.created_at.desc())
        )
        return await self._fetch_all(statement, SignalRow)

    async def get_filled_orders(self, user_id: str) -> list[OrderRow]:
        hidden = self._hidden_contracts([user_id, self.session_hidden_user_id])
        statement = (
            select(LimitOrder)
            .where(
                LimitOrder.user_id == user_id,
                LimitOrder.status == "filled",
                or_(LimitOrder.contract_address.is_(None), LimitOrder.contract_address.not_in(hidden)),
            )
            .order_by(LimitOrder.filled_at.desc())
        )
        return await self._fetch_all(statement, OrderRow)

    async def get_latest_trade_entry(
        self, contract_address: Optional[str], symbol: Optional[str]
    ) -> Optional[TradeRow]:
        token = _match_token(
            AutomatedTrade.token_contract, AutomatedTrade.token_symbol, contract_address, symbol
        )
        if token is None:
            return None
        statement = (
            select(AutomatedTrade)
            .where(
                token,
                AutomatedTrade.entry_mcap > 0,
                AutomatedTrade.status.in_(RECORDED_TRADE_STATUSES),
            )
            .order_by(AutomatedTrade.created_at.desc())
        )
        return await self._fetch_first(statement, TradeRow)

    async def find_order_target(
        self, contract_address: Optional[str], symbol: Optional[str]
    ) -> Optional[OrderRow]:
        token = _match_token(
            LimitOrder.contract_address, LimitOrder.token_symbol, contract_address, symbol
        )
        if token is None:
            return None
        statement = (
            select(LimitOrder)
            .where(token, LimitOrder.status == "filled", LimitOrder.target_market_cap > 0)
            .order_by(LimitOrder.filled_at.desc())
        )
        return await self._fetch_first(statement, OrderRow)

    async def find_signal_entry(
        self, contract_address: Optional[str], symbol: Optional[str]
    ) -> Optional[SignalRow]:
        token = _match_token(Signal.token_contract, Signal.token_symbol, contract_address, symbol)
        if token is None:
            return None
        statement = (
            select(Signal).where(token, Signal.entry_mc > 0).order_by(Signal.created_at.desc())
        )
        return await self._fetch_first(statement, SignalRow)
