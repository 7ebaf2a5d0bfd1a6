"""Ledger reader interface contracts.

The ledger is written by other processes (signal bot, order executor, auto
trader). The position engine only reads it through this protocol; failures
raise ``LedgerError``.
"""

from __future__ import annotations

from typing import Optional, Protocol

from models.ledger import BotSessionRow, HiddenPositionRow, OrderRow, SignalRow, TradeRow


class LedgerReader(Protocol):
    """Read-only access to signals, orders, trades and hidden positions."""

    async def get_latest_bot_session(self) -> Optional[BotSessionRow]:
        """Most recently started bot session, if any."""

    async def get_session_restart_marker(self) -> Optional[HiddenPositionRow]:
        """Newest session-restart marker row, if one was written."""

    async def get_active_signals(self, user_id: str, min_session_id: int) -> list[SignalRow]:
        """Active signals from ``min_session_id`` onwards, hidden contracts excluded."""

    async def get_filled_orders(self, user_id: str) -> list[OrderRow]:
        """Filled limit orders of the user, hidden contracts excluded."""

    async def get_latest_trade_entry(
        self, contract_address: Optional[str], symbol: Optional[str]
    ) -> Optional[TradeRow]:
        """Newest completed/pending trade with a positive entry market cap."""

    async def find_order_target(
        self, contract_address: Optional[str], symbol: Optional[str]
    ) -> Optional[OrderRow]:
        """Newest filled order with a positive target market cap."""

    async def find_signal_entry(
        self, contract_address: Optional[str], symbol: Optional[str]
    ) -> Optional[SignalRow]:
        """Newest signal with a positive entry market cap."""
