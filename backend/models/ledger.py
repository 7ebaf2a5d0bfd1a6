from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class _LedgerRow(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)


class SignalRow(_LedgerRow):
    id: int
    user_id: Optional[str] = None
    token_symbol: Optional[str] = None
    token_contract: Optional[str] = None
    entry_mc: Optional[float] = None
    status: Optional[str] = None
    bot_session_id: Optional[int] = None
    created_at: Optional[datetime] = None


class OrderRow(_LedgerRow):
    id: int
    user_id: str
    token_symbol: Optional[str] = None
    contract_address: Optional[str] = None
    target_market_cap: Optional[float] = None
    amount_sol: Optional[float] = None
    status: Optional[str] = None
    transaction_signature: Optional[str] = None
    created_at: Optional[datetime] = None
    filled_at: Optional[datetime] = None

    @property
    def acquired_at(self) -> Optional[datetime]:
        return self.filled_at or self.created_at


class TradeRow(_LedgerRow):
    id: int
    token_symbol: Optional[str] = None
    token_contract: Optional[str] = None
    amount_sol: Optional[float] = None
    entry_mcap: Optional[float] = None
    status: Optional[str] = None
    created_at: Optional[datetime] = None


class HiddenPositionRow(_LedgerRow):
    id: int
    user_id: str
    contract_address: str
    reason: Optional[str] = None
    hidden_at: Optional[datetime] = None


class BotSessionRow(_LedgerRow):
    id: int
    session_start: Optional[datetime] = None
    session_end: Optional[datetime] = None
    status: Optional[str] = None
