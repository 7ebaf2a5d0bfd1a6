from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from models.market_data import MarketDataRecord
from utils.clock import utcnow


class PositionSource(str, Enum):
    ON_CHAIN = "on-chain"
    LEDGER_ORDER = "ledger-order"
    LEDGER_SIGNAL = "ledger-signal"


class EntrySource(str, Enum):
    EXPLICIT = "explicit-caller-supplied"
    RECORDED_TRADE = "recorded-trade"
    ORDER_TARGET = "order-target"
    SIGNAL_RECORD = "signal-record"
    NONE = "none"


class CalculationMethod(str, Enum):
    PRECISE = "precise"
    REFERENCE_24H = "24h-reference"
    HOLDINGS = "holdings"
    ERROR = "error"


class ValueMethod(str, Enum):
    BALANCE = "balance"
    NATIVE_ESTIMATE = "native-estimate"
    UNKNOWN = "unknown"


class ProfitTakingStatus(str, Enum):
    URGENT_SELL = "URGENT_SELL"
    STRONG_SELL = "STRONG_SELL"
    TAKE_PROFIT = "TAKE_PROFIT"
    MONITOR = "MONITOR"
    HOLD = "HOLD"
    LOSS = "LOSS"


class DisplayMeta(BaseModel):
    """How a position or P&L figure should be rendered"""

    model_config = ConfigDict(frozen=True)

    color: str = "gray"
    icon: str = ""
    label: str = ""


class EntryEvidence(BaseModel):
    """Where an entry market cap came from, or that none was found"""

    model_config = ConfigDict(frozen=True)

    contract_address: Optional[str] = None
    symbol: Optional[str] = None
    entry_market_cap: Optional[float] = None
    source: EntrySource = EntrySource.NONE
    evidence_at: Optional[datetime] = None

    @property
    def is_resolved(self) -> bool:
        return (
            self.source != EntrySource.NONE
            and self.entry_market_cap is not None
            and self.entry_market_cap > 0
        )

    @classmethod
    def none(cls, contract_address: Optional[str] = None, symbol: Optional[str] = None) -> "EntryEvidence":
        return cls(contract_address=contract_address, symbol=symbol)


class PnLResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    change_percent: Optional[float] = None
    pnl_usd: Optional[float] = None
    current_value_usd: float = Field(default=0.0, ge=0)
    entry_value_usd: Optional[float] = None
    entry_market_cap: Optional[float] = None
    current_market_cap: Optional[float] = None
    market_cap_change: Optional[float] = None
    is_profit: Optional[bool] = None
    entry_source: EntrySource = EntrySource.NONE
    calculation_method: CalculationMethod
    value_method: ValueMethod = ValueMethod.UNKNOWN
    is_estimate: bool = False
    profit_taking: Optional[ProfitTakingStatus] = None
    display: DisplayMeta = DisplayMeta()
    error: Optional[str] = None
    calculated_at: datetime = Field(default_factory=utcnow)


class Position(BaseModel):
    """One tracked holding, after merging chain and ledger evidence"""

    model_config = ConfigDict(frozen=True)

    symbol: str = "UNKNOWN"
    contract_address: Optional[str] = None
    balance: Optional[float] = None  # None for ledger-only positions
    decimals: Optional[int] = None
    entry_market_cap: Optional[float] = None
    current_market_cap: Optional[float] = None
    current_value_usd: float = Field(default=0.0, ge=0)
    pnl_percent: Optional[float] = None
    pnl_usd: Optional[float] = None
    source: PositionSource
    priority: int = 1
    display: DisplayMeta = DisplayMeta()

    # Ledger provenance
    ledger_id: Optional[int] = None
    native_amount: Optional[float] = None  # SOL spent, for filled orders
    order_target_market_cap: Optional[float] = None
    signal_entry_market_cap: Optional[float] = None
    acquired_at: Optional[datetime] = None
    transaction_signature: Optional[str] = None

    pnl: Optional[PnLResult] = None
    market_data: Optional[MarketDataRecord] = None
    error: Optional[str] = None

    @property
    def merge_key(self) -> str:
        return self.contract_address or self.symbol

    @property
    def is_ledger_derived(self) -> bool:
        return self.source != PositionSource.ON_CHAIN


class PositionsSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_positions: int = 0
    total_value_usd: float = 0.0
    total_pnl_usd: float = 0.0
    profitable_positions: int = 0
    losing_positions: int = 0
    win_rate: float = 0.0  # percent


class PositionsSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    address: Optional[str] = None
    positions: list[Position] = []
    summary: PositionsSummary = PositionsSummary()
    degraded_sources: list[str] = []
    stale: bool = False
    timestamp: datetime = Field(default_factory=utcnow)


class ProfitTakingOpportunity(BaseModel):
    model_config = ConfigDict(frozen=True)

    symbol: str
    contract_address: Optional[str] = None
    entry_market_cap: float
    current_market_cap: float
    multiplier: float
    threshold: float
    urgency: str  # HIGH / MEDIUM
    pnl_usd: Optional[float] = None
    message: str = ""
    recommended_action: str = "SELL_PARTIAL"


class ProfitTakingReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    strategy: str
    threshold: float
    opportunities: list[ProfitTakingOpportunity] = []
    checked_at: datetime = Field(default_factory=utcnow)

    @property
    def total_opportunities(self) -> int:
        return len(self.opportunities)
