from .market_data import MarketDataRecord
from .wallet import WalletBalance, WalletHolding, TransactionSummary, ParsedTransaction
from .position import (
    CalculationMethod,
    DisplayMeta,
    EntryEvidence,
    EntrySource,
    PnLResult,
    Position,
    PositionSource,
    PositionsSnapshot,
    PositionsSummary,
    ProfitTakingOpportunity,
    ProfitTakingReport,
    ProfitTakingStatus,
    ValueMethod,
)
from .ledger import SignalRow, OrderRow, TradeRow, HiddenPositionRow, BotSessionRow

__all__ = [
    "MarketDataRecord",
    "WalletBalance",
    "WalletHolding",
    "TransactionSummary",
    "ParsedTransaction",
    "CalculationMethod",
    "DisplayMeta",
    "EntryEvidence",
    "EntrySource",
    "PnLResult",
    "Position",
    "PositionSource",
    "PositionsSnapshot",
    "PositionsSummary",
    "ProfitTakingOpportunity",
    "ProfitTakingReport",
    "ProfitTakingStatus",
    "ValueMethod",
    "SignalRow",
    "OrderRow",
    "TradeRow",
    "HiddenPositionRow",
    "BotSessionRow",
]
