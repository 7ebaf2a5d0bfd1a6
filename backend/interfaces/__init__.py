from .market_data import MarketDataSource
from .ledger import LedgerReader

__all__ = ["MarketDataSource", "LedgerReader"]
