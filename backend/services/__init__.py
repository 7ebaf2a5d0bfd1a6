from importlib import import_module

__all__ = [
    "PortfolioService",
    "build_portfolio_service",
    "CacheLayer",
    "ConnectionPool",
    "MarketDataAggregator",
    "WalletBalanceAggregator",
    "PositionReconciler",
    "EntryPriceResolver",
    "PnLCalculator",
    "SqlLedgerReader",
]

_LAZY_EXPORTS = {
    "PortfolioService": ("services.portfolio_service", "PortfolioService"),
    "build_portfolio_service": ("services.portfolio_service", "build_portfolio_service"),
    "CacheLayer": ("services.cache_layer", "CacheLayer"),
    "ConnectionPool": ("services.rpc_pool", "ConnectionPool"),
    "MarketDataAggregator": ("services.market_data", "MarketDataAggregator"),
    "WalletBalanceAggregator": ("services.wallet_balance", "WalletBalanceAggregator"),
    "PositionReconciler": ("services.position_reconciler", "PositionReconciler"),
    "EntryPriceResolver": ("services.entry_price", "EntryPriceResolver"),
    "PnLCalculator": ("services.pnl_calculator", "PnLCalculator"),
    "SqlLedgerReader": ("services.ledger", "SqlLedgerReader"),
}


def __getattr__(name):
    if name not in _LAZY_EXPORTS:
        raise AttributeError(f"module 'services' has no attribute {name!r}")

    module_name, attr_name = _LAZY_EXPORTS[name]
    module = import_module(module_name)
    value = getattr(module, attr_name)
    globals()[name] = value
    return value
