"""Concrete market-data sources, tried in list order by the aggregator."""

from .jupiter import JupiterPriceSource
from .dexscreener import DexScreenerSource, select_best_pair

__all__ = ["JupiterPriceSource", "DexScreenerSource", "select_best_pair"]
