"""Dust filtering, deterministic ordering and summary figures for positions."""

from typing import Sequence

from models.position import Position, PositionsSummary
from utils.logger import get_logger

logger = get_logger("position_filter")


def filter_dust(positions: Sequence[Position], min_value_usd: float = 1.0) -> list[Position]:
    """Drop positions worth less than ``min_value_usd``.

    The floor itself is kept. Positions carrying an error marker stay, since
    their value is unknown rather than small.
    """
    kept = [p for p in positions if p.error is not None or p.current_value_usd >= min_value_usd]
    hidden = len(positions) - len(kept)
    if hidden:
        logger.debug("Dust positions hidden", hidden=hidden, min_value_usd=min_value_usd)
    return kept


def sort_positions(positions: Sequence[Position]) -> list[Position]:
    """Highest USD value first; ties by symbol, then contract address."""
    return sorted(
        positions,
        key=lambda p: (-p.current_value_usd, p.symbol, p.contract_address or ""),
    )


def summarize(positions: Sequence[Position]) -> PositionsSummary:
    total_value = 0.0
    total_pnl = 0.0
    profitable = 0
    for position in positions:
        total_value += position.current_value_usd
        if position.pnl is not None:
            total_pnl += position.pnl.pnl_usd or 0.0
            if position.pnl.is_profit:
                profitable += 1

    count = len(positions)
    return PositionsSummary(
        total_positions=count,
        total_value_usd=total_value,
        total_pnl_usd=total_pnl,
        profitable_positions=profitable,
        losing_positions=count - profitable,
        win_rate=profitable / count * 100 if count else 0.0,
    )


def filter_and_sort(positions: Sequence[Position], min_value_usd: float = 1.0) -> list[Position]:
    return sort_positions(filter_dust(positions, min_value_usd))
