"""Market module - instruments, candles, balances, positions and quotes."""

from trading_bridge.market.account import BalancesService, PositionsService, QuotesService
from trading_bridge.market.actives import MarketDataAdapter
from trading_bridge.market.models import (
    ActiveSummary,
    BalanceView,
    Candle,
    CandleEvent,
    CandleQuery,
    PositionView,
    QuoteEvent,
)

__all__ = [
    "ActiveSummary",
    "BalanceView",
    "BalancesService",
    "Candle",
    "CandleEvent",
    "CandleQuery",
    "MarketDataAdapter",
    "PositionView",
    "PositionsService",
    "QuoteEvent",
    "QuotesService",
]
