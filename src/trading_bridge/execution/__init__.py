"""Execution module - option buys."""

from trading_bridge.execution.buy import BuyExecutor
from trading_bridge.execution.expiration import normalize_expiration
from trading_bridge.execution.models import BuyRequest, InstrumentSummary, TradeResult

__all__ = [
    "BuyExecutor",
    "BuyRequest",
    "InstrumentSummary",
    "TradeResult",
    "normalize_expiration",
]
