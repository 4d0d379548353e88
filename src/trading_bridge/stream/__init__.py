"""Stream module - quote and rolling candle push sequences."""

from trading_bridge.stream.candles import RollingCandleAggregator
from trading_bridge.stream.service import StreamingAdapter

__all__ = [
    "RollingCandleAggregator",
    "StreamingAdapter",
]
