"""Rolling candle aggregation from a live tick stream."""

from dataclasses import dataclass

from trading_bridge.market.models import CandleEvent


@dataclass
class RollingCandleBucket:
    """Mutable state of the window currently being built (times in millis)."""

    window_start: int
    open: float
    high: float
    low: float
    tick_count: int = 0


class RollingCandleAggregator:
    """Builds fixed-size OHLC windows incrementally.

    Every tick yields a partial event for the in-progress window. A tick that
    reaches or passes the window end first closes that window, then opens the
    next one at the old window's end seeded with the last known price, so
    consecutive windows never leave a gap.
    """

    def __init__(self, window_seconds: int) -> None:
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.window_ms = int(window_seconds) * 1000
        self.bucket: RollingCandleBucket | None = None
        self.last_price: float | None = None

    def seed(self, price: float | None) -> None:
        """Remember a price known before the first tick."""
        if price is not None:
            self.last_price = price

    def on_tick(self, time_ms: int, value: float | None) -> list[CandleEvent]:
        """Apply one tick and return the events it produces, oldest first."""
        price = value if value is not None else self.last_price
        if price is None:
            return []

        events: list[CandleEvent] = []
        if self.bucket is None:
            start = time_ms - time_ms % self.window_ms
            self.bucket = RollingCandleBucket(window_start=start, open=price, high=price, low=price)

        while time_ms >= self.bucket.window_start + self.window_ms:
            events.append(self._event(self.bucket, close=self.last_price, partial=False))
            carry = self.last_price if self.last_price is not None else self.bucket.open
            self.bucket = RollingCandleBucket(
                window_start=self.bucket.window_start + self.window_ms,
                open=carry,
                high=carry,
                low=carry,
            )

        self.last_price = price
        self.bucket.high = max(self.bucket.high, price)
        self.bucket.low = min(self.bucket.low, price)
        self.bucket.tick_count += 1
        events.append(self._event(self.bucket, close=price, partial=True))
        return events

    def reset(self) -> None:
        self.bucket = None
        self.last_price = None

    def _event(self, bucket: RollingCandleBucket, close: float | None, partial: bool) -> CandleEvent:
        return CandleEvent(
            start=bucket.window_start // 1000,
            end=(bucket.window_start + self.window_ms) // 1000,
            open=bucket.open,
            close=close if close is not None else bucket.open,
            min=bucket.low,
            max=bucket.high,
            volume=bucket.tick_count,
            partial=partial,
        )
