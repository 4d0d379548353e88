"""Server-push sequences over the broker's quote subscriptions."""

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Callable
from typing import Any

from trading_bridge.core.errors import InvalidArgument
from trading_bridge.market.account import quote_event
from trading_bridge.market.actives import field_of
from trading_bridge.market.models import CandleEvent, QuoteEvent, time_to_ms, to_num
from trading_bridge.session.registry import SessionRegistry
from trading_bridge.stream.candles import RollingCandleAggregator

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SECONDS = 60


def _require_active_id(active_id: Any) -> int:
    number = to_num(active_id)
    if not number or number <= 0:
        raise InvalidArgument("activeId is required")
    return int(number)


class StreamingAdapter:
    """Turns the SDK's push callbacks into async iterators.

    Each iterator owns exactly one upstream subscription. Closing the
    iterator (``aclose()``, breaking out of ``async for`` or task
    cancellation) unsubscribes the handler; other subscriptions on the same
    session are untouched.
    """

    def __init__(self, sessions: SessionRegistry) -> None:
        self._sessions = sessions

    def stream_quote(self, user_id: str, active_id: Any) -> AsyncIterator[QuoteEvent]:
        """Current quote first, then one event per update.

        Raises:
            InvalidArgument: Missing or zero ``active_id`` (before subscribing)
        """
        resolved = _require_active_id(active_id)
        return self._quotes(user_id, resolved)

    def stream_rolling_candle(
        self,
        user_id: str,
        active_id: Any,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
    ) -> AsyncIterator[CandleEvent]:
        """Closed and partial candle events built from the quote stream.

        Raises:
            InvalidArgument: Missing ``active_id`` or non-positive window
        """
        resolved = _require_active_id(active_id)
        size = to_num(window_seconds)
        if not size or size <= 0:
            raise InvalidArgument("size must be a positive number of seconds")
        return self._candles(user_id, resolved, int(size))

    async def _subscribe(
        self, user_id: str, active_id: int
    ) -> tuple[Any, asyncio.Queue, Callable[[Any], None]]:
        sdk = await self._sessions.get_session(user_id)
        quotes = await sdk.quotes()
        current = await quotes.get_current_quote_for_active(active_id)
        queue: asyncio.Queue = asyncio.Queue()

        def _on_update(quote: Any) -> None:
            queue.put_nowait(quote)

        current.subscribe_on_update(_on_update)
        logger.info(f"Subscribed to quotes of active {active_id} for {user_id}")
        return current, queue, _on_update

    def _unsubscribe(self, current: Any, handler: Callable[[Any], None], active_id: int) -> None:
        with contextlib.suppress(Exception):
            current.unsubscribe_on_update(handler)
        logger.info(f"Unsubscribed from quotes of active {active_id}")

    async def _quotes(self, user_id: str, active_id: int) -> AsyncIterator[QuoteEvent]:
        current, queue, handler = await self._subscribe(user_id, active_id)
        try:
            yield quote_event(current, active_id)
            while True:
                quote = await queue.get()
                yield quote_event(quote, active_id)
        finally:
            self._unsubscribe(current, handler, active_id)

    async def _candles(
        self, user_id: str, active_id: int, window_seconds: int
    ) -> AsyncIterator[CandleEvent]:
        current, queue, handler = await self._subscribe(user_id, active_id)
        aggregator = RollingCandleAggregator(window_seconds)
        aggregator.seed(to_num(field_of(current, "value")))
        try:
            quote = current
            while True:
                time_ms = time_to_ms(field_of(quote, "time"))
                for event in aggregator.on_tick(time_ms, to_num(field_of(quote, "value"))):
                    yield event
                quote = await queue.get()
        finally:
            aggregator.reset()
            self._unsubscribe(current, handler, active_id)
