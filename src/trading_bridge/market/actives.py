"""Instrument listings and historical candles."""

import asyncio
import logging
from datetime import UTC, datetime
from typing import Any

from trading_bridge.core.errors import InvalidArgument, UnsupportedCapability, is_session_terminated
from trading_bridge.core.retry import RetryPolicy, retry_async
from trading_bridge.core.types import ActiveKind
from trading_bridge.market.models import (
    ActiveSummary,
    Candle,
    CandleQuery,
    ScheduleRange,
    as_datetime,
    to_ms,
    to_num,
)
from trading_bridge.session.registry import SessionRegistry

logger = logging.getLogger(__name__)

# SDK accessor per instrument kind
KIND_ACCESSORS: dict[ActiveKind, str] = {
    ActiveKind.BLITZ: "blitz_options",
    ActiveKind.TURBO: "turbo_options",
    ActiveKind.BINARY: "binary_options",
    ActiveKind.DIGITAL: "digital_options",
    ActiveKind.MARGIN_FOREX: "margin_forex",
    ActiveKind.MARGIN_CFD: "margin_cfd",
    ActiveKind.MARGIN_CRYPTO: "margin_crypto",
}


def field_of(obj: Any, *names: str, default: Any = None) -> Any:
    """Read the first present attribute (or mapping key) of an SDK object."""
    for name in names:
        if isinstance(obj, dict):
            if obj.get(name) is not None:
                return obj[name]
        else:
            value = getattr(obj, name, None)
            if value is not None:
                return value
    return default


def _iso(value: Any) -> str:
    moment = as_datetime(value)
    return moment.isoformat() if moment else ""


def map_schedule(ranges: Any) -> list[ScheduleRange] | None:
    """Schedules come as from/to or open/close pairs."""
    if ranges is None:
        return None
    mapped = []
    for r in ranges:
        if isinstance(r, tuple | list) and len(r) >= 2:
            start, end = r[0], r[1]
        else:
            start = field_of(r, "from_", "start", "open")
            end = field_of(r, "to", "end", "close")
        mapped.append(ScheduleRange(start=_iso(start), end=_iso(end)))
    return mapped


def map_option_active(active: Any) -> ActiveSummary:
    """Blitz, turbo and binary actives share one shape."""
    expirations = field_of(active, "expiration_times")
    return ActiveSummary(
        id=int(active.id),
        ticker=str(active.ticker),
        is_suspended=bool(active.is_suspended),
        expiration_times=list(expirations) if expirations is not None else None,
        profit_commission_percent=field_of(active, "profit_commission_percent"),
        schedule=map_schedule(field_of(active, "schedule")),
    )


def map_underlying(underlying: Any) -> ActiveSummary:
    """Digital and margin underlyings."""
    return ActiveSummary(
        id=int(underlying.active_id),
        ticker=str(underlying.name),
        is_suspended=bool(underlying.is_suspended),
        schedule=map_schedule(field_of(underlying, "schedule")),
    )


def map_candle(candle: Any) -> Candle:
    start = field_of(candle, "from_", "start", "from", default=0)
    end = field_of(candle, "to", "end", default=start)
    open_ = to_num(field_of(candle, "open")) or 0.0
    return Candle(
        id=field_of(candle, "id"),
        start=int(to_num(start) or 0),
        end=int(to_num(end) or 0),
        open=open_,
        close=to_num(field_of(candle, "close")) or open_,
        min=to_num(field_of(candle, "min", "low")) or open_,
        max=to_num(field_of(candle, "max", "high")) or open_,
        volume=to_num(field_of(candle, "volume")) or 0.0,
    )


class MarketDataAdapter:
    """Read-only projections over the user's broker session."""

    def __init__(self, sessions: SessionRegistry) -> None:
        self._sessions = sessions
        self._candle_policy = RetryPolicy(max_attempts=3, retryable=is_session_terminated)

    @staticmethod
    def parse_kind(kind: ActiveKind | str) -> ActiveKind:
        try:
            return ActiveKind(kind)
        except ValueError as e:
            raise InvalidArgument(f"Invalid kind: {kind}") from e

    async def broker_now(self, sdk: Any) -> datetime:
        """Current time on the broker's clock."""
        value = await sdk.current_time()
        return as_datetime(value) or datetime.now(UTC)

    async def list_actives(
        self,
        user_id: str,
        kind: ActiveKind | str,
        at: str | int | datetime | None = None,
    ) -> list[ActiveSummary]:
        """List instruments of one kind tradable at ``at`` (broker time by default).

        Raises:
            InvalidArgument: Unknown kind or unparseable ``at``
            UnsupportedCapability: Kind not offered by this broker connection
        """
        active_kind = self.parse_kind(kind)
        sdk = await self._sessions.get_session(user_id)
        when = await self.broker_now(sdk)
        if at not in (None, ""):
            at_ms = to_ms(at)
            if at_ms is None:
                raise InvalidArgument('Invalid "at" parameter')
            when = datetime.fromtimestamp(at_ms / 1000, tz=UTC)

        accessor = getattr(sdk, KIND_ACCESSORS[active_kind], None)
        if accessor is None:
            raise UnsupportedCapability(f"{active_kind.value} is not supported by the broker SDK")
        facade = await accessor()

        if active_kind is ActiveKind.BLITZ:
            return [map_option_active(a) for a in facade.get_actives() if a.can_be_bought_at(when)]
        if active_kind in (ActiveKind.TURBO, ActiveKind.BINARY):
            return [map_option_active(a) for a in facade.get_actives() if not a.is_suspended]
        return [
            map_underlying(u) for u in facade.get_underlyings_available_for_trading_at(when)
        ]

    async def list_actives_all(self, user_id: str) -> list[ActiveSummary]:
        """List every kind at once; a failing kind contributes nothing."""

        async def _one(kind: ActiveKind) -> list[ActiveSummary]:
            try:
                summaries = await self.list_actives(user_id, kind)
            except Exception as e:
                logger.warning(f"Failed to list {kind.value} actives: {e}")
                return []
            for summary in summaries:
                summary.kind = kind
            return summaries

        results = await asyncio.gather(*(_one(kind) for kind in ActiveKind))
        return [summary for group in results for summary in group]

    async def get_candles(self, user_id: str, query: CandleQuery | dict[str, Any]) -> list[Candle]:
        """Fetch historical candles.

        Tries the full option set first, then only from/to/count, then the
        minimal set again on a freshly created session. Only the broker's
        session-termination error moves on to the next plan; anything else
        is raised straight away.
        """
        if not isinstance(query, CandleQuery):
            query = CandleQuery.from_params(query)

        minimal = query.minimal_options()
        plans: list[tuple[str, dict[str, Any], bool]] = [
            ("full", query.full_options(), False),
            ("minimal", minimal, False),
            ("minimal after reconnect", minimal, True),
        ]

        async def _attempt(attempt: int) -> list[Any]:
            name, options, reconnect = plans[attempt - 1]
            if reconnect:
                sdk = await self._sessions.refresh(user_id)
            else:
                sdk = await self._sessions.get_session(user_id)
            accessor = getattr(sdk, "candles", None)
            if accessor is None:
                raise UnsupportedCapability("Candles API is not supported by the broker SDK")
            facade = await accessor()
            logger.debug(f"Candles plan '{name}' active={query.active_id} options={options}")
            return list(await facade.get_candles(query.active_id, query.size, options))

        raw = await retry_async(_attempt, self._candle_policy, label="Candles")
        candles = [map_candle(c) for c in raw]
        logger.info(f"Fetched {len(candles)} candles for active {query.active_id}")
        return candles

