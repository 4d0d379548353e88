"""Stable projections of broker SDK objects."""

import math
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from typing import Any

from trading_bridge.core.errors import InvalidArgument
from trading_bridge.core.types import ActiveKind


def to_ms(value: Any) -> int | None:
    """Coerce epoch millis, numeric strings or ISO timestamps to epoch millis."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return datetime_to_ms(value)
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return int(value) if math.isfinite(value) else None
    text = str(value).strip()
    try:
        number = float(text)
    except ValueError:
        parsed = parse_iso(text)
        return datetime_to_ms(parsed) if parsed else None
    return int(number) if math.isfinite(number) else None


def to_num(value: Any) -> float | None:
    """Coerce a number or numeric string, ``None`` when not finite."""
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def to_bool(value: Any, default: bool) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1", "yes")


def parse_iso(text: str) -> datetime | None:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    raw = text.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def datetime_to_ms(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return int(value.timestamp() * 1000)


def time_to_ms(value: Any, default_ms: int | None = None) -> int:
    """Normalize an SDK time (datetime, epoch seconds or millis) to millis."""
    if isinstance(value, datetime):
        return datetime_to_ms(value)
    number = to_num(value)
    if number is None:
        if default_ms is not None:
            return default_ms
        return datetime_to_ms(datetime.now(UTC))
    # Epoch seconds are ~1e9, millis ~1e12
    return int(number * 1000) if number < 1e11 else int(number)


def ms_to_iso(value_ms: int) -> str:
    return datetime.fromtimestamp(value_ms / 1000, tz=UTC).isoformat()


def as_datetime(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    return datetime.fromtimestamp(time_to_ms(value) / 1000, tz=UTC)


@dataclass
class ScheduleRange:
    """One trading window of an instrument."""

    start: str
    end: str

    def to_dict(self) -> dict[str, str]:
        return {"from": self.start, "to": self.end}


@dataclass
class ActiveSummary:
    """Uniform view of a tradable instrument, whatever its kind."""

    id: int
    ticker: str
    is_suspended: bool
    expiration_times: list[int] | None = None
    profit_commission_percent: float | None = None
    schedule: list[ScheduleRange] | None = None
    kind: ActiveKind | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "ticker": self.ticker,
            "isSuspended": self.is_suspended,
        }
        if self.expiration_times is not None:
            payload["expirationTimes"] = list(self.expiration_times)
        if self.profit_commission_percent is not None:
            payload["profitCommissionPercent"] = self.profit_commission_percent
        if self.schedule is not None:
            payload["schedule"] = [r.to_dict() for r in self.schedule]
        if self.kind is not None:
            payload["kind"] = self.kind.value
        return payload


@dataclass
class CandleQuery:
    """Candle request with every field already coerced."""

    active_id: int
    size: int | str
    start_ms: int | None = None
    end_ms: int | None = None
    from_id: int | None = None
    to_id: int | None = None
    count: int = 200
    backoff: int = 0
    only_closed: bool = True
    kind: str | None = None
    split_normalization: bool = False

    @classmethod
    def from_params(cls, params: dict[str, Any]) -> "CandleQuery":
        """Build a query from loosely typed request parameters.

        Raises:
            InvalidArgument: activeId or size missing/invalid
        """
        active_id = to_num(params.get("activeId", params.get("active_id")))
        if not active_id or active_id <= 0:
            raise InvalidArgument("activeId is required")

        raw_size = params.get("size")
        size_num = to_num(raw_size)
        if size_num is not None:
            size: int | str = int(size_num)
        elif raw_size:
            # The SDK also accepts named sizes
            size = str(raw_size)
        else:
            raise InvalidArgument("size is required")

        raw_from = params.get("from")
        raw_to = params.get("to")
        start_ms = to_ms(raw_from)
        end_ms = to_ms(raw_to)
        if raw_from not in (None, "") and start_ms is None:
            raise InvalidArgument('Invalid "from" timestamp')
        if raw_to not in (None, "") and end_ms is None:
            raise InvalidArgument('Invalid "to" timestamp')

        from_id = to_num(params.get("fromId"))
        to_id = to_num(params.get("toId"))
        count = to_num(params.get("count"))
        backoff = to_num(params.get("backoff"))

        return cls(
            active_id=int(active_id),
            size=size,
            start_ms=start_ms,
            end_ms=end_ms,
            from_id=int(from_id) if from_id is not None else None,
            to_id=int(to_id) if to_id is not None else None,
            count=int(count) if count is not None else 200,
            backoff=int(backoff) if backoff is not None else 0,
            only_closed=to_bool(params.get("onlyClosed"), True),
            kind=params.get("kind") or None,
            split_normalization=to_bool(params.get("splitNormalization"), False),
        )

    def full_options(self) -> dict[str, Any]:
        """Every option as requested."""
        options = {
            "from": self.start_ms,
            "to": self.end_ms,
            "fromId": self.from_id,
            "toId": self.to_id,
            "count": self.count,
            "backoff": self.backoff,
            "onlyClosed": self.only_closed,
            "kind": self.kind,
            "splitNormalization": self.split_normalization,
        }
        return {k: v for k, v in options.items() if v is not None}

    def minimal_options(self) -> dict[str, Any]:
        """Only the time range and count."""
        options = {"from": self.start_ms, "to": self.end_ms, "count": self.count}
        return {k: v for k, v in options.items() if v is not None}


@dataclass
class Candle:
    """Historical OHLC candle."""

    id: int | None
    start: int
    end: int
    open: float
    close: float
    min: float
    max: float
    volume: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["from"] = payload.pop("start")
        payload["to"] = payload.pop("end")
        return payload


@dataclass
class QuoteEvent:
    """Current quote of an instrument."""

    active_id: int
    time: str
    bid: float | None
    ask: float | None
    value: float | None
    phase: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "activeId": self.active_id,
            "time": self.time,
            "bid": self.bid,
            "ask": self.ask,
            "value": self.value,
            "phase": self.phase,
        }


@dataclass
class CandleEvent:
    """Rolling candle window; ``partial`` marks an in-progress window."""

    start: int  # epoch seconds
    end: int
    open: float
    close: float
    min: float
    max: float
    volume: int
    partial: bool = False

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "from": self.start,
            "to": self.end,
            "open": self.open,
            "close": self.close,
            "min": self.min,
            "max": self.max,
            "volume": self.volume,
        }
        if self.partial:
            payload["partial"] = True
        return payload


@dataclass
class BalanceView:
    """Account balance."""

    id: int
    type: str
    amount: float
    currency: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class PositionView:
    """Open or historical position."""

    external_id: int | None
    instrument_type: str
    active_id: int | None = None
    direction: str | None = None
    invest: float | None = None
    pnl_net: float | None = None
    sell_profit: float | None = None
    status: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
