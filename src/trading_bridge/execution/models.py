"""Execution layer data models."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from trading_bridge.core.types import BalanceType, Direction


@dataclass
class BuyRequest:
    """One buy, as asked for by the caller."""

    user_id: str
    instrument: str | int | None
    direction: Direction
    amount: float
    expiration_hint: int | None = None
    balance_id: int | None = None
    balance_type: BalanceType | None = None


@dataclass
class InstrumentSummary:
    """Instrument a trade was placed on."""

    id: int
    ticker: str
    profit_commission_percent: float = 0.0
    expiration_times: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "ticker": self.ticker,
            "profitCommissionPercent": self.profit_commission_percent,
            "expirationTimes": list(self.expiration_times),
        }


@dataclass
class TradeResult:
    """Outcome of a buy.

    Insufficient funds is a normal result: ``funds_available`` is False and
    every other field is left empty.
    """

    funds_available: bool
    option_id: int | None = None
    opened_at: datetime | None = None
    expired_at: datetime | None = None
    open_price: float | None = None
    open_quote_value: float | None = None
    direction: Direction | None = None
    instrument: InstrumentSummary | None = None

    @classmethod
    def no_funds(cls) -> "TradeResult":
        return cls(funds_available=False)

    @property
    def duration_ms(self) -> int:
        """Milliseconds between open and expiry."""
        if self.opened_at is None or self.expired_at is None:
            return 0
        return int((self.expired_at - self.opened_at).total_seconds() * 1000)

    def to_dict(self) -> dict[str, Any]:
        if not self.funds_available:
            return {"funds": False}
        return {
            "funds": True,
            "option": {
                "id": self.option_id,
                "openedAt": self.opened_at.isoformat() if self.opened_at else None,
                "expiredAt": self.expired_at.isoformat() if self.expired_at else None,
                "price": self.open_price,
                "openQuoteValue": self.open_quote_value,
                "direction": self.direction.value if self.direction else None,
            },
            "pair": self.instrument.to_dict() if self.instrument else None,
        }
