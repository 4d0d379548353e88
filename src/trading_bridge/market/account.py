"""Balances, positions and quotes of the user's broker account."""

import logging
from typing import Any

from trading_bridge.core.types import BalanceType
from trading_bridge.market.actives import field_of
from trading_bridge.market.models import BalanceView, PositionView, QuoteEvent, ms_to_iso, time_to_ms, to_num
from trading_bridge.session.registry import SessionRegistry

logger = logging.getLogger(__name__)


def _enum_value(value: Any) -> str:
    raw = getattr(value, "value", value)
    return str(raw).lower() if raw is not None else ""


def balance_view(balance: Any) -> BalanceView:
    return BalanceView(
        id=int(balance.id),
        type=_enum_value(balance.type),
        amount=to_num(balance.amount) or 0.0,
        currency=str(field_of(balance, "currency", default="")),
    )


def position_view(position: Any) -> PositionView:
    external_id = field_of(position, "external_id")
    return PositionView(
        external_id=int(external_id) if external_id is not None else None,
        instrument_type=_enum_value(field_of(position, "instrument_type")),
        active_id=field_of(position, "active_id"),
        direction=_enum_value(field_of(position, "direction")) or None,
        invest=to_num(field_of(position, "invest")),
        pnl_net=to_num(field_of(position, "pnl_net")),
        sell_profit=to_num(field_of(position, "sell_profit")),
        status=_enum_value(field_of(position, "status")) or None,
    )


def quote_event(quote: Any, active_id: int | None = None) -> QuoteEvent:
    return QuoteEvent(
        active_id=int(field_of(quote, "active_id", default=active_id or 0)),
        time=ms_to_iso(time_to_ms(field_of(quote, "time"))),
        bid=to_num(field_of(quote, "bid")),
        ask=to_num(field_of(quote, "ask")),
        value=to_num(field_of(quote, "value")),
        phase=field_of(quote, "phase"),
    )


def matches_type(balance: Any, balance_type: BalanceType | str) -> bool:
    return _enum_value(balance.type) == _enum_value(BalanceType(_enum_value(balance_type)))


class BalancesService:
    """Account balances."""

    def __init__(self, sessions: SessionRegistry) -> None:
        self._sessions = sessions

    async def _facade(self, user_id: str) -> Any:
        sdk = await self._sessions.get_session(user_id)
        return await sdk.balances()

    async def list_all(self, user_id: str) -> list[BalanceView]:
        facade = await self._facade(user_id)
        return [balance_view(b) for b in facade.get_balances()]

    async def find_raw_by_type(self, user_id: str, balance_type: BalanceType | str) -> Any | None:
        """SDK balance object of the given type, for callers that trade with it."""
        facade = await self._facade(user_id)
        return next((b for b in facade.get_balances() if matches_type(b, balance_type)), None)

    async def find_by_type(self, user_id: str, balance_type: BalanceType | str) -> BalanceView | None:
        balance = await self.find_raw_by_type(user_id, balance_type)
        return balance_view(balance) if balance is not None else None

    async def get_by_id(self, user_id: str, balance_id: int) -> BalanceView | None:
        facade = await self._facade(user_id)
        balance = facade.get_balance_by_id(balance_id)
        return balance_view(balance) if balance is not None else None

    async def reset_demo(self, user_id: str) -> bool:
        """Reset the practice balance. False when the account has none."""
        demo = await self.find_raw_by_type(user_id, BalanceType.DEMO)
        reset = getattr(demo, "reset_demo_balance", None) if demo is not None else None
        if reset is None:
            return False
        await reset()
        logger.info(f"Demo balance reset for {user_id}")
        return True


class PositionsService:
    """Open positions and position history."""

    def __init__(self, sessions: SessionRegistry) -> None:
        self._sessions = sessions

    async def _open_positions(self, user_id: str) -> list[Any]:
        sdk = await self._sessions.get_session(user_id)
        facade = await sdk.positions()
        return list(facade.get_all_positions())

    async def _find(self, user_id: str, external_id: int) -> Any | None:
        for position in await self._open_positions(user_id):
            if str(field_of(position, "external_id")) == str(external_id):
                return position
        return None

    async def get_all(self, user_id: str) -> list[PositionView]:
        return [position_view(p) for p in await self._open_positions(user_id)]

    async def get_by_instrument(self, user_id: str, instrument_type: str) -> list[PositionView]:
        wanted = _enum_value(instrument_type)
        return [view for view in await self.get_all(user_id) if view.instrument_type == wanted]

    async def history(self, user_id: str) -> list[PositionView]:
        sdk = await self._sessions.get_session(user_id)
        facade = await sdk.positions()
        history = await facade.get_positions_history()
        return [position_view(p) for p in history.get_positions()]

    async def sell_by_external_id(self, user_id: str, external_id: int) -> bool:
        """Close a position early. Blitz positions cannot be sold."""
        position = await self._find(user_id, external_id)
        sell = getattr(position, "sell", None) if position is not None else None
        if not callable(sell):
            return False
        await sell()
        logger.info(f"Position {external_id} sold for {user_id}")
        return True

    async def pnl_info(self, user_id: str, external_id: int) -> dict[str, float | None] | None:
        position = await self._find(user_id, external_id)
        if position is None:
            return None
        return {
            "pnl_net": to_num(field_of(position, "pnl_net")),
            "sell_profit": to_num(field_of(position, "sell_profit")),
        }


class QuotesService:
    """Point-in-time quotes."""

    def __init__(self, sessions: SessionRegistry) -> None:
        self._sessions = sessions

    async def get_current_quote(self, user_id: str, active_id: int) -> QuoteEvent:
        sdk = await self._sessions.get_session(user_id)
        facade = await sdk.quotes()
        quote = await facade.get_current_quote_for_active(active_id)
        return quote_event(quote, active_id)
