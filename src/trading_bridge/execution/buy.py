"""Option buys on the user's broker session."""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from trading_bridge.core.errors import (
    InstrumentNotFound,
    InstrumentUnavailable,
    InvalidArgument,
    NoBalanceAvailable,
    NoExpirationAvailable,
    UnsupportedCapability,
)
from trading_bridge.core.types import ActiveKind, BalanceType, Direction
from trading_bridge.execution.expiration import normalize_expiration
from trading_bridge.execution.models import BuyRequest, InstrumentSummary, TradeResult
from trading_bridge.market.account import matches_type
from trading_bridge.market.actives import field_of
from trading_bridge.market.models import as_datetime, to_num
from trading_bridge.session.registry import SessionRegistry

logger = logging.getLogger(__name__)

DEFAULT_OPTION_LIFETIME = timedelta(seconds=60)


def _instrument_summary(active: Any) -> InstrumentSummary:
    return InstrumentSummary(
        id=int(field_of(active, "id", "active_id", default=0)),
        ticker=str(field_of(active, "ticker", "name", default="")),
        profit_commission_percent=to_num(field_of(active, "profit_commission_percent")) or 0.0,
        expiration_times=list(field_of(active, "expiration_times", default=[])),
    )


def _trade_result(
    option: Any, amount: float, requested: Direction, instrument: InstrumentSummary | None
) -> TradeResult:
    """Normalize the SDK's option object; the broker may omit the expiry."""
    opened_at = as_datetime(field_of(option, "opened_at")) or datetime.now(UTC)
    expired_at = as_datetime(field_of(option, "expired_at")) or opened_at + DEFAULT_OPTION_LIFETIME
    raw_direction = field_of(option, "direction")
    try:
        direction = Direction(str(getattr(raw_direction, "value", raw_direction)).lower())
    except ValueError:
        direction = requested
    option_id = field_of(option, "id")
    return TradeResult(
        funds_available=True,
        option_id=int(option_id) if option_id is not None else None,
        opened_at=opened_at,
        expired_at=expired_at,
        open_price=to_num(field_of(option, "price")) or amount,
        open_quote_value=to_num(field_of(option, "open_quote_value")),
        direction=direction,
        instrument=instrument,
    )


def _pick_active(actives: list[Any], target: str | int | None) -> Any:
    """Id match, then case-insensitive ticker match, then the first one."""
    if target is not None and str(target) != "":
        wanted = str(target)
        for active in actives:
            if str(field_of(active, "id")) == wanted:
                return active
        for active in actives:
            if str(field_of(active, "ticker", default="")).lower() == wanted.lower():
                return active
    return actives[0]


class BuyExecutor:
    """Validates and submits buys."""

    def __init__(self, sessions: SessionRegistry) -> None:
        self._sessions = sessions

    async def _resolve_balance(
        self,
        sdk: Any,
        balance_id: int | None = None,
        balance_type: BalanceType | str | None = None,
    ) -> Any:
        facade = await sdk.balances()
        balances = list(facade.get_balances())
        balance = facade.get_balance_by_id(balance_id) if balance_id else None
        if balance is None and balance_type:
            balance = next((b for b in balances if matches_type(b, balance_type)), None)
        if balance is None and balances:
            balance = balances[0]
        if balance is None:
            raise NoBalanceAvailable("No balance available")
        return balance

    async def buy(self, request: BuyRequest) -> TradeResult:
        """Buy a blitz option.

        Returns:
            TradeResult; ``funds_available`` is False when the balance does
            not strictly exceed the amount (nothing is submitted then)

        Raises:
            InvalidArgument: Non-positive amount
            NoBalanceAvailable: Account has no balance
            InstrumentNotFound: Broker lists no actives
            InstrumentUnavailable: Chosen active cannot be bought now
            NoExpirationAvailable: No expiration can be resolved
        """
        amount = to_num(request.amount)
        if amount is None or amount <= 0:
            logger.warning(f"Invalid buy amount: {request.amount}")
            raise InvalidArgument("Invalid amount")

        sdk = await self._sessions.get_session(request.user_id)
        balance = await self._resolve_balance(sdk, request.balance_id, request.balance_type)
        balance_amount = to_num(field_of(balance, "amount")) or 0.0
        logger.debug(f"Balance selected: id={balance.id} amount={balance_amount}")
        if not balance_amount > amount:
            logger.warning(f"Insufficient funds: amount={amount} balance={balance_amount}")
            return TradeResult.no_funds()

        blitz = await sdk.blitz_options()
        actives = list(blitz.get_actives() or [])
        if not actives:
            raise InstrumentNotFound("No instrument available")
        active = _pick_active(actives, request.instrument)

        now = datetime.now(UTC)
        if field_of(active, "is_suspended", default=False) or not active.can_be_bought_at(now):
            logger.warning(f"Active {active.id} ({active.ticker}) cannot be bought now")
            raise InstrumentUnavailable(f"{active.ticker} cannot be bought right now")

        allowed = list(field_of(active, "expiration_times", default=[]))
        if request.expiration_hint is None and not allowed:
            raise NoExpirationAvailable(f"{active.ticker} has no expiration available")
        expiration = normalize_expiration(request.expiration_hint, allowed)
        if expiration <= 0:
            raise NoExpirationAvailable(f"{active.ticker} has no expiration available")

        logger.info(
            f"Buying {active.ticker} dir={request.direction.value} "
            f"expiration={expiration}s amount={amount}"
        )
        option = await blitz.buy(active, request.direction, expiration, amount, balance)
        result = _trade_result(option, amount, request.direction, _instrument_summary(active))
        logger.info(
            f"Buy ok: option={result.option_id} price={result.open_price} "
            f"open_quote={result.open_quote_value}"
        )
        return result

    async def buy_first_available(
        self,
        user_id: str,
        kind: ActiveKind | str,
        amount: float,
        direction: Direction | str,
        balance_id: int | None = None,
    ) -> TradeResult:
        """Buy the first instrument of ``kind`` that is purchasable now.

        Raises:
            InvalidArgument: Bad amount, direction or kind
            UnsupportedCapability: Kind other than blitz or digital
            NoBalanceAvailable: Account has no balance
            InstrumentUnavailable: Nothing purchasable right now
        """
        try:
            active_kind = ActiveKind(kind)
            side = Direction(direction)
        except ValueError as e:
            raise InvalidArgument(str(e)) from e
        value = to_num(amount)
        if value is None or value <= 0:
            raise InvalidArgument("Invalid amount")

        if active_kind is ActiveKind.BLITZ:
            return await self._quick_blitz(user_id, value, side, balance_id)
        if active_kind is ActiveKind.DIGITAL:
            return await self._quick_digital(user_id, value, side, balance_id)
        raise UnsupportedCapability(f"Quick buy is not available for {active_kind.value}")

    async def _quick_blitz(
        self, user_id: str, amount: float, direction: Direction, balance_id: int | None
    ) -> TradeResult:
        sdk = await self._sessions.get_session(user_id)
        balance = await self._resolve_balance(sdk, balance_id)
        blitz = await sdk.blitz_options()
        now = datetime.now(UTC)
        active = next((a for a in blitz.get_actives() if a.can_be_bought_at(now)), None)
        if active is None:
            raise InstrumentUnavailable("No blitz active can be bought right now")
        expirations = list(field_of(active, "expiration_times", default=[]))
        if not expirations:
            raise NoExpirationAvailable(f"{active.ticker} has no expiration available")
        option = await blitz.buy(active, direction, expirations[0], amount, balance)
        return _trade_result(option, amount, direction, _instrument_summary(active))

    async def _quick_digital(
        self, user_id: str, amount: float, direction: Direction, balance_id: int | None
    ) -> TradeResult:
        sdk = await self._sessions.get_session(user_id)
        balance = await self._resolve_balance(sdk, balance_id)
        digital = await sdk.digital_options()
        now = datetime.now(UTC)
        underlyings = list(digital.get_underlyings_available_for_trading_at(now) or [])
        if not underlyings:
            raise InstrumentUnavailable("No digital underlying available right now")
        instruments = await underlyings[0].instruments()
        available = list(instruments.get_available_for_buy_at(now) or [])
        if not available:
            raise InstrumentUnavailable("No digital instrument available right now")
        option = await digital.buy_spot_strike(available[0], direction, amount, balance)
        return _trade_result(option, amount, direction, _instrument_summary(underlyings[0]))
