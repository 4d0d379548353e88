"""Automated decision loop: classify a chart, then buy."""

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any
from zoneinfo import ZoneInfo

from trading_bridge.agent.vision import VisionDecisionClient
from trading_bridge.config import AutomatorConfig
from trading_bridge.core.errors import InvalidArgument, NoDecisionExtracted
from trading_bridge.core.retry import RetryPolicy, SleepFn, fixed_delay, retry_async
from trading_bridge.core.types import BalanceType
from trading_bridge.execution.buy import BuyExecutor
from trading_bridge.execution.models import BuyRequest, TradeResult
from trading_bridge.market.models import to_bool, to_num

logger = logging.getLogger(__name__)

# Added to the option lifetime so the client waits past settlement
SETTLEMENT_GRACE_MS = 3000
NO_RESULT_MESSAGE = "No valid result after multiple attempts"


def _first_of(row: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if row.get(key) not in (None, ""):
            return row[key]
    return None


@dataclass
class AutomatorFormRow:
    """Validated automator form row."""

    instrument: str | int
    amount: float
    expiration_hint: int | None = None
    invert: bool = False

    @classmethod
    def from_dict(cls, row: Any) -> "AutomatorFormRow":
        if not isinstance(row, dict):
            raise InvalidArgument("Invalid form row")
        instrument = _first_of(row, "instrument", "ativo")
        if instrument is None:
            raise InvalidArgument("Form row needs an instrument")
        amount = to_num(_first_of(row, "amount", "valor"))
        if amount is None or amount <= 0:
            raise InvalidArgument("Form row needs a positive amount")
        expiration = to_num(_first_of(row, "expiration_hint", "expiration"))
        return cls(
            instrument=instrument,
            amount=amount,
            expiration_hint=int(expiration) if expiration else None,
            invert=to_bool(row.get("invert"), False),
        )


def parse_form_rows(form: Any) -> AutomatorFormRow:
    """Validate an array of form rows; only the first one is used."""
    if not isinstance(form, Sequence) or isinstance(form, str | bytes) or not form:
        raise InvalidArgument("Form must be a non-empty list of rows")
    return AutomatorFormRow.from_dict(form[0])


@dataclass
class AutomatorResult:
    """Outcome of one automator run.

    ``funds`` is None for the terminal no-result outcome.
    """

    funds: bool | None
    data: dict[str, Any] = field(default_factory=dict)
    message: str = ""

    @property
    def exhausted(self) -> bool:
        return self.funds is None

    def to_dict(self) -> dict[str, Any]:
        if self.exhausted:
            return {"message": self.message, "data": []}
        return {"data": {**self.data, "funds": self.funds}}


class AutomatorOrchestrator:
    """Runs classify-then-buy with a bounded number of attempts.

    Any error from either step costs one attempt. Insufficient funds ends the
    run immediately. When every attempt fails the run still returns, with the
    terminal no-result outcome.
    """

    def __init__(
        self,
        vision: VisionDecisionClient,
        executor: BuyExecutor,
        config: AutomatorConfig,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._vision = vision
        self._executor = executor
        self._config = config
        self._sleep = sleep
        self._timezone = ZoneInfo(config.display_timezone)
        self._policy = RetryPolicy(
            max_attempts=config.max_attempts,
            backoff=fixed_delay(config.retry_delay),
        )

    async def run(
        self,
        user_id: str,
        image_ref: str,
        form: AutomatorFormRow | Any,
        balance_type: BalanceType | str | None = None,
        balance_id: int | None = None,
    ) -> AutomatorResult:
        row = form if isinstance(form, AutomatorFormRow) else parse_form_rows(form)
        try:
            resolved_type = BalanceType(balance_type) if balance_type else None
        except ValueError as e:
            raise InvalidArgument(f"Invalid balance type: {balance_type}") from e

        async def _attempt(attempt: int) -> AutomatorResult:
            decision = await self._vision.classify(image_ref)
            if decision.recommendation is None:
                raise NoDecisionExtracted("Vision response has no recommendation")
            if row.invert:
                decision = decision.inverted()

            request = BuyRequest(
                user_id=user_id,
                instrument=row.instrument,
                direction=decision.recommendation.to_direction(),
                amount=row.amount,
                expiration_hint=row.expiration_hint,
                balance_id=balance_id,
                balance_type=resolved_type,
            )
            trade = await self._executor.buy(request)
            if not trade.funds_available:
                logger.warning(f"Automator stopped for {user_id}: insufficient funds")
                return AutomatorResult(funds=False)
            return self._success(decision.recommendation.value, decision.probability, trade)

        try:
            return await retry_async(_attempt, self._policy, sleep=self._sleep, label="Automator")
        except Exception as e:
            logger.error(f"Automator gave up for {user_id}: {e}")
            return AutomatorResult(funds=None, message=NO_RESULT_MESSAGE)

    def _success(self, direction: str, probability: float, trade: TradeResult) -> AutomatorResult:
        hour_open = ""
        if trade.opened_at is not None:
            hour_open = trade.opened_at.astimezone(self._timezone).strftime("%H:%M:%S")
        instrument = trade.instrument
        return AutomatorResult(
            funds=True,
            data={
                "direction": direction,
                "probability": probability,
                "entry": trade.open_price,
                "expiration": trade.duration_ms + SETTLEMENT_GRACE_MS,
                "hour_open": hour_open,
                "price": trade.open_quote_value,
                "spread": instrument.profit_commission_percent if instrument else 0.0,
            },
        )
