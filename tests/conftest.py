"""Pytest configuration and shared fixtures."""

import asyncio
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from typing import Any

import pytest
from langchain_core.messages import AIMessage

from trading_bridge.config import AutomatorConfig, BrokerConfig, StorageConfig, VisionConfig
from trading_bridge.session.connector import BrokerConnector
from trading_bridge.session.registry import SessionRegistry
from trading_bridge.session.users import InMemoryUserStore, UserRecord

BROKER_NOW = datetime(2024, 1, 2, 12, 0, 0, tzinfo=UTC)


class SdkError(Exception):
    """Error shaped like the broker SDK's, with an optional close code."""

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


class FakeBalance:
    def __init__(self, id: int, type: str, amount: float, currency: str = "USD") -> None:
        self.id = id
        self.type = type
        self.amount = amount
        self.currency = currency
        self.reset_calls = 0

    async def reset_demo_balance(self) -> None:
        self.reset_calls += 1


class FakeBalances:
    def __init__(self, balances: list[FakeBalance]) -> None:
        self.balances = balances

    def get_balances(self) -> list[FakeBalance]:
        return list(self.balances)

    def get_balance_by_id(self, balance_id: int) -> FakeBalance | None:
        return next((b for b in self.balances if b.id == balance_id), None)


class FakeActive:
    def __init__(
        self,
        id: int,
        ticker: str,
        is_suspended: bool = False,
        buyable: bool = True,
        expiration_times: list[int] | None = None,
        profit_commission_percent: float = 87.0,
    ) -> None:
        self.id = id
        self.ticker = ticker
        self.is_suspended = is_suspended
        self.buyable = buyable
        self.expiration_times = [5, 10, 15] if expiration_times is None else expiration_times
        self.profit_commission_percent = profit_commission_percent
        self.schedule = [(BROKER_NOW, BROKER_NOW + timedelta(hours=1))]

    def can_be_bought_at(self, when: datetime) -> bool:
        return self.buyable and not self.is_suspended


class FakeBlitz:
    def __init__(self, actives: list[FakeActive]) -> None:
        self.actives = actives
        self.buys: list[tuple[Any, ...]] = []
        self.omit_expiry = False

    def get_actives(self) -> list[FakeActive]:
        return list(self.actives)

    async def buy(self, active, direction, expiration, amount, balance) -> SimpleNamespace:
        self.buys.append((active, direction, expiration, amount, balance))
        return SimpleNamespace(
            id=1000 + len(self.buys),
            opened_at=BROKER_NOW,
            expired_at=None if self.omit_expiry else BROKER_NOW + timedelta(seconds=expiration),
            price=amount,
            open_quote_value=1.08345,
            direction=direction,
        )


class FakeOptions:
    """Turbo and binary facades."""

    def __init__(self, actives: list[FakeActive]) -> None:
        self.actives = actives

    def get_actives(self) -> list[FakeActive]:
        return list(self.actives)


class FakeInstruments:
    def __init__(self, available: list[Any]) -> None:
        self.available = available

    def get_available_for_buy_at(self, when: datetime) -> list[Any]:
        return list(self.available)


class FakeUnderlying:
    def __init__(self, active_id: int, name: str, is_suspended: bool = False) -> None:
        self.active_id = active_id
        self.name = name
        self.is_suspended = is_suspended
        self.schedule = None
        self.instrument_list = [SimpleNamespace(id=f"do{active_id}", strike="SPT")]

    async def instruments(self) -> FakeInstruments:
        return FakeInstruments(self.instrument_list)


class FakeUnderlyings:
    """Digital and margin facades."""

    def __init__(self, underlyings: list[FakeUnderlying]) -> None:
        self.underlyings = underlyings
        self.asked_at: list[datetime] = []
        self.buys: list[tuple[Any, ...]] = []

    def get_underlyings_available_for_trading_at(self, when: datetime) -> list[FakeUnderlying]:
        self.asked_at.append(when)
        return list(self.underlyings)

    async def buy_spot_strike(self, instrument, direction, amount, balance) -> SimpleNamespace:
        self.buys.append((instrument, direction, amount, balance))
        return SimpleNamespace(id=2000 + len(self.buys), opened_at=BROKER_NOW, direction=direction)


class FakeCurrentQuote:
    def __init__(self, active_id: int, value: float, time: datetime) -> None:
        self.active_id = active_id
        self.value = value
        self.bid = value - 0.0001
        self.ask = value + 0.0001
        self.time = time
        self.phase = "T"
        self.handlers: list[Any] = []

    def subscribe_on_update(self, handler) -> None:
        self.handlers.append(handler)

    def unsubscribe_on_update(self, handler) -> None:
        self.handlers.remove(handler)

    def push(self, time: datetime, value: float | None) -> None:
        update = SimpleNamespace(
            active_id=self.active_id, time=time, bid=None, ask=None, value=value, phase="T"
        )
        for handler in list(self.handlers):
            handler(update)


class FakeQuotes:
    def __init__(self) -> None:
        self.current: dict[int, FakeCurrentQuote] = {}

    async def get_current_quote_for_active(self, active_id: int) -> FakeCurrentQuote:
        if active_id not in self.current:
            self.current[active_id] = FakeCurrentQuote(active_id, 1.1, BROKER_NOW)
        return self.current[active_id]


class FakeCandles:
    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []
        self.errors: list[Exception] = []
        self.result = [
            {"id": 1, "from": 1704196800, "to": 1704196860, "open": 1.1, "close": 1.2,
             "min": 1.05, "max": 1.25, "volume": 42},
        ]

    async def get_candles(self, active_id: int, size: int, options: dict[str, Any]) -> list[Any]:
        self.calls.append(dict(options))
        if self.errors:
            raise self.errors.pop(0)
        return list(self.result)


class FakePositionsHistory:
    def __init__(self, positions: list[Any]) -> None:
        self.positions = positions

    def get_positions(self) -> list[Any]:
        return list(self.positions)


class FakePositions:
    def __init__(self, positions: list[Any], history: list[Any] | None = None) -> None:
        self.positions = positions
        self.history = history or []

    def get_all_positions(self) -> list[Any]:
        return list(self.positions)

    async def get_positions_history(self) -> FakePositionsHistory:
        return FakePositionsHistory(self.history)


class FakeSdk:
    """In-process stand-in for the broker SDK handle."""

    def __init__(self, ssid: str = "", candles: FakeCandles | None = None) -> None:
        self.ssid = ssid
        self.time_calls = 0
        self.shutdown_calls = 0
        self.probe_error: Exception | None = None
        self.balance_facade = FakeBalances(
            [FakeBalance(11, "real", 100.0), FakeBalance(12, "demo", 10000.0)]
        )
        self.blitz = FakeBlitz(
            [
                FakeActive(1, "EURUSD-OTC", buyable=False),
                FakeActive(2, "EURUSD"),
                FakeActive(3, "GBPUSD", is_suspended=True),
            ]
        )
        self.turbo = FakeOptions([FakeActive(7, "USDJPY"), FakeActive(8, "AUDCAD", is_suspended=True)])
        self.binary = FakeOptions([FakeActive(9, "EURGBP")])
        self.digital = FakeUnderlyings([FakeUnderlying(76, "EURUSD"), FakeUnderlying(77, "USDCHF")])
        self.forex = FakeUnderlyings([FakeUnderlying(101, "EURUSD")])
        self.cfd = FakeUnderlyings([FakeUnderlying(201, "AAPL")])
        self.crypto = FakeUnderlyings([FakeUnderlying(301, "BTCUSD")])
        self.quotes_facade = FakeQuotes()
        self.candles_facade = candles or FakeCandles()
        self.positions_facade = FakePositions([])

    async def current_time(self) -> datetime:
        self.time_calls += 1
        if self.probe_error is not None:
            raise self.probe_error
        return BROKER_NOW

    async def shutdown(self) -> None:
        self.shutdown_calls += 1

    async def balances(self) -> FakeBalances:
        return self.balance_facade

    async def positions(self) -> FakePositions:
        return self.positions_facade

    async def quotes(self) -> FakeQuotes:
        return self.quotes_facade

    async def candles(self) -> FakeCandles:
        return self.candles_facade

    async def blitz_options(self) -> FakeBlitz:
        return self.blitz

    async def turbo_options(self) -> FakeOptions:
        return self.turbo

    async def binary_options(self) -> FakeOptions:
        return self.binary

    async def digital_options(self) -> FakeUnderlyings:
        return self.digital

    async def margin_forex(self) -> FakeUnderlyings:
        return self.forex

    async def margin_cfd(self) -> FakeUnderlyings:
        return self.cfd

    async def margin_crypto(self) -> FakeUnderlyings:
        return self.crypto


class FakeConnector(BrokerConnector):
    """Hands out queued SDKs (or fresh ones) and records every create."""

    def __init__(self) -> None:
        self.created: list[FakeSdk] = []
        self.queued: list[FakeSdk] = []
        self.errors: list[Exception] = []
        self.calls: list[tuple[str, int, str]] = []

    async def create(self, ws_url: str, app_id: int, ssid: str) -> FakeSdk:
        self.calls.append((ws_url, app_id, ssid))
        await asyncio.sleep(0)
        if self.errors:
            raise self.errors.pop(0)
        sdk = self.queued.pop(0) if self.queued else FakeSdk()
        sdk.ssid = ssid
        self.created.append(sdk)
        return sdk


class FakeChatModel:
    """Chat model answering from a script of replies or exceptions."""

    def __init__(self, replies: list[Any] | None = None) -> None:
        self.replies = list(replies or [])
        self.calls: list[list[Any]] = []

    async def ainvoke(self, messages: list[Any]) -> AIMessage:
        self.calls.append(messages)
        await asyncio.sleep(0)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return AIMessage(content=reply)


class FakeClock:
    """Monotonic clock advanced only by the paired sleep."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class RecordingSleep:
    """Awaitable sleep that only records the requested delays."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def broker_config():
    """Broker configuration pointing at test endpoints."""
    return BrokerConfig(
        ws_url="wss://broker.test/echo/websocket",
        api_url="https://broker.test",
        app_id=82,
        login_url="https://auth.broker.test/api/v2/login",
        register_url="https://auth.broker.test/api/v1.0/register",
        affiliate_code="aff-42",
    )


@pytest.fixture
def vision_config():
    return VisionConfig(api_key="sk-test", base_url="https://api.vision.test/v1")


@pytest.fixture
def automator_config():
    return AutomatorConfig()


@pytest.fixture
def storage_config(tmp_path):
    return StorageConfig(upload_root=tmp_path, public_base_url="https://cdn.test/uploads")


@pytest.fixture
def users():
    """One linked user and one without a broker secret."""
    return InMemoryUserStore(
        [
            UserRecord(
                id="u1",
                email="ana@example.com",
                first_name="Ana",
                last_name="Souza",
                broker_ssid="ssid-1234567890",
                sdk_linked=True,
            ),
            UserRecord(id="u2", email="bruno@example.com", first_name="Bruno"),
        ]
    )


@pytest.fixture
def connector():
    return FakeConnector()


@pytest.fixture
def sessions(users, connector, broker_config):
    return SessionRegistry(users, connector, broker_config)
