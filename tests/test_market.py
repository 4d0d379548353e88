"""Tests for instrument listings, candles and account projections."""

import asyncio
from datetime import UTC, datetime
from types import SimpleNamespace

import pytest
from conftest import FakeBalance, FakeCandles, FakeSdk, SdkError

from trading_bridge.core.errors import InvalidArgument, UnsupportedCapability
from trading_bridge.core.types import ActiveKind, BalanceType
from trading_bridge.market.account import BalancesService, PositionsService, QuotesService
from trading_bridge.market.actives import MarketDataAdapter
from trading_bridge.market.models import CandleQuery


@pytest.fixture
def sdk(connector):
    sdk = FakeSdk()
    connector.queued.append(sdk)
    return sdk


@pytest.fixture
def market(sessions):
    return MarketDataAdapter(sessions)


class TestListActives:
    """Test per-kind instrument listings."""

    def test_blitz_lists_only_buyable(self, market, sdk):
        """Blitz actives are filtered by purchasability at broker time."""
        actives = asyncio.run(market.list_actives("u1", "blitz"))

        assert [a.id for a in actives] == [2]
        summary = actives[0].to_dict()
        assert summary["ticker"] == "EURUSD"
        assert summary["expirationTimes"] == [5, 10, 15]
        assert summary["profitCommissionPercent"] == 87.0
        assert summary["schedule"][0]["from"].startswith("2024-01-02T12:00:00")

    def test_turbo_skips_suspended(self, market, sdk):
        actives = asyncio.run(market.list_actives("u1", ActiveKind.TURBO))
        assert [a.ticker for a in actives] == ["USDJPY"]

    def test_digital_uses_underlyings(self, market, sdk):
        """Digital listings come from underlyings tradable now."""
        actives = asyncio.run(market.list_actives("u1", "digital"))

        assert [(a.id, a.ticker) for a in actives] == [(76, "EURUSD"), (77, "USDCHF")]
        assert actives[0].expiration_times is None
        assert sdk.digital.asked_at == [datetime(2024, 1, 2, 12, 0, 0, tzinfo=UTC)]

    def test_explicit_at_overrides_broker_clock(self, market, sdk):
        """An ISO ``at`` is used instead of the broker's time."""
        asyncio.run(market.list_actives("u1", "margin-forex", at="2024-03-01T10:00:00Z"))
        assert sdk.forex.asked_at == [datetime(2024, 3, 1, 10, 0, 0, tzinfo=UTC)]

    def test_invalid_kind(self, market, sdk):
        with pytest.raises(InvalidArgument):
            asyncio.run(market.list_actives("u1", "forex-spot"))

    def test_invalid_at(self, market, sdk):
        with pytest.raises(InvalidArgument):
            asyncio.run(market.list_actives("u1", "digital", at="yesterday-ish"))

    def test_missing_accessor_is_unsupported(self, market, sdk):
        """A kind the SDK does not expose is reported as unsupported."""
        sdk.margin_cfd = None

        with pytest.raises(UnsupportedCapability):
            asyncio.run(market.list_actives("u1", "margin-cfd"))

    def test_list_all_degrades_per_kind(self, market, sdk):
        """One failing kind contributes nothing; the rest still come back."""

        async def broken():
            raise SdkError("margin crypto unavailable")

        sdk.margin_crypto = broken
        sdk.margin_cfd = None

        actives = asyncio.run(market.list_actives_all("u1"))
        kinds = {a.kind for a in actives}

        assert ActiveKind.MARGIN_CRYPTO not in kinds
        assert ActiveKind.MARGIN_CFD not in kinds
        assert {ActiveKind.BLITZ, ActiveKind.DIGITAL, ActiveKind.MARGIN_FOREX} <= kinds
        assert all(a.to_dict()["kind"] == a.kind.value for a in actives)


class TestCandleQuery:
    """Test candle query coercion."""

    def test_iso_and_numeric_fields_are_coerced(self):
        query = CandleQuery.from_params(
            {"activeId": "76", "size": "60", "from": "2024-01-02T12:00:00Z", "to": 1704200400000,
             "count": "50", "onlyClosed": "false"}
        )

        assert query.active_id == 76
        assert query.size == 60
        assert query.start_ms == 1704196800000
        assert query.end_ms == 1704200400000
        assert query.count == 50
        assert query.only_closed is False
        assert query.minimal_options() == {"from": 1704196800000, "to": 1704200400000, "count": 50}

    def test_missing_active_id(self):
        with pytest.raises(InvalidArgument):
            CandleQuery.from_params({"size": 60})

    def test_bad_timestamp(self):
        with pytest.raises(InvalidArgument):
            CandleQuery.from_params({"activeId": 1, "size": 60, "from": "not a time"})


class TestCandleFallback:
    """Test the three-plan candle retrieval."""

    PARAMS = {"activeId": 76, "size": 60, "from": 1704196800000, "count": 10, "backoff": 5}

    def test_full_plan_success(self, market, sdk):
        candles = asyncio.run(market.get_candles("u1", self.PARAMS))

        assert len(candles) == 1
        assert candles[0].to_dict()["from"] == 1704196800
        assert candles[0].close == 1.2
        assert sdk.candles_facade.calls[0]["backoff"] == 5

    def test_termination_falls_back_to_minimal(self, market, sdk):
        """A 4000-class failure on the full plan retries with from/to/count only."""
        sdk.candles_facade.errors.append(SdkError("ws closed", code=4000))

        candles = asyncio.run(market.get_candles("u1", self.PARAMS))

        assert len(candles) == 1
        assert len(sdk.candles_facade.calls) == 2
        assert sdk.candles_facade.calls[1] == {"from": 1704196800000, "count": 10}

    def test_other_errors_abort(self, market, sdk):
        """Any other failure is surfaced without trying the minimal plan."""
        sdk.candles_facade.errors.append(SdkError("invalid size"))

        with pytest.raises(SdkError, match="invalid size"):
            asyncio.run(market.get_candles("u1", self.PARAMS))
        assert len(sdk.candles_facade.calls) == 1

    def test_timeout_is_not_a_termination(self, market, sdk, connector):
        """A timeout whose message holds 40000 aborts without reconnecting."""
        sdk.candles_facade.errors.append(SdkError("request timed out after 40000 ms"))

        with pytest.raises(SdkError, match="timed out"):
            asyncio.run(market.get_candles("u1", self.PARAMS))
        assert len(sdk.candles_facade.calls) == 1
        assert len(connector.created) == 1

    def test_third_plan_uses_a_fresh_session(self, market, sdk, connector):
        """Two termination failures lead to a reconnect and a final minimal attempt."""
        shared = FakeCandles()
        sdk.candles_facade = shared
        connector.queued.append(FakeSdk(candles=shared))
        shared.errors.extend([SdkError("status 4000"), SdkError("status 4000")])

        candles = asyncio.run(market.get_candles("u1", self.PARAMS))

        assert len(candles) == 1
        assert len(connector.created) == 2
        assert sdk.shutdown_calls == 1
        assert len(shared.calls) == 3


class TestAccountServices:
    """Test balance, position and quote projections."""

    def test_balances(self, sessions, sdk):
        service = BalancesService(sessions)

        async def scenario():
            return (
                await service.list_all("u1"),
                await service.find_by_type("u1", BalanceType.DEMO),
                await service.get_by_id("u1", 11),
                await service.get_by_id("u1", 99),
            )

        all_balances, demo, real, missing = asyncio.run(scenario())
        assert [b.type for b in all_balances] == ["real", "demo"]
        assert demo.amount == 10000.0
        assert real.to_dict() == {"id": 11, "type": "real", "amount": 100.0, "currency": "USD"}
        assert missing is None

    def test_reset_demo(self, sessions, sdk):
        service = BalancesService(sessions)

        assert asyncio.run(service.reset_demo("u1")) is True
        assert sdk.balance_facade.balances[1].reset_calls == 1

    def test_reset_demo_without_demo_balance(self, sessions, sdk):
        sdk.balance_facade.balances = [FakeBalance(11, "real", 100.0)]
        assert asyncio.run(BalancesService(sessions).reset_demo("u1")) is False

    def test_positions(self, sessions, sdk):
        sold = []

        async def sell():
            sold.append(True)

        sdk.positions_facade.positions = [
            SimpleNamespace(external_id=501, instrument_type="digital-option", active_id=76,
                            direction="call", invest=10, pnl_net=1.5, sell_profit=9.2,
                            status="open", sell=sell),
            SimpleNamespace(external_id=502, instrument_type="blitz-option", active_id=2,
                            direction="put", invest=5, pnl_net=None, sell_profit=None,
                            status="open"),
        ]
        sdk.positions_facade.history = [
            SimpleNamespace(external_id=400, instrument_type="turbo-option", status="closed"),
        ]
        service = PositionsService(sessions)

        async def scenario():
            return (
                await service.get_all("u1"),
                await service.get_by_instrument("u1", "digital-option"),
                await service.history("u1"),
                await service.sell_by_external_id("u1", 501),
                await service.sell_by_external_id("u1", 502),
                await service.pnl_info("u1", 501),
                await service.pnl_info("u1", 999),
            )

        all_, digital, history, sold_ok, blitz_sold, pnl, missing = asyncio.run(scenario())
        assert [p.external_id for p in all_] == [501, 502]
        assert [p.external_id for p in digital] == [501]
        assert history[0].status == "closed"
        assert sold_ok is True and sold == [True]
        assert blitz_sold is False
        assert pnl == {"pnl_net": 1.5, "sell_profit": 9.2}
        assert missing is None

    def test_current_quote(self, sessions, sdk):
        quote = asyncio.run(QuotesService(sessions).get_current_quote("u1", 76))

        payload = quote.to_dict()
        assert payload["activeId"] == 76
        assert payload["value"] == 1.1
        assert payload["time"].startswith("2024-01-02T12:00:00")
