from __future__ import annotations

import pytest

from fakes import T0
from trendpulse.application.services.backtrack_simulator import BacktrackResult, DecisionRecord
from trendpulse.application.services.synthetic_ledger import SyntheticLedgerGateway
from trendpulse.cli import format_summary
from trendpulse.container import Container, init_container, reset_container
from trendpulse.domain.entities.signal import Signal
from trendpulse.infrastructure.external.coinbase_feed import CoinbaseMarketDataFeed
from trendpulse.infrastructure.external.oanda_client import (
    OandaExecutionGateway,
    OandaMarketDataFeed,
)
from trendpulse.infrastructure.messaging.event_bus import EventBus
from trendpulse.shared.config.settings import Settings


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


def test_oanda_venue_wires_oanda_adapters():
    container = Container(settings=_settings(oanda_account_id="1", oanda_api_token="t"))

    assert isinstance(container.feed("EUR_USD"), OandaMarketDataFeed)
    assert isinstance(container.gateway("EUR_USD"), OandaExecutionGateway)
    assert container.feed("EUR_USD") is container.feed("EUR_USD")
    container.close()


def test_coinbase_venue_trades_on_paper():
    container = Container(settings=_settings(
        venue="coinbase", instruments=["BTC-EUR", "ETH-EUR"], coinbase_starting_balance=500,
    ))

    assert isinstance(container.feed("BTC-EUR"), CoinbaseMarketDataFeed)
    gateway = container.gateway("BTC-EUR")
    assert isinstance(gateway, SyntheticLedgerGateway)
    assert gateway.balance == 500

    traders = container.traders
    assert list(traders) == ["BTC-EUR", "ETH-EUR"]
    config = traders["BTC-EUR"].config
    assert config.instruments_traded == 2
    assert not config.fx_market


def test_unknown_venue():
    container = Container(settings=_settings(venue="nasdaq"))
    with pytest.raises(ValueError):
        container.feed("AAPL")


def test_override_and_reset():
    container = Container(settings=_settings())
    bus = EventBus(max_queue_size=1)

    container.override("event_bus", bus)
    assert container.event_bus is bus
    with pytest.raises(ValueError):
        container.override("database", object())

    container.reset()
    assert container.event_bus is not bus


def test_init_container_replaces_global():
    container = init_container(_settings(app_name="test"))
    assert container.settings.app_name == "test"
    reset_container()


def test_format_summary():
    result = BacktrackResult(
        instrument="EUR_USD",
        strategy_kind="ichimoku-trend",
        starting_balance=1000.0,
        final_balance=1012.5,
        ruined=False,
        bars_replayed=10,
        decision_trace=(
            DecisionRecord(T0, Signal.BUY, True, 1000.0),
            DecisionRecord(T0, Signal.LONG_EXIT, True, 1012.5),
            DecisionRecord(T0, Signal.BUY, False, 1012.5),
        ),
    )

    summary = format_summary(result)

    assert "1000.00 → 1012.50" in summary
    assert "3 (2 ejecutadas)" in summary
    assert "Buy" in summary and "LongExit" in summary


async def test_paper_gateway_enforces_stop_losses():
    container = Container(settings=_settings(venue="coinbase", instruments=["BTC-EUR"]))
    gateway = container.gateway("BTC-EUR")

    gateway.set_quote(99, 101, T0)
    await gateway.open_long(1, 5.0)
    gateway.set_quote(90, 91, T0)

    assert (await gateway.get_open_position()).is_flat
    assert gateway.closed_trades[-1].reason == "stop_loss"


def test_coinbase_rejects_period_without_candles():
    container = Container(settings=_settings(venue="coinbase", instruments=["BTC-EUR"], period_minutes=240))
    with pytest.raises(ValueError):
        container.trader("BTC-EUR")
