from __future__ import annotations

from dataclasses import replace

import pytest

from fakes import HOUR, T0, TREND_SERIES, FakeExecutionGateway, FakeMarketDataFeed, flat_candles
from trendpulse.application.services.backtrack_simulator import BacktrackSimulator
from trendpulse.application.services.synthetic_ledger import SyntheticLedgerGateway
from trendpulse.application.use_cases.backtrack_usecase import BacktrackUseCase
from trendpulse.domain.entities.position import AccountState, Side
from trendpulse.domain.entities.signal import Signal
from trendpulse.domain.exceptions.domain_errors import InsufficientHistoryError
from trendpulse.domain.services.strategies import IchimokuTrendStrategy
from trendpulse.domain.services.strategies.base import Strategy, StrategyKind, StrategyResult


class ScriptedStrategy(Strategy):
    """Compra a 100, sale a 1."""

    kind = StrategyKind.SMA_CROSSOVER
    min_candles = 1

    def _evaluate(self, candles):
        price = candles[0].close
        if price == 100:
            return StrategyResult(Signal.STRONG_BUY)
        if price == 1:
            return StrategyResult(Signal.LONG_EXIT)
        return StrategyResult(Signal.NOTHING)


@pytest.fixture
def account() -> AccountState:
    return AccountState(balance=1000.0, margin_rate=1.0, margin_call_percent=0.0, currency="EUR")


def _simulator(account, meta, **kwargs) -> BacktrackSimulator:
    kwargs.setdefault("strategy_factory", IchimokuTrendStrategy)
    kwargs.setdefault("window", 200)
    return BacktrackSimulator(account=account, meta=meta, period_minutes=60, **kwargs)


async def test_replay_acts_on_strong_buy(account, btc_eur):
    result = await _simulator(account, btc_eur).replay(list(reversed(TREND_SERIES)))

    assert result.bars_replayed == 50
    assert not result.ruined
    first = result.decision_trace[0]
    assert first.time == T0 + 204 * HOUR
    assert first.signal is Signal.STRONG_BUY
    assert first.acted
    assert result.trades
    assert any(e.signal is Signal.STRONG_BUY for e in result.signal_history)


async def test_replay_is_deterministic(account, btc_eur):
    simulator = _simulator(account, btc_eur)

    first = await simulator.replay(TREND_SERIES)
    second = await simulator.replay(TREND_SERIES)

    assert first.to_dict() == second.to_dict()
    assert first.final_balance == second.final_balance


async def test_ruin_stops_the_replay(account, btc_eur):
    leveraged = replace(account, margin_rate=0.01)
    meta = replace(btc_eur, margin_rate=0.01)
    simulator = _simulator(leveraged, meta, strategy_factory=ScriptedStrategy, window=2)

    result = await simulator.replay(flat_candles([50, 50, 100, 1, 100, 1]))

    assert result.ruined
    assert result.bars_replayed == 2
    assert [d.signal for d in result.decision_trace] == [Signal.STRONG_BUY, Signal.LONG_EXIT]
    assert result.final_balance == pytest.approx(1000 - 99 * 666)
    trade = result.trades[0]
    assert trade.side is Side.LONG
    assert (trade.entry_price, trade.exit_price, trade.units) == (100, 1, 666)
    assert result.signal_history == ()


async def test_window_must_leave_bars_to_replay(account, btc_eur):
    simulator = _simulator(account, btc_eur, window=3)
    with pytest.raises(InsufficientHistoryError):
        await simulator.replay(flat_candles([1, 2, 3]))


async def test_ledger_converts_with_own_pair(account, btc_eur):
    ledger = SyntheticLedgerGateway(account, btc_eur)
    ledger.set_quote(99, 101, T0)

    assert await ledger.get_conversion_rate("EUR") == 1.0
    assert await ledger.get_conversion_rate("BTC") == 100
    assert await ledger.get_conversion_rate("USD") == 1.0


async def test_ledger_short_pnl(account, btc_eur):
    ledger = SyntheticLedgerGateway(account, btc_eur)
    ledger.set_quote(200, 201, T0)
    await ledger.open_short(2, 0.0)
    ledger.set_quote(150, 151, T0 + HOUR)
    await ledger.close_short()

    # Corto abierto al bid, cerrado al ask
    assert ledger.balance == pytest.approx(1000 + (200 - 151) * 2)
    assert (await ledger.get_open_position()).is_flat


async def test_usecase_reads_broker_and_replays(account, btc_eur):
    feed = FakeMarketDataFeed("BTC-EUR", TREND_SERIES)
    usecase = BacktrackUseCase(
        feed_factory=lambda instrument: feed,
        gateway_factory=lambda instrument: SyntheticLedgerGateway(account, btc_eur),
        count=250,
        window=200,
    )

    result = await usecase.run_backtrack("BTC-EUR", "ichimoku-trend", 60)

    assert result.instrument == "BTC-EUR"
    assert result.strategy_kind == "ichimoku-trend"
    assert feed.requests == [{"count": 250, "from_time": None, "granularity": "H1"}]


async def test_usecase_uses_broker_rates_for_conversion(account, btc_eur):
    gateway = FakeExecutionGateway(account, btc_eur, conversion_rate=280)
    usecase = BacktrackUseCase(
        feed_factory=lambda instrument: FakeMarketDataFeed("BTC-EUR", TREND_SERIES),
        gateway_factory=lambda instrument: gateway,
        count=250,
        window=200,
    )

    result = await usecase.run_backtrack("BTC-EUR", "ichimoku-trend", 60)

    assert ("get_conversion_rate", "BTC", T0 + 204 * HOUR) in gateway.calls
    # Las órdenes van al ledger sintético, nunca al broker
    assert not [c for c in gateway.call_names if c.startswith(("open", "close"))]
    assert result.decision_trace[0].acted


async def test_paper_ledger_stops_out_long(account, btc_eur):
    ledger = SyntheticLedgerGateway(account, btc_eur, stop_losses=True)
    ledger.set_quote(99, 101, T0)
    await ledger.open_long(2, 5.0)
    assert ledger.stop_price(Side.LONG) == 96

    ledger.set_quote(97, 98, T0 + HOUR)
    assert not (await ledger.get_open_position()).is_flat

    ledger.set_quote(95, 96, T0 + 2 * HOUR)
    assert (await ledger.get_open_position()).is_flat
    trade = ledger.closed_trades[-1]
    assert (trade.reason, trade.exit_price) == ("stop_loss", 95)
    assert ledger.balance == pytest.approx(1000 + (95 - 101) * 2)
    assert ledger.stop_price(Side.LONG) is None


async def test_paper_ledger_stops_out_short_at_ask(account, btc_eur):
    ledger = SyntheticLedgerGateway(account, btc_eur, stop_losses=True)
    ledger.set_quote(200, 201, T0)
    await ledger.open_short(1, 10.0)
    assert ledger.stop_price(Side.SHORT) == 210

    ledger.set_quote(209, 211, T0 + HOUR)

    assert (await ledger.get_open_position()).is_flat
    assert ledger.balance == pytest.approx(1000 - 11)


async def test_signal_close_clears_the_stop(account, btc_eur):
    ledger = SyntheticLedgerGateway(account, btc_eur, stop_losses=True)
    ledger.set_quote(99, 101, T0)
    await ledger.open_long(1, 5.0)
    await ledger.close_long()

    ledger.set_quote(50, 51, T0 + HOUR)
    assert [t.reason for t in ledger.closed_trades] == ["signal"]


async def test_backtrack_ledger_ignores_stops(account, btc_eur):
    ledger = SyntheticLedgerGateway(account, btc_eur)
    ledger.set_quote(99, 101, T0)
    await ledger.open_long(2, 5.0)

    ledger.set_quote(50, 51, T0 + HOUR)

    assert ledger.stop_price(Side.LONG) is None
    assert not (await ledger.get_open_position()).is_flat
    assert ledger.closed_trades == []


def test_stops_need_local_rates(account, btc_eur, eur_usd):
    rates = FakeExecutionGateway(account, eur_usd)
    with pytest.raises(ValueError):
        SyntheticLedgerGateway(account, btc_eur, rates, stop_losses=True)
