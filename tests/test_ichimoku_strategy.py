from __future__ import annotations

import pytest

from fakes import TREND_SERIES, T0, HOUR, candle, flat_candles, newest_first
from trendpulse.domain.entities.signal import Signal
from trendpulse.domain.exceptions.domain_errors import (
    InsufficientHistoryError,
    StrategyBusyError,
)
from trendpulse.domain.services.indicator_calculator import IchimokuPoint
from trendpulse.domain.services.strategies import (
    IchimokuRegularStrategy,
    IchimokuTrendStrategy,
    StrategyKind,
    build_strategy,
)


def _replay(strategy, start: int = 200, end: int = 250) -> list[tuple[int, Signal]]:
    emitted = []
    for n in range(start, end + 1):
        result = strategy.get_signal(newest_first(TREND_SERIES, n))
        if result.signal is not Signal.NOTHING:
            emitted.append((n - 1, result.signal))
    return emitted


def test_trend_series_emits_strong_buy_then_short_exit():
    emitted = _replay(IchimokuTrendStrategy())
    signals = [s for _, s in emitted]

    assert signals.count(Signal.STRONG_BUY) == 1
    assert signals.count(Signal.SHORT_EXIT) == 1
    strong_buy = signals.index(Signal.STRONG_BUY)
    short_exit = signals.index(Signal.SHORT_EXIT)
    assert strong_buy < short_exit
    assert Signal.STRONG_SELL not in signals[:short_exit]
    assert emitted[strong_buy][0] == 204


def test_strong_buy_is_deduplicated_within_the_period():
    strategy = IchimokuTrendStrategy()
    candles = newest_first(TREND_SERIES, 205)

    first = strategy.get_signal(candles)
    second = strategy.get_signal(candles)

    assert first.signal is Signal.STRONG_BUY
    assert first.diagnostics["rule"] == "strong_buy"
    assert second.signal is Signal.NOTHING
    assert second.diagnostics["deduplicated"] is True


def test_history_records_evaluation_clock():
    strategy = IchimokuTrendStrategy()
    strategy.get_signal(newest_first(TREND_SERIES, 205))

    latest = strategy.history.latest
    assert latest.signal is Signal.STRONG_BUY
    assert latest.timestamp == T0 + 204 * HOUR


def test_warm_up_replays_history_oldest_first():
    strategy = IchimokuTrendStrategy()
    evaluated = strategy.warm_up(newest_first(TREND_SERIES, 205))

    assert evaluated == 6
    assert any(e.signal is Signal.STRONG_BUY for e in strategy.history)
    # La vela actual ya se evaluó durante el warm-up
    assert strategy.get_signal(newest_first(TREND_SERIES, 205)).signal is Signal.NOTHING


def test_insufficient_history():
    strategy = IchimokuTrendStrategy()
    with pytest.raises(InsufficientHistoryError) as exc_info:
        strategy.get_signal(newest_first(TREND_SERIES, 199))
    assert exc_info.value.required == 200
    assert exc_info.value.available == 199


def test_zero_volume_candles_do_not_count():
    candles = newest_first(TREND_SERIES, 200)
    candles[5] = candle(194, candles[5].close, volume=0)

    with pytest.raises(InsufficientHistoryError):
        IchimokuTrendStrategy().get_signal(candles)


def test_concurrent_evaluation_is_rejected():
    strategy = IchimokuTrendStrategy()
    with strategy.evaluation_guard():
        assert strategy.is_busy
        with pytest.raises(StrategyBusyError):
            strategy.get_signal(newest_first(TREND_SERIES, 205))
    assert not strategy.is_busy


def test_guard_released_after_error():
    strategy = IchimokuTrendStrategy()
    with pytest.raises(InsufficientHistoryError):
        strategy.get_signal([])
    assert not strategy.is_busy


def test_regular_variant_stop_falls_back_to_atr():
    strategy = IchimokuRegularStrategy()
    candles = newest_first(TREND_SERIES, 205)

    # Sin vela de referencia; el precio se mueve 1 por vela → ATR 1
    assert strategy.stop_loss_distance(candles) == pytest.approx(2.0)


def test_build_strategy_kinds():
    assert isinstance(build_strategy("ichimoku-trend"), IchimokuTrendStrategy)
    assert isinstance(build_strategy(StrategyKind.ICHIMOKU_REGULAR), IchimokuRegularStrategy)
    assert build_strategy("ema-crossover").kind is StrategyKind.EMA_CROSSOVER
    assert build_strategy("sma-crossover").kind is StrategyKind.SMA_CROSSOVER
    with pytest.raises(ValueError):
        build_strategy("random-walk")


# ──────────────────────── Variante regular ──────────────────────────────

RISING = [100.0 + i for i in range(200)]
FALLING = [300.0 - i for i in range(200)]
FLAT = [100.0] * 200
NEUTRAL = IchimokuPoint(100, 100, 1, 1)


class FixedCloudRegular(IchimokuRegularStrategy):
    """Variante regular con la nube fijada (puntos newest-first)."""

    def __init__(self, *points: IchimokuPoint) -> None:
        super().__init__()
        self._points = list(points)

    def cloud(self, candles):
        return self._points


def _candles(closes, *bodies):
    """Velas newest-first; `bodies` = (índice oldest-first, open, close)."""
    oldest_first = flat_candles(closes)
    for index, open_, close in bodies:
        oldest_first[index] = candle(index, close, open_=open_)
    return list(reversed(oldest_first))


def _points(c0, c1, c2):
    return [IchimokuPoint(*c0), IchimokuPoint(*c1), IchimokuPoint(*c2)]


@pytest.mark.parametrize(
    "points, candles, expected, rule",
    [
        (_points((13, 11, 1, 1), (12, 11, 1, 1), (10, 11, 1, 1)),
         _candles(RISING), Signal.STRONG_BUY, "strong_buy"),
        (_points((13, 11, 50, 5), (12, 11, 50, 5), (10, 11, 50, 5)),
         _candles(RISING), Signal.BUY, "buy"),
        (_points((9, 11, 500, 500), (10, 11, 500, 500), (12, 11, 500, 500)),
         _candles(FALLING), Signal.STRONG_SELL, "strong_sell"),
        (_points((9, 11, 5, 500), (10, 11, 5, 500), (12, 11, 5, 500)),
         _candles(FALLING), Signal.SELL, "sell"),
        ([NEUTRAL] * 3,
         _candles(FLAT, (197, 101, 102), (198, 100, 99)), Signal.LONG_EXIT, "body_below_base"),
        (_points((11, 11, 1, 1), (12, 11, 1, 1), (12, 11, 1, 1)),
         _candles(FLAT), Signal.LONG_EXIT, "conversion_below_base"),
        ([NEUTRAL] * 3,
         _candles(FLAT, (197, 99, 98), (198, 100, 101)), Signal.SHORT_EXIT, "body_above_base"),
        (_points((11, 11, 1, 1), (10, 11, 1, 1), (10, 11, 1, 1)),
         _candles(FLAT), Signal.SHORT_EXIT, "conversion_above_base"),
        ([NEUTRAL] * 3, _candles(RISING), Signal.SHORT_EXIT, "roc_short_exit"),
        ([NEUTRAL] * 3, _candles(FALLING), Signal.LONG_EXIT, "roc_long_exit"),
    ],
)
def test_regular_rule_table(points, candles, expected, rule):
    result = FixedCloudRegular(*points).get_signal(candles)

    assert result.signal is expected
    assert result.diagnostics["rule"] == rule


def test_regular_entry_needs_roc_confirmation():
    crossover = _points((13, 11, 1, 1), (12, 11, 1, 1), (10, 11, 1, 1))

    result = FixedCloudRegular(*crossover).get_signal(_candles(FLAT))

    assert result.signal is Signal.NOTHING
    assert "rule" not in result.diagnostics


def test_regular_exit_is_deduplicated_within_the_period():
    strategy = FixedCloudRegular(NEUTRAL, NEUTRAL, NEUTRAL)
    candles = _candles(RISING)

    assert strategy.get_signal(candles).signal is Signal.SHORT_EXIT
    second = strategy.get_signal(candles)
    assert second.signal is Signal.NOTHING
    assert second.diagnostics["deduplicated"] is True


def test_regular_entries_carry_no_reference_candle():
    strategy = FixedCloudRegular(*_points((13, 11, 1, 1), (12, 11, 1, 1), (10, 11, 1, 1)))
    strategy.get_signal(_candles(RISING))

    assert strategy.history.latest.signal is Signal.STRONG_BUY
    assert strategy.history.latest.reference_candle is None
