from __future__ import annotations

from datetime import timedelta

import pytest

from fakes import T0, candle
from trendpulse.domain.entities.candle import CandleBuffer
from trendpulse.domain.services.candle_aggregator import CandleAggregator
from trendpulse.domain.value_objects.tick import Heartbeat, Tick


def _aggregator(period_minutes: float = 60) -> CandleAggregator:
    buffer = CandleBuffer([candle(0, 1.1, volume=5)])
    return CandleAggregator(buffer, period_minutes=period_minutes)


def test_tick_inside_period_updates_current_candle():
    agg = _aggregator()
    result = agg.ingest(Tick(time=T0 + timedelta(minutes=30), price=1.2, volume=2))

    assert result.updated
    assert len(agg.buffer) == 1
    current = agg.buffer.current
    assert current.open == 1.1
    assert current.high == 1.2
    assert current.close == 1.2
    assert current.volume == 7


def test_tick_on_boundary_stays_in_current_candle():
    agg = _aggregator()
    agg.ingest(Tick(time=T0 + timedelta(minutes=60), price=1.05, volume=1))

    assert len(agg.buffer) == 1
    assert agg.buffer.current.low == 1.05


def test_tick_after_boundary_opens_new_candle():
    agg = _aggregator()
    result = agg.ingest(Tick(time=T0 + timedelta(minutes=61), price=1.3, volume=3))

    assert result.updated
    assert len(agg.buffer) == 2
    new = agg.buffer.current
    assert new.time == T0 + timedelta(hours=1)
    assert (new.open, new.high, new.low, new.close, new.volume) == (1.3, 1.3, 1.3, 1.3, 3)
    assert agg.period_start == T0 + timedelta(hours=1)
    assert agg.next_period_start == T0 + timedelta(hours=2)


def test_gap_advances_clock_a_single_period():
    agg = _aggregator()
    agg.ingest(Tick(time=T0 + timedelta(hours=5), price=1.4, volume=1))

    assert agg.buffer.current.time == T0 + timedelta(hours=1)
    assert agg.next_period_start == T0 + timedelta(hours=2)


def test_heartbeat_inside_period_is_not_an_update():
    agg = _aggregator()
    result = agg.ingest(Heartbeat(time=T0 + timedelta(minutes=10)))

    assert not result.updated
    assert len(agg.buffer) == 1


def test_heartbeat_after_boundary_opens_flat_placeholder():
    agg = _aggregator()
    agg.ingest(Tick(time=T0 + timedelta(minutes=5), price=1.15, volume=1))
    result = agg.ingest(Heartbeat(time=T0 + timedelta(minutes=61)))

    assert result.updated
    placeholder = agg.buffer.current
    assert placeholder.volume == 0
    assert placeholder.open == placeholder.close == 1.15


def test_first_trade_after_placeholder_resets_ohlc():
    agg = _aggregator()
    agg.ingest(Heartbeat(time=T0 + timedelta(minutes=61)))
    agg.ingest(Tick(time=T0 + timedelta(minutes=70), price=1.25, volume=4))

    current = agg.buffer.current
    assert (current.open, current.high, current.low, current.close) == (1.25, 1.25, 1.25, 1.25)
    assert current.volume == 4


def test_empty_buffer_is_rejected():
    with pytest.raises(ValueError):
        CandleAggregator(CandleBuffer(), period_minutes=15)


def test_unknown_event_type_is_rejected():
    with pytest.raises(TypeError):
        _aggregator().ingest("tick")


def test_buffer_sorts_newest_first_and_respects_maxlen():
    buffer = CandleBuffer([candle(2, 3.0), candle(0, 1.0), candle(1, 2.0)], maxlen=2)

    assert [c.close for c in buffer] == [3.0, 2.0]
    buffer.prepend(candle(3, 4.0))
    assert [c.close for c in buffer] == [4.0, 3.0]


def test_merge_replaces_incomplete_current_candle():
    buffer = CandleBuffer([candle(0, 1.0), candle(1, 2.0)])
    added = buffer.merge([candle(2, 3.5), candle(1, 2.5)])

    assert added == 2
    assert [c.close for c in buffer] == [3.5, 2.5, 1.0]
    assert buffer.merge([]) == 0


def test_merge_with_older_candles_keeps_one_candle_per_period():
    buffer = CandleBuffer([candle(0, 1.0), candle(1, 2.0)])
    merged = buffer.merge([candle(0, 9.0), candle(1, 2.5), candle(2, 3.0)])

    assert merged == 2
    assert [c.time for c in buffer] == [T0 + 2 * timedelta(hours=1), T0 + timedelta(hours=1), T0]
    assert [c.close for c in buffer] == [3.0, 2.5, 1.0]


def test_merge_of_stale_candles_is_not_an_update():
    buffer = CandleBuffer([candle(0, 1.0), candle(1, 2.0)])
    assert buffer.merge([candle(0, 9.0)]) == 0
    assert len(buffer) == 2
