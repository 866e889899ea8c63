from __future__ import annotations

from datetime import datetime, timezone

import pytest

from trendpulse.domain.services.market_hours import WeekendSchedule, to_granularity


def _utc(day: int, hour: int, minute: int = 0) -> datetime:
    # 2024-01-05 es viernes
    return datetime(2024, 1, day, hour, minute, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "now, closed",
    [
        (_utc(5, 20, 59), False),
        (_utc(5, 21, 0), True),
        (_utc(6, 12), True),
        (_utc(7, 20, 59), True),
        (_utc(7, 21, 0), False),
        (_utc(8, 9), False),
    ],
)
def test_market_closed_window(now, closed):
    assert WeekendSchedule.is_market_closed(now) is closed


def test_naive_datetimes_are_utc():
    assert WeekendSchedule.is_market_closed(datetime(2024, 1, 6, 12))


def test_flatten_fires_once_per_weekend():
    schedule = WeekendSchedule()

    assert not schedule.should_flatten(_utc(5, 20, 54))
    assert schedule.should_flatten(_utc(5, 20, 55))
    assert not schedule.should_flatten(_utc(5, 20, 57))

    schedule.tick(_utc(6, 10))
    assert not schedule.positions_closed
    assert schedule.should_flatten(_utc(12, 20, 56))


def test_tick_outside_closed_window_keeps_flag():
    schedule = WeekendSchedule()
    schedule.should_flatten(_utc(5, 20, 55))
    schedule.tick(_utc(5, 20, 58))
    assert schedule.positions_closed


@pytest.mark.parametrize(
    "minutes, granularity",
    [
        (0.5, "S30"),
        (1, "M1"),
        (15, "M15"),
        (60, "H1"),
        (240, "H4"),
        (1440, "D"),
        (10080, "W"),
        (50000, "M"),
    ],
)
def test_to_granularity(minutes, granularity):
    assert to_granularity(minutes) == granularity
