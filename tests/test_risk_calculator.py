from __future__ import annotations

from dataclasses import replace

import pytest

from trendpulse.domain.exceptions.domain_errors import (
    FundsLimitExceededError,
    MarginCallRiskError,
    SpreadTooWideError,
)
from trendpulse.domain.services.risk_calculator import RiskCalculator


@pytest.fixture
def risk() -> RiskCalculator:
    return RiskCalculator()


def test_spread_in_pips(risk):
    assert risk.spread_pips(1.12, 1.1222, -4) == 22
    assert risk.spread_pips(111.11, 111.14, -2) == 3


@pytest.mark.parametrize(
    "period, ask, accepted",
    [
        (15, 1.1223, True),
        (15, 1.1224, False),
        (60, 1.1225, True),
        (60, 1.1226, False),
        (240, 1.1230, True),
        (240, 1.1231, False),
    ],
)
def test_spread_limit_grows_with_period(risk, period, ask, accepted):
    assert risk.is_spread_small_enough(1.122, ask, -4, period) is accepted


def test_check_spread_raises(risk):
    with pytest.raises(SpreadTooWideError) as exc_info:
        risk.check_spread(1.122, 1.1226, -4, 60)
    assert exc_info.value.max_pips == 5
    assert exc_info.value.rule == "spread"


def test_margin_call_guard(risk, eur_account):
    assert risk.can_place_entry_order(replace(eur_account, margin_call_percent=0.9))
    with pytest.raises(MarginCallRiskError):
        risk.check_margin(replace(eur_account, margin_call_percent=0.91))


def test_allocable_funds(risk):
    assert risk.allocable_funds(900, 3, strong=True) == pytest.approx(200)
    assert risk.allocable_funds(900, 3) == pytest.approx(100)
    assert risk.allocable_funds(900, 0) == pytest.approx(300)


def test_units_use_the_larger_margin_rate(risk, eur_account, eur_usd):
    account = replace(eur_account, margin_rate=0.25)
    assert risk.units_for(1000, account, eur_usd) == 2000
    assert risk.units_for(1000, account, eur_usd, conversion_rate=1.25) == 1600
    assert risk.units_for(0, account, eur_usd) == 0


def test_units_are_monotonic_in_funds(risk, eur_account, eur_usd):
    units = [risk.units_for(funds, eur_account, eur_usd) for funds in (10, 100, 250, 1000)]
    assert units == sorted(units)


def test_needs_conversion(risk, eur_account, eur_usd):
    assert not risk.needs_conversion(eur_account, eur_usd)
    assert risk.needs_conversion(replace(eur_account, currency="USD"), eur_usd)


def test_funds_limit_boundary(risk):
    assert not risk.has_reached_funds_limit(100, 900, 1000)
    assert risk.has_reached_funds_limit(101, 900, 1000)
    with pytest.raises(FundsLimitExceededError):
        risk.check_funds(0, 0, 1000)


def test_stop_loss_distance(risk, eur_usd):
    assert risk.stop_loss_distance(None, eur_usd) == 0.0005
    assert risk.stop_loss_distance(0.00123456, eur_usd) == 0.0012
    assert risk.stop_loss_distance(0.0001, eur_usd) == 0.0005
    assert risk.round_to_pips(0.00125, -4) == 0.0013


def test_wide_spread_rejected_at_every_period(risk):
    # 22 pips supera incluso el tope de 10
    for period in (15, 60, 240, 1440):
        assert not risk.is_spread_small_enough(1.1200, 1.1222, -4, period)


def test_ten_pips_only_for_long_periods(risk):
    assert not risk.is_spread_small_enough(1.1200, 1.1210, -4, 30)
    assert not risk.is_spread_small_enough(1.1200, 1.1210, -4, 60)
    assert risk.is_spread_small_enough(1.1200, 1.1210, -4, 240)


def test_units_non_increasing_in_margin_rate(risk, eur_account, eur_usd):
    units = [
        risk.units_for(1000, replace(eur_account, margin_rate=rate), replace(eur_usd, margin_rate=rate))
        for rate in (0.02, 0.05, 0.1, 0.5)
    ]
    assert units == sorted(units, reverse=True)
