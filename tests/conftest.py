import pytest

from trendpulse.domain.entities.position import AccountState, InstrumentMeta


@pytest.fixture
def eur_account() -> AccountState:
    return AccountState(balance=3000.0, margin_rate=0.5, margin_call_percent=0.1, currency="EUR")


@pytest.fixture
def eur_usd() -> InstrumentMeta:
    return InstrumentMeta(
        name="EUR_USD",
        pip_location=-4,
        min_trailing_stop_distance=0.0005,
        margin_rate=0.5,
        display_precision=5,
    )


@pytest.fixture
def btc_eur() -> InstrumentMeta:
    return InstrumentMeta(
        name="BTC-EUR",
        pip_location=-2,
        min_trailing_stop_distance=0.0,
        margin_rate=1.0,
        display_precision=2,
    )
