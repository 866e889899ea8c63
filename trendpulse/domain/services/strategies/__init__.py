"""
TrendPulse – Strategies
=========================
Variantes de estrategia seleccionadas por configuración (StrategyKind).
"""

from trendpulse.domain.services.strategies.base import (
    Strategy,
    StrategyKind,
    StrategyResult,
)
from trendpulse.domain.services.strategies.ichimoku import (
    IchimokuRegularStrategy,
    IchimokuStrategy,
    IchimokuTrendStrategy,
)
from trendpulse.domain.services.strategies.moving_average import (
    MovingAverageCrossoverStrategy,
)


def build_strategy(kind: StrategyKind | str, **params) -> Strategy:
    """Fábrica de estrategias a partir de su StrategyKind."""
    kind = StrategyKind(kind)
    if kind is StrategyKind.ICHIMOKU_TREND:
        return IchimokuTrendStrategy(**params)
    if kind is StrategyKind.ICHIMOKU_REGULAR:
        return IchimokuRegularStrategy(**params)
    if kind is StrategyKind.SMA_CROSSOVER:
        return MovingAverageCrossoverStrategy(**params)
    return MovingAverageCrossoverStrategy(exponential=True, **params)


__all__ = [
    "Strategy",
    "StrategyKind",
    "StrategyResult",
    "IchimokuStrategy",
    "IchimokuTrendStrategy",
    "IchimokuRegularStrategy",
    "MovingAverageCrossoverStrategy",
    "build_strategy",
]
