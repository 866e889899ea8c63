"""
TrendPulse – Patrones auxiliares
==================================
Patrones que complementan a las estrategias principales:

- ROC(12): confirma entradas y sugiere salidas por momentum.
- Velas: tres cuerpos consecutivos en la misma dirección → salida
  del lado contrario.
"""

from __future__ import annotations

from typing import Sequence

from trendpulse.domain.entities.candle import Candle
from trendpulse.domain.entities.signal import Signal
from trendpulse.domain.services.indicator_calculator import IndicatorCalculator

ROC_PERIOD = 12


def roc_last_two(candles: Sequence[Candle], period: int = ROC_PERIOD) -> list[float]:
    """Los dos ROC más recientes, newest-first (candles newest-first)."""
    closes = [c.close for c in reversed(candles)]
    series = IndicatorCalculator.roc_series(closes, period)
    return list(reversed(series[-2:]))


def confirm_long(candles: Sequence[Candle]) -> bool:
    """Confirmación (no señal por sí sola): momentum positivo sostenido."""
    roc = roc_last_two(candles)
    return len(roc) == 2 and roc[0] > 0 and roc[1] > 0


def confirm_short(candles: Sequence[Candle]) -> bool:
    roc = roc_last_two(candles)
    return len(roc) == 2 and roc[0] < 0 and roc[1] < 0


def roc_signal(candles: Sequence[Candle]) -> Signal:
    # Por encima de cero → cerrar cortos; por debajo → cerrar largos
    if confirm_long(candles):
        return Signal.SHORT_EXIT
    if confirm_short(candles):
        return Signal.LONG_EXIT
    return Signal.NOTHING


def candle_signal(candles: Sequence[Candle]) -> Signal:
    """Tres velas cerradas (índices 1..3) del mismo color."""
    closed = candles[1:4]
    if len(closed) < 3:
        return Signal.NOTHING
    if all(c.is_red for c in closed):
        return Signal.LONG_EXIT
    if all(c.is_green for c in closed):
        return Signal.SHORT_EXIT
    return Signal.NOTHING
