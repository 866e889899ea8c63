"""
TrendPulse – Strategy interface
=================================
Contrato común de las estrategias: get_signal(candles) → StrategyResult.

VARIANTES (StrategyKind):
- ichimoku-trend    → Ichimoku centrado en tendencia (breakouts + cruces)
- ichimoku-regular  → Ichimoku con confirmación ROC
- sma-crossover     → cruce de medias simples 10/20/50
- ema-crossover     → cruce de medias exponenciales 10/20/50

EXCLUSIÓN:
Cada evaluación toma un guard exclusivo; una segunda evaluación
concurrente falla con StrategyBusyError. El guard se libera en TODOS
los caminos de salida (incluidas excepciones).
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, Optional, Sequence

from trendpulse.domain.entities.candle import Candle
from trendpulse.domain.entities.position import Side
from trendpulse.domain.entities.signal import Signal
from trendpulse.domain.exceptions.domain_errors import (
    InsufficientHistoryError,
    StrategyBusyError,
)
from trendpulse.domain.services.indicator_calculator import (
    IndicatorCalculator,
    filter_traded,
)
from trendpulse.domain.services.signal_history import SignalHistory

ATR_PERIOD = 14
ATR_STOP_FACTOR = 2


class StrategyKind(str, Enum):
    ICHIMOKU_TREND = "ichimoku-trend"
    ICHIMOKU_REGULAR = "ichimoku-regular"
    SMA_CROSSOVER = "sma-crossover"
    EMA_CROSSOVER = "ema-crossover"


@dataclass(frozen=True, slots=True)
class StrategyResult:
    signal: Signal
    diagnostics: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"signal": self.signal.value, "diagnostics": self.diagnostics}


def atr_stop_distance(candles: Sequence[Candle]) -> Optional[float]:
    """ATR(14) × 2 sobre velas newest-first; None si faltan datos."""
    traded = list(reversed(filter_traded(candles)))
    atr = IndicatorCalculator.atr_series(
        [c.high for c in traded],
        [c.low for c in traded],
        [c.close for c in traded],
        ATR_PERIOD,
    )
    if not atr:
        return None
    return atr[-1] * ATR_STOP_FACTOR


class Strategy(ABC):
    """Estrategia de señales sobre velas newest-first."""

    kind: StrategyKind
    min_candles: int = 2

    def __init__(self) -> None:
        self._guard = threading.Lock()

    @property
    def history(self) -> Optional[SignalHistory]:
        """Historial de señales (solo estrategias con memoria temporal)."""
        return None

    @property
    def is_busy(self) -> bool:
        return self._guard.locked()

    @contextmanager
    def evaluation_guard(self) -> Iterator[None]:
        if not self._guard.acquire(blocking=False):
            raise StrategyBusyError(self.kind.value)
        try:
            yield
        finally:
            self._guard.release()

    def get_signal(self, candles: Sequence[Candle]) -> StrategyResult:
        """
        Evalúa la estrategia.

        Args:
            candles: velas newest-first (índice 0 = vela actual)

        Raises:
            InsufficientHistoryError: menos velas con volumen que min_candles
            StrategyBusyError: otra evaluación en curso
        """
        with self.evaluation_guard():
            traded = filter_traded(candles)
            if len(traded) < self.min_candles:
                raise InsufficientHistoryError(self.min_candles, len(traded))
            return self._evaluate(traded)

    @abstractmethod
    def _evaluate(self, candles: list[Candle]) -> StrategyResult:
        """Reglas de la variante sobre velas ya filtradas (newest-first)."""

    def stop_loss_distance(
        self,
        candles: Sequence[Candle],
        side: Side | None = None,
    ) -> Optional[float]:
        return atr_stop_distance(candles)

    def warm_up(self, candles: Sequence[Candle]) -> int:
        """Reconstruye memoria interna a partir de histórico. Por defecto nada."""
        return 0
