"""
TrendPulse – Moving Average Crossover
=======================================
Cruce de medias móviles (SMA o EMA) con periodos corto/largo/base.

REGLAS (en orden):
1. StrongBuy  → la larga cruza la base hacia arriba con la corta sobre la larga
2. Buy        → la corta cruza la larga hacia arriba
3. Sell       → la corta cruza la larga hacia abajo
4. StrongSell → la larga cruza la base hacia abajo con la corta bajo la larga
5. Patrón de velas → tres cuerpos del mismo color: salida del lado contrario
6. Nothing

ANTI-DUPLICADOS:
Solo se recuerda la última señal emitida; repetirla devuelve Nothing.
Una evaluación sin señal la olvida.
"""

from __future__ import annotations

from typing import List, Sequence

from trendpulse.domain.entities.candle import Candle
from trendpulse.domain.entities.signal import Signal
from trendpulse.domain.services.indicator_calculator import IndicatorCalculator
from trendpulse.domain.services.strategies import patterns
from trendpulse.domain.services.strategies.base import (
    Strategy,
    StrategyKind,
    StrategyResult,
)
from trendpulse.shared.logging.logger import get_logger

logger = get_logger("strategy.moving_average")


class MovingAverageCrossoverStrategy(Strategy):
    def __init__(
        self,
        short_period: int = 10,
        long_period: int = 20,
        base_period: int = 50,
        *,
        exponential: bool = False,
    ) -> None:
        super().__init__()
        self.short_period = short_period
        self.long_period = long_period
        self.base_period = base_period
        self.exponential = exponential
        self.kind = StrategyKind.EMA_CROSSOVER if exponential else StrategyKind.SMA_CROSSOVER
        # Dos valores de la media base + tres velas cerradas para el patrón
        self.min_candles = max(short_period, long_period, base_period) + 1
        self.last_signal_emitted = Signal.NOTHING

    def _series(self, closes: Sequence[float], period: int) -> List[float]:
        """Serie newest-first de la media elegida."""
        if self.exponential:
            series = IndicatorCalculator.ema_series(closes, period)
        else:
            series = IndicatorCalculator.sma_series(closes, period)
        return list(reversed(series))

    def _emit(self, signal: Signal) -> Signal:
        if self.last_signal_emitted is signal:
            return Signal.NOTHING
        self.last_signal_emitted = signal
        logger.info("%s → %s", self.kind.value, signal.value)
        return signal

    def _evaluate(self, candles: list[Candle]) -> StrategyResult:
        closes = [c.close for c in reversed(candles)]
        short = self._series(closes, self.short_period)
        long_ = self._series(closes, self.long_period)
        base = self._series(closes, self.base_period)

        prev = {"short_ma": short[1], "long_ma": long_[1], "base_ma": base[1]}
        cur = {"short_ma": short[0], "long_ma": long_[0], "base_ma": base[0]}
        diagnostics = {"previous": prev, "current": cur}

        if (
            cur["short_ma"] > cur["long_ma"]
            and prev["long_ma"] <= prev["base_ma"]
            and cur["long_ma"] > cur["base_ma"]
        ):
            signal = self._emit(Signal.STRONG_BUY)
        elif prev["short_ma"] <= prev["long_ma"] and cur["short_ma"] > cur["long_ma"]:
            signal = self._emit(Signal.BUY)
        elif prev["short_ma"] >= prev["long_ma"] and cur["short_ma"] < cur["long_ma"]:
            signal = self._emit(Signal.SELL)
        elif (
            cur["short_ma"] < cur["long_ma"]
            and prev["long_ma"] >= prev["base_ma"]
            and cur["long_ma"] < cur["base_ma"]
        ):
            signal = self._emit(Signal.STRONG_SELL)
        else:
            candle_signal = patterns.candle_signal(candles)
            if candle_signal is not Signal.NOTHING:
                signal = self._emit(candle_signal)
            else:
                self.last_signal_emitted = Signal.NOTHING
                signal = Signal.NOTHING

        return StrategyResult(signal, diagnostics)
