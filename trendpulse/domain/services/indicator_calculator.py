"""
TrendPulse – Domain Service: Indicator Calculator
===================================================
Cálculos de indicadores técnicos puros.

Este servicio calcula SMA, EMA, ATR, ROC e Ichimoku
sin dependencias externas (no TA-Lib, solo math puro).

CONVENCIÓN DE ORDEN:
- Las series se calculan de la más antigua a la más nueva
  (oldest-first), como llegan los precios en el tiempo.
- Las estrategias trabajan newest-first: `newest_first()` re-alinea
  una serie para comparar índice 0 = vela actual, 1 = anterior, ...
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence

from trendpulse.domain.entities.candle import Candle


@dataclass(frozen=True, slots=True)
class IchimokuPoint:
    """Valores Ichimoku vigentes en una vela."""

    conversion: float
    base: float
    span_a: float
    span_b: float

    def to_dict(self) -> dict:
        return {
            "conversion": self.conversion,
            "base": self.base,
            "span_a": self.span_a,
            "span_b": self.span_b,
        }


def filter_traded(candles: Sequence[Candle]) -> List[Candle]:
    """
    Descarta velas con volumen 0.

    Son placeholders creados por heartbeats (no hubo trades),
    no deben contaminar ningún indicador. Idempotente.
    """
    return [c for c in candles if c.volume != 0]


def newest_first(series: Sequence[float]) -> List[float]:
    return list(reversed(series))


class IndicatorCalculator:
    """
    Calculadora de indicadores técnicos puros.

    RESPONSABILIDAD:
    Implementar las fórmulas matemáticas de indicadores.
    NO mantiene estado (stateless).
    """

    @staticmethod
    def sma(
        values: Sequence[float],
        period: int,
    ) -> Optional[float]:
        """SMA de los últimos `period` valores (oldest-first)."""
        if len(values) < period or period <= 0:
            return None
        return sum(values[-period:]) / period

    @staticmethod
    def sma_series(values: Sequence[float], period: int) -> List[float]:
        """SMA rodante, un valor por vela a partir de la vela `period`."""
        if len(values) < period or period <= 0:
            return []
        window = sum(values[:period])
        series = [window / period]
        for i in range(period, len(values)):
            window += values[i] - values[i - period]
            series.append(window / period)
        return series

    @staticmethod
    def ema_series(
        values: Sequence[float],
        period: int,
    ) -> List[float]:
        """
        Calcula la serie EMA (Exponential Moving Average).

        FÓRMULA:
        EMA_t = price_t × k + EMA_{t-1} × (1-k)
        k = 2 / (period + 1)

        INICIALIZACIÓN:
        EMA inicial = SMA de los primeros `period` valores.

        Args:
            values: Lista de precios (más antiguo primero)
            period: Período de la EMA

        Returns:
            Serie EMA oldest-first (vacía si no hay suficientes datos)
        """
        if len(values) < period or period <= 0:
            return []

        k = 2.0 / (period + 1)
        ema = sum(values[:period]) / period
        series = [ema]
        for price in values[period:]:
            ema = price * k + ema * (1 - k)
            series.append(ema)
        return series

    @staticmethod
    def true_range(high: float, low: float, prev_close: float) -> float:
        return max(high - low, abs(high - prev_close), abs(low - prev_close))

    @staticmethod
    def atr_series(
        highs: Sequence[float],
        lows: Sequence[float],
        closes: Sequence[float],
        period: int = 14,
    ) -> List[float]:
        """
        ATR con suavizado de Wilder.

        FÓRMULA:
        TR_t  = max(high - low, |high - close_{t-1}|, |low - close_{t-1}|)
        ATR_0 = media de los primeros `period` TR
        ATR_t = (ATR_{t-1} × (period - 1) + TR_t) / period

        Returns:
            Serie ATR oldest-first (vacía si no hay period + 1 velas)
        """
        trs = [
            IndicatorCalculator.true_range(highs[i], lows[i], closes[i - 1])
            for i in range(1, len(closes))
        ]
        if len(trs) < period:
            return []

        atr = sum(trs[:period]) / period
        series = [atr]
        for tr in trs[period:]:
            atr = (atr * (period - 1) + tr) / period
            series.append(atr)
        return series

    @staticmethod
    def roc_series(values: Sequence[float], period: int = 12) -> List[float]:
        """
        Rate of Change.

        FÓRMULA:
        ROC_t = (close_t - close_{t-period}) / close_{t-period}

        Solo importa el signo de los dos últimos valores.
        """
        return [
            (values[i] - values[i - period]) / values[i - period]
            for i in range(period, len(values))
            if values[i - period] != 0
        ]

    @staticmethod
    def ichimoku(
        highs: Sequence[float],
        lows: Sequence[float],
        *,
        conversion_period: int = 9,
        base_period: int = 26,
        span_period: int = 52,
        displacement: int = 26,
        lookback: int = 3,
    ) -> List[IchimokuPoint]:
        """
        Nube Ichimoku para las últimas `lookback` velas.

        FÓRMULA (por vela i):
        conversion = (max_9(high) + min_9(low)) / 2
        base       = (max_26(high) + min_26(low)) / 2
        spanA      = (conversion + base) / 2
        spanB      = (max_52(high) + min_52(low)) / 2

        La nube se proyecta `displacement - 1` velas hacia delante: la
        nube vigente en la vela i se calculó en la vela i - (displacement - 1).
        El precio NO se desplaza: se compara contra la nube del mismo índice.
        displacement=1 → spans calculados en la propia vela.

        Args:
            highs, lows: precios más antiguo primero
            lookback: cuántas velas recientes devolver

        Returns:
            Lista newest-first de IchimokuPoint (vacía si faltan datos)
        """
        lag = max(displacement - 1, 0)
        n = len(highs)
        if n < span_period + lag + lookback - 1:
            return []

        def midrange(end: int, period: int) -> float:
            start = end - period + 1
            return (max(highs[start:end + 1]) + min(lows[start:end + 1])) / 2

        points: List[IchimokuPoint] = []
        for i in range(n - 1, n - 1 - lookback, -1):
            cloud_at = i - lag
            span_a = (
                midrange(cloud_at, conversion_period) + midrange(cloud_at, base_period)
            ) / 2
            points.append(
                IchimokuPoint(
                    conversion=midrange(i, conversion_period),
                    base=midrange(i, base_period),
                    span_a=span_a,
                    span_b=midrange(cloud_at, span_period),
                )
            )
        return points
