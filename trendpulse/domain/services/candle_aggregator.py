"""
TrendPulse – Candle Aggregator
================================
Construye velas OHLCV de periodo fijo a partir de un flujo Tick/Heartbeat.

ALGORITMO:
  1. El reloj de velas arranca en buffer[0].time; el siguiente corte es
     period_start + period.
  2. Tick posterior al corte → nueva vela en el corte (O=H=L=C=precio),
     el reloj avanza EXACTAMENTE un periodo.
  3. Tick dentro del periodo → actualiza la vela actual. Si la vela tiene
     volumen 0 el trade se trata como el primero del periodo.
  4. Heartbeat posterior al corte → vela plana con el último precio y
     volumen 0, el reloj avanza un periodo.

LIMITACIÓN CONOCIDA:
- Huecos de varios periodos no se rellenan: cada evento avanza el reloj
  un único periodo.

`updated` es True con cada Tick y con cada Heartbeat que cruza un corte;
solo entonces se evalúa la estrategia.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Union

from trendpulse.domain.entities.candle import Candle, CandleBuffer
from trendpulse.domain.value_objects.tick import Heartbeat, Tick
from trendpulse.shared.logging.logger import get_logger

logger = get_logger("candle_aggregator")

MarketEvent = Union[Tick, Heartbeat]


@dataclass(frozen=True, slots=True)
class AggregationResult:
    buffer: CandleBuffer
    updated: bool


class CandleAggregator:
    """
    Agregador de velas de un instrumento.

    Uso:
        aggregator = CandleAggregator(buffer, period_minutes=15)
        result = aggregator.ingest(tick)
        if result.updated:
            # evaluar estrategia sobre result.buffer
    """

    def __init__(self, buffer: CandleBuffer, period_minutes: float = 15) -> None:
        if len(buffer) == 0:
            raise ValueError("CandleAggregator needs at least one candle")
        self._buffer = buffer
        self._period = timedelta(minutes=period_minutes)
        self._period_start: datetime = buffer.current.time
        self._next_period_start: datetime = self._period_start + self._period
        self._last_price: float = buffer.current.close

    @property
    def buffer(self) -> CandleBuffer:
        return self._buffer

    @property
    def period_start(self) -> datetime:
        return self._period_start

    @property
    def next_period_start(self) -> datetime:
        return self._next_period_start

    @property
    def last_price(self) -> float:
        return self._last_price

    def _open_candle(self, price: float, volume: float) -> None:
        self._buffer.prepend(
            Candle(
                time=self._next_period_start,
                open=price,
                high=price,
                low=price,
                close=price,
                volume=volume,
            )
        )
        self._period_start = self._next_period_start
        self._next_period_start = self._period_start + self._period

    def ingest(self, event: MarketEvent) -> AggregationResult:
        """Procesa un evento. O(1), sin I/O."""
        if isinstance(event, Tick):
            if event.time > self._next_period_start:
                self._open_candle(event.price, event.volume)
                logger.debug(
                    "Nueva vela %s abierta por tick @ %.5f",
                    self._period_start.isoformat(), event.price,
                )
            else:
                self._buffer.replace_current(
                    self._buffer.current.with_trade(event.price, event.volume)
                )
            self._last_price = event.price
            return AggregationResult(self._buffer, True)

        if isinstance(event, Heartbeat):
            if event.time > self._next_period_start:
                # Sin trades en el periodo: vela plana, no cuenta como actividad
                self._open_candle(self._last_price, 0)
                return AggregationResult(self._buffer, True)
            return AggregationResult(self._buffer, False)

        raise TypeError(f"Unsupported market event: {type(event).__name__}")
