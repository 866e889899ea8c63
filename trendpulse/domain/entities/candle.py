"""
TrendPulse – Domain Entity: Candle
====================================
Vela OHLCV de periodo fijo y buffer rodante newest-first.

Decisiones de diseño:
- frozen=True → una vela superada por una más nueva nunca se altera.
  La vela "actual" se actualiza REEMPLAZANDO buffer[0] con una copia.
- CandleBuffer → deque(maxlen) con la más nueva en el índice 0;
  al superar el tope se descarta la más antigua automáticamente.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Iterable, Iterator

MAX_CANDLES = 10_000


@dataclass(frozen=True, slots=True)
class Candle:
    """Vela OHLCV con timestamp de apertura (UTC)."""

    time: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float
    bid_close: float | None = None   # solo velas históricas del broker
    ask_close: float | None = None

    @property
    def is_green(self) -> bool:
        return self.close > self.open

    @property
    def is_red(self) -> bool:
        return self.close < self.open

    def with_trade(self, price: float, volume: float) -> Candle:
        """
        Copia de la vela actual tras un trade.

        Si la vela no tiene volumen (placeholder creado por un heartbeat)
        el trade se trata como el primero del periodo.
        """
        empty = self.volume == 0
        return replace(
            self,
            open=price if empty else self.open,
            high=price if empty or price > self.high else self.high,
            low=price if empty or price < self.low else self.low,
            close=price,
            volume=self.volume + volume,
        )

    def to_dict(self) -> dict:
        """Serialización para API / logs."""
        return {
            "time": self.time.isoformat(),
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
        }


class CandleBuffer:
    """Buffer rodante de velas, la más reciente en el índice 0."""

    def __init__(self, candles: Iterable[Candle] = (), maxlen: int = MAX_CANDLES) -> None:
        self._candles: deque[Candle] = deque(maxlen=maxlen)
        # Se insertan de la más antigua a la más nueva
        for candle in sorted(candles, key=lambda c: c.time):
            self._candles.appendleft(candle)

    @property
    def maxlen(self) -> int:
        return self._candles.maxlen or MAX_CANDLES

    def __len__(self) -> int:
        return len(self._candles)

    def __iter__(self) -> Iterator[Candle]:
        return iter(self._candles)

    def __getitem__(self, index: int) -> Candle:
        return self._candles[index]

    @property
    def current(self) -> Candle:
        return self._candles[0]

    def prepend(self, candle: Candle) -> None:
        """Abre una nueva vela; expulsa la más antigua si hace falta."""
        self._candles.appendleft(candle)

    def replace_current(self, candle: Candle) -> None:
        self._candles[0] = candle

    def merge(self, candles: Iterable[Candle]) -> int:
        """
        Integra velas obtenidas por polling.

        Una vela nueva con el mismo tiempo que la actual la sustituye
        (estaba incompleta); las anteriores a la actual se ignoran.
        Devuelve cuántas velas se integraron.
        """
        merged = 0
        for candle in sorted(candles, key=lambda c: c.time):
            if self._candles and candle.time < self._candles[0].time:
                continue
            if self._candles and candle.time == self._candles[0].time:
                self._candles[0] = candle
            else:
                self._candles.appendleft(candle)
            merged += 1
        return merged

    def snapshot(self) -> list[Candle]:
        """Copia newest-first para evaluar estrategias."""
        return list(self._candles)
