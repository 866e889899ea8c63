"""
TrendPulse – Domain Entity: Signal
=====================================
Señales que emiten las estrategias.

SEÑALES DE TRADING:
- Buy / StrongBuy       → apertura larga (Strong = más capital)
- Sell / StrongSell     → apertura corta
- LongExit / ShortExit  → cierre del lado correspondiente
- Nothing               → sin acción

SUB-SEÑALES INTERNAS (solo Ichimoku, se guardan en el historial):
- UpwardsBreakout / DownwardsBreakout
- UpwardsCrossover / DownwardsCrossover
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from trendpulse.domain.entities.candle import Candle
from trendpulse.domain.entities.position import Side


class Signal(str, Enum):
    NOTHING = "Nothing"
    BUY = "Buy"
    STRONG_BUY = "StrongBuy"
    SELL = "Sell"
    STRONG_SELL = "StrongSell"
    LONG_EXIT = "LongExit"
    SHORT_EXIT = "ShortExit"
    UPWARDS_BREAKOUT = "UpwardsBreakout"
    DOWNWARDS_BREAKOUT = "DownwardsBreakout"
    UPWARDS_CROSSOVER = "UpwardsCrossover"
    DOWNWARDS_CROSSOVER = "DownwardsCrossover"

    @property
    def is_entry(self) -> bool:
        return self in _ENTRY_SIDES

    @property
    def is_exit(self) -> bool:
        return self in (Signal.LONG_EXIT, Signal.SHORT_EXIT)

    @property
    def is_strong(self) -> bool:
        return self in (Signal.STRONG_BUY, Signal.STRONG_SELL)

    @property
    def is_upward_event(self) -> bool:
        return self in (Signal.UPWARDS_BREAKOUT, Signal.UPWARDS_CROSSOVER)

    @property
    def is_downward_event(self) -> bool:
        return self in (Signal.DOWNWARDS_BREAKOUT, Signal.DOWNWARDS_CROSSOVER)

    @property
    def side(self) -> Side | None:
        """Lado que abre (entradas) o que cierra (salidas)."""
        if self in _ENTRY_SIDES:
            return _ENTRY_SIDES[self]
        if self is Signal.LONG_EXIT:
            return Side.LONG
        if self is Signal.SHORT_EXIT:
            return Side.SHORT
        return None


_ENTRY_SIDES = {
    Signal.BUY: Side.LONG,
    Signal.STRONG_BUY: Side.LONG,
    Signal.SELL: Side.SHORT,
    Signal.STRONG_SELL: Side.SHORT,
}


@dataclass(frozen=True, slots=True)
class SignalHistoryEntry:
    """Entrada del historial de una estrategia."""

    signal: Signal
    timestamp: datetime              # inicio del periodo evaluado
    reference_candle: Candle | None = None

    def to_dict(self) -> dict:
        return {
            "signal": self.signal.value,
            "timestamp": self.timestamp.isoformat(),
            "reference_candle": (
                self.reference_candle.to_dict() if self.reference_candle else None
            ),
        }
