"""Domain entities."""

from trendpulse.domain.entities.candle import MAX_CANDLES, Candle, CandleBuffer
from trendpulse.domain.entities.position import (
    AccountState,
    InstrumentMeta,
    Position,
    PositionSnapshot,
    Side,
)
from trendpulse.domain.entities.signal import Signal, SignalHistoryEntry

__all__ = [
    "MAX_CANDLES",
    "Candle",
    "CandleBuffer",
    "AccountState",
    "InstrumentMeta",
    "Position",
    "PositionSnapshot",
    "Side",
    "Signal",
    "SignalHistoryEntry",
]
