"""
TrendPulse – Signal History
=============================
Historial acotado de señales de una estrategia (ring buffer, newest-first).

USOS:
- Anti-duplicados: una misma señal no se emite dos veces en el mismo
  periodo de vela.
- Contexto de reglas: "último evento", "cruce anterior".
- Stop-loss: vela de referencia del último breakout/cruce.

REGLAS:
- Capacidad 1000, la entrada más antigua se descarta.
- Arranca con una entrada Nothing.
- Nothing consecutivos se colapsan en uno.
"""

from __future__ import annotations

from collections import deque
from datetime import datetime, timezone
from typing import Iterator, Optional

from trendpulse.domain.entities.candle import Candle
from trendpulse.domain.entities.position import Side
from trendpulse.domain.entities.signal import Signal, SignalHistoryEntry

HISTORY_CAPACITY = 1000

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class SignalHistory:
    def __init__(self, capacity: int = HISTORY_CAPACITY) -> None:
        self._entries: deque[SignalHistoryEntry] = deque(maxlen=capacity)
        self._entries.appendleft(SignalHistoryEntry(Signal.NOTHING, _EPOCH))

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[SignalHistoryEntry]:
        return iter(self._entries)

    def __getitem__(self, index: int) -> SignalHistoryEntry:
        return self._entries[index]

    @property
    def latest(self) -> SignalHistoryEntry:
        return self._entries[0]

    def record(
        self,
        signal: Signal,
        timestamp: datetime,
        reference_candle: Candle | None = None,
    ) -> bool:
        """Añade una entrada. Devuelve False si se colapsó un Nothing."""
        if signal is Signal.NOTHING and self._entries and self._entries[0].signal is Signal.NOTHING:
            return False
        self._entries.appendleft(SignalHistoryEntry(signal, timestamp, reference_candle))
        return True

    def has_fired(self, signal: Signal, period_start: datetime, period_end: datetime) -> bool:
        """¿Ya se registró `signal` en [period_start, period_end)?"""
        return any(
            e.signal is signal and period_start <= e.timestamp < period_end
            for e in self._entries
        )

    def previous_crossover(self) -> Optional[Signal]:
        """Último cruce registrado antes de la entrada más reciente."""
        for entry in list(self._entries)[1:]:
            if entry.signal in (Signal.UPWARDS_CROSSOVER, Signal.DOWNWARDS_CROSSOVER):
                return entry.signal
        return None

    def stop_loss_reference(self, side: Side | None = None) -> Optional[SignalHistoryEntry]:
        """
        Breakout/cruce más reciente con vela de referencia.

        side=LONG  → evento alcista (el stop va bajo el low)
        side=SHORT → evento bajista (el stop va sobre el high)
        side=None  → el más reciente de cualquier dirección
        """
        for entry in self._entries:
            if entry.reference_candle is None:
                continue
            if entry.signal.is_downward_event and side in (None, Side.SHORT):
                return entry
            if entry.signal.is_upward_event and side in (None, Side.LONG):
                return entry
        return None

    def stop_loss_price(self, side: Side | None = None) -> Optional[float]:
        entry = self.stop_loss_reference(side)
        if entry is None:
            return None
        if entry.signal.is_downward_event:
            return entry.reference_candle.high
        return entry.reference_candle.low

    def to_list(self) -> list[dict]:
        return [e.to_dict() for e in self._entries]
