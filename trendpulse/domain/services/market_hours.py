"""
TrendPulse – Market hours & granularity
=========================================
Reloj de mercado FX y mapeo periodo → granularidad del broker.

FIN DE SEMANA FX (UTC):
- Viernes 20:55 → cerrar todas las posiciones (una sola vez).
- Viernes 21:00 → Domingo 21:00 → mercado cerrado, no se actúa.
- Dentro de la ventana cerrada se rearma el flag de cierre.
"""

from __future__ import annotations

from datetime import datetime, timezone

FRIDAY = 4
SATURDAY = 5
SUNDAY = 6
CLOSE_HOUR = 21
FLATTEN_MINUTE = 55


def _utc(now: datetime) -> datetime:
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


class WeekendSchedule:
    """Estado del cierre de fin de semana de un instrumento FX."""

    def __init__(self) -> None:
        self.positions_closed = False

    @staticmethod
    def is_market_closed(now: datetime) -> bool:
        now = _utc(now)
        weekday = now.weekday()
        return (
            (weekday == FRIDAY and now.hour >= CLOSE_HOUR)
            or weekday == SATURDAY
            or (weekday == SUNDAY and now.hour < CLOSE_HOUR)
        )

    @staticmethod
    def is_flatten_window(now: datetime) -> bool:
        """Últimos minutos antes del cierre del viernes."""
        now = _utc(now)
        return (
            now.weekday() == FRIDAY
            and now.hour == CLOSE_HOUR - 1
            and now.minute >= FLATTEN_MINUTE
        )

    def should_flatten(self, now: datetime) -> bool:
        """True una única vez por fin de semana."""
        if self.is_flatten_window(now) and not self.positions_closed:
            self.positions_closed = True
            return True
        return False

    def tick(self, now: datetime) -> None:
        """Rearma el flag una vez dentro de la ventana cerrada."""
        if self.positions_closed and self.is_market_closed(now):
            self.positions_closed = False


def to_granularity(period_minutes: float) -> str:
    """
    Granularidad OANDA para un periodo en minutos.

    <1 → S<segundos>, <60 → M<minutos>, <1440 → H<horas>,
    <10080 → D, <40320 → W, resto → M (mes).
    """
    if period_minutes < 1:
        return f"S{_fmt(period_minutes * 60)}"
    if period_minutes < 60:
        return f"M{_fmt(period_minutes)}"
    if period_minutes < 60 * 24:
        return f"H{int(period_minutes // 60)}"
    if period_minutes < 60 * 24 * 7:
        return "D"
    if period_minutes < 60 * 24 * 7 * 4:
        return "W"
    return "M"


def _fmt(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)
