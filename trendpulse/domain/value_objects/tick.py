"""
TrendPulse – Domain Value Objects: Tick / Heartbeat / Quote
=============================================================
Eventos de mercado que alimentan el agregador de velas.

- Tick      → un trade (Coinbase) o un precio bid/ask (OANDA, mid-price)
- Heartbeat → pulso sin precio; hace avanzar el reloj de velas
- Quote     → precio bid/ask actual del instrumento

- frozen=True → inmutable, seguro para pasar entre coroutines.
- slots=True  → menor footprint de memoria en hot-path.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


def mid_price(bid: float, ask: float) -> float:
    """Precio medio redondeado a 5 decimales."""
    return round((bid + ask) / 2 * 100_000) / 100_000


@dataclass(frozen=True, slots=True)
class Tick:
    """Trade atómico recibido del feed."""

    time: datetime
    price: float
    volume: float

    @classmethod
    def from_quote(cls, bid: float, ask: float, time: datetime, volume: float = 1.0) -> Tick:
        return cls(time=time, price=mid_price(bid, ask), volume=volume)


@dataclass(frozen=True, slots=True)
class Heartbeat:
    """Pulso de vida del feed, sin precio."""

    time: datetime


@dataclass(frozen=True, slots=True)
class Quote:
    bid: float
    ask: float
    time: datetime

    @property
    def mid(self) -> float:
        return mid_price(self.bid, self.ask)

    def to_dict(self) -> dict:
        return {"bid": self.bid, "ask": self.ask, "time": self.time.isoformat()}
