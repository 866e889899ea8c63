"""
TrendPulse – Domain Entity: Position / Account / Instrument
=============================================================
Estado de cuenta y posiciones tal como los reporta el gateway
de ejecución (o el ledger sintético en backtracking).

- Como máximo UNA posición abierta por lado e instrumento.
- AccountState se refresca antes de cada evaluación de entrada.
- InstrumentMeta es estático durante la sesión.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum


class Side(str, Enum):
    LONG = "long"
    SHORT = "short"

    @property
    def opposite(self) -> Side:
        return Side.SHORT if self is Side.LONG else Side.LONG

    @property
    def sign(self) -> int:
        return 1 if self is Side.LONG else -1


@dataclass(frozen=True, slots=True)
class Position:
    instrument: str
    side: Side
    units: float         # siempre positivo, el lado indica la dirección
    entry_price: float

    @property
    def is_open(self) -> bool:
        return self.units != 0

    def to_dict(self) -> dict:
        return {
            "instrument": self.instrument,
            "side": self.side.value,
            "units": self.units,
            "entry_price": self.entry_price,
        }


@dataclass(frozen=True, slots=True)
class PositionSnapshot:
    """Ambos lados de un instrumento."""

    instrument: str
    long: Position | None = None
    short: Position | None = None

    def get(self, side: Side) -> Position | None:
        position = self.long if side is Side.LONG else self.short
        if position is None or not position.is_open:
            return None
        return position

    @property
    def allocated_units(self) -> float:
        return sum(abs(p.units) for p in (self.long, self.short) if p is not None)

    @property
    def is_flat(self) -> bool:
        return self.get(Side.LONG) is None and self.get(Side.SHORT) is None


@dataclass(frozen=True, slots=True)
class AccountState:
    balance: float
    margin_rate: float
    margin_call_percent: float
    currency: str

    def to_dict(self) -> dict:
        return {
            "balance": self.balance,
            "margin_rate": self.margin_rate,
            "margin_call_percent": self.margin_call_percent,
            "currency": self.currency,
        }


@dataclass(frozen=True, slots=True)
class InstrumentMeta:
    name: str                         # e.g. "EUR_USD"
    pip_location: int                 # e.g. -4
    min_trailing_stop_distance: float
    margin_rate: float
    display_precision: int

    @property
    def base_currency(self) -> str:
        return _split_pair(self.name)[0]

    @property
    def quote_currency(self) -> str:
        return _split_pair(self.name)[-1]


def _split_pair(name: str) -> list[str]:
    """Separa "EUR_USD" (OANDA) o "BTC-EUR" (Coinbase)."""
    return re.split(r"[_\-/]", name)
