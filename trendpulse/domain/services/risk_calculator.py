"""
TrendPulse – Domain Service: Risk Calculator
===============================================
Cálculos de gestión de riesgo puros.

Este servicio calcula spread, tamaño de posición, límites de fondos
y distancia de stop-loss sin dependencias externas.

FÓRMULAS:
- Spread (pips):  |ask - bid| × 10^|pipLocation|
- Fondos:         (balance / instrumentos) × (2/3 si strong, si no 1/3)
- Unidades:       floor(fondos / max(margen cuenta, margen instrumento) / conversión)
- Stop-loss:      max(distancia estrategia, trailing mínimo), redondeado a pips
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Tuple

from trendpulse.domain.entities.position import AccountState, InstrumentMeta
from trendpulse.domain.exceptions.domain_errors import (
    FundsLimitExceededError,
    MarginCallRiskError,
    SpreadTooWideError,
)


@dataclass
class RiskConfig:
    """Configuración de gestión de riesgo."""

    margin_call_threshold: float = 0.9
    strong_fraction: float = 2 / 3
    regular_fraction: float = 1 / 3
    # (periodo máximo en minutos, spread máximo en pips)
    spread_tiers: Tuple[Tuple[float, float], ...] = ((60, 3), (240, 5))
    max_spread_pips: float = 10


class RiskCalculator:
    """
    Calculadora de guardas y dimensionamiento.

    RESPONSABILIDAD:
    Fórmulas y validaciones. El controlador de posiciones (application)
    decide cuándo aplicarlas y habla con el gateway.
    """

    def __init__(self, config: RiskConfig = None):
        self._config = config or RiskConfig()

    @property
    def config(self) -> RiskConfig:
        return self._config

    # ═══════════════════════════════════════════════════════════════
    #  SPREAD
    # ═══════════════════════════════════════════════════════════════

    @staticmethod
    def spread_pips(bid: float, ask: float, pip_location: int) -> float:
        # Redondeo para absorber artefactos de coma flotante (4.9999999 pips)
        return round(abs(ask - bid) * 10 ** abs(pip_location), 6)

    def max_spread_for(self, period_minutes: float) -> float:
        """Se tolera más spread cuanto más largo es el periodo."""
        for max_period, max_pips in self._config.spread_tiers:
            if period_minutes < max_period:
                return max_pips
        return self._config.max_spread_pips

    def is_spread_small_enough(
        self,
        bid: float,
        ask: float,
        pip_location: int,
        period_minutes: float,
    ) -> bool:
        return self.spread_pips(bid, ask, pip_location) <= self.max_spread_for(period_minutes)

    def check_spread(self, bid: float, ask: float, pip_location: int, period_minutes: float) -> None:
        if not self.is_spread_small_enough(bid, ask, pip_location, period_minutes):
            raise SpreadTooWideError(
                self.spread_pips(bid, ask, pip_location),
                self.max_spread_for(period_minutes),
            )

    # ═══════════════════════════════════════════════════════════════
    #  MARGEN
    # ═══════════════════════════════════════════════════════════════

    def can_place_entry_order(self, account: AccountState) -> bool:
        # Un margin call se dispara en 1.0, no queremos acercarnos
        return account.margin_call_percent <= self._config.margin_call_threshold

    def check_margin(self, account: AccountState) -> None:
        if not self.can_place_entry_order(account):
            raise MarginCallRiskError(account.margin_call_percent)

    # ═══════════════════════════════════════════════════════════════
    #  DIMENSIONAMIENTO
    # ═══════════════════════════════════════════════════════════════

    def allocable_funds(self, balance: float, instruments_traded: int, strong: bool = False) -> float:
        """Fondos repartidos por igual entre instrumentos; 2/3 o 1/3 de la parte."""
        pair_funds = balance / max(instruments_traded, 1)
        fraction = self._config.strong_fraction if strong else self._config.regular_fraction
        return pair_funds * fraction

    @staticmethod
    def effective_margin_rate(account: AccountState, meta: InstrumentMeta) -> float:
        return max(account.margin_rate, meta.margin_rate)

    @staticmethod
    def needs_conversion(account: AccountState, meta: InstrumentMeta) -> bool:
        """La divisa base del instrumento no es la de la cuenta."""
        return not meta.name.startswith(account.currency)

    def units_for(
        self,
        funds: float,
        account: AccountState,
        meta: InstrumentMeta,
        conversion_rate: float = 1.0,
    ) -> int:
        """
        Unidades que se pueden comprar con `funds` (divisa de la cuenta).

        Args:
            funds: fondos asignables
            conversion_rate: valor de 1 unidad de la divisa base en la
                divisa de la cuenta (1 si coinciden)
        """
        margin_rate = self.effective_margin_rate(account, meta)
        if margin_rate <= 0 or conversion_rate <= 0 or funds <= 0:
            return 0
        # 1999.9999999 fondos no deben perder una unidad
        return math.floor(round(funds / margin_rate / conversion_rate, 6))

    @staticmethod
    def has_reached_funds_limit(order_units: float, allocated_units: float, max_units: float) -> bool:
        return allocated_units + order_units > max_units

    def check_funds(self, order_units: float, allocated_units: float, max_units: float) -> None:
        if order_units <= 0 or self.has_reached_funds_limit(order_units, allocated_units, max_units):
            raise FundsLimitExceededError(order_units, allocated_units)

    # ═══════════════════════════════════════════════════════════════
    #  STOP-LOSS
    # ═══════════════════════════════════════════════════════════════

    @staticmethod
    def round_to_pips(value: float, pip_location: int) -> float:
        quantum = Decimal(1).scaleb(-abs(pip_location))
        return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))

    def stop_loss_distance(self, strategy_distance: Optional[float], meta: InstrumentMeta) -> float:
        """max(distancia de la estrategia, trailing mínimo) redondeado a pips."""
        distance = meta.min_trailing_stop_distance
        if strategy_distance is not None and strategy_distance > distance:
            distance = strategy_distance
        return self.round_to_pips(distance, meta.pip_location)
