"""
TrendPulse – Application Port: Execution Gateway
==================================================
Interfaz de ejecución de órdenes para UN instrumento.

IMPLEMENTACIONES:
- OandaExecutionGateway (cuenta real o práctica)
- SyntheticLedgerGateway (backtracking, sin órdenes reales)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from trendpulse.domain.entities.position import (
    AccountState,
    InstrumentMeta,
    PositionSnapshot,
)


class IExecutionGateway(ABC):
    """
    Las llamadas de apertura/cierre NO se reintentan: si fallan lanzan
    GatewayRequestFailedError y el siguiente ciclo reevalúa.
    """

    instrument: str

    @abstractmethod
    async def get_account_summary(self) -> AccountState:
        pass

    @abstractmethod
    async def get_instrument_meta(self) -> InstrumentMeta:
        pass

    @abstractmethod
    async def get_open_position(self) -> PositionSnapshot:
        pass

    @abstractmethod
    async def open_long(self, units: int, stop_loss_distance: float) -> None:
        """Orden de mercado larga con trailing stop a `stop_loss_distance`."""

    @abstractmethod
    async def open_short(self, units: int, stop_loss_distance: float) -> None:
        pass

    @abstractmethod
    async def close_long(self) -> None:
        pass

    @abstractmethod
    async def close_short(self) -> None:
        pass

    @abstractmethod
    async def get_conversion_rate(self, currency: str, as_of: Optional[datetime] = None) -> float:
        """
        Valor de 1 unidad de `currency` en la divisa de la cuenta.

        Args:
            currency: divisa a convertir
            as_of: fecha histórica (backtracking); None = ahora
        """
