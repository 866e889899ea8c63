"""
TrendPulse – Application Port: Market Data Feed
=================================================
Interfaz para obtener datos de mercado de UN instrumento.

Los use cases solicitan datos; la infraestructura
decide CÓMO obtenerlos (REST OANDA, WebSocket Coinbase,
datos sintéticos en tests, etc.)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import AsyncIterator, List, Optional, Union

from trendpulse.domain.entities.candle import Candle
from trendpulse.domain.value_objects.tick import Heartbeat, Quote, Tick


class IMarketDataFeed(ABC):
    """
    Interfaz para proveer datos de mercado.

    IMPLEMENTACIONES:
    - OandaMarketDataFeed (polling + pricing stream)
    - CoinbaseMarketDataFeed (WebSocket ticker/heartbeat)
    - FakeMarketDataFeed (testing)
    """

    instrument: str

    @abstractmethod
    async def get_historical_candles(
        self,
        *,
        count: Optional[int] = None,
        from_time: Optional[datetime] = None,
        granularity: str = "H1",
    ) -> List[Candle]:
        """
        Obtiene velas históricas.

        Args:
            count: número de velas (las más recientes)
            from_time: velas desde este instante (incluido)
            granularity: granularidad del broker (ver to_granularity)

        Returns:
            Lista de Candle en cualquier orden (el consumidor ordena)

        Raises:
            FeedUnavailableError: el feed no responde
        """

    @abstractmethod
    async def get_current_quote(self) -> Quote:
        """Precio bid/ask actual."""

    @property
    def supports_streaming(self) -> bool:
        return False

    async def stream(self) -> AsyncIterator[Union[Tick, Heartbeat]]:
        """
        Stream push de Tick/Heartbeat.

        Raises:
            FeedUnavailableError: la conexión se cayó
        """
        raise NotImplementedError(f"{type(self).__name__} does not stream")
        yield  # pragma: no cover
