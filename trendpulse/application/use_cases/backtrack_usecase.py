"""
TrendPulse – Use Case: Run Backtrack
======================================
Descarga histórico del broker y lo reproduce en el simulador.

FLUJO:
  1. Cuenta + metadatos del instrumento (gateway real, solo lectura)
  2. `count` velas a la granularidad del periodo
  3. BacktrackSimulator.replay → BacktrackResult

El gateway real solo se usa para leer y para tasas de conversión
históricas; las órdenes van al ledger sintético. Con un gateway de papel
las tasas se derivan del propio par.
"""

from __future__ import annotations

from typing import Callable

from trendpulse.application.ports.execution_gateway import IExecutionGateway
from trendpulse.application.ports.market_data_feed import IMarketDataFeed
from trendpulse.application.services.backtrack_simulator import (
    DEFAULT_WINDOW,
    BacktrackResult,
    BacktrackSimulator,
)
from trendpulse.application.services.synthetic_ledger import SyntheticLedgerGateway
from trendpulse.domain.services.market_hours import to_granularity
from trendpulse.domain.services.strategies import StrategyKind, build_strategy
from trendpulse.shared.logging.logger import get_logger

logger = get_logger("backtrack_usecase")

DEFAULT_COUNT = 1500


class BacktrackUseCase:
    def __init__(
        self,
        *,
        feed_factory: Callable[[str], IMarketDataFeed],
        gateway_factory: Callable[[str], IExecutionGateway],
        count: int = DEFAULT_COUNT,
        window: int = DEFAULT_WINDOW,
        instruments_traded: int = 1,
    ) -> None:
        self._feed_factory = feed_factory
        self._gateway_factory = gateway_factory
        self._count = count
        self._window = window
        self._instruments_traded = instruments_traded

    async def run_backtrack(
        self,
        instrument: str,
        strategy_kind: StrategyKind | str,
        period_minutes: float,
    ) -> BacktrackResult:
        kind = StrategyKind(strategy_kind)
        feed = self._feed_factory(instrument)
        gateway = self._gateway_factory(instrument)

        account = await gateway.get_account_summary()
        meta = await gateway.get_instrument_meta()
        granularity = to_granularity(period_minutes)
        candles = await feed.get_historical_candles(count=self._count, granularity=granularity)
        logger.info(
            "Backtrack %s %s | %d velas %s, ventana=%d",
            instrument, kind.value, len(candles), granularity, self._window,
        )

        simulator = BacktrackSimulator(
            strategy_factory=lambda: build_strategy(kind),
            account=account,
            meta=meta,
            period_minutes=period_minutes,
            instruments_traded=self._instruments_traded,
            rates=None if isinstance(gateway, SyntheticLedgerGateway) else gateway,
            window=self._window,
        )
        return await simulator.replay(candles)
