"""
TrendPulse – Position Controller
==================================
Convierte señales en cambios de posición acotados por riesgo.

FLUJO DE UNA SEÑAL DE ENTRADA (Buy/StrongBuy/Sell/StrongSell):
  1. Refrescar AccountState
  2. Guarda de spread           → SpreadTooWideError
  3. Guarda de margin call      → MarginCallRiskError
  4. Posición en el mismo lado  → PositionAlreadyOpenError
     Posición en el lado opuesto → se cierra ANTES de abrir
  5. Límite de fondos           → FundsLimitExceededError
  6. Orden de mercado con stop-loss

SEÑALES DE SALIDA (LongExit/ShortExit):
  Sin guardas: se cierra el lado correspondiente si está abierto.

ERRORES:
- Las guardas lanzan RiskManagementError dentro de open_long/open_short;
  on_signal los registra y devuelve False (la señal se descarta y el
  siguiente ciclo reevalúa).
- GatewayRequestFailedError se registra como error y NO se reintenta.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional, Sequence

from trendpulse.application.ports.exceptions import GatewayRequestFailedError
from trendpulse.application.ports.execution_gateway import IExecutionGateway
from trendpulse.domain.entities.candle import Candle
from trendpulse.domain.entities.position import (
    AccountState,
    InstrumentMeta,
    Side,
)
from trendpulse.domain.entities.signal import Signal
from trendpulse.domain.exceptions.domain_errors import (
    FundsLimitExceededError,
    PositionAlreadyOpenError,
    RiskManagementError,
)
from trendpulse.domain.services.market_hours import WeekendSchedule
from trendpulse.domain.services.risk_calculator import RiskCalculator
from trendpulse.domain.services.strategies.base import Strategy
from trendpulse.shared.logging.logger import get_logger

logger = get_logger("position_controller")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PositionController:
    """
    Controlador de riesgo y posiciones de un instrumento.

    Uso:
        controller = PositionController(
            gateway=gateway, strategy=strategy, candles=lambda: buffer,
            period_minutes=60, instruments_traded=3,
        )
        await controller.initialize()
        acted = await controller.on_signal(Signal.BUY, bid, ask)
    """

    def __init__(
        self,
        *,
        gateway: IExecutionGateway,
        strategy: Strategy,
        candles: Callable[[], Sequence[Candle]],
        period_minutes: float,
        instruments_traded: int = 1,
        fx_market: bool = True,
        risk: RiskCalculator | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._gateway = gateway
        self._strategy = strategy
        self._candles = candles
        self._period_minutes = period_minutes
        self._instruments_traded = max(instruments_traded, 1)
        self._fx_market = fx_market
        self._risk = risk or RiskCalculator()
        self._clock = clock
        self._weekend = WeekendSchedule()
        self._account: AccountState | None = None
        self._meta: InstrumentMeta | None = None

    @property
    def account(self) -> AccountState | None:
        return self._account

    @property
    def instrument_meta(self) -> InstrumentMeta | None:
        return self._meta

    @property
    def weekend(self) -> WeekendSchedule:
        return self._weekend

    async def initialize(self) -> None:
        """Carga metadatos estáticos del instrumento y el estado de cuenta."""
        self._meta = await self._gateway.get_instrument_meta()
        self._account = await self._gateway.get_account_summary()
        logger.info(
            "PositionController listo | %s balance=%.2f %s margin=%.3f pairs=%d",
            self._meta.name, self._account.balance, self._account.currency,
            self._risk.effective_margin_rate(self._account, self._meta),
            self._instruments_traded,
        )

    async def refresh_account(self) -> AccountState:
        self._account = await self._gateway.get_account_summary()
        return self._account

    async def _ensure_ready(self) -> None:
        if self._meta is None or self._account is None:
            await self.initialize()

    # ════════════════════════════════════════════════════════════════
    #  DIMENSIONAMIENTO
    # ════════════════════════════════════════════════════════════════

    async def get_units(self, funds: float, as_of: Optional[datetime] = None) -> int:
        await self._ensure_ready()
        rate = 1.0
        if self._risk.needs_conversion(self._account, self._meta):
            rate = await self._gateway.get_conversion_rate(self._meta.base_currency, as_of)
        return self._risk.units_for(funds, self._account, self._meta, rate)

    def allocable_funds(self, strong: bool = False) -> float:
        return self._risk.allocable_funds(self._account.balance, self._instruments_traded, strong)

    async def allocable_units(self, strong: bool = False, as_of: Optional[datetime] = None) -> int:
        await self._ensure_ready()
        return await self.get_units(self.allocable_funds(strong), as_of)

    async def has_reached_funds_limit(
        self,
        order_units: float,
        allocated_units: float,
        as_of: Optional[datetime] = None,
    ) -> bool:
        """allocated + order > unidades máximas de la parte del instrumento."""
        await self._ensure_ready()
        pair_funds = self._account.balance / self._instruments_traded
        max_units = await self.get_units(pair_funds, as_of)
        return self._risk.has_reached_funds_limit(order_units, allocated_units, max_units)

    def stop_loss_distance(self, side: Side | None = None) -> float:
        strategy_distance = self._strategy.stop_loss_distance(self._candles(), side)
        return self._risk.stop_loss_distance(strategy_distance, self._meta)

    # ════════════════════════════════════════════════════════════════
    #  APERTURA
    # ════════════════════════════════════════════════════════════════

    async def open_long(self, strong: bool, bid: float, ask: float, as_of: Optional[datetime] = None) -> bool:
        return await self._open(Side.LONG, strong, bid, ask, as_of)

    async def open_short(self, strong: bool, bid: float, ask: float, as_of: Optional[datetime] = None) -> bool:
        return await self._open(Side.SHORT, strong, bid, ask, as_of)

    async def _open(
        self,
        side: Side,
        strong: bool,
        bid: float,
        ask: float,
        as_of: Optional[datetime],
    ) -> bool:
        await self._ensure_ready()
        account = await self.refresh_account()

        self._risk.check_spread(bid, ask, self._meta.pip_location, self._period_minutes)
        self._risk.check_margin(account)

        position = await self._gateway.get_open_position()
        if position.get(side) is not None:
            raise PositionAlreadyOpenError(side.value)
        if position.get(side.opposite) is not None:
            # Abrir en el lado contrario siempre cierra primero el existente
            await self._close(side.opposite)
            position = await self._gateway.get_open_position()

        units = await self.allocable_units(strong, as_of)
        allocated = position.allocated_units
        if units <= 0 or await self.has_reached_funds_limit(units, allocated, as_of):
            raise FundsLimitExceededError(units, allocated)

        distance = self.stop_loss_distance(side)
        if side is Side.LONG:
            await self._gateway.open_long(units, distance)
        else:
            await self._gateway.open_short(units, distance)

        logger.info(
            "🟢 %s %s | units=%d strong=%s bid=%.5f ask=%.5f SL=%s",
            "LONG" if side is Side.LONG else "SHORT",
            self._meta.name, units, strong, bid, ask, distance,
        )
        return True

    # ════════════════════════════════════════════════════════════════
    #  CIERRE
    # ════════════════════════════════════════════════════════════════

    async def _close(self, side: Side) -> None:
        if side is Side.LONG:
            await self._gateway.close_long()
        else:
            await self._gateway.close_short()
        logger.info("🔴 Cierre %s %s", side.value.upper(), self._gateway.instrument)

    async def close_side(self, side: Side) -> bool:
        position = await self._gateway.get_open_position()
        if position.get(side) is None:
            return False
        await self._close(side)
        return True

    async def close_all(self) -> int:
        position = await self._gateway.get_open_position()
        closed = 0
        for side in (Side.LONG, Side.SHORT):
            if position.get(side) is not None:
                await self._close(side)
                closed += 1
        return closed

    # ════════════════════════════════════════════════════════════════
    #  ENTRADA PRINCIPAL
    # ════════════════════════════════════════════════════════════════

    def is_market_closed(self) -> bool:
        return self._fx_market and self._weekend.is_market_closed(self._clock())

    async def on_clock(self) -> bool:
        """
        Reloj de fin de semana FX. Cierra todo una única vez antes del
        cierre del viernes. Devuelve True si cerró posiciones.
        """
        if not self._fx_market:
            return False
        now = self._clock()
        self._weekend.tick(now)
        if not self._weekend.should_flatten(now):
            return False
        closed = await self.close_all()
        logger.info("⏰ Cierre de fin de semana | %s posiciones cerradas=%d", self._gateway.instrument, closed)
        return True

    async def on_signal(
        self,
        signal: Signal,
        bid: float,
        ask: float,
        *,
        as_of: Optional[datetime] = None,
    ) -> bool:
        """
        Actúa sobre una señal.

        Returns:
            True si se abrió o cerró una posición.
        """
        if not (signal.is_entry or signal.is_exit):
            return False
        if self.is_market_closed():
            logger.debug("Mercado cerrado, señal %s ignorada", signal.value)
            return False

        side = signal.side
        try:
            if signal.is_exit:
                return await self.close_side(side)
            if side is Side.LONG:
                return await self.open_long(signal.is_strong, bid, ask, as_of)
            return await self.open_short(signal.is_strong, bid, ask, as_of)
        except RiskManagementError as exc:
            logger.info(
                "🚫 %s descartada | %s: %s", signal.value, self._gateway.instrument, exc.message,
            )
            return False
        except GatewayRequestFailedError as exc:
            logger.error(
                "Orden %s fallida en %s (status=%s): %s",
                signal.value, self._gateway.instrument, exc.status, exc.message,
            )
            return False
