"""
TrendPulse – Synthetic Ledger Gateway
=======================================
Gateway de ejecución en memoria: backtracking y paper trading en vivo.

- Abre largos al ask y cortos al bid de la barra actual.
- Cierra largos al bid y cortos al ask.
- P&L realizado: (salida - entrada) × signo × unidades × conversión
  con la conversión de la divisa cotizada a la fecha de la barra.
- Stop-loss opcional (paper trading): entrada ∓ distancia; se cierra al
  precio que lo cruza en `set_quote`.
- Sin financiación, sin slippage, sin llenados parciales.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import List, Optional

from trendpulse.application.ports.execution_gateway import IExecutionGateway
from trendpulse.domain.entities.position import (
    AccountState,
    InstrumentMeta,
    Position,
    PositionSnapshot,
    Side,
)
from trendpulse.shared.logging.logger import get_logger

logger = get_logger("synthetic_ledger")


@dataclass(frozen=True, slots=True)
class ClosedTrade:
    side: Side
    units: float
    entry_price: float
    exit_price: float
    conversion_rate: float
    pnl: float
    closed_at: datetime
    reason: str = "signal"

    def to_dict(self) -> dict:
        return {
            "side": self.side.value,
            "units": self.units,
            "entry_price": self.entry_price,
            "exit_price": self.exit_price,
            "conversion_rate": self.conversion_rate,
            "pnl": self.pnl,
            "closed_at": self.closed_at.isoformat(),
            "reason": self.reason,
        }


class SyntheticLedgerGateway(IExecutionGateway):
    """
    Args:
        account: estado inicial de la cuenta
        meta: metadatos del instrumento
        rates: gateway real para tasas de conversión históricas
            (None → se derivan del bid/ask del propio par)
        stop_losses: cierra una posición cuando el precio cruza su stop.
            Solo para paper trading en vivo; el backtracking los ignora.
    """

    def __init__(
        self,
        account: AccountState,
        meta: InstrumentMeta,
        rates: IExecutionGateway | None = None,
        *,
        stop_losses: bool = False,
    ) -> None:
        if stop_losses and rates is not None:
            raise ValueError("Stop-loss enforcement settles with the pair's own quote, not external rates")
        self.instrument = meta.name
        self._account = account
        self._meta = meta
        self._rates = rates
        self._stop_losses = stop_losses
        self._positions: dict[Side, Position] = {}
        self._stops: dict[Side, float] = {}
        self._bid = 0.0
        self._ask = 0.0
        self._time: Optional[datetime] = None
        self.closed_trades: List[ClosedTrade] = []

    @property
    def balance(self) -> float:
        return self._account.balance

    @property
    def current_time(self) -> Optional[datetime]:
        return self._time

    def stop_price(self, side: Side) -> Optional[float]:
        return self._stops.get(side)

    def set_quote(self, bid: float, ask: float, time: datetime) -> None:
        self._bid = bid
        self._ask = ask
        self._time = time
        if self._stop_losses:
            self._check_stops()

    def _check_stops(self) -> None:
        # Largos salen al bid, cortos al ask
        for side, stop in list(self._stops.items()):
            if side is Side.LONG and self._bid <= stop:
                exit_price = self._bid
            elif side is Side.SHORT and self._ask >= stop:
                exit_price = self._ask
            else:
                continue
            logger.info(
                "🛑 Stop-loss %s %s @ %.5f (stop %.5f)",
                side.value, self.instrument, exit_price, stop,
            )
            self._settle(side, exit_price, self._local_rate(self._meta.quote_currency), "stop_loss")

    # ── Lectura ──

    async def get_account_summary(self) -> AccountState:
        return self._account

    async def get_instrument_meta(self) -> InstrumentMeta:
        return self._meta

    async def get_open_position(self) -> PositionSnapshot:
        return PositionSnapshot(
            instrument=self.instrument,
            long=self._positions.get(Side.LONG),
            short=self._positions.get(Side.SHORT),
        )

    async def get_conversion_rate(self, currency: str, as_of: Optional[datetime] = None) -> float:
        """Valor de una unidad de `currency` en la divisa de la cuenta."""
        if currency != self._account.currency and self._rates is not None:
            return await self._rates.get_conversion_rate(currency, as_of or self._time)
        return self._local_rate(currency)

    def _local_rate(self, currency: str) -> float:
        """Sin tasas externas: solo se resuelve con el propio par."""
        home = self._account.currency
        if currency == home:
            return 1.0
        mid = (self._bid + self._ask) / 2
        if mid <= 0:
            return 1.0
        if currency == self._meta.base_currency and self._meta.quote_currency == home:
            return mid
        if currency == self._meta.quote_currency and self._meta.base_currency == home:
            return 1 / mid
        return 1.0

    # ── Órdenes ──

    async def open_long(self, units: int, stop_loss_distance: float) -> None:
        self._open(Side.LONG, units, self._ask, stop_loss_distance)

    async def open_short(self, units: int, stop_loss_distance: float) -> None:
        self._open(Side.SHORT, units, self._bid, stop_loss_distance)

    def _open(self, side: Side, units: int, entry_price: float, stop_loss_distance: float) -> None:
        self._positions[side] = Position(self.instrument, side, units, entry_price)
        self._stops.pop(side, None)
        if self._stop_losses and stop_loss_distance and stop_loss_distance > 0:
            self._stops[side] = entry_price - side.sign * stop_loss_distance

    async def close_long(self) -> None:
        await self._close(Side.LONG, self._bid)

    async def close_short(self) -> None:
        await self._close(Side.SHORT, self._ask)

    async def _close(self, side: Side, exit_price: float) -> None:
        if side not in self._positions:
            return
        rate = await self.get_conversion_rate(self._meta.quote_currency, self._time)
        self._settle(side, exit_price, rate, "signal")

    def _settle(self, side: Side, exit_price: float, rate: float, reason: str) -> None:
        position = self._positions.pop(side, None)
        self._stops.pop(side, None)
        if position is None:
            return
        pnl = (exit_price - position.entry_price) * side.sign * position.units * rate
        self._account = replace(self._account, balance=self._account.balance + pnl)
        self.closed_trades.append(
            ClosedTrade(
                side=side,
                units=position.units,
                entry_price=position.entry_price,
                exit_price=exit_price,
                conversion_rate=rate,
                pnl=pnl,
                closed_at=self._time,
                reason=reason,
            )
        )
        logger.debug(
            "Cierre sintético %s %s (%s) units=%s entry=%.5f exit=%.5f pnl=%.2f balance=%.2f",
            side.value, self.instrument, reason, position.units, position.entry_price,
            exit_price, pnl, self._account.balance,
        )
