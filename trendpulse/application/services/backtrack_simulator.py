"""
TrendPulse – Backtracking Simulator
=====================================
Reproduce barras históricas a través de la estrategia y del controlador
de posiciones contra una cuenta sintética.

ALGORITMO:
  1. Ordenar barras de la más antigua a la más nueva.
  2. Sembrar la ventana con las `window` más antiguas.
  3. Por cada barra restante: anteponerla (tope 10.000), evaluar la
     estrategia, fijar bid/ask de la barra en el ledger y pasar la señal
     al controlador.
  4. Ruina: si el balance llega a ≤ 0 se detiene.

Determinista: misma secuencia de velas → mismo balance y misma traza.
Cada replay construye una estrategia nueva con `strategy_factory`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional, Sequence

from trendpulse.application.ports.execution_gateway import IExecutionGateway
from trendpulse.application.services.position_controller import PositionController
from trendpulse.application.services.synthetic_ledger import (
    ClosedTrade,
    SyntheticLedgerGateway,
)
from trendpulse.domain.entities.candle import MAX_CANDLES, Candle, CandleBuffer
from trendpulse.domain.entities.position import AccountState, InstrumentMeta
from trendpulse.domain.entities.signal import Signal, SignalHistoryEntry
from trendpulse.domain.exceptions.domain_errors import InsufficientHistoryError
from trendpulse.domain.services.risk_calculator import RiskCalculator
from trendpulse.domain.services.strategies.base import Strategy
from trendpulse.shared.logging.logger import get_logger

logger = get_logger("backtrack")

DEFAULT_WINDOW = 500


@dataclass(frozen=True, slots=True)
class DecisionRecord:
    time: datetime
    signal: Signal
    acted: bool
    balance: float

    def to_dict(self) -> dict:
        return {
            "time": self.time.isoformat(),
            "signal": self.signal.value,
            "acted": self.acted,
            "balance": self.balance,
        }


@dataclass(frozen=True)
class BacktrackResult:
    instrument: str
    strategy_kind: str
    starting_balance: float
    final_balance: float
    ruined: bool
    bars_replayed: int
    decision_trace: tuple[DecisionRecord, ...] = ()
    signal_history: tuple[SignalHistoryEntry, ...] = ()
    trades: tuple[ClosedTrade, ...] = field(default=())

    def to_dict(self) -> dict:
        return {
            "instrument": self.instrument,
            "strategy_kind": self.strategy_kind,
            "starting_balance": self.starting_balance,
            "final_balance": self.final_balance,
            "ruined": self.ruined,
            "bars_replayed": self.bars_replayed,
            "decision_trace": [d.to_dict() for d in self.decision_trace],
            "trades": [t.to_dict() for t in self.trades],
        }


class BacktrackSimulator:
    def __init__(
        self,
        *,
        strategy_factory: Callable[[], Strategy],
        account: AccountState,
        meta: InstrumentMeta,
        period_minutes: float,
        instruments_traded: int = 1,
        rates: Optional[IExecutionGateway] = None,
        window: int = DEFAULT_WINDOW,
        max_candles: int = MAX_CANDLES,
        risk: RiskCalculator | None = None,
    ) -> None:
        self._strategy_factory = strategy_factory
        self._account = account
        self._meta = meta
        self._period_minutes = period_minutes
        self._instruments_traded = instruments_traded
        self._rates = rates
        self._window = window
        self._max_candles = max_candles
        self._risk = risk

    async def replay(self, candles: Sequence[Candle]) -> BacktrackResult:
        """
        Args:
            candles: barras históricas en cualquier orden

        Raises:
            InsufficientHistoryError: no hay barras más allá de la ventana
        """
        ordered = sorted(candles, key=lambda c: c.time)
        if len(ordered) <= self._window:
            raise InsufficientHistoryError(self._window + 1, len(ordered))

        strategy = self._strategy_factory()
        ledger = SyntheticLedgerGateway(self._account, self._meta, self._rates)
        buffer = CandleBuffer(ordered[: self._window], maxlen=self._max_candles)
        controller = PositionController(
            gateway=ledger,
            strategy=strategy,
            candles=lambda: buffer,
            period_minutes=self._period_minutes,
            instruments_traded=self._instruments_traded,
            fx_market=False,
            risk=self._risk,
            clock=lambda: ledger.current_time,
        )
        await controller.initialize()

        trace: list[DecisionRecord] = []
        ruined = False
        replayed = 0
        for candle in ordered[self._window:]:
            buffer.prepend(candle)
            replayed += 1
            bid = candle.bid_close if candle.bid_close is not None else candle.close
            ask = candle.ask_close if candle.ask_close is not None else candle.close
            ledger.set_quote(bid, ask, candle.time)

            try:
                result = strategy.get_signal(buffer.snapshot())
            except InsufficientHistoryError:
                continue

            if result.signal is Signal.NOTHING:
                continue
            acted = await controller.on_signal(result.signal, bid, ask, as_of=candle.time)
            trace.append(DecisionRecord(candle.time, result.signal, acted, ledger.balance))

            if ledger.balance <= 0:
                logger.warning(
                    "💀 Game over | %s balance=%.2f @ %s",
                    self._meta.name, ledger.balance, candle.time.isoformat(),
                )
                ruined = True
                break

        history = tuple(strategy.history) if strategy.history is not None else ()
        result = BacktrackResult(
            instrument=self._meta.name,
            strategy_kind=strategy.kind.value,
            starting_balance=self._account.balance,
            final_balance=ledger.balance,
            ruined=ruined,
            bars_replayed=replayed,
            decision_trace=tuple(trace),
            signal_history=history,
            trades=tuple(ledger.closed_trades),
        )
        logger.info(
            "📊 Backtrack %s %s | bars=%d trades=%d balance %.2f → %.2f",
            result.instrument, result.strategy_kind, replayed,
            len(result.trades), result.starting_balance, result.final_balance,
        )
        return result
