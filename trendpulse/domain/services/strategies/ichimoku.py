"""
TrendPulse – Ichimoku Strategies
==================================
Máquinas de estado de señales sobre la nube Ichimoku (9/26/52).

REGLAS:
Cada variante declara una lista ORDENADA de IchimokuRule. Se evalúan de
arriba abajo; la primera cuyo predicado se cumple decide:
  - si su señal ya se registró en el periodo de la vela actual → Nothing
    (no se prueban reglas posteriores)
  - si no → se registra en el historial y se devuelve `returns`
Si ninguna regla aplica se registra Nothing (colapsado).

ÍNDICES (newest-first):
  [0] = vela actual, [1] = anterior, [2] = dos velas atrás.

PERIODO DE DEDUPLICACIÓN:
  [candles[0].time, candles[0].time + (candles[0].time - candles[1].time))
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Sequence

from trendpulse.domain.entities.candle import Candle
from trendpulse.domain.entities.position import Side
from trendpulse.domain.entities.signal import Signal
from trendpulse.domain.services.indicator_calculator import (
    IchimokuPoint,
    IndicatorCalculator,
    filter_traded,
)
from trendpulse.domain.services.signal_history import SignalHistory
from trendpulse.domain.services.strategies import patterns
from trendpulse.domain.services.strategies.base import (
    Strategy,
    StrategyKind,
    StrategyResult,
    atr_stop_distance,
)
from trendpulse.shared.logging.logger import get_logger

logger = get_logger("strategy.ichimoku")

ICHIMOKU_MIN_CANDLES = 200


@dataclass(frozen=True, slots=True)
class IchimokuContext:
    """Todo lo que una regla puede consultar."""

    cloud: Sequence[IchimokuPoint]   # newest-first, 3 puntos
    candles: Sequence[Candle]        # newest-first, filtradas
    history: SignalHistory


@dataclass(frozen=True, slots=True)
class IchimokuRule:
    name: str
    predicate: Callable[[IchimokuContext], bool]
    records: Signal
    returns: Signal
    reference_index: Optional[int] = None   # vela guardada para el stop-loss


# ═══════════════════════════════════════════════════════════════
#  PREDICADOS
# ═══════════════════════════════════════════════════════════════

def _above_cloud(value: float, point: IchimokuPoint) -> bool:
    return value > point.span_a and value > point.span_b


def _below_cloud(value: float, point: IchimokuPoint) -> bool:
    return value < point.span_a and value < point.span_b


def upward_crossover(ctx: IchimokuContext) -> bool:
    """Conversión cruza la base hacia arriba (confirmado en la vela actual)."""
    c = ctx.cloud
    return (
        c[2].conversion <= c[2].base
        and c[1].conversion > c[1].base
        and c[0].conversion > c[0].base
    )


def downward_crossover(ctx: IchimokuContext) -> bool:
    c = ctx.cloud
    return (
        c[2].conversion >= c[2].base
        and c[1].conversion < c[1].base
        and c[0].conversion < c[0].base
    )


def strong_buy(ctx: IchimokuContext) -> bool:
    """Cruce alcista con conversión, base y cierres por encima de la nube."""
    c, p = ctx.cloud, ctx.candles
    return (
        upward_crossover(ctx)
        and _above_cloud(c[1].conversion, c[1])
        and _above_cloud(c[1].base, c[1])
        and _above_cloud(p[1].close, c[1])
        and _above_cloud(p[0].close, c[0])
    )


def strong_sell(ctx: IchimokuContext) -> bool:
    c, p = ctx.cloud, ctx.candles
    return (
        downward_crossover(ctx)
        and _below_cloud(c[1].conversion, c[1])
        and _below_cloud(c[1].base, c[1])
        and _below_cloud(p[1].close, c[1])
        and _below_cloud(p[0].close, c[0])
    )


def breakout_after_crossover(breakout: Signal, crossover: Signal) -> Callable[[IchimokuContext], bool]:
    """El último evento es `breakout` y el cruce previo fue `crossover`."""

    def predicate(ctx: IchimokuContext) -> bool:
        history = ctx.history
        return (
            len(history) > 1
            and history.previous_crossover() is crossover
            and history.latest.signal is breakout
        )

    return predicate


def upward_breakout(ctx: IchimokuContext) -> bool:
    """El máximo sale de dentro/debajo de la nube y queda por encima dos velas."""
    c, p = ctx.cloud, ctx.candles
    return (
        (p[2].high <= c[2].span_a or p[2].high <= c[2].span_b)
        and _above_cloud(p[1].high, c[1])
        and _above_cloud(p[0].high, c[0])
    )


def downward_breakout(ctx: IchimokuContext) -> bool:
    c, p = ctx.cloud, ctx.candles
    return (
        (p[2].low >= c[2].span_a or p[2].low >= c[2].span_b)
        and _below_cloud(p[1].low, c[1])
        and _below_cloud(p[0].low, c[0])
    )


def _with_roc(predicate: Callable[[IchimokuContext], bool], confirm) -> Callable[[IchimokuContext], bool]:
    return lambda ctx: predicate(ctx) and confirm(ctx.candles)


def regular_buy(ctx: IchimokuContext) -> bool:
    """Cruce alcista con conversión y base sobre spanB."""
    c = ctx.cloud
    return upward_crossover(ctx) and c[1].conversion > c[1].span_b and c[1].base > c[1].span_b


def regular_sell(ctx: IchimokuContext) -> bool:
    c = ctx.cloud
    return downward_crossover(ctx) and c[1].conversion < c[1].span_b and c[1].base < c[1].span_b


def body_closed_below_base(ctx: IchimokuContext) -> bool:
    """La vela anterior cierra su cuerpo bajo la base; la previa estaba sobre ella."""
    c, p = ctx.cloud, ctx.candles
    return (
        p[1].open <= c[1].base
        and p[1].close <= c[1].base
        and p[2].open > c[2].base
        and p[2].close > c[2].base
    )


def body_closed_above_base(ctx: IchimokuContext) -> bool:
    c, p = ctx.cloud, ctx.candles
    return (
        p[1].open >= c[1].base
        and p[1].close >= c[1].base
        and p[2].open < c[2].base
        and p[2].close < c[2].base
    )


def conversion_falls_to_base(ctx: IchimokuContext) -> bool:
    c = ctx.cloud
    return c[1].conversion > c[1].base and c[0].conversion <= c[0].base


def conversion_rises_to_base(ctx: IchimokuContext) -> bool:
    c = ctx.cloud
    return c[1].conversion < c[1].base and c[0].conversion >= c[0].base


# ═══════════════════════════════════════════════════════════════
#  TABLAS DE REGLAS
# ═══════════════════════════════════════════════════════════════

TREND_RULES: tuple[IchimokuRule, ...] = (
    IchimokuRule("strong_buy", strong_buy, Signal.STRONG_BUY, Signal.STRONG_BUY, 0),
    IchimokuRule(
        "buy",
        breakout_after_crossover(Signal.UPWARDS_BREAKOUT, Signal.UPWARDS_CROSSOVER),
        Signal.BUY, Signal.BUY, 0,
    ),
    IchimokuRule("strong_sell", strong_sell, Signal.STRONG_SELL, Signal.STRONG_SELL, 0),
    IchimokuRule(
        "sell",
        breakout_after_crossover(Signal.DOWNWARDS_BREAKOUT, Signal.DOWNWARDS_CROSSOVER),
        Signal.SELL, Signal.SELL, 0,
    ),
    # Breakouts: solo se registran; guardan la vela que atravesó la nube
    IchimokuRule("upwards_breakout", upward_breakout, Signal.UPWARDS_BREAKOUT, Signal.NOTHING, 1),
    IchimokuRule("downwards_breakout", downward_breakout, Signal.DOWNWARDS_BREAKOUT, Signal.NOTHING, 1),
    # Cruces: se registran y funcionan como salida del lado contrario
    IchimokuRule("upwards_crossover", upward_crossover, Signal.UPWARDS_CROSSOVER, Signal.SHORT_EXIT, 0),
    IchimokuRule("downwards_crossover", downward_crossover, Signal.DOWNWARDS_CROSSOVER, Signal.LONG_EXIT, 0),
)

REGULAR_RULES: tuple[IchimokuRule, ...] = (
    IchimokuRule("strong_buy", _with_roc(strong_buy, patterns.confirm_long), Signal.STRONG_BUY, Signal.STRONG_BUY),
    IchimokuRule("buy", _with_roc(regular_buy, patterns.confirm_long), Signal.BUY, Signal.BUY),
    IchimokuRule("strong_sell", _with_roc(strong_sell, patterns.confirm_short), Signal.STRONG_SELL, Signal.STRONG_SELL),
    IchimokuRule("sell", _with_roc(regular_sell, patterns.confirm_short), Signal.SELL, Signal.SELL),
    IchimokuRule("body_below_base", body_closed_below_base, Signal.LONG_EXIT, Signal.LONG_EXIT),
    IchimokuRule("conversion_below_base", conversion_falls_to_base, Signal.LONG_EXIT, Signal.LONG_EXIT),
    IchimokuRule("body_above_base", body_closed_above_base, Signal.SHORT_EXIT, Signal.SHORT_EXIT),
    IchimokuRule("conversion_above_base", conversion_rises_to_base, Signal.SHORT_EXIT, Signal.SHORT_EXIT),
    # Momentum: ROC positivo cierra cortos, negativo cierra largos
    IchimokuRule("roc_short_exit", lambda ctx: patterns.roc_signal(ctx.candles) is Signal.SHORT_EXIT, Signal.SHORT_EXIT, Signal.SHORT_EXIT),
    IchimokuRule("roc_long_exit", lambda ctx: patterns.roc_signal(ctx.candles) is Signal.LONG_EXIT, Signal.LONG_EXIT, Signal.LONG_EXIT),
)


# ═══════════════════════════════════════════════════════════════
#  ESTRATEGIAS
# ═══════════════════════════════════════════════════════════════

class IchimokuStrategy(Strategy):
    """
    Base de las variantes Ichimoku.

    Mantiene un SignalHistory por instancia: deduplicación por periodo,
    contexto para las reglas de Buy/Sell y vela de referencia del stop.
    """

    min_candles = ICHIMOKU_MIN_CANDLES
    rules: tuple[IchimokuRule, ...] = ()

    def __init__(
        self,
        *,
        conversion_period: int = 9,
        base_period: int = 26,
        span_period: int = 52,
        displacement: int = 26,
        history: SignalHistory | None = None,
    ) -> None:
        super().__init__()
        self._conversion_period = conversion_period
        self._base_period = base_period
        self._span_period = span_period
        self._displacement = displacement
        self._history = history or SignalHistory()

    @property
    def history(self) -> SignalHistory:
        return self._history

    def cloud(self, candles: Sequence[Candle]) -> list[IchimokuPoint]:
        """Tres puntos de nube más recientes para velas newest-first."""
        ordered = list(reversed(candles))
        return IndicatorCalculator.ichimoku(
            [c.high for c in ordered],
            [c.low for c in ordered],
            conversion_period=self._conversion_period,
            base_period=self._base_period,
            span_period=self._span_period,
            displacement=self._displacement,
            lookback=3,
        )

    @staticmethod
    def period_window(candles: Sequence[Candle]) -> tuple[datetime, datetime]:
        start = candles[0].time
        return start, start + (start - candles[1].time)

    def _evaluate(self, candles: list[Candle]) -> StrategyResult:
        cloud = self.cloud(candles)
        diagnostics = {
            "previous": {"ichimoku": cloud[1].to_dict(), "price": candles[1].close},
            "current": {"ichimoku": cloud[0].to_dict(), "price": candles[0].close},
        }
        ctx = IchimokuContext(cloud=cloud, candles=candles, history=self._history)
        start, end = self.period_window(candles)

        for rule in self.rules:
            if not rule.predicate(ctx):
                continue
            diagnostics["rule"] = rule.name
            if self._history.has_fired(rule.records, start, end):
                # Ya emitida en esta vela
                diagnostics["deduplicated"] = True
                return StrategyResult(Signal.NOTHING, diagnostics)
            reference = candles[rule.reference_index] if rule.reference_index is not None else None
            self._history.record(rule.records, start, reference)
            if rule.returns is not Signal.NOTHING:
                logger.info(
                    "%s → %s (%s) @ %s",
                    self.kind.value, rule.returns.value, rule.name, start.isoformat(),
                )
            return StrategyResult(rule.returns, diagnostics)

        self._history.record(Signal.NOTHING, start, self._nothing_reference(candles))
        return StrategyResult(Signal.NOTHING, diagnostics)

    def _nothing_reference(self, candles: Sequence[Candle]) -> Candle | None:
        return None

    def stop_loss_price(self, side: Side | None = None) -> Optional[float]:
        return self._history.stop_loss_price(side)

    def stop_loss_distance(
        self,
        candles: Sequence[Candle],
        side: Side | None = None,
    ) -> Optional[float]:
        """|cierre actual - precio de stop| según el historial de eventos."""
        price = self.stop_loss_price(side)
        traded = filter_traded(candles)
        if price is None or not traded:
            return None
        return abs(traded[0].close - price)

    def warm_up(self, candles: Sequence[Candle]) -> int:
        """
        Reproduce el histórico (newest-first) de la vela más antigua a la
        más nueva para poblar el historial. Devuelve evaluaciones hechas.
        """
        traded = filter_traded(candles)
        evaluated = 0
        for end in range(len(traded) - self.min_candles, -1, -1):
            self.get_signal(traded[end:])
            evaluated += 1
        logger.info(
            "%s warm-up: %d evaluaciones, historial=%d",
            self.kind.value, evaluated, len(self._history),
        )
        return evaluated


class IchimokuTrendStrategy(IchimokuStrategy):
    """Variante centrada en tendencia: breakouts de nube y cruces."""

    kind = StrategyKind.ICHIMOKU_TREND
    rules = TREND_RULES

    def _nothing_reference(self, candles: Sequence[Candle]) -> Candle | None:
        return candles[0]


class IchimokuRegularStrategy(IchimokuStrategy):
    """
    Variante regular: entradas confirmadas por ROC y salidas por
    cruces de la base. Sus entradas no guardan vela de referencia, el
    stop cae al ATR × 2.
    """

    kind = StrategyKind.ICHIMOKU_REGULAR
    rules = REGULAR_RULES

    def stop_loss_distance(
        self,
        candles: Sequence[Candle],
        side: Side | None = None,
    ) -> Optional[float]:
        distance = super().stop_loss_distance(candles, side)
        if distance is None:
            return atr_stop_distance(candles)
        return distance
