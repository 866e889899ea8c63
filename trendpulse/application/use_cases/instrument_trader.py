"""
TrendPulse – Instrument Trader
================================
Orquesta en vivo UN instrumento: feed → agregador → estrategia → riesgo.

FLUJO:
  Feed (stream Tick/Heartbeat  ó  polling de velas + precio)
       │  producer task
       ▼
  EventBus  "market.<INSTRUMENTO>"
       │  consumer task (single-flight: un evento a la vez)
       ▼
  CandleAggregator.ingest / CandleBuffer.merge
       │  solo si updated
       ▼
  Strategy.get_signal → PositionController.on_signal (si can_trade)

RECONEXIÓN:
- FeedUnavailableError → reintento a intervalo fijo. Los primeros avisos
  son WARNING; a partir de `reconnect_escalate_after` pasan a ERROR.
- Cada reconexión descarta el buffer, descarga histórico nuevo y crea un
  agregador nuevo.
- El contador de reintentos se reinicia solo cuando la conexión entrega
  eventos durante al menos `reconnect_interval`; un stream que cae nada
  más abrirse sigue escalando.

PARADA:
- stop() cancela producer y consumer; los resultados en vuelo se
  descartan (flag `_running`).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional, Union

from trendpulse.application.ports.exceptions import FeedUnavailableError
from trendpulse.application.ports.execution_gateway import IExecutionGateway
from trendpulse.application.ports.market_data_feed import IMarketDataFeed
from trendpulse.application.services.position_controller import PositionController
from trendpulse.domain.entities.candle import Candle, CandleBuffer
from trendpulse.domain.entities.signal import Signal
from trendpulse.domain.exceptions.domain_errors import (
    InsufficientHistoryError,
    StrategyBusyError,
)
from trendpulse.domain.services.candle_aggregator import CandleAggregator
from trendpulse.domain.services.market_hours import to_granularity
from trendpulse.domain.services.strategies import (
    Strategy,
    StrategyKind,
    StrategyResult,
    build_strategy,
)
from trendpulse.domain.value_objects.tick import Heartbeat, Quote, Tick
from trendpulse.infrastructure.messaging.event_bus import EventBus, market_topic
from trendpulse.shared.logging.logger import get_logger

logger = get_logger("instrument_trader")

QuoteListener = Callable[[float, float, datetime], None]


@dataclass(frozen=True)
class TraderConfig:
    instrument: str
    strategy_kind: StrategyKind
    period_minutes: float
    live: bool = True
    venue: str = "oanda"
    instruments_traded: int = 1
    can_trade: bool = False
    history_count: int = 500
    poll_interval: float = 5.0
    reconnect_interval: float = 10.0
    reconnect_escalate_after: int = 3

    @property
    def fx_market(self) -> bool:
        return self.venue == "oanda"


@dataclass(frozen=True)
class PollUpdate:
    """Resultado de un ciclo de polling."""
    candles: List[Candle] = field(default_factory=list)
    quote: Optional[Quote] = None


MarketEvent = Union[Tick, Heartbeat, PollUpdate]


class InstrumentTrader:
    """
    Uso:
        trader = InstrumentTrader(config, feed=feed, gateway=gateway, event_bus=bus)
        await trader.start()
        ...
        await trader.stop()
    """

    def __init__(
        self,
        config: TraderConfig,
        *,
        feed: IMarketDataFeed,
        gateway: IExecutionGateway,
        event_bus: EventBus,
        strategy: Strategy | None = None,
        quote_listener: QuoteListener | None = None,
    ) -> None:
        self._config = config
        self._feed = feed
        self._gateway = gateway
        self._event_bus = event_bus
        self._strategy = strategy or build_strategy(config.strategy_kind)
        self._quote_listener = quote_listener
        self._topic = market_topic(config.instrument)
        self._granularity = to_granularity(config.period_minutes)

        self._buffer = CandleBuffer()
        self._aggregator: Optional[CandleAggregator] = None
        self._controller = PositionController(
            gateway=gateway,
            strategy=self._strategy,
            candles=lambda: self._buffer,
            period_minutes=config.period_minutes,
            instruments_traded=config.instruments_traded,
            fx_market=config.fx_market,
        )

        self._queue: Optional[asyncio.Queue] = None
        self._producer_task: Optional[asyncio.Task] = None
        self._consumer_task: Optional[asyncio.Task] = None
        self._running = False
        self._ready = asyncio.Event()

        self._last_result: Optional[StrategyResult] = None
        self._events_processed = 0
        self._reconnect_attempt = 0
        self._connected_at = 0.0
        self._orders_acted = 0

    # ──────────────────────── Lifecycle ──────────────────────────────────

    @property
    def config(self) -> TraderConfig:
        return self._config

    @property
    def strategy(self) -> Strategy:
        return self._strategy

    @property
    def controller(self) -> PositionController:
        return self._controller

    @property
    def buffer(self) -> CandleBuffer:
        return self._buffer

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Arranca producer + consumer. Idempotente."""
        if self._running:
            logger.warning("InstrumentTrader %s ya está corriendo", self._config.instrument)
            return

        self._running = True
        if self._config.can_trade:
            await self._controller.initialize()
        self._queue = await self._event_bus.subscribe(
            self._topic, f"trader-{self._config.instrument}"
        )
        self._consumer_task = asyncio.create_task(
            self._consume(), name=f"trader-consume-{self._config.instrument}"
        )
        self._producer_task = asyncio.create_task(
            self._produce(), name=f"trader-produce-{self._config.instrument}"
        )
        logger.info(
            "▶ InstrumentTrader %s | %s %s live=%s can_trade=%s",
            self._config.instrument, self._config.strategy_kind.value,
            self._granularity, self._config.live, self._config.can_trade,
        )

    async def stop(self) -> None:
        """Cancela las tareas; lo que esté en vuelo se descarta."""
        self._running = False
        for task in (self._producer_task, self._consumer_task):
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        if self._queue is not None:
            await self._event_bus.unsubscribe(self._topic, self._queue)
            self._queue = None
        logger.info(
            "■ InstrumentTrader %s detenido. Eventos procesados: %d",
            self._config.instrument, self._events_processed,
        )

    async def wait_ready(self, timeout: float | None = None) -> None:
        """Espera a que el primer histórico esté cargado."""
        await asyncio.wait_for(self._ready.wait(), timeout)

    # ──────────────────────── Producer ───────────────────────────────────

    async def _bootstrap(self) -> None:
        """Descarta el buffer y lo reconstruye desde histórico."""
        candles = await self._feed.get_historical_candles(
            count=self._config.history_count, granularity=self._granularity,
        )
        if not candles:
            raise FeedUnavailableError(
                f"No historical candles for {self._config.instrument}",
                source=type(self._feed).__name__,
            )
        self._buffer = CandleBuffer(candles)
        self._aggregator = CandleAggregator(self._buffer, self._config.period_minutes)
        warmed = self._strategy.warm_up(self._buffer.snapshot())
        self._ready.set()
        logger.info(
            "Buffer %s reconstruido: %d velas (última %s), warm-up=%d",
            self._config.instrument, len(self._buffer),
            self._buffer.current.time.isoformat(), warmed,
        )

    async def _produce(self) -> None:
        while self._running:
            try:
                await self._bootstrap()
                self._connected_at = asyncio.get_running_loop().time()
                if self._config.live and self._feed.supports_streaming:
                    await self._stream_events()
                else:
                    await self._poll_events()
                if self._running:
                    logger.warning("Stream %s finalizado por el servidor", self._config.instrument)
            except asyncio.CancelledError:
                break
            except FeedUnavailableError as exc:
                self._reconnect_attempt += 1
                level = (
                    logging.ERROR
                    if self._reconnect_attempt > self._config.reconnect_escalate_after
                    else logging.WARNING
                )
                logger.log(
                    level,
                    "Feed %s no disponible (%s). Reintento #%d en %.0fs",
                    self._config.instrument, exc.message,
                    self._reconnect_attempt, self._config.reconnect_interval,
                )

            if not self._running:
                break
            await asyncio.sleep(self._config.reconnect_interval)

    def _mark_delivered(self) -> None:
        """
        El contador de reintentos solo vuelve a 0 cuando la conexión lleva
        al menos `reconnect_interval` entregando eventos.
        """
        if not self._reconnect_attempt:
            return
        elapsed = asyncio.get_running_loop().time() - self._connected_at
        if elapsed >= self._config.reconnect_interval:
            logger.info(
                "Feed %s recuperado tras %d reintentos",
                self._config.instrument, self._reconnect_attempt,
            )
            self._reconnect_attempt = 0

    async def _stream_events(self) -> None:
        async for event in self._feed.stream():
            if not self._running:
                break
            await self._event_bus.publish(self._topic, event)
            self._mark_delivered()

    async def _poll_events(self) -> None:
        while self._running:
            await self._event_bus.publish(self._topic, await self._poll_once())
            self._mark_delivered()
            await asyncio.sleep(self._config.poll_interval)

    async def _poll_once(self) -> PollUpdate:
        candles = await self._feed.get_historical_candles(
            from_time=self._buffer.current.time, granularity=self._granularity,
        )
        quote = await self._feed.get_current_quote()
        return PollUpdate(candles=list(candles), quote=quote)

    # ──────────────────────── Consumer ───────────────────────────────────

    async def _consume(self) -> None:
        """Un evento a la vez: como mucho una evaluación en vuelo."""
        assert self._queue is not None

        while self._running:
            try:
                try:
                    event = await asyncio.wait_for(self._queue.get(), timeout=1.0)
                except asyncio.TimeoutError:
                    await self._on_clock()
                    continue
                await self.process(event)
            except asyncio.CancelledError:
                logger.info("Consumidor %s cancelado", self._config.instrument)
                break
            except Exception as e:
                logger.error(
                    "Error procesando evento de %s: %s", self._config.instrument, e,
                    exc_info=True,
                )
                continue

    async def process(self, event: MarketEvent) -> Optional[StrategyResult]:
        """
        Procesa un evento de mercado y, si la vela cambió, evalúa la
        estrategia y actúa sobre la señal.

        Returns:
            El resultado de la estrategia, o None si no hubo evaluación.
        """
        quote: Optional[Quote] = None
        if isinstance(event, PollUpdate):
            updated = self._buffer.merge(event.candles) > 0
            quote = event.quote
        else:
            if self._aggregator is None:
                return None
            updated = self._aggregator.ingest(event).updated

        self._events_processed += 1
        if quote is not None:
            self._notify_quote(quote)
        await self._on_clock()
        if not updated:
            return None

        try:
            result = self._strategy.get_signal(self._buffer.snapshot())
        except InsufficientHistoryError as exc:
            logger.warning("%s: %s", self._config.instrument, exc.message)
            return None
        except StrategyBusyError:
            logger.debug("Evaluación en curso para %s, evento omitido", self._config.instrument)
            return None

        self._last_result = result
        if result.signal is Signal.NOTHING:
            return result
        if not self._config.can_trade:
            logger.info(
                "📣 %s %s (solo señal, trading desactivado)",
                self._config.instrument, result.signal.value,
            )
            return result

        if quote is None:
            quote = await self._feed.get_current_quote()
            self._notify_quote(quote)
        if not self._running:
            # Parado mientras se esperaba el precio
            return result
        if await self._controller.on_signal(result.signal, quote.bid, quote.ask):
            self._orders_acted += 1
        return result

    async def _on_clock(self) -> None:
        if self._config.can_trade:
            await self._controller.on_clock()

    def _notify_quote(self, quote: Quote) -> None:
        if self._quote_listener is not None:
            self._quote_listener(quote.bid, quote.ask, quote.time)

    # ──────────────────────── Estado ─────────────────────────────────────

    def signal_history(self) -> list[dict]:
        history = self._strategy.history
        return history.to_list() if history is not None else []

    @property
    def status(self) -> dict:
        current = self._buffer.current.to_dict() if len(self._buffer) else None
        last = self._last_result.signal.value if self._last_result else None
        return {
            "instrument": self._config.instrument,
            "venue": self._config.venue,
            "strategy": self._config.strategy_kind.value,
            "granularity": self._granularity,
            "running": self._running,
            "can_trade": self._config.can_trade,
            "candles": len(self._buffer),
            "current_candle": current,
            "last_signal": last,
            "events_processed": self._events_processed,
            "orders_acted": self._orders_acted,
            "reconnect_attempts": self._reconnect_attempt,
        }
