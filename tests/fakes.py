"""
Fakes y constructores de velas compartidos por los tests.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence, Union

from trendpulse.application.ports.exceptions import FeedUnavailableError, GatewayRequestFailedError
from trendpulse.application.ports.execution_gateway import IExecutionGateway
from trendpulse.application.ports.market_data_feed import IMarketDataFeed
from trendpulse.domain.entities.candle import Candle
from trendpulse.domain.entities.position import (
    AccountState,
    InstrumentMeta,
    Position,
    PositionSnapshot,
    Side,
)
from trendpulse.domain.value_objects.tick import Heartbeat, Quote, Tick

# Lunes
T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)
HOUR = timedelta(hours=1)


def candle(
    index: int,
    close: float,
    *,
    open_: Optional[float] = None,
    high: Optional[float] = None,
    low: Optional[float] = None,
    volume: float = 1.0,
    period: timedelta = HOUR,
) -> Candle:
    open_ = close if open_ is None else open_
    return Candle(
        time=T0 + index * period,
        open=open_,
        high=max(open_, close) if high is None else high,
        low=min(open_, close) if low is None else low,
        close=close,
        volume=volume,
    )


def flat_candles(closes: List[float], period: timedelta = HOUR) -> List[Candle]:
    """Velas O=H=L=C, oldest-first."""
    return [candle(i, c, period=period) for i, c in enumerate(closes)]


def trend_price(t: int) -> float:
    """
    Serie horaria: subida, caída corta, rebote con cruce alcista sobre
    la nube, nueva caída y nuevo rebote.
    """
    if t <= 180:
        return 100 + t
    if t <= 192:
        return 460 - t
    if t <= 206:
        return t + 76
    if t <= 226:
        return 488 - t
    return t + 36


TREND_SERIES = flat_candles([trend_price(t) for t in range(250)])


def newest_first(candles: List[Candle], n: int) -> List[Candle]:
    """Las `n` velas más antiguas, con la más nueva en el índice 0."""
    return list(reversed(candles[:n]))


class FakeMarketDataFeed(IMarketDataFeed):
    def __init__(
        self,
        instrument: str = "EUR_USD",
        candles: Optional[List[Candle]] = None,
        quote: Optional[Quote] = None,
    ) -> None:
        self.instrument = instrument
        self.candles = list(candles or [])
        self.quote = quote or Quote(bid=1.1, ask=1.1002, time=T0)
        self.requests: list[dict] = []

    async def get_historical_candles(self, *, count=None, from_time=None, granularity="H1"):
        self.requests.append({"count": count, "from_time": from_time, "granularity": granularity})
        if from_time is not None:
            return [c for c in self.candles if c.time >= from_time]
        if count is not None:
            return self.candles[-count:]
        return list(self.candles)

    async def get_current_quote(self) -> Quote:
        return self.quote


class StreamingMarketDataFeed(FakeMarketDataFeed):
    """
    Feed push: cada conexión entrega `events` y después se cae
    (`drop=True`) o queda abierta sin datos.
    """

    def __init__(
        self,
        instrument: str = "EUR_USD",
        candles: Optional[List[Candle]] = None,
        quote: Optional[Quote] = None,
        *,
        events: Sequence[Union[Tick, Heartbeat]] = (),
        drop: bool = False,
    ) -> None:
        super().__init__(instrument, candles, quote)
        self.events = list(events)
        self.drop = drop
        self.streams_opened = 0
        self.delivered = 0

    @property
    def supports_streaming(self) -> bool:
        return True

    @property
    def bootstraps(self) -> int:
        return sum(1 for r in self.requests if r["count"] is not None)

    async def stream(self):
        self.streams_opened += 1
        for event in self.events:
            self.delivered += 1
            yield event
        if self.drop:
            raise FeedUnavailableError("stream closed by peer", source="fake")
        await asyncio.Event().wait()


class FakeExecutionGateway(IExecutionGateway):
    """Gateway en memoria que registra cada llamada en `calls`."""

    def __init__(
        self,
        account: AccountState,
        meta: InstrumentMeta,
        *,
        conversion_rate: float = 1.0,
        fail_orders: bool = False,
    ) -> None:
        self.instrument = meta.name
        self.account = account
        self.meta = meta
        self.conversion_rate = conversion_rate
        self.fail_orders = fail_orders
        self.positions: dict[Side, Position] = {}
        self.calls: list[tuple] = []

    def hold(self, side: Side, units: float = 100, price: float = 1.1) -> None:
        self.positions[side] = Position(self.instrument, side, units, price)

    @property
    def call_names(self) -> list[str]:
        return [c[0] for c in self.calls]

    async def get_account_summary(self) -> AccountState:
        return self.account

    async def get_instrument_meta(self) -> InstrumentMeta:
        return self.meta

    async def get_open_position(self) -> PositionSnapshot:
        return PositionSnapshot(
            self.instrument,
            long=self.positions.get(Side.LONG),
            short=self.positions.get(Side.SHORT),
        )

    async def open_long(self, units: int, stop_loss_distance: float) -> None:
        if self.fail_orders:
            raise GatewayRequestFailedError("order rejected", status=400)
        self.calls.append(("open_long", units, stop_loss_distance))
        self.hold(Side.LONG, units)

    async def open_short(self, units: int, stop_loss_distance: float) -> None:
        if self.fail_orders:
            raise GatewayRequestFailedError("order rejected", status=400)
        self.calls.append(("open_short", units, stop_loss_distance))
        self.hold(Side.SHORT, units)

    async def close_long(self) -> None:
        self.calls.append(("close_long",))
        self.positions.pop(Side.LONG, None)

    async def close_short(self) -> None:
        self.calls.append(("close_short",))
        self.positions.pop(Side.SHORT, None)

    async def get_conversion_rate(self, currency: str, as_of=None) -> float:
        self.calls.append(("get_conversion_rate", currency, as_of))
        return self.conversion_rate
