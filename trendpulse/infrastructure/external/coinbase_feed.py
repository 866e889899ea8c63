"""
TrendPulse – Coinbase Exchange Market Data Feed
=================================================
IMarketDataFeed para un par spot de Coinbase (e.g. "BTC-EUR").

- Stream: WebSocket público, canales `ticker` (un trade → Tick con
  last_size como volumen) y `heartbeat` (→ Heartbeat).
- REST (requests en asyncio.to_thread): velas históricas y ticker.

La reconexión NO se hace aquí: una desconexión se propaga como
FeedUnavailableError y el InstrumentTrader reconstruye buffer y stream.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, List, Optional, Union

import requests
import websockets
from pydantic import BaseModel, ConfigDict

from trendpulse.application.ports.exceptions import FeedUnavailableError, ParseError
from trendpulse.application.ports.market_data_feed import IMarketDataFeed
from trendpulse.domain.entities.candle import Candle
from trendpulse.domain.value_objects.tick import Heartbeat, Quote, Tick
from trendpulse.shared.logging.logger import get_logger

logger = get_logger("coinbase_feed")

# Granularidades aceptadas por /products/<id>/candles (segundos)
SUPPORTED_GRANULARITIES = (60, 300, 900, 3600, 21600, 86400)
MAX_CANDLES_PER_REQUEST = 300


class CoinbaseConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    rest_url: str = "https://api.exchange.coinbase.com"
    ws_url: str = "wss://ws-feed.exchange.coinbase.com"
    timeout: float = 10.0


def granularity_seconds(granularity: str) -> int:
    """
    Granularidad del broker ("M15", "H1") a segundos de Coinbase.

    Coinbase solo sirve buckets fijos: un periodo sin bucket exacto se
    rechaza en vez de mezclar tamaños de vela con el agregador.
    """
    unit, amount = granularity[0], granularity[1:]
    factor = {"S": 1, "M": 60, "H": 3600, "D": 86400, "W": 604800}.get(unit)
    # "M" a secas es el mes de OANDA
    if factor is None or (not amount and unit not in ("D", "W")):
        raise ValueError(f"Unsupported granularity {granularity!r}")
    seconds = factor * (int(amount) if amount else 1)
    if seconds not in SUPPORTED_GRANULARITIES:
        raise ValueError(
            f"Coinbase has no {granularity} candles; "
            f"supported periods (s): {', '.join(map(str, SUPPORTED_GRANULARITIES))}"
        )
    return seconds


def parse_time(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError) as exc:
        raise ParseError(f"Invalid Coinbase time {value!r}", value) from exc


def parse_rate(row: list) -> Candle:
    """[time, low, high, open, close, volume]"""
    try:
        time, low, high, open_, close, volume = row[:6]
        return Candle(
            time=datetime.fromtimestamp(int(time), tz=timezone.utc),
            open=float(open_),
            high=float(high),
            low=float(low),
            close=float(close),
            volume=float(volume),
        )
    except (TypeError, ValueError) as exc:
        raise ParseError("Malformed Coinbase candle", row) from exc


def parse_ticker(payload: dict) -> Quote:
    try:
        return Quote(
            bid=float(payload["bid"]),
            ask=float(payload["ask"]),
            time=parse_time(payload["time"]),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise ParseError("Malformed Coinbase ticker", payload) from exc


def parse_message(raw: Union[str, bytes]) -> Optional[Union[Tick, Heartbeat]]:
    """Mensaje del WebSocket. None para tipos sin precio (subscriptions...)."""
    try:
        data = json.loads(raw)
    except ValueError as exc:
        raise ParseError("Non-JSON Coinbase message", raw) from exc
    if not isinstance(data, dict):
        raise ParseError("Unexpected Coinbase message", data)

    kind = data.get("type")
    if kind == "error":
        raise FeedUnavailableError(
            f"Coinbase error: {data.get('message', '?')} {data.get('reason', '')}".strip(),
            source="coinbase",
        )
    if kind == "heartbeat":
        return Heartbeat(time=parse_time(data.get("time", "")))
    if kind == "ticker":
        try:
            return Tick(
                time=parse_time(data["time"]),
                price=float(data["price"]),
                volume=float(data.get("last_size", 0)),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ParseError("Malformed Coinbase ticker message", data) from exc
    return None


class CoinbaseMarketDataFeed(IMarketDataFeed):
    def __init__(
        self,
        config: CoinbaseConfig,
        instrument: str,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._config = config
        self.instrument = instrument
        self._session = session or requests.Session()

    # ──────────────────────── REST ──────────────────────────────────────

    def _get(self, path: str, params: Optional[dict] = None) -> Any:
        url = f"{self._config.rest_url}{path}"
        try:
            resp = self._session.get(url, params=params, timeout=self._config.timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise FeedUnavailableError(f"GET {path}: {exc}", source="coinbase") from exc
        try:
            return resp.json()
        except ValueError as exc:
            raise ParseError(f"Non-JSON response from {path}", resp.text[:200]) from exc

    async def get_historical_candles(
        self,
        *,
        count: Optional[int] = None,
        from_time: Optional[datetime] = None,
        granularity: str = "H1",
    ) -> List[Candle]:
        seconds = granularity_seconds(granularity)
        path = f"/products/{self.instrument}/candles"
        end = datetime.now(timezone.utc)
        if from_time is not None:
            params = {"granularity": seconds, "start": from_time.isoformat(), "end": end.isoformat()}
            rows = await asyncio.to_thread(self._get, path, params)
            return [parse_rate(row) for row in rows]

        # Máximo 300 velas por petición: se pagina hacia atrás
        candles: dict[datetime, Candle] = {}
        remaining = count or MAX_CANDLES_PER_REQUEST
        while remaining > 0:
            span = min(remaining, MAX_CANDLES_PER_REQUEST)
            start = end - timedelta(seconds=seconds * span)
            params = {"granularity": seconds, "start": start.isoformat(), "end": end.isoformat()}
            rows = await asyncio.to_thread(self._get, path, params)
            if not rows:
                break
            for row in rows:
                candle = parse_rate(row)
                candles[candle.time] = candle
            remaining -= span
            end = start
        return list(candles.values())

    async def get_current_quote(self) -> Quote:
        data = await asyncio.to_thread(self._get, f"/products/{self.instrument}/ticker")
        return parse_ticker(data)

    # ──────────────────────── WebSocket ─────────────────────────────────

    @property
    def supports_streaming(self) -> bool:
        return True

    async def stream(self) -> AsyncIterator[Union[Tick, Heartbeat]]:
        subscribe = {
            "type": "subscribe",
            "product_ids": [self.instrument],
            "channels": ["ticker", "heartbeat"],
        }
        try:
            async with websockets.connect(
                self._config.ws_url, close_timeout=10, max_size=2**20,
            ) as ws:
                await ws.send(json.dumps(subscribe))
                logger.info("✓ Conectado a Coinbase WebSocket (%s)", self.instrument)
                async for raw in ws:
                    try:
                        event = parse_message(raw)
                    except ParseError as exc:
                        logger.warning("Mensaje Coinbase descartado: %s", exc.message)
                        continue
                    if event is not None:
                        yield event
        except websockets.exceptions.ConnectionClosed as exc:
            raise FeedUnavailableError(f"Coinbase connection closed: {exc}", source="coinbase") from exc
        except OSError as exc:
            raise FeedUnavailableError(f"Coinbase network error: {exc}", source="coinbase") from exc
