"""
TrendPulse – OANDA v20 Adapters
=================================
Cliente REST de OANDA (requests, ejecutado con asyncio.to_thread) y los
dos adaptadores construidos sobre él:

- OandaMarketDataFeed    → IMarketDataFeed (velas MBA, pricing, stream)
- OandaExecutionGateway  → IExecutionGateway (cuenta, posiciones, órdenes)

STREAM DE PRECIOS:
  Respuesta HTTP chunked, una línea JSON por mensaje:
    {"type":"PRICE","time":...,"bids":[...],"asks":[...]}  → Tick (mid)
    {"type":"HEARTBEAT","time":...}                        → Heartbeat
  Líneas malformadas se registran y se descartan.

ERRORES:
- Fallo HTTP / red en el gateway → GatewayRequestFailedError
- Fallo HTTP / red en el feed    → FeedUnavailableError
- Payload inesperado             → ParseError
"""

from __future__ import annotations

import asyncio
import json
import re
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, Iterator, List, Optional, Union

import requests
from pydantic import BaseModel, ConfigDict

from trendpulse.application.ports.exceptions import (
    FeedUnavailableError,
    GatewayRequestFailedError,
    ParseError,
)
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
from trendpulse.shared.logging.logger import get_logger

logger = get_logger("oanda_client")

PRACTICE_REST_URL = "https://api-fxpractice.oanda.com"
LIVE_REST_URL = "https://api-fxtrade.oanda.com"
PRACTICE_STREAM_URL = "https://stream-fxpractice.oanda.com"
LIVE_STREAM_URL = "https://stream-fxtrade.oanda.com"


class OandaConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    account_id: str
    api_token: str
    practice: bool = True
    timeout: float = 10.0

    @property
    def rest_url(self) -> str:
        return PRACTICE_REST_URL if self.practice else LIVE_REST_URL

    @property
    def stream_url(self) -> str:
        return PRACTICE_STREAM_URL if self.practice else LIVE_STREAM_URL


# ════════════════════════════════════════════════════════════════
#  PARSERS
# ════════════════════════════════════════════════════════════════

_UNIX_TIME = re.compile(r"^\d+(\.\d+)?$")


def parse_time(value: str) -> datetime:
    """RFC3339 con nanosegundos ("...T10:00:00.000000000Z") o UNIX."""
    try:
        if _UNIX_TIME.match(value):
            return datetime.fromtimestamp(float(value), tz=timezone.utc)
        main, _, frac = value.rstrip("Z").partition(".")
        parsed = datetime.strptime(main, "%Y-%m-%dT%H:%M:%S").replace(tzinfo=timezone.utc)
        if frac:
            parsed += timedelta(microseconds=int(frac[:6].ljust(6, "0")))
        return parsed
    except (TypeError, ValueError) as exc:
        raise ParseError(f"Invalid OANDA time {value!r}", value) from exc


def format_time(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def parse_candle(payload: dict) -> Candle:
    """Vela con price=MBA: OHLC mid + cierre bid/ask."""
    try:
        mid = payload["mid"]
        bid = payload.get("bid")
        ask = payload.get("ask")
        return Candle(
            time=parse_time(payload["time"]),
            open=float(mid["o"]),
            high=float(mid["h"]),
            low=float(mid["l"]),
            close=float(mid["c"]),
            volume=float(payload.get("volume", 0)),
            bid_close=float(bid["c"]) if bid else None,
            ask_close=float(ask["c"]) if ask else None,
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise ParseError("Malformed OANDA candle", payload) from exc


def parse_price(payload: dict) -> Quote:
    try:
        return Quote(
            bid=float(payload["bids"][0]["price"]),
            ask=float(payload["asks"][0]["price"]),
            time=parse_time(payload["time"]),
        )
    except (KeyError, IndexError, TypeError, ValueError) as exc:
        raise ParseError("Malformed OANDA price", payload) from exc


def parse_stream_line(line: Union[str, bytes]) -> Optional[Union[Tick, Heartbeat]]:
    """Una línea del pricing stream. None para tipos desconocidos."""
    try:
        payload = json.loads(line)
    except ValueError as exc:
        raise ParseError("Non-JSON line in OANDA stream", line) from exc
    if not isinstance(payload, dict):
        raise ParseError("Unexpected OANDA stream payload", payload)

    kind = payload.get("type")
    if kind == "HEARTBEAT":
        return Heartbeat(time=parse_time(payload.get("time", "")))
    if kind == "PRICE":
        quote = parse_price(payload)
        return Tick.from_quote(quote.bid, quote.ask, quote.time)
    return None


def parse_account(payload: dict) -> AccountState:
    try:
        return AccountState(
            balance=float(payload["balance"]),
            margin_rate=float(payload["marginRate"]),
            margin_call_percent=float(payload.get("marginCallPercent", 0)),
            currency=payload["currency"],
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise ParseError("Malformed OANDA account summary", payload) from exc


def parse_instrument(payload: dict) -> InstrumentMeta:
    try:
        return InstrumentMeta(
            name=payload["name"],
            pip_location=int(payload["pipLocation"]),
            min_trailing_stop_distance=float(payload.get("minimumTrailingStopDistance", 0)),
            margin_rate=float(payload["marginRate"]),
            display_precision=int(payload.get("displayPrecision", 5)),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise ParseError("Malformed OANDA instrument", payload) from exc


def _parse_side(instrument: str, side: Side, payload: Optional[dict]) -> Optional[Position]:
    if not payload:
        return None
    units = abs(float(payload.get("units", 0)))
    if units == 0:
        return None
    return Position(instrument, side, units, float(payload.get("averagePrice", 0)))


def parse_position(instrument: str, payload: Optional[dict]) -> PositionSnapshot:
    if not payload:
        return PositionSnapshot(instrument)
    try:
        return PositionSnapshot(
            instrument=instrument,
            long=_parse_side(instrument, Side.LONG, payload.get("long")),
            short=_parse_side(instrument, Side.SHORT, payload.get("short")),
        )
    except (TypeError, ValueError) as exc:
        raise ParseError("Malformed OANDA position", payload) from exc


# ════════════════════════════════════════════════════════════════
#  CLIENTE REST
# ════════════════════════════════════════════════════════════════

class OandaRestClient:
    """
    Transporte HTTP de la API v20. Los métodos síncronos usan requests;
    `request()` los ejecuta en un hilo para no bloquear el event loop.
    """

    def __init__(self, config: OandaConfig, session: Optional[requests.Session] = None) -> None:
        self._config = config
        self._session = session or requests.Session()
        self._session.headers.update({
            "Authorization": f"Bearer {config.api_token}",
            "Content-Type": "application/json",
            "Accept-Datetime-Format": "RFC3339",
        })

    @property
    def account_path(self) -> str:
        return f"/v3/accounts/{self._config.account_id}"

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict] = None,
        body: Optional[dict] = None,
    ) -> Any:
        url = f"{self._config.rest_url}{path}"
        try:
            resp = self._session.request(
                method, url, params=params, json=body, timeout=self._config.timeout,
            )
        except requests.RequestException as exc:
            raise GatewayRequestFailedError(f"{method} {path}: {exc}") from exc

        if resp.status_code >= 400:
            raise GatewayRequestFailedError(
                f"{method} {path}: {resp.text[:200]}", status=resp.status_code,
            )
        try:
            return resp.json()
        except ValueError as exc:
            raise ParseError(f"Non-JSON response from {path}", resp.text[:200]) from exc

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[dict] = None,
        body: Optional[dict] = None,
    ) -> Any:
        return await asyncio.to_thread(self._request, method, path, params, body)

    def open_stream(self, path: str, params: Optional[dict] = None) -> requests.Response:
        url = f"{self._config.stream_url}{path}"
        try:
            resp = self._session.get(url, params=params, stream=True, timeout=self._config.timeout)
        except requests.RequestException as exc:
            raise FeedUnavailableError(f"GET {path}: {exc}", source="oanda") from exc
        if resp.status_code >= 400:
            resp.close()
            raise FeedUnavailableError(
                f"GET {path}: HTTP {resp.status_code}", source="oanda",
            )
        return resp

    def close(self) -> None:
        self._session.close()


# ════════════════════════════════════════════════════════════════
#  FEED
# ════════════════════════════════════════════════════════════════

class OandaMarketDataFeed(IMarketDataFeed):
    def __init__(self, client: OandaRestClient, instrument: str) -> None:
        self._client = client
        self.instrument = instrument

    async def _get(self, path: str, params: Optional[dict] = None) -> Any:
        try:
            return await self._client.request("GET", path, params)
        except GatewayRequestFailedError as exc:
            raise FeedUnavailableError(exc.message, source="oanda") from exc

    async def get_historical_candles(
        self,
        *,
        count: Optional[int] = None,
        from_time: Optional[datetime] = None,
        granularity: str = "H1",
    ) -> List[Candle]:
        params: dict = {"price": "MBA", "granularity": granularity}
        if from_time is not None:
            params["from"] = format_time(from_time)
        else:
            params["count"] = count or 500
        data = await self._get(f"/v3/instruments/{self.instrument}/candles", params)
        return [parse_candle(c) for c in data.get("candles", [])]

    async def get_current_quote(self) -> Quote:
        data = await self._get(
            f"{self._client.account_path}/pricing", {"instruments": self.instrument},
        )
        prices = data.get("prices") or []
        if not prices:
            raise ParseError("Empty OANDA pricing response", data)
        return parse_price(prices[0])

    @property
    def supports_streaming(self) -> bool:
        return True

    async def stream(self) -> AsyncIterator[Union[Tick, Heartbeat]]:
        resp = await asyncio.to_thread(
            self._client.open_stream,
            f"{self._client.account_path}/pricing/stream",
            {"instruments": self.instrument},
        )
        lines: Iterator[bytes] = resp.iter_lines()
        logger.info("✓ Pricing stream OANDA abierto para %s", self.instrument)
        try:
            while True:
                try:
                    line = await asyncio.to_thread(next, lines, None)
                except requests.RequestException as exc:
                    raise FeedUnavailableError(f"OANDA stream lost: {exc}", source="oanda") from exc
                if line is None:
                    return
                if not line:
                    continue
                try:
                    event = parse_stream_line(line)
                except ParseError as exc:
                    logger.warning("Línea de stream descartada: %s", exc.message)
                    continue
                if event is not None:
                    yield event
        finally:
            resp.close()


# ════════════════════════════════════════════════════════════════
#  GATEWAY
# ════════════════════════════════════════════════════════════════

class OandaExecutionGateway(IExecutionGateway):
    def __init__(self, client: OandaRestClient, instrument: str) -> None:
        self._client = client
        self.instrument = instrument
        self._account_currency: Optional[str] = None
        self._currency_pairs: Optional[List[str]] = None

    async def get_account_summary(self) -> AccountState:
        data = await self._client.request("GET", f"{self._client.account_path}/summary")
        account = parse_account(data.get("account", {}))
        self._account_currency = account.currency
        return account

    async def get_instrument_meta(self) -> InstrumentMeta:
        data = await self._client.request(
            "GET", f"{self._client.account_path}/instruments",
            {"instruments": self.instrument},
        )
        instruments = data.get("instruments") or []
        if not instruments:
            raise ParseError(f"Unknown OANDA instrument {self.instrument}", data)
        return parse_instrument(instruments[0])

    async def get_open_position(self) -> PositionSnapshot:
        try:
            data = await self._client.request(
                "GET", f"{self._client.account_path}/positions/{self.instrument}",
            )
        except GatewayRequestFailedError as exc:
            # Sin posición previa en el instrumento OANDA responde 404
            if exc.status == 404:
                return PositionSnapshot(self.instrument)
            raise
        return parse_position(self.instrument, data.get("position"))

    async def _order(self, units: int, stop_loss_distance: float) -> None:
        body = {
            "order": {
                "type": "MARKET",
                "instrument": self.instrument,
                "units": str(units),
                "timeInForce": "FOK",
                "positionFill": "DEFAULT",
                "stopLossOnFill": {
                    "timeInForce": "GTC",
                    "distance": str(stop_loss_distance),
                },
            }
        }
        await self._client.request("POST", f"{self._client.account_path}/orders", body=body)

    async def open_long(self, units: int, stop_loss_distance: float) -> None:
        await self._order(units, stop_loss_distance)

    async def open_short(self, units: int, stop_loss_distance: float) -> None:
        await self._order(-units, stop_loss_distance)

    async def close_long(self) -> None:
        await self._client.request(
            "PUT", f"{self._client.account_path}/positions/{self.instrument}/close",
            body={"longUnits": "ALL"},
        )

    async def close_short(self) -> None:
        await self._client.request(
            "PUT", f"{self._client.account_path}/positions/{self.instrument}/close",
            body={"shortUnits": "ALL"},
        )

    async def _account_currency_code(self) -> str:
        if self._account_currency is None:
            await self.get_account_summary()
        return self._account_currency

    async def _pairs(self) -> List[str]:
        if self._currency_pairs is None:
            data = await self._client.request("GET", f"{self._client.account_path}/instruments")
            self._currency_pairs = [
                i["name"] for i in data.get("instruments", []) if i.get("type") == "CURRENCY"
            ]
        return self._currency_pairs

    async def get_conversion_rate(self, currency: str, as_of: Optional[datetime] = None) -> float:
        home = await self._account_currency_code()
        if currency == home:
            return 1.0
        if as_of is None:
            return await self._live_conversion_rate(currency)
        return await self._past_conversion_rate(currency, home, as_of)

    async def _live_conversion_rate(self, currency: str) -> float:
        data = await self._client.request(
            "GET", f"{self._client.account_path}/pricing",
            {"instruments": self.instrument, "includeHomeConversions": "true"},
        )
        for conversion in data.get("homeConversions", []):
            if conversion.get("currency") == currency:
                return float(conversion["positionValue"])
        raise ParseError(f"No home conversion for {currency}", data)

    async def _past_conversion_rate(self, currency: str, home: str, as_of: datetime) -> float:
        """Cierre del par que une `currency` con la divisa de la cuenta."""
        pair = next(
            (p for p in await self._pairs() if currency in p.split("_") and home in p.split("_")),
            None,
        )
        if pair is None:
            raise GatewayRequestFailedError(f"No currency pair joins {currency} and {home}")
        data = await self._client.request(
            "GET", f"/v3/instruments/{pair}/candles",
            {"price": "M", "granularity": "M1", "count": 1, "from": format_time(as_of)},
        )
        candles = data.get("candles") or []
        if not candles:
            raise ParseError(f"No {pair} candle at {as_of.isoformat()}", data)
        close = float(candles[0]["mid"]["c"])
        return close if pair.startswith(currency) else 1 / close
