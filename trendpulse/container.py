"""
Dependency Injection Container.

Único lugar donde se crean dependencias concretas: configs de venue,
clientes HTTP, feeds, gateways, InstrumentTraders y el caso de uso de
backtracking.

Los adaptadores reciben OandaConfig / CoinbaseConfig explícitos; nunca
leen el entorno por su cuenta.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from trendpulse.application.ports.execution_gateway import IExecutionGateway
from trendpulse.application.ports.market_data_feed import IMarketDataFeed
from trendpulse.application.services.synthetic_ledger import SyntheticLedgerGateway
from trendpulse.application.use_cases.backtrack_usecase import BacktrackUseCase
from trendpulse.application.use_cases.instrument_trader import InstrumentTrader, TraderConfig
from trendpulse.domain.entities.position import AccountState, InstrumentMeta
from trendpulse.domain.services.market_hours import to_granularity
from trendpulse.domain.services.strategies import StrategyKind
from trendpulse.infrastructure.external.coinbase_feed import (
    CoinbaseConfig,
    CoinbaseMarketDataFeed,
    granularity_seconds,
)
from trendpulse.infrastructure.external.oanda_client import (
    OandaConfig,
    OandaExecutionGateway,
    OandaMarketDataFeed,
    OandaRestClient,
)
from trendpulse.infrastructure.messaging.event_bus import EventBus
from trendpulse.shared.config.settings import Settings

VENUE_OANDA = "oanda"
VENUE_COINBASE = "coinbase"


@dataclass
class Container:
    """
    Contenedor de Inyección de Dependencias.

    Feeds, gateways y traders se crean perezosamente, uno por instrumento.
    """

    settings: Settings = field(default_factory=Settings)

    _event_bus: Optional[EventBus] = None
    _oanda_client: Optional[OandaRestClient] = None
    _backtrack_usecase: Optional[BacktrackUseCase] = None

    _feeds: Dict[str, IMarketDataFeed] = field(default_factory=dict)
    _gateways: Dict[str, IExecutionGateway] = field(default_factory=dict)
    _traders: Dict[str, InstrumentTrader] = field(default_factory=dict)

    # ==================== Configs de venue ====================

    @property
    def venue(self) -> str:
        return self.settings.venue.lower()

    @property
    def oanda_config(self) -> OandaConfig:
        return OandaConfig(
            account_id=self.settings.oanda_account_id,
            api_token=self.settings.oanda_api_token,
            practice=self.settings.oanda_practice,
        )

    @property
    def coinbase_config(self) -> CoinbaseConfig:
        return CoinbaseConfig(
            rest_url=self.settings.coinbase_rest_url,
            ws_url=self.settings.coinbase_ws_url,
        )

    # ==================== Infraestructura ====================

    @property
    def event_bus(self) -> EventBus:
        if self._event_bus is None:
            self._event_bus = EventBus(max_queue_size=self.settings.event_bus_max_queue_size)
        return self._event_bus

    @property
    def oanda_client(self) -> OandaRestClient:
        if self._oanda_client is None:
            self._oanda_client = OandaRestClient(self.oanda_config)
        return self._oanda_client

    def feed(self, instrument: str) -> IMarketDataFeed:
        """Feed del venue configurado para `instrument` (cacheado)."""
        if instrument not in self._feeds:
            if self.venue == VENUE_COINBASE:
                self._feeds[instrument] = CoinbaseMarketDataFeed(self.coinbase_config, instrument)
            elif self.venue == VENUE_OANDA:
                self._feeds[instrument] = OandaMarketDataFeed(self.oanda_client, instrument)
            else:
                raise ValueError(f"Unknown venue: {self.settings.venue}")
        return self._feeds[instrument]

    def gateway(self, instrument: str) -> IExecutionGateway:
        """
        Gateway de ejecución. En Coinbase se opera en papel contra un
        ledger sintético alimentado con los precios en vivo.
        """
        if instrument not in self._gateways:
            if self.venue == VENUE_COINBASE:
                self._gateways[instrument] = self._paper_gateway(instrument)
            elif self.venue == VENUE_OANDA:
                self._gateways[instrument] = OandaExecutionGateway(self.oanda_client, instrument)
            else:
                raise ValueError(f"Unknown venue: {self.settings.venue}")
        return self._gateways[instrument]

    def _paper_gateway(self, instrument: str) -> SyntheticLedgerGateway:
        account = AccountState(
            balance=self.settings.coinbase_starting_balance,
            margin_rate=1.0,
            margin_call_percent=0.0,
            currency=self.settings.coinbase_account_currency,
        )
        meta = InstrumentMeta(
            name=instrument,
            pip_location=-2,
            min_trailing_stop_distance=0.0,
            margin_rate=1.0,
            display_precision=2,
        )
        return SyntheticLedgerGateway(account, meta, stop_losses=True)

    # ==================== Use Cases ====================

    def trader_config(self, instrument: str) -> TraderConfig:
        s = self.settings
        if self.venue == VENUE_COINBASE:
            # Falla al arrancar si Coinbase no tiene velas de este periodo
            granularity_seconds(to_granularity(s.period_minutes))
        return TraderConfig(
            instrument=instrument,
            strategy_kind=StrategyKind(s.strategy_kind),
            period_minutes=s.period_minutes,
            live=s.live,
            venue=self.venue,
            instruments_traded=len(s.instruments),
            can_trade=s.can_trade,
            history_count=s.history_count,
            poll_interval=s.poll_interval_seconds,
            reconnect_interval=s.feed_reconnect_interval,
            reconnect_escalate_after=s.feed_reconnect_escalate_after,
        )

    def trader(self, instrument: str) -> InstrumentTrader:
        if instrument not in self._traders:
            gateway = self.gateway(instrument)
            listener = gateway.set_quote if isinstance(gateway, SyntheticLedgerGateway) else None
            self._traders[instrument] = InstrumentTrader(
                self.trader_config(instrument),
                feed=self.feed(instrument),
                gateway=gateway,
                event_bus=self.event_bus,
                quote_listener=listener,
            )
        return self._traders[instrument]

    @property
    def traders(self) -> Dict[str, InstrumentTrader]:
        """Un trader por instrumento configurado, en orden de configuración."""
        for instrument in self.settings.instruments:
            self.trader(instrument)
        return self._traders

    @property
    def backtrack_usecase(self) -> BacktrackUseCase:
        if self._backtrack_usecase is None:
            self._backtrack_usecase = BacktrackUseCase(
                feed_factory=self.feed,
                gateway_factory=self.gateway,
                count=self.settings.backtrack_count,
                window=self.settings.backtrack_window,
                instruments_traded=len(self.settings.instruments),
            )
        return self._backtrack_usecase

    # ==================== Lifecycle ====================

    def close(self) -> None:
        if self._oanda_client is not None:
            self._oanda_client.close()

    def reset(self) -> None:
        """Resetea todas las instancias (útil para tests)."""
        self._event_bus = None
        self._oanda_client = None
        self._backtrack_usecase = None
        self._feeds.clear()
        self._gateways.clear()
        self._traders.clear()

    def override(self, name: str, instance: Any) -> None:
        """
        Override de una dependencia (útil para tests con fakes).

        Args:
            name: nombre de la dependencia (ej: 'event_bus')
            instance: instancia a usar
        """
        attr_name = f"_{name}"
        if hasattr(self, attr_name):
            setattr(self, attr_name, instance)
        else:
            raise ValueError(f"Unknown dependency: {name}")


# ==================== Global Container ====================

_container: Optional[Container] = None


def get_container() -> Container:
    """Instancia global del contenedor (singleton)."""
    global _container
    if _container is None:
        _container = Container()
    return _container


def reset_container() -> None:
    global _container
    if _container is not None:
        _container.reset()
    _container = None


def init_container(settings: Optional[Settings] = None) -> Container:
    """
    Inicializa el contenedor con configuración específica.

    Args:
        settings: Configuración opcional. Si es None, usa valores por defecto.
    """
    global _container
    if settings is None:
        settings = Settings()
    _container = Container(settings=settings)
    return _container
