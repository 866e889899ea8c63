"""
TrendPulse – Settings (Pydantic BaseSettings)
=============================================
Configuración centralizada cargada desde variables de entorno / .env.

Los adaptadores de venue NO leen el entorno: el Container construye
OandaConfig / CoinbaseConfig a partir de estos campos.
"""

from __future__ import annotations

from pydantic_settings import BaseSettings
from pydantic import Field
from typing import List


class Settings(BaseSettings):
    # ─── App ────────────────────────────────────────────────────────────
    app_name: str = Field(default="TrendPulse")
    app_env: str = Field(default="development", description="development | production")
    log_level: str = Field(default="INFO")

    # ─── Trading ────────────────────────────────────────────────────────
    venue: str = Field(default="oanda", description="oanda | coinbase")
    instruments: List[str] = Field(
        default=["EUR_USD"],
        description="Instrumentos operados, uno InstrumentTrader por cada uno",
    )
    strategy_kind: str = Field(
        default="ichimoku-trend",
        description="ichimoku-trend | ichimoku-regular | sma-crossover | ema-crossover",
    )
    period_minutes: float = Field(default=60, description="Duración de la vela en minutos")
    live: bool = Field(default=True, description="Stream en vivo si el feed lo soporta")
    can_trade: bool = Field(default=False, description="Permite enviar órdenes al gateway")

    # ─── Feed ───────────────────────────────────────────────────────────
    poll_interval_seconds: float = Field(
        default=5.0, description="Intervalo del bucle de polling (seg)",
    )
    feed_reconnect_interval: float = Field(
        default=10.0, description="Espera fija (seg) entre reintentos de reconexión",
    )
    feed_reconnect_escalate_after: int = Field(
        default=3, description="Reintentos tras los que el aviso pasa a ERROR",
    )
    history_count: int = Field(default=500, description="Velas históricas al arrancar")

    # ─── Backtracking ───────────────────────────────────────────────────
    backtrack_count: int = Field(default=1500, description="Velas descargadas para backtrack")
    backtrack_window: int = Field(default=500, description="Ventana inicial del simulador")

    # ─── OANDA ──────────────────────────────────────────────────────────
    oanda_account_id: str = Field(default="", description="ID de cuenta OANDA")
    oanda_api_token: str = Field(default="", description="Token de la API v20")
    oanda_practice: bool = Field(default=True, description="Entorno practice (fxpractice)")

    # ─── Coinbase ───────────────────────────────────────────────────────
    coinbase_rest_url: str = Field(default="https://api.exchange.coinbase.com")
    coinbase_ws_url: str = Field(default="wss://ws-feed.exchange.coinbase.com")
    coinbase_account_currency: str = Field(default="EUR")
    coinbase_starting_balance: float = Field(
        default=1000.0, description="Balance de la cuenta sintética del venue spot",
    )

    # ─── Event Bus ──────────────────────────────────────────────────────
    event_bus_max_queue_size: int = Field(default=10_000)

    # ─── Server ─────────────────────────────────────────────────────────
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8888)
    debug: bool = Field(default=False)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }


# Singleton global – se importa donde se necesite
settings = Settings()
