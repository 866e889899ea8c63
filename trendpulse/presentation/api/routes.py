"""
TrendPulse – API Routes (FastAPI)
===================================
Endpoints REST de solo lectura sobre los InstrumentTraders en marcha.
Ningún endpoint lanza backtracks (eso es la CLI).

Endpoints disponibles:
  GET  /api/health                              → health check
  GET  /api/instruments                         → estado de cada trader
  GET  /api/instruments/{instrument}            → estado de un trader
  GET  /api/instruments/{instrument}/candles    → últimas N velas
  GET  /api/instruments/{instrument}/signals    → historial de señales
"""

from __future__ import annotations

from typing import Dict, Optional

from fastapi import APIRouter, HTTPException

from trendpulse.application.use_cases.instrument_trader import InstrumentTrader
from trendpulse.presentation.api.schemas import (
    HealthResponse,
    InstrumentsResponse,
    InstrumentStatusSchema,
    SignalsResponse,
)
from trendpulse.shared.logging.logger import get_logger

logger = get_logger("api.routes")

router = APIRouter()

# Traders inyectados desde main.py
_traders: Optional[Dict[str, InstrumentTrader]] = None


def init_routes(traders: Dict[str, InstrumentTrader]) -> None:
    """Inyectar dependencias desde main.py al arrancar."""
    global _traders
    _traders = traders


def _get_trader(instrument: str) -> InstrumentTrader:
    if _traders is None:
        raise HTTPException(status_code=503, detail="Server not ready")
    trader = _traders.get(instrument)
    if trader is None:
        raise HTTPException(status_code=404, detail=f"Unknown instrument '{instrument}'")
    return trader


@router.get("/api/health", response_model=HealthResponse)
async def health_check() -> dict:
    """Health check para monitoreo."""
    return {"status": "ok", "service": "trendpulse", "traders": len(_traders or {})}


@router.get("/api/instruments", response_model=InstrumentsResponse)
async def list_instruments() -> dict:
    statuses = [t.status for t in (_traders or {}).values()]
    return {"count": len(statuses), "instruments": statuses}


@router.get("/api/instruments/{instrument}", response_model=InstrumentStatusSchema)
async def instrument_status(instrument: str) -> dict:
    return _get_trader(instrument).status


@router.get("/api/instruments/{instrument}/candles")
async def instrument_candles(instrument: str, count: int = 50) -> dict:
    """Últimas N velas (newest-first) del buffer del trader."""
    trader = _get_trader(instrument)
    count = max(0, min(count, 500))
    candles = trader.buffer.snapshot()[:count]
    return {
        "instrument": instrument,
        "count": len(candles),
        "candles": [c.to_dict() for c in candles],
    }


@router.get("/api/instruments/{instrument}/signals", response_model=SignalsResponse)
async def instrument_signals(instrument: str, limit: int = 100) -> dict:
    """Historial de señales de la estrategia, más reciente primero."""
    signals = _get_trader(instrument).signal_history()[: max(0, limit)]
    return {"instrument": instrument, "count": len(signals), "signals": signals}
