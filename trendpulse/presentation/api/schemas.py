"""
TrendPulse – API Schemas (Pydantic)
=====================================
Schemas de respuesta de la API REST de solo lectura.
"""

from __future__ import annotations

from pydantic import BaseModel
from typing import List, Optional


class HealthResponse(BaseModel):
    status: str
    service: str
    traders: int


class InstrumentStatusSchema(BaseModel):
    instrument: str
    venue: str
    strategy: str
    granularity: str
    running: bool
    can_trade: bool
    candles: int
    current_candle: Optional[dict] = None
    last_signal: Optional[str] = None
    events_processed: int
    orders_acted: int
    reconnect_attempts: int


class InstrumentsResponse(BaseModel):
    count: int
    instruments: List[InstrumentStatusSchema]


class SignalEntrySchema(BaseModel):
    signal: str
    timestamp: str
    reference_candle: Optional[dict] = None


class SignalsResponse(BaseModel):
    instrument: str
    count: int
    signals: List[SignalEntrySchema]
