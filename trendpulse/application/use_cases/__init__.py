"""Application use cases - Business logic orchestration."""

from trendpulse.application.use_cases.backtrack_usecase import BacktrackUseCase
from trendpulse.application.use_cases.instrument_trader import (
    InstrumentTrader,
    PollUpdate,
    TraderConfig,
)

__all__ = [
    "BacktrackUseCase",
    "InstrumentTrader",
    "PollUpdate",
    "TraderConfig",
]
