"""
TrendPulse – Application Layer
================================
Orquestación de los servicios de dominio contra los puertos.

Este módulo contiene:
- ports/: Interfaces hacia infraestructura (feed, gateway)
- services/: PositionController, ledger sintético, simulador
- use_cases/: InstrumentTrader (vivo) y BacktrackUseCase
"""
