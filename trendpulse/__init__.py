"""
TrendPulse
============
Señales técnicas sobre velas de periodo fijo y gestión de posiciones
acotada por riesgo para OANDA (FX) y Coinbase (spot).
"""

__version__ = "0.1.0"
