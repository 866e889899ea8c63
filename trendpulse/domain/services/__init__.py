"""
Domain services - lógica pura, sin I/O.

- indicator_calculator: SMA / EMA / ATR / ROC / Ichimoku
- candle_aggregator: ticks/heartbeats → velas
- signal_history: memoria de señales por periodo
- risk_calculator: guardas y dimensionamiento
- market_hours: fin de semana FX y granularidades
- strategies/: variantes de estrategia
"""
