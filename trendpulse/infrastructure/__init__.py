"""
TrendPulse – Infrastructure Layer
===================================
Implementaciones concretas de los puertos.

Este módulo contiene:
- external/: adaptadores OANDA (REST + stream) y Coinbase (WebSocket + REST)
- messaging/: EventBus asyncio

Puede importar de:
- domain/ (entidades)
- application/ (ports)
- shared/ (config, logging)
"""
