"""
TrendPulse – Shared Module
============================
Utilidades transversales usadas por todas las capas.

- config/: Settings
- logging/: Setup de logging

NOTA: Este módulo no contiene lógica de negocio.
"""
