"""
TrendPulse – Integration Exceptions
=====================================
Errores técnicos de los puertos (feed / gateway).

JERARQUÍA:
    IntegrationError (base)
    ├── FeedUnavailableError      → reconexión + reconstrucción del buffer
    ├── GatewayRequestFailedError → se notifica, no se reintenta en el ciclo
    └── ParseError                → payload malformado, se descarta
"""

from __future__ import annotations


class IntegrationError(Exception):
    def __init__(self, message: str, code: str = "INTEGRATION_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class FeedUnavailableError(IntegrationError):
    def __init__(self, message: str, source: str = None):
        super().__init__(message, code="FEED_UNAVAILABLE")
        self.source = source


class GatewayRequestFailedError(IntegrationError):
    def __init__(self, message: str, status: int = None):
        super().__init__(message, code="GATEWAY_REQUEST_FAILED")
        self.status = status


class ParseError(IntegrationError):
    def __init__(self, message: str, payload: object = None):
        super().__init__(message, code="PARSE_ERROR")
        self.payload = payload
