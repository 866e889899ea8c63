"""
TrendPulse – Domain Exceptions
================================
Excepciones específicas del dominio de negocio.

Estas excepciones capturan errores de lógica de negocio,
NO errores técnicos (esos van en application/ports/exceptions.py).

JERARQUÍA:
    DomainError (base)
    ├── InsufficientHistoryError
    ├── StrategyBusyError
    └── RiskManagementError
        ├── SpreadTooWideError
        ├── MarginCallRiskError
        ├── PositionAlreadyOpenError
        └── FundsLimitExceededError
"""

from __future__ import annotations


class DomainError(Exception):
    """Excepción base para errores de dominio."""

    def __init__(self, message: str, code: str = "DOMAIN_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)

    def to_dict(self) -> dict:
        return {
            "error": self.code,
            "message": self.message,
        }


class InsufficientHistoryError(DomainError):
    """No hay suficientes velas para evaluar la estrategia."""

    def __init__(self, required: int, available: int):
        super().__init__(
            f"candle array too short ({available} < {required})",
            code="INSUFFICIENT_HISTORY",
        )
        self.required = required
        self.available = available


class StrategyBusyError(DomainError):
    """Una evaluación ya está en curso para esta estrategia."""

    def __init__(self, strategy: str):
        super().__init__(f"{strategy} is already evaluating", code="STRATEGY_BUSY")
        self.strategy = strategy


class RiskManagementError(DomainError):
    """Error cuando se viola una regla de gestión de riesgo."""

    def __init__(self, message: str, rule: str = None):
        super().__init__(message, code="RISK_VIOLATION")
        self.rule = rule


class SpreadTooWideError(RiskManagementError):
    def __init__(self, spread_pips: float, max_pips: float):
        super().__init__("The spread is too wide for now", rule="spread")
        self.spread_pips = spread_pips
        self.max_pips = max_pips


class MarginCallRiskError(RiskManagementError):
    def __init__(self, margin_call_percent: float):
        super().__init__("Too close from margin call", rule="margin_call")
        self.margin_call_percent = margin_call_percent


class PositionAlreadyOpenError(RiskManagementError):
    def __init__(self, side: str):
        super().__init__("A similar position is already opened", rule="position_open")
        self.side = side


class FundsLimitExceededError(RiskManagementError):
    def __init__(self, requested_units: float, allocated_units: float):
        super().__init__("Too much fund invested", rule="funds_limit")
        self.requested_units = requested_units
        self.allocated_units = allocated_units
