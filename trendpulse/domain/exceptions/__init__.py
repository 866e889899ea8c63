"""Domain exceptions."""

from trendpulse.domain.exceptions.domain_errors import (
    DomainError,
    FundsLimitExceededError,
    InsufficientHistoryError,
    MarginCallRiskError,
    PositionAlreadyOpenError,
    RiskManagementError,
    SpreadTooWideError,
    StrategyBusyError,
)

__all__ = [
    "DomainError",
    "InsufficientHistoryError",
    "StrategyBusyError",
    "RiskManagementError",
    "SpreadTooWideError",
    "MarginCallRiskError",
    "PositionAlreadyOpenError",
    "FundsLimitExceededError",
]
