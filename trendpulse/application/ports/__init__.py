"""Application ports - Interfaces to infrastructure."""
from trendpulse.application.ports.exceptions import (
    FeedUnavailableError,
    GatewayRequestFailedError,
    IntegrationError,
    ParseError,
)
from trendpulse.application.ports.execution_gateway import IExecutionGateway
from trendpulse.application.ports.market_data_feed import IMarketDataFeed

__all__ = [
    "IExecutionGateway",
    "IMarketDataFeed",
    "IntegrationError",
    "FeedUnavailableError",
    "GatewayRequestFailedError",
    "ParseError",
]
