"""In-process messaging."""

from trendpulse.infrastructure.messaging.event_bus import EventBus, market_topic

__all__ = ["EventBus", "market_topic"]
