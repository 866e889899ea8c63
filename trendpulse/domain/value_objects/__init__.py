"""Domain value objects."""

from trendpulse.domain.value_objects.tick import Heartbeat, Quote, Tick, mid_price

__all__ = ["Heartbeat", "Quote", "Tick", "mid_price"]
