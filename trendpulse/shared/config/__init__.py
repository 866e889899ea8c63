from trendpulse.shared.config.settings import Settings, settings

__all__ = ["Settings", "settings"]
