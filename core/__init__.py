"""Core package: configuration and logging."""

from core.config_models import RootConfig, SubscriptionConfig, TiingoRules

__all__ = ["RootConfig", "SubscriptionConfig", "TiingoRules"]
