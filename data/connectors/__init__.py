"""Market-data provider implementations."""

from collections.abc import Callable

from core.config_models import FigiConfig, TiingoRules
from data.base_connector import DatasetProvider
from data.connectors.tiingo_connector import TiingoConnector

ProviderFactory = Callable[[TiingoRules, FigiConfig], DatasetProvider]

PROVIDERS: dict[str, ProviderFactory] = {
    "tiingo": TiingoConnector,
}

__all__ = ["PROVIDERS", "ProviderFactory", "TiingoConnector"]
