"""Configuration models for the ingestion connector."""

from __future__ import annotations

from enum import StrEnum
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator

from data.asset_types import AssetType, Exchange


class Environment(StrEnum):
    """Runtime environment modes."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(StrEnum):
    """Supported logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class SystemConfig(BaseModel):
    """Global process configuration."""

    run_id: str | None = None
    environment: Environment = Environment.DEVELOPMENT
    log_level: LogLevel = LogLevel.INFO
    data_store_path: str = "./data_store"
    output_queue_size: int = Field(default=1000, ge=1)

    @model_validator(mode="after")
    def ensure_run_id(self) -> SystemConfig:
        if not self.run_id:
            self.run_id = str(uuid4())
        return self


class SubscriptionConfig(BaseModel):
    """One provider subscription and the dataset it feeds."""

    subscription_id: str = Field(default_factory=lambda: str(uuid4()))
    name: str
    provider: str = "tiingo"
    dataset: str
    enabled: bool = True
    config: dict[str, str] = Field(default_factory=dict)
    data_tables: dict[str, str] = Field(default_factory=dict)

    @field_validator("config", mode="before")
    @classmethod
    def stringify_values(cls, value: object) -> object:
        if isinstance(value, dict):
            return {str(key): "" if item is None else str(item) for key, item in value.items()}
        return value

    @model_validator(mode="after")
    def require_api_key(self) -> SubscriptionConfig:
        if not self.config.get("apiKey"):
            raise ValueError("subscription config requires a non-empty apiKey")
        return self


def _default_exchanges() -> dict[str, Exchange]:
    return {
        "BATS": Exchange.BATS,
        "NASDAQ": Exchange.NASDAQ,
        "NMFQS": Exchange.NMFQS,
        "NYSE": Exchange.NYSE,
        "NYSE ARCA": Exchange.ARCA,
        "NYSE MKT": Exchange.NYSE_MKT,
    }


def _default_asset_types() -> dict[str, AssetType]:
    return {
        "Stock": AssetType.COMMON_STOCK,
        "ETF": AssetType.ETF,
        "Mutual Fund": AssetType.MUTUAL_FUND,
    }


class TiingoRules(BaseModel):
    """Provider rule tables and constants used by the normalization pipeline."""

    exchanges: dict[str, Exchange] = Field(default_factory=_default_exchanges)
    asset_types: dict[str, AssetType] = Field(default_factory=_default_asset_types)
    ignore_prefixes: list[str] = Field(default_factory=lambda: ["ATEST", "NTEST", "PTEST"])
    ignore_patterns: list[str] = Field(
        default_factory=lambda: [r"^[A-Za-z0-9]+-[WPU]{1}.*$", r"^[A-Za-z0-9]{4}[WPU]{1}.*$"]
    )
    provider_separator: str = Field(default="-", min_length=1, max_length=1)
    internal_separator: str = Field(default="/", min_length=1, max_length=1)
    provider_separator_aliases: list[str] = Field(default_factory=lambda: ["."])
    exchange_timezone: str = "America/New_York"
    delisting_grace_days: int = Field(default=7, ge=0)
    eod_lookback_days: int = Field(default=14, ge=1)
    market_close_hour: int = Field(default=16, ge=0, le=23)
    default_rate_limit: int = Field(default=5000, ge=1)
    catalog_url: str = "https://apimedia.tiingo.com/docs/tiingo/daily/supported_tickers.zip"
    eod_url_template: str = "https://api.tiingo.com/tiingo/daily/{ticker}/prices"
    request_timeout_seconds: float = Field(default=30.0, gt=0)

    @model_validator(mode="after")
    def validate_separators(self) -> TiingoRules:
        if self.provider_separator == self.internal_separator:
            raise ValueError("provider and internal separators must differ")
        if self.internal_separator in self.provider_separator_aliases:
            raise ValueError("internal separator cannot be a provider alias")
        return self


class FigiConfig(BaseModel):
    """OpenFIGI identifier enrichment settings."""

    enabled: bool = True
    api_key: str | None = None
    url: str = "https://api.openfigi.com/v3/mapping"
    exchange_code: str = "US"
    rate_limit: int | None = Field(default=None, ge=1)


class RootConfig(BaseModel):
    """Root validated configuration object."""

    system: SystemConfig = Field(default_factory=SystemConfig)
    subscriptions: list[SubscriptionConfig] = Field(default_factory=list)
    rules: TiingoRules = Field(default_factory=TiingoRules)
    figi: FigiConfig = Field(default_factory=FigiConfig)

    @model_validator(mode="after")
    def validate_unique_subscriptions(self) -> RootConfig:
        seen: set[str] = set()
        for item in self.subscriptions:
            if item.subscription_id in seen:
                raise ValueError(f"duplicate subscription_id: {item.subscription_id}")
            seen.add(item.subscription_id)
        return self

    def get_subscription(self, key: str) -> SubscriptionConfig | None:
        """Find a subscription by id or name."""

        for item in self.subscriptions:
            if key in {item.subscription_id, item.name}:
                return item
        return None
