"""Data-layer domain models."""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from data.asset_types import AssetType, Exchange, RunStatus


def utc_now() -> datetime:
    """Return current UTC timestamp with timezone information."""

    return datetime.now(UTC)


class Asset(BaseModel):
    """One instrument of the security master in internal notation."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    ticker: str
    primary_exchange: Exchange
    asset_type: AssetType = AssetType.UNKNOWN
    price_currency: str = ""
    listing_date: str = ""
    delisting_date: str = ""
    active: bool = True
    composite_figi: str = ""
    last_updated: datetime = Field(default_factory=utc_now)

    @model_validator(mode="after")
    def validate_lifecycle(self) -> Asset:
        """An asset is active exactly when it has no delisting date."""

        if self.active != (self.delisting_date == ""):
            raise ValueError("active must be true iff delisting_date is empty")
        return self


class EodQuote(BaseModel):
    """Daily price bar stamped at the exchange's market close."""

    model_config = ConfigDict(extra="forbid")

    date: datetime
    ticker: str
    composite_figi: str = ""
    open: float
    high: float
    low: float
    close: float
    volume: float
    dividend: float = 0.0
    split: float = 1.0

    @field_validator("date")
    @classmethod
    def validate_timezone_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            raise ValueError("date must be timezone-aware")
        return value


class Observation(BaseModel):
    """Output envelope carrying exactly one asset or one EOD quote."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    asset: Asset | None = None
    eod_quote: EodQuote | None = None
    observation_date: datetime = Field(default_factory=utc_now)
    subscription_id: str
    subscription_name: str

    @model_validator(mode="after")
    def validate_single_payload(self) -> Observation:
        if (self.asset is None) == (self.eod_quote is None):
            raise ValueError("observation must carry exactly one of asset or eod_quote")
        return self

    @classmethod
    def wrap(cls, payload: Asset | EodQuote, *, subscription_id: str, subscription_name: str) -> Observation:
        """Wrap a private copy of payload so later mutation cannot leak into the stream."""

        copied = payload.model_copy(deep=True)
        if isinstance(copied, Asset):
            return cls(asset=copied, subscription_id=subscription_id, subscription_name=subscription_name)
        return cls(eod_quote=copied, subscription_id=subscription_id, subscription_name=subscription_name)


class RunSummary(BaseModel):
    """Per-run result delivered on the completion queue."""

    model_config = ConfigDict(extra="forbid")

    subscription_id: str
    subscription_name: str
    start_time: datetime = Field(default_factory=utc_now)
    end_time: datetime | None = None
    num_observations: int = Field(default=0, ge=0)
    num_unresolved: int = Field(default=0, ge=0)
    status: RunStatus = RunStatus.COMPLETED
    error: str | None = None


class RawCatalogRecord(BaseModel):
    """One row of the provider's supported tickers file."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    ticker: str
    exchange: str = ""
    asset_type: str = Field(default="", alias="assetType")
    price_currency: str = Field(default="", alias="priceCurrency")
    start_date: str = Field(default="", alias="startDate")
    end_date: str = Field(default="", alias="endDate")

    @field_validator("*", mode="before")
    @classmethod
    def none_to_empty(cls, value: object) -> object:
        return "" if value is None else value


class RawEodBar(BaseModel):
    """One daily bar as returned by the provider's prices endpoint."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    date: str
    open: float
    high: float
    low: float
    close: float
    volume: float
    dividend: float = Field(default=0.0, alias="divCash")
    split: float = Field(default=1.0, alias="splitFactor")
