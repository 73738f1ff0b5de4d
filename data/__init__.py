"""Data layer package exports."""

from data.asset_types import AssetType, DataTypeKey, Exchange, RunStatus
from data.models import Asset, EodQuote, Observation, RawCatalogRecord, RawEodBar, RunSummary

__all__ = [
    "Asset",
    "AssetType",
    "DataTypeKey",
    "EodQuote",
    "Exchange",
    "Observation",
    "RawCatalogRecord",
    "RawEodBar",
    "RunStatus",
    "RunSummary",
]
