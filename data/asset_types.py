"""Exchange, asset type, and dataset enumerations."""

from __future__ import annotations

from enum import StrEnum


class Exchange(StrEnum):
    """Primary listing venues supported by the security master."""

    BATS = "BATS"
    NASDAQ = "NASDAQ"
    NMFQS = "NMFQS"
    NYSE = "NYSE"
    ARCA = "NYSE ARCA"
    NYSE_MKT = "NYSE MKT"


class AssetType(StrEnum):
    """Internal instrument types."""

    COMMON_STOCK = "Common Stock"
    ETF = "Exchange Traded Fund"
    MUTUAL_FUND = "Mutual Fund"
    UNKNOWN = "Unknown"


class DataTypeKey(StrEnum):
    """Kinds of records a dataset can produce."""

    ASSET = "asset"
    EOD = "eod"


class RunStatus(StrEnum):
    """Terminal state of one dataset run."""

    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
