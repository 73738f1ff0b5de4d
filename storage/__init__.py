"""Storage layer exports."""

from storage.asset_store import AssetConnection, AssetStore
from storage.observation_sink import JSONLObservationSink
from storage.sqlite_store import SQLiteAssetConnection, SQLiteAssetStore

__all__ = [
    "AssetConnection",
    "AssetStore",
    "JSONLObservationSink",
    "SQLiteAssetConnection",
    "SQLiteAssetStore",
]
